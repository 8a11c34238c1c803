from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import ApplicationNotFound
from services.notification_service.adapters import HttpEmailTransport, HttpTemplateRenderer
from services.notification_service.dispatcher import NotificationDispatcher
from services.payment_service.gateway import PaymentLinkProvider
from services.reminder_service.scheduler import ReminderScheduler
from .derivation import derive
from .repository import WaitlistRepository
from .workflow import PaymentWorkflowStateMachine, TransitionResult


# One instance per process: the record guard and the sweep lock live on these
@lru_cache(maxsize=None)
def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(HttpTemplateRenderer(), HttpEmailTransport())


@lru_cache(maxsize=None)
def get_reminder_scheduler() -> ReminderScheduler:
    return ReminderScheduler(get_dispatcher())


@lru_cache(maxsize=None)
def get_workflow() -> PaymentWorkflowStateMachine:
    return PaymentWorkflowStateMachine(
        dispatcher=get_dispatcher(),
        scheduler=get_reminder_scheduler(),
        payment_links=PaymentLinkProvider(),
    )


class WaitlistService:
    @staticmethod
    async def get_application(db: AsyncSession, application_id: int) -> TransitionResult:
        """Load one application together with its derived statuses."""
        application = await WaitlistRepository.get_application(db, application_id)
        if application is None:
            raise ApplicationNotFound(application_id)
        payment_status, fulfillment_status = derive(application)
        return TransitionResult(
            application=application,
            payment_status=payment_status,
            fulfillment_status=fulfillment_status,
        )
