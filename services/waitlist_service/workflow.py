"""
Payment and fulfillment workflow for waitlist applications.

    pending -> approved -> order_ready -> payment_selected{direct|invoice} -> shipped (-> delivered)
    pending | approved -> rejected | cancelled   (terminal)

The deposit is recorded independently of request_status. Choosing a payment
method forks the flow: direct payment gets a hosted payment link and waits for
the remaining payment, invoice starts a fixed payment term, lets the goods
ship straight away and schedules two payment reminders.

Every transition is checked completely before anything is touched. A failed
check raises InvalidTransition and leaves the record, the reminders and the
outbox alone. A successful transition is committed first; notifications are
sent afterwards and can only produce warnings.
"""
from dataclasses import dataclass, field
from datetime import timedelta, timezone
from typing import Callable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import settings
from shared.config.db_types import utcnow
from shared.errors import ApplicationNotFound, ConcurrentModification, FulfillmentError, InvalidTransition
from shared.observability.metrics import waitlist_transitions_total
from services.notification_service import templates
from services.notification_service.dispatcher import Notification, NotificationDispatcher
from .derivation import derive
from .guard import RecordGuard
from .models import WaitlistApplication
from .repository import WaitlistRepository
from .schemas import ApplicationCreate, TransitionParams
from .states import (
    FulfillmentStatus,
    PaymentMethod,
    PaymentState,
    PaymentStatus,
    RequestStatus,
    TERMINAL_STATES,
    WorkflowEvent,
)

logger = structlog.get_logger(__name__)

INVOICE_TERM = timedelta(days=settings.INVOICE_TERM_DAYS)
CLOSABLE_STATES = frozenset({RequestStatus.PENDING, RequestStatus.APPROVED})
SHIPPABLE_STATES = frozenset({RequestStatus.ORDER_READY, RequestStatus.PAYMENT_SELECTED})


@dataclass
class Effects:
    """What a transition asks for beyond the field changes it made."""
    note: str
    notifications: list = field(default_factory=list)
    schedule_reminders_for: Optional[object] = None  # due date
    cancel_reminders: bool = False


@dataclass
class TransitionResult:
    application: WaitlistApplication
    payment_status: PaymentStatus
    fulfillment_status: FulfillmentStatus
    warnings: list = field(default_factory=list)


@dataclass(frozen=True)
class Transition:
    check: Callable  # (app, params) -> reason or None
    apply: Callable  # (app, params, now, context) -> Effects


# --- PRECONDITIONS -----------------------------------------------------------
# Each returns a human readable reason when the event is not allowed.

def _check_approve(app, params):
    if app.request_status != RequestStatus.PENDING:
        return "only pending applications can be approved"


def _check_deposit_paid(app, params):
    if app.deposit_status == PaymentState.PAID:
        return "deposit is already paid"


def _check_deposit_failed(app, params):
    if app.deposit_status == PaymentState.PAID:
        return "deposit is already paid"


def _check_order_ready(app, params):
    if app.deposit_status != PaymentState.PAID:
        return "deposit must be paid before the order can be marked ready"
    if app.payment_options_sent:
        return "payment options were already sent"


def _check_select_method(app, params):
    if app.request_status != RequestStatus.ORDER_READY:
        return "payment method can only be chosen once the order is ready"
    if params.method is None:
        return "a payment method is required"


def _check_remaining_paid(app, params):
    if app.payment_method_selected is None:
        return "no payment method has been selected"
    if app.deposit_status != PaymentState.PAID:
        return "the remaining payment cannot clear before the deposit"
    if app.remaining_payment_status == PaymentState.PAID:
        return "remaining payment is already recorded"


def _check_change_due_date(app, params):
    if app.payment_method_selected != PaymentMethod.INVOICE:
        return "only invoice orders have a payment due date"
    if app.remaining_payment_status == PaymentState.PAID:
        return "the invoice is already paid"
    if params.due_date is None:
        return "a due date is required"


def _check_carrier(carrier, required: bool):
    carrier = templates.normalize_carrier(carrier)
    if carrier is None:
        return "a shipping carrier is required" if required else None
    if carrier not in templates.SUPPORTED_CARRIERS:
        return f"unsupported carrier '{carrier}'"


def _check_assign_tracking(app, params):
    if app.request_status not in SHIPPABLE_STATES:
        return "only ready or paid-for orders can be shipped"
    if not (params.tracking_code or "").strip():
        return "a tracking code is required"
    return _check_carrier(params.carrier, required=True)


def _check_mark_shipped(app, params):
    if app.request_status not in SHIPPABLE_STATES:
        return "only ready or paid-for orders can be shipped"
    return _check_carrier(params.carrier, required=False)


def _check_mark_delivered(app, params):
    if app.request_status != RequestStatus.SHIPPED:
        return "only shipped orders can be delivered"
    if app.delivered_at is not None:
        return "delivery is already recorded"


def _check_close(app, params):
    if app.request_status not in CLOSABLE_STATES:
        return "only pending or approved applications can be closed"


# --- EFFECTS -----------------------------------------------------------------

def _notify(app, template_key, **context) -> Notification:
    base = {
        "application_id": app.id,
        "display_number": app.display_number,
        "applicant_contact": app.applicant_contact,
    }
    base.update(context)
    return Notification(template_key=template_key, recipient=app.applicant_contact, context=base)


def _apply_approve(app, params, now, context):
    app.request_status = RequestStatus.APPROVED
    if app.deposit_status == PaymentState.NOT_SENT:
        app.deposit_status = PaymentState.SENT
    return Effects(
        note="approved, deposit requested",
        notifications=[_notify(app, templates.DEPOSIT_REQUEST, deposit_amount=str(app.deposit_amount))],
    )


def _apply_deposit_paid(app, params, now, context):
    app.deposit_status = PaymentState.PAID
    app.deposit_paid_at = now
    return Effects(
        note=f"deposit of {app.deposit_amount} received",
        notifications=[_notify(app, templates.DEPOSIT_PAID_CONFIRMATION, deposit_amount=str(app.deposit_amount))],
    )


def _apply_deposit_failed(app, params, now, context):
    app.deposit_status = PaymentState.FAILED
    return Effects(note="deposit payment failed")


def _apply_order_ready(app, params, now, context):
    app.request_status = RequestStatus.ORDER_READY
    app.payment_options_sent = True
    app.payment_options_sent_at = now
    options_url = f"{settings.SITE_URL}/retailer-dashboard/payment-options/{app.id}"
    return Effects(
        note="order ready, payment options sent",
        notifications=[_notify(app, templates.ORDER_READY, payment_options_url=options_url)],
    )


def _apply_select_method(app, params, now, context):
    method = params.method
    app.payment_method_selected = method
    app.payment_method_selected_at = now
    app.request_status = RequestStatus.PAYMENT_SELECTED
    if app.remaining_payment_status != PaymentState.PAID:
        app.remaining_payment_status = PaymentState.SENT

    if method == PaymentMethod.DIRECT:
        app.payment_link_url = context["payment_link_url"]
        app.payment_due_date = None
        return Effects(note="direct payment selected, payment link created")

    # Invoice: goods move now, payment follows within the term
    due_date = now + INVOICE_TERM
    app.payment_due_date = due_date
    return Effects(
        note=f"invoice selected, payment due {due_date.date().isoformat()}",
        schedule_reminders_for=due_date,
    )


def _apply_remaining_paid(app, params, now, context):
    app.remaining_payment_status = PaymentState.PAID
    app.remaining_paid_at = now
    return Effects(
        note=f"remaining payment of {app.remaining_amount} received",
        cancel_reminders=app.payment_method_selected == PaymentMethod.INVOICE,
    )


def _apply_change_due_date(app, params, now, context):
    due_date = params.due_date
    if due_date.tzinfo is None:
        due_date = due_date.replace(tzinfo=timezone.utc)
    app.payment_due_date = due_date
    # Reminders keep their fire times until reschedule() is called explicitly
    return Effects(note=f"payment due date changed to {due_date.date().isoformat()}")


def _ship(app, now, carrier, tracking_code):
    app.request_status = RequestStatus.SHIPPED
    app.shipped_at = now
    if carrier:
        app.shipping_carrier = carrier
    if tracking_code:
        app.tracking_code = tracking_code


def _apply_assign_tracking(app, params, now, context):
    carrier = templates.normalize_carrier(params.carrier)
    code = params.tracking_code.strip()
    _ship(app, now, carrier, code)
    return Effects(
        note=f"shipped with {carrier} tracking {code}",
        notifications=[_notify(
            app, templates.SHIPMENT_CONFIRMATION,
            carrier=carrier,
            tracking_code=code,
            tracking_url=templates.tracking_url(carrier, code),
            has_tracking=True,
            shipping_date=now.date().isoformat(),
        )],
    )


def _apply_mark_shipped(app, params, now, context):
    carrier = templates.normalize_carrier(params.carrier)
    _ship(app, now, carrier, None)
    return Effects(
        note="shipped" + (f" with {carrier}" if carrier else ""),
        notifications=[_notify(
            app, templates.SHIPMENT_CONFIRMATION,
            carrier=carrier,
            tracking_code=None,
            tracking_url=None,
            has_tracking=False,
            shipping_date=now.date().isoformat(),
        )],
    )


def _apply_mark_delivered(app, params, now, context):
    app.delivered_at = now
    return Effects(note="delivered")


def _closer(target: RequestStatus):
    def _apply_close(app, params, now, context):
        app.request_status = target
        reason = (params.reason or "").strip()
        return Effects(
            note=target.value + (f": {reason}" if reason else ""),
            notifications=[_notify(app, templates.REJECTION, outcome=target.value, reason=reason or None)],
        )
    return _apply_close


TRANSITIONS = {
    WorkflowEvent.APPROVE: Transition(_check_approve, _apply_approve),
    WorkflowEvent.RECORD_DEPOSIT_PAID: Transition(_check_deposit_paid, _apply_deposit_paid),
    WorkflowEvent.RECORD_DEPOSIT_FAILED: Transition(_check_deposit_failed, _apply_deposit_failed),
    WorkflowEvent.MARK_ORDER_READY: Transition(_check_order_ready, _apply_order_ready),
    WorkflowEvent.SELECT_PAYMENT_METHOD: Transition(_check_select_method, _apply_select_method),
    WorkflowEvent.RECORD_REMAINING_PAID: Transition(_check_remaining_paid, _apply_remaining_paid),
    WorkflowEvent.CHANGE_PAYMENT_DUE_DATE: Transition(_check_change_due_date, _apply_change_due_date),
    WorkflowEvent.ASSIGN_TRACKING: Transition(_check_assign_tracking, _apply_assign_tracking),
    WorkflowEvent.MARK_SHIPPED: Transition(_check_mark_shipped, _apply_mark_shipped),
    WorkflowEvent.MARK_DELIVERED: Transition(_check_mark_delivered, _apply_mark_delivered),
    WorkflowEvent.REJECT: Transition(_check_close, _closer(RequestStatus.REJECTED)),
    WorkflowEvent.CANCEL: Transition(_check_close, _closer(RequestStatus.CANCELLED)),
}


def validate_transition(app, event, params: TransitionParams) -> Transition:
    """Return the transition for event or raise InvalidTransition. Never mutates."""
    try:
        event = WorkflowEvent(event)
    except ValueError:
        raise InvalidTransition(app.request_status, event, "unknown event")

    if app.request_status in TERMINAL_STATES:
        raise InvalidTransition(app.request_status, event, "application is closed")

    transition = TRANSITIONS[event]
    reason = transition.check(app, params)
    if reason:
        raise InvalidTransition(app.request_status, event, reason)
    return transition


class PaymentWorkflowStateMachine:
    def __init__(self, dispatcher: NotificationDispatcher, scheduler, payment_links,
                 guard: RecordGuard = None, clock=utcnow):
        self.dispatcher = dispatcher
        self.scheduler = scheduler
        self.payment_links = payment_links
        self.guard = guard or RecordGuard()
        self.clock = clock

    async def submit(self, db: AsyncSession, data: ApplicationCreate) -> WaitlistApplication:
        now = self.clock()
        application = WaitlistApplication.submit(
            data.applicant_contact,
            now,
            deposit_amount=data.deposit_amount,
            remaining_amount=data.remaining_amount,
        )
        application = await WaitlistRepository.create_application(db, application)
        logger.info("application_submitted", application_id=application.id,
                    display_number=application.display_number)
        return application

    async def apply_transition(self, db: AsyncSession, application_id: int, event,
                               params: TransitionParams = None) -> TransitionResult:
        params = params or TransitionParams()
        event_label = getattr(event, "value", str(event))
        async with self.guard.hold(application_id):
            try:
                result = await self._apply_locked(db, application_id, event, params)
            except InvalidTransition as e:
                waitlist_transitions_total.labels(event=event_label, outcome="invalid").inc()
                logger.info("transition_rejected", application_id=application_id, workflow_event=event_label, reason=str(e))
                raise
            except ConcurrentModification:
                waitlist_transitions_total.labels(event=event_label, outcome="conflict").inc()
                logger.warning("transition_conflict", application_id=application_id, workflow_event=event_label)
                raise
            except FulfillmentError:
                waitlist_transitions_total.labels(event=event_label, outcome="error").inc()
                raise

        waitlist_transitions_total.labels(event=event_label, outcome="applied").inc()
        return result

    async def _apply_locked(self, db, application_id, event, params) -> TransitionResult:
        app = await WaitlistRepository.get_application(db, application_id, fresh=True)
        if app is None:
            raise ApplicationNotFound(application_id)

        transition = validate_transition(app, event, params)
        event = WorkflowEvent(event)

        # External calls that must succeed before anything changes
        context = {}
        if event == WorkflowEvent.SELECT_PAYMENT_METHOD and params.method == PaymentMethod.DIRECT:
            context["payment_link_url"] = await self.payment_links.create_payment_link(app)

        now = self.clock()
        from_status = app.request_status
        async with WaitlistRepository.unit_of_work(db, application_id):
            effects = transition.apply(app, params, now, context)
            app.append_note(now, f"{event.value}: {effects.note}")
            app.updated_at = now
            if effects.cancel_reminders:
                await self.scheduler.cancel_for(db, application_id, now)
            if effects.schedule_reminders_for is not None:
                await self.scheduler.schedule_for(db, application_id, effects.schedule_reminders_for, now=now)

        logger.info(
            "transition_applied",
            application_id=application_id,
            workflow_event=event.value,
            from_status=from_status.value,
            to_status=app.request_status.value,
        )

        # Committed: delivery problems are reported, never rolled back
        warnings = await self.dispatcher.dispatch_all(effects.notifications)
        payment_status, fulfillment_status = derive(app)
        return TransitionResult(
            application=app,
            payment_status=payment_status,
            fulfillment_status=fulfillment_status,
            warnings=warnings,
        )
