"""
Payment reminders for invoice-on-terms orders.

Two reminders are scheduled when an invoice term starts: four days and one
day before the due date. A periodic sweep fires the ones that are due.

Delivery is at-most-once: a reminder is claimed (sent=true, committed) before
the notification goes out, so a crash between the two loses a reminder rather
than duplicating it. Once scheduled, fire_at is never recomputed; moving a due
date only moves reminders through reschedule().
"""
import asyncio
import time
from dataclasses import dataclass, field
from datetime import timedelta, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.db_types import utcnow
from shared.errors import ApplicationNotFound, InvalidTransition
from shared.observability.metrics import reminders_fired_total, reminder_sweep_duration_seconds
from services.notification_service import templates
from services.notification_service.dispatcher import Notification, NotificationDispatcher
from services.waitlist_service.repository import WaitlistRepository
from services.waitlist_service.states import PaymentMethod, PaymentState
from .models import ReminderKind, ReminderRecord
from .repository import ReminderRepository

logger = structlog.get_logger(__name__)

REMINDER_OFFSETS = {
    ReminderKind.FOUR_DAY_NOTICE: timedelta(days=4),
    ReminderKind.ONE_DAY_NOTICE: timedelta(days=1),
}

REMINDER_TEMPLATES = {
    ReminderKind.FOUR_DAY_NOTICE: templates.PAYMENT_REMINDER_4D,
    ReminderKind.ONE_DAY_NOTICE: templates.PAYMENT_REMINDER_1D,
}

RESCHEDULE_EVENT = "reschedule_reminders"


@dataclass
class SweepReport:
    started_at: object = None
    skipped: bool = False
    due: int = 0
    sent: list = field(default_factory=list)
    cancelled: list = field(default_factory=list)
    failed: dict = field(default_factory=dict)
    already_claimed: list = field(default_factory=list)


def reminder_fire_times(due_date) -> dict:
    return {kind: due_date - offset for kind, offset in REMINDER_OFFSETS.items()}


def reminder_is_still_needed(application) -> bool:
    """A reminder only makes sense while an invoice balance is open."""
    return (
        application is not None
        and application.payment_method_selected == PaymentMethod.INVOICE
        and application.remaining_payment_status != PaymentState.PAID
    )


class ReminderScheduler:
    def __init__(self, dispatcher: NotificationDispatcher, clock=utcnow):
        self.dispatcher = dispatcher
        self.clock = clock
        # Sweeps never overlap within a process; claims guard across processes
        self._sweep_lock = asyncio.Lock()

    async def schedule_for(self, db: AsyncSession, application_id: int, due_date, now=None):
        """Stage both reminders for an application in the caller's transaction.

        Any unsent reminder still pending for the application is retired first
        so there is never more than one unsent record per kind.
        """
        now = now or self.clock()
        await ReminderRepository.cancel_unsent(db, application_id, now)
        records = []
        for kind, fire_at in reminder_fire_times(due_date).items():
            record = ReminderRecord(
                application_id=application_id,
                kind=kind,
                fire_at=fire_at,
                sent=False,
                cancelled=False,
                created_at=now,
            )
            records.append(ReminderRepository.add_reminder(db, record))
        logger.info("reminders_scheduled", application_id=application_id, due_date=due_date.isoformat())
        return records

    async def cancel_for(self, db: AsyncSession, application_id: int, now=None) -> int:
        return await ReminderRepository.cancel_unsent(db, application_id, now or self.clock())

    async def reschedule(self, db: AsyncSession, application_id: int, due_date=None):
        """Explicitly move an application's pending reminders.

        Without a due date the application's current payment_due_date is used,
        which is how an edited due date gets its reminders moved. An explicit
        due date also becomes the application's payment_due_date.
        """
        application = await WaitlistRepository.get_application(db, application_id)
        if application is None:
            raise ApplicationNotFound(application_id)
        if not reminder_is_still_needed(application):
            raise InvalidTransition(
                application.request_status, RESCHEDULE_EVENT,
                "reminders only exist for unpaid invoice orders",
            )
        due_date = due_date or application.payment_due_date
        if due_date.tzinfo is None:
            due_date = due_date.replace(tzinfo=timezone.utc)

        now = self.clock()
        async with WaitlistRepository.unit_of_work(db, application_id):
            # Reminders and the due date shown in their emails must agree
            application.payment_due_date = due_date
            records = await self.schedule_for(db, application_id, due_date, now=now)
            application.append_note(now, f"payment reminders rescheduled for due date {due_date.date().isoformat()}")
            application.updated_at = now
        return records

    async def sweep(self, db: AsyncSession, now=None) -> SweepReport:
        """Fire every unsent reminder whose fire_at has passed, once."""
        now = now or self.clock()
        report = SweepReport(started_at=now)
        if self._sweep_lock.locked():
            logger.warning("reminder_sweep_skipped", reason="previous sweep still running")
            report.skipped = True
            return report

        async with self._sweep_lock:
            started = time.perf_counter()
            try:
                due = await ReminderRepository.list_due_reminders(db, now)
                report.due = len(due)
                for reminder in due:
                    await self._handle(db, reminder, now, report)
            finally:
                reminder_sweep_duration_seconds.observe(time.perf_counter() - started)

        logger.info(
            "reminder_sweep_completed",
            due=report.due,
            sent=len(report.sent),
            cancelled=len(report.cancelled),
            failed=len(report.failed),
        )
        return report

    async def _handle(self, db: AsyncSession, reminder: ReminderRecord, now, report: SweepReport):
        reminder_id = reminder.id
        kind = ReminderKind(reminder.kind)
        application = await WaitlistRepository.get_application(db, reminder.application_id, fresh=True)
        needed = reminder_is_still_needed(application)

        if not await ReminderRepository.claim_reminder(db, reminder_id, now, cancelled=not needed):
            report.already_claimed.append(reminder_id)
            return

        if not needed:
            # Paid (or no longer on invoice terms): retire without sending
            reminders_fired_total.labels(kind=kind.value, outcome="cancelled").inc()
            report.cancelled.append(reminder_id)
            return

        warning = await self.dispatcher.dispatch(self._notification(application, kind))
        if warning:
            await ReminderRepository.record_dispatch_error(db, reminder_id, warning)
            reminders_fired_total.labels(kind=kind.value, outcome="failed").inc()
            report.failed[reminder_id] = warning
            return

        reminders_fired_total.labels(kind=kind.value, outcome="sent").inc()
        report.sent.append(reminder_id)

    @staticmethod
    def _notification(application, kind: ReminderKind) -> Notification:
        return Notification(
            template_key=REMINDER_TEMPLATES[kind],
            recipient=application.applicant_contact,
            context={
                "application_id": application.id,
                "display_number": application.display_number,
                "amount_due": str(application.remaining_amount),
                "payment_due_date": application.payment_due_date.date().isoformat(),
                "days_left": REMINDER_OFFSETS[kind].days,
            },
        )
