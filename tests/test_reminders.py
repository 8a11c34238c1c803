import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select

from shared.errors import ApplicationNotFound, InvalidTransition
from services.notification_service import templates
from services.reminder_service.models import ReminderKind, ReminderRecord
from services.reminder_service.repository import ReminderRepository
from services.reminder_service.scheduler import ReminderScheduler, reminder_fire_times
from services.waitlist_service.schemas import TransitionParams
from services.waitlist_service.states import PaymentState, WorkflowEvent


async def unsent(db, application_id):
    return [r for r in await ReminderRepository.list_for_application(db, application_id) if not r.sent]


def test_fire_times_are_four_and_one_day_before_due(clock):
    due = clock.now + timedelta(days=14)

    times = reminder_fire_times(due)

    assert times == {
        ReminderKind.FOUR_DAY_NOTICE: clock.now + timedelta(days=10),
        ReminderKind.ONE_DAY_NOTICE: clock.now + timedelta(days=13),
    }


async def test_nothing_fires_before_fire_at(scheduler, db, make_application, transport, clock):
    await make_application("invoice")
    sent_before = len(transport.sent)

    report = await scheduler.sweep(db, now=clock.now + timedelta(days=9, hours=23))

    assert report.due == 0
    assert report.sent == []
    assert len(transport.sent) == sent_before


async def test_reminder_fires_exactly_once(scheduler, db, make_application, transport, clock):
    application = await make_application("invoice")
    fire_time = clock.now + timedelta(days=10, minutes=1)

    first = await scheduler.sweep(db, now=fire_time)
    second = await scheduler.sweep(db, now=fire_time + timedelta(hours=1))

    assert len(first.sent) == 1
    assert second.due == 0
    assert transport.templates().count(templates.PAYMENT_REMINDER_4D) == 1
    four_day = [r for r in await ReminderRepository.list_for_application(db, application.id)
                if r.kind == ReminderKind.FOUR_DAY_NOTICE]
    assert four_day[0].sent and not four_day[0].cancelled
    assert four_day[0].sent_at == fire_time


async def test_both_reminders_fire_in_order(scheduler, db, make_application, transport, renderer, clock):
    await make_application("invoice")

    await scheduler.sweep(db, now=clock.now + timedelta(days=10, hours=1))
    await scheduler.sweep(db, now=clock.now + timedelta(days=13, hours=1))

    reminders = [key for key in transport.templates() if key.startswith("payment-reminder")]
    assert reminders == [templates.PAYMENT_REMINDER_4D, templates.PAYMENT_REMINDER_1D]
    _, context = renderer.calls[-1]
    assert context["days_left"] == 1
    assert context["amount_due"] == "270.00"


async def test_late_sweep_sends_each_reminder_once(scheduler, db, make_application, transport, clock):
    await make_application("invoice")

    report = await scheduler.sweep(db, now=clock.now + timedelta(days=20))

    assert report.due == 2
    assert len(report.sent) == 2
    assert len([k for k in transport.templates() if k.startswith("payment-reminder")]) == 2


async def test_paid_invoice_reminder_is_retired_without_sending(scheduler, workflow, db, make_application,
                                                               transport, clock):
    application = await make_application("invoice")
    await workflow.apply_transition(db, application.id, WorkflowEvent.RECORD_REMAINING_PAID)
    sent_before = len(transport.sent)

    report = await scheduler.sweep(db, now=clock.now + timedelta(days=20))

    assert report.due == 0
    assert len(transport.sent) == sent_before


async def test_reminder_for_paid_application_is_cancelled_at_fire_time(scheduler, db, make_application,
                                                                      transport, clock):
    application = await make_application("invoice")
    # Payment recorded outside the workflow: the reminders are still unsent
    application.remaining_payment_status = PaymentState.PAID
    await db.commit()
    sent_before = len(transport.sent)

    report = await scheduler.sweep(db, now=clock.now + timedelta(days=20))

    assert len(report.cancelled) == 2
    assert report.sent == []
    assert len(transport.sent) == sent_before
    records = await ReminderRepository.list_for_application(db, application.id)
    assert all(r.sent and r.cancelled for r in records)


async def test_dispatch_failure_is_recorded_and_not_retried(scheduler, db, make_application, transport, clock):
    application = await make_application("invoice")
    transport.fail = True
    fire_time = clock.now + timedelta(days=10, minutes=1)

    report = await scheduler.sweep(db, now=fire_time)
    transport.fail = False
    retry = await scheduler.sweep(db, now=fire_time)

    assert len(report.failed) == 1
    assert retry.due == 0
    result = await db.execute(
        select(ReminderRecord)
        .where(ReminderRecord.application_id == application.id)
        .where(ReminderRecord.kind == ReminderKind.FOUR_DAY_NOTICE)
        .execution_options(populate_existing=True)
    )
    record = result.scalars().one()
    assert record.sent is True
    assert "mailbox unavailable" in record.dispatch_error


async def test_overlapping_sweep_is_skipped(scheduler, session_factory, make_application, clock):
    await make_application("invoice")
    started = asyncio.Event()
    release = asyncio.Event()
    original_handle = scheduler._handle

    async def slow_handle(*args):
        started.set()
        await release.wait()
        await original_handle(*args)

    scheduler._handle = slow_handle
    when = clock.now + timedelta(days=10, minutes=1)

    async with session_factory() as first_db, session_factory() as second_db:
        first = asyncio.create_task(scheduler.sweep(first_db, now=when))
        await started.wait()
        second = await scheduler.sweep(second_db, now=when)
        release.set()
        first_report = await first

    assert second.skipped is True
    assert first_report.skipped is False
    assert len(first_report.sent) == 1


async def test_second_scheduler_cannot_claim_a_sent_reminder(dispatcher, db, make_application, clock,
                                                            session_factory):
    application = await make_application("invoice")
    reminder = (await unsent(db, application.id))[0]
    other = ReminderScheduler(dispatcher, clock=clock)

    async with session_factory() as other_db:
        assert await ReminderRepository.claim_reminder(other_db, reminder.id, clock.now)

    report = await other.sweep(db, now=clock.now + timedelta(days=10, minutes=1))

    assert report.due == 0
    assert report.sent == []


async def test_reschedule_moves_reminders_to_new_due_date(workflow, scheduler, db, make_application, clock):
    application = await make_application("invoice")
    new_due = clock.now + timedelta(days=30)
    await workflow.apply_transition(
        db, application.id, WorkflowEvent.CHANGE_PAYMENT_DUE_DATE, TransitionParams(due_date=new_due)
    )

    await scheduler.reschedule(db, application.id)

    pending = await unsent(db, application.id)
    assert sorted(r.fire_at for r in pending) == [new_due - timedelta(days=4), new_due - timedelta(days=1)]
    assert len(await ReminderRepository.list_for_application(db, application.id)) == 4
    assert "payment reminders rescheduled" in application.notes.splitlines()[-1]


async def test_reschedule_keeps_one_unsent_reminder_per_kind(scheduler, db, make_application, clock):
    application = await make_application("invoice")

    for days in (20, 25, 30):
        await scheduler.reschedule(db, application.id, clock.now + timedelta(days=days))

    kinds = [r.kind for r in await unsent(db, application.id)]
    assert sorted(kinds) == sorted(ReminderKind)


async def test_reschedule_refuses_non_invoice_orders(scheduler, db, make_application):
    application = await make_application("direct")

    with pytest.raises(InvalidTransition):
        await scheduler.reschedule(db, application.id)


async def test_reschedule_unknown_application(scheduler, db):
    with pytest.raises(ApplicationNotFound):
        await scheduler.reschedule(db, 4242)


async def test_explicit_reschedule_moves_the_due_date_too(scheduler, db, make_application, renderer, clock):
    application = await make_application("invoice")
    new_due = clock.now + timedelta(days=30)

    await scheduler.reschedule(db, application.id, new_due)
    report = await scheduler.sweep(db, now=new_due - timedelta(days=4, minutes=-1))

    assert application.payment_due_date == new_due
    assert len(report.sent) == 1
    _, context = renderer.calls[-1]
    assert context["payment_due_date"] == new_due.date().isoformat()
    assert context["days_left"] == 4
