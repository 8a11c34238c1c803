import pytest

from services.orchestrator.bulk import BulkActionProcessor, UnsupportedBulkAction
from services.waitlist_service.repository import WaitlistRepository
from services.waitlist_service.states import RequestStatus, WorkflowEvent


async def test_invalid_item_does_not_stop_the_batch(bulk, db, make_application):
    first = await make_application("deposit_paid")
    second = await make_application("approved")  # deposit not paid yet
    third = await make_application("deposit_paid")

    result = await bulk.apply(db, WorkflowEvent.MARK_ORDER_READY, [first.id, second.id, third.id])

    assert result.succeeded == {first.id, third.id}
    assert list(result.failed) == [second.id]
    assert result.failed[second.id].startswith("InvalidTransition")
    for application in (first, third):
        stored = await WaitlistRepository.get_application(db, application.id, fresh=True)
        assert stored.request_status == RequestStatus.ORDER_READY
    stored = await WaitlistRepository.get_application(db, second.id, fresh=True)
    assert stored.request_status == RequestStatus.APPROVED


async def test_every_id_lands_in_exactly_one_bucket(bulk, db, make_application):
    applications = [await make_application() for _ in range(3)]
    ids = [a.id for a in applications] + [9999]

    result = await bulk.apply(db, "approve", ids)

    assert result.succeeded | set(result.failed) == set(ids)
    assert not result.succeeded & set(result.failed)
    assert result.failed[9999].startswith("ApplicationNotFound")


async def test_duplicate_ids_are_applied_once(bulk, db, make_application, transport):
    application = await make_application()

    result = await bulk.apply(db, WorkflowEvent.APPROVE, [application.id, application.id])

    assert result.succeeded == {application.id}
    assert result.failed == {}
    assert transport.templates().count("deposit-request") == 1


async def test_dispatch_warnings_are_kept_per_item(bulk, db, make_application, transport):
    application = await make_application()
    transport.fail = True

    result = await bulk.apply(db, WorkflowEvent.APPROVE, [application.id])

    assert result.succeeded == {application.id}
    assert len(result.warnings[application.id]) == 1


@pytest.mark.parametrize("action", [WorkflowEvent.ASSIGN_TRACKING, "select_payment_method", "teleport"])
async def test_unsupported_actions_are_refused_up_front(workflow, db, action):
    processor = BulkActionProcessor(workflow)

    with pytest.raises(UnsupportedBulkAction):
        await processor.apply(db, action, [1])
