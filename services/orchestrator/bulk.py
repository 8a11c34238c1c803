import logging
from dataclasses import dataclass, field

from shared.errors import FulfillmentError
from shared.observability import bulk_items_total
from services.waitlist_service.schemas import TransitionParams
from services.waitlist_service.states import WorkflowEvent

logger = logging.getLogger(__name__)

# Only events that need no per-item input can be applied to a selection.
# Tracking codes and due dates differ per order, so those stay single-item.
BULK_ACTIONS = frozenset({
    WorkflowEvent.APPROVE,
    WorkflowEvent.RECORD_DEPOSIT_PAID,
    WorkflowEvent.MARK_ORDER_READY,
    WorkflowEvent.RECORD_REMAINING_PAID,
    WorkflowEvent.MARK_SHIPPED,
    WorkflowEvent.MARK_DELIVERED,
    WorkflowEvent.REJECT,
    WorkflowEvent.CANCEL,
})


class UnsupportedBulkAction(ValueError):
    pass


@dataclass
class BulkResult:
    succeeded: set = field(default_factory=set)
    failed: dict = field(default_factory=dict)  # id -> reason
    warnings: dict = field(default_factory=dict)  # id -> [dispatch warnings]


class BulkActionProcessor:
    def __init__(self, workflow):
        self.workflow = workflow

    async def apply(self, db, action, ids, params: TransitionParams = None) -> BulkResult:
        """Applies one transition to every id, sequentially.

        A failing item is recorded and the batch moves on; every id ends up in
        exactly one of succeeded or failed.
        """
        try:
            action = WorkflowEvent(action)
        except ValueError:
            raise UnsupportedBulkAction(f"unknown action '{action}'")
        if action not in BULK_ACTIONS:
            raise UnsupportedBulkAction(f"'{action.value}' needs per-item input and cannot be applied in bulk")

        result = BulkResult()
        for application_id in sorted(set(ids)):
            try:
                outcome = await self.workflow.apply_transition(db, application_id, action, params)
            except FulfillmentError as e:
                result.failed[application_id] = f"{type(e).__name__}: {e}"
                bulk_items_total.labels(action=action.value, outcome="failed").inc()
                continue

            result.succeeded.add(application_id)
            if outcome.warnings:
                result.warnings[application_id] = list(outcome.warnings)
            bulk_items_total.labels(action=action.value, outcome="succeeded").inc()

        logger.info(
            f"Bulk '{action.value}' finished: {len(result.succeeded)} succeeded, {len(result.failed)} failed"
        )
        return result
