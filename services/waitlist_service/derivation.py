"""
Canonical status derivation for waitlist applications.

Pure functions: no I/O, no clock, no randomness. The payment and fulfillment
statuses are always computed from the raw flags on read and never stored.

Fulfillment rules are evaluated top to bottom and the first match wins. The
order matters: later rules are looser and would hide the more specific
shipment and fully-paid signals above them.
"""
import logging
from typing import Callable, NamedTuple, Optional

from shared.observability.metrics import waitlist_derivation_default_total
from .states import FulfillmentStatus, PaymentState, PaymentStatus, RequestStatus

logger = logging.getLogger(__name__)


class Rule(NamedTuple):
    name: str
    matches: Callable[[object], bool]
    status: FulfillmentStatus


def is_fully_paid(app) -> bool:
    return (
        app.deposit_status == PaymentState.PAID
        and app.remaining_payment_status == PaymentState.PAID
        and app.payment_method_selected is not None
    )


def has_tracking(app) -> bool:
    return bool(app.tracking_code)


def derive_payment_status(app) -> PaymentStatus:
    if is_fully_paid(app):
        return PaymentStatus.PAID
    return PaymentStatus.PENDING


FULFILLMENT_RULES = (
    Rule("tracking_assigned", has_tracking, FulfillmentStatus.SHIPPED),
    Rule(
        "marked_shipped",
        lambda app: app.request_status == RequestStatus.SHIPPED,
        FulfillmentStatus.SHIPPED,
    ),
    Rule("fully_paid", is_fully_paid, FulfillmentStatus.PROCESSING),
    Rule(
        "awaiting_review",
        lambda app: app.request_status == RequestStatus.PENDING,
        FulfillmentStatus.PENDING,
    ),
    Rule(
        "awaiting_payment_choice",
        lambda app: (
            app.request_status in (RequestStatus.APPROVED, RequestStatus.ORDER_READY)
            and app.payment_method_selected is None
        ),
        FulfillmentStatus.PROCESSING,
    ),
    Rule(
        "payment_method_chosen",
        lambda app: (
            app.request_status == RequestStatus.PAYMENT_SELECTED
            and app.payment_method_selected is not None
        ),
        FulfillmentStatus.PROCESSING,
    ),
)

DEFAULT_FULFILLMENT = FulfillmentStatus.PROCESSING


def match_fulfillment_rule(app) -> Optional[Rule]:
    for rule in FULFILLMENT_RULES:
        if rule.matches(app):
            return rule
    return None


def derive_fulfillment_status(app) -> FulfillmentStatus:
    rule = match_fulfillment_rule(app)
    if rule is not None:
        return rule.status

    # Unmodeled combination: degrade to a non-terminal state but make it visible
    waitlist_derivation_default_total.inc()
    logger.warning(
        "Fulfillment derivation fell through to default for application %s "
        "(request_status=%s deposit=%s remaining=%s method=%s)",
        getattr(app, "id", None),
        _value(app.request_status),
        _value(app.deposit_status),
        _value(app.remaining_payment_status),
        _value(app.payment_method_selected),
    )
    return DEFAULT_FULFILLMENT


def derive(app) -> tuple[PaymentStatus, FulfillmentStatus]:
    """Return the canonical (payment, fulfillment) pair for an application."""
    return derive_payment_status(app), derive_fulfillment_status(app)


def shipped_signals_agree(app, fulfillment: FulfillmentStatus) -> bool:
    """Shipped must coincide exactly with a tracking code or the shipped flag."""
    shipped_signal = has_tracking(app) or app.request_status == RequestStatus.SHIPPED
    return (fulfillment == FulfillmentStatus.SHIPPED) == shipped_signal


def _value(member):
    return getattr(member, "value", member)
