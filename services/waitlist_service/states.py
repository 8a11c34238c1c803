"""
Status vocabularies for waitlist applications and the canonical order view.

Values are lower snake case strings so they can be stored as-is and returned
over the API without translation.
"""
from enum import Enum


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ORDER_READY = "order_ready"
    PAYMENT_SELECTED = "payment_selected"
    SHIPPED = "shipped"
    CANCELLED = "cancelled"


# No transition leaves these states
TERMINAL_STATES = frozenset({RequestStatus.REJECTED, RequestStatus.CANCELLED})


class PaymentState(str, Enum):
    """Progress of a single payment request (deposit or remaining balance)."""
    NOT_SENT = "not_sent"
    SENT = "sent"
    PAID = "paid"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    DIRECT = "direct"
    INVOICE = "invoice"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"


class FulfillmentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderOrigin(str, Enum):
    CATALOG = "catalog"
    WAITLIST = "waitlist"


class WorkflowEvent(str, Enum):
    APPROVE = "approve"
    RECORD_DEPOSIT_PAID = "record_deposit_paid"
    RECORD_DEPOSIT_FAILED = "record_deposit_failed"
    MARK_ORDER_READY = "mark_order_ready"
    SELECT_PAYMENT_METHOD = "select_payment_method"
    RECORD_REMAINING_PAID = "record_remaining_paid"
    CHANGE_PAYMENT_DUE_DATE = "change_payment_due_date"
    ASSIGN_TRACKING = "assign_tracking"
    MARK_SHIPPED = "mark_shipped"
    MARK_DELIVERED = "mark_delivered"
    REJECT = "reject"
    CANCEL = "cancel"
