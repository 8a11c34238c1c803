from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from services.waitlist_service.states import FulfillmentStatus, OrderOrigin, PaymentStatus


class CanonicalOrder(BaseModel):
    """Unified read model over catalog orders and waitlist applications."""
    id: str  # "<origin>:<source id>", unique across origins
    source_id: int
    display_number: str
    origin: OrderOrigin
    payment_status: PaymentStatus
    fulfillment_status: FulfillmentStatus
    total_amount: Decimal = Field(ge=0)
    contact: Optional[str] = None
    tracking_code: Optional[str] = None
    shipping_carrier: Optional[str] = None
    tracking_url: Optional[str] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class OrderFilter(BaseModel):
    fulfillment_status: Optional[FulfillmentStatus] = None
    payment_status: Optional[PaymentStatus] = None
    origin: Optional[OrderOrigin] = None
    search: Optional[str] = None

    def matches(self, order: CanonicalOrder) -> bool:
        if self.fulfillment_status is not None and order.fulfillment_status != self.fulfillment_status:
            return False
        if self.payment_status is not None and order.payment_status != self.payment_status:
            return False
        if self.origin is not None and order.origin != self.origin:
            return False
        if self.search:
            needle = self.search.strip().lower()
            haystack = f"{order.display_number} {order.contact or ''}".lower()
            if needle not in haystack:
                return False
        return True


@dataclass
class OrderListing:
    """Result of one listing call. Recomputed on every call, never cached."""
    orders: List[CanonicalOrder] = field(default_factory=list)
    failed_sources: List[OrderOrigin] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.failed_sources)

    def __iter__(self):
        return iter(self.orders)

    def __len__(self):
        return len(self.orders)


class OrderListingResponse(BaseModel):
    orders: List[CanonicalOrder]
    failed_sources: List[OrderOrigin]
    partial: bool
    count: int
