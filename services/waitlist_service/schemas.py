from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from .states import (
    FulfillmentStatus,
    PaymentMethod,
    PaymentState,
    PaymentStatus,
    RequestStatus,
    WorkflowEvent,
)


class ApplicationCreate(BaseModel):
    applicant_contact: str = Field(min_length=3)
    deposit_amount: Optional[Decimal] = Field(default=None, ge=0)
    remaining_amount: Optional[Decimal] = Field(default=None, ge=0)


class TransitionParams(BaseModel):
    """Event parameters. Each event reads only the fields it needs."""
    method: Optional[PaymentMethod] = None
    tracking_code: Optional[str] = None
    carrier: Optional[str] = None
    due_date: Optional[datetime] = None
    reason: Optional[str] = None


class TransitionRequest(BaseModel):
    event: WorkflowEvent
    params: TransitionParams = Field(default_factory=TransitionParams)


class ApplicationResponse(BaseModel):
    id: int
    display_number: str
    applicant_contact: str
    request_status: RequestStatus
    deposit_status: PaymentState
    deposit_amount: Decimal
    deposit_paid_at: Optional[datetime] = None
    remaining_payment_status: PaymentState
    remaining_amount: Decimal
    remaining_paid_at: Optional[datetime] = None
    payment_method_selected: Optional[PaymentMethod] = None
    payment_options_sent: bool
    payment_options_sent_at: Optional[datetime] = None
    payment_due_date: Optional[datetime] = None
    payment_link_url: Optional[str] = None
    tracking_code: Optional[str] = None
    shipping_carrier: Optional[str] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    notes: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TransitionResponse(BaseModel):
    application: ApplicationResponse
    payment_status: PaymentStatus
    fulfillment_status: FulfillmentStatus
    warnings: List[str] = []
