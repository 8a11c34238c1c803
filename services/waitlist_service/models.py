import secrets
import time

from sqlalchemy import Boolean, Column, Enum, Integer, Numeric, String, Text

from shared.config import settings
from shared.config.database import Base
from shared.config.db_types import UTCDateTime
from .states import PaymentMethod, PaymentState, RequestStatus


def _enum(enum_cls):
    # Store the lowercase values, not the member names
    return Enum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )


def new_display_number() -> str:
    return f"WS-{int(time.time() * 1000)}-{secrets.token_hex(2).upper()}"


class WaitlistApplication(Base):
    __tablename__ = "waitlist_applications"
    __table_args__ = {"schema": "waitlist_schema"}

    id = Column(Integer, primary_key=True, index=True)
    display_number = Column(String, nullable=False, index=True)
    applicant_contact = Column(String, nullable=False)

    # Only PaymentWorkflowStateMachine writes request_status
    request_status = Column(_enum(RequestStatus), nullable=False)

    deposit_status = Column(_enum(PaymentState), nullable=False)
    deposit_amount = Column(Numeric(10, 2), nullable=False)
    deposit_paid_at = Column(UTCDateTime, nullable=True)

    remaining_payment_status = Column(_enum(PaymentState), nullable=False)
    remaining_amount = Column(Numeric(10, 2), nullable=False)
    remaining_paid_at = Column(UTCDateTime, nullable=True)

    payment_method_selected = Column(_enum(PaymentMethod), nullable=True)
    payment_method_selected_at = Column(UTCDateTime, nullable=True)
    payment_options_sent = Column(Boolean, nullable=False)
    payment_options_sent_at = Column(UTCDateTime, nullable=True)
    payment_due_date = Column(UTCDateTime, nullable=True)  # set iff invoice selected
    payment_link_url = Column(String, nullable=True)

    tracking_code = Column(String, nullable=True)
    shipping_carrier = Column(String, nullable=True)
    shipped_at = Column(UTCDateTime, nullable=True)
    delivered_at = Column(UTCDateTime, nullable=True)

    notes = Column(Text, nullable=False)  # append-only audit trail

    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)

    # Optimistic concurrency: a stale UPDATE matches no row and fails
    version = Column(Integer, nullable=False)
    __mapper_args__ = {"version_id_col": version}

    @classmethod
    def submit(cls, applicant_contact: str, now, deposit_amount=None, remaining_amount=None):
        """Build a fresh application in the Pending state.

        Every column is set explicitly so the object is complete before it is
        ever flushed (derivation runs on unsaved instances too).
        """
        return cls(
            display_number=new_display_number(),
            applicant_contact=applicant_contact,
            request_status=RequestStatus.PENDING,
            deposit_status=PaymentState.NOT_SENT,
            deposit_amount=deposit_amount if deposit_amount is not None else settings.DEFAULT_DEPOSIT_AMOUNT,
            remaining_payment_status=PaymentState.NOT_SENT,
            remaining_amount=remaining_amount if remaining_amount is not None else settings.DEFAULT_REMAINING_AMOUNT,
            payment_options_sent=False,
            notes=f"[{now.isoformat()}] submitted by {applicant_contact}",
            created_at=now,
            updated_at=now,
        )

    @property
    def total_amount(self):
        return self.deposit_amount + self.remaining_amount

    def append_note(self, now, line: str):
        entry = f"[{now.isoformat()}] {line}"
        self.notes = f"{self.notes}\n{entry}" if self.notes else entry
