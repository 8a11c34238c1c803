from enum import Enum as PyEnum

from sqlalchemy import Boolean, Column, Enum, Index, Integer, String

from shared.config.database import Base
from shared.config.db_types import UTCDateTime


class ReminderKind(str, PyEnum):
    FOUR_DAY_NOTICE = "four_day_notice"
    ONE_DAY_NOTICE = "one_day_notice"


class ReminderRecord(Base):
    __tablename__ = "reminder_records"
    __table_args__ = {"schema": "reminder_schema"}

    id = Column(Integer, primary_key=True, index=True)
    application_id = Column(Integer, nullable=False, index=True)
    kind = Column(
        Enum(ReminderKind, native_enum=False, length=32,
             values_callable=lambda members: [m.value for m in members]),
        nullable=False,
    )
    fire_at = Column(UTCDateTime, nullable=False, index=True)
    sent = Column(Boolean, nullable=False, default=False)  # never reset once true
    sent_at = Column(UTCDateTime, nullable=True)
    cancelled = Column(Boolean, nullable=False, default=False)
    dispatch_error = Column(String, nullable=True)
    created_at = Column(UTCDateTime, nullable=False)


# At most one unsent reminder per application and kind
Index(
    "uq_reminder_unsent_per_kind",
    ReminderRecord.application_id,
    ReminderRecord.kind,
    unique=True,
    postgresql_where=ReminderRecord.sent.is_(False),
    sqlite_where=ReminderRecord.sent.is_(False),
)
