from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel

from .models import ReminderKind


class SweepRequest(BaseModel):
    now: Optional[datetime] = None  # defaults to the server clock


class SweepResponse(BaseModel):
    started_at: datetime
    skipped: bool
    due: int
    sent: List[int]
    cancelled: List[int]
    failed: Dict[int, str]
    already_claimed: List[int]


class RescheduleRequest(BaseModel):
    due_date: Optional[datetime] = None  # defaults to the current payment due date


class ReminderResponse(BaseModel):
    id: int
    application_id: int
    kind: ReminderKind
    fire_at: datetime
    sent: bool
    cancelled: bool
    sent_at: Optional[datetime] = None

    class Config:
        from_attributes = True
