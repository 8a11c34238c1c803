from typing import Dict, List, Set

from pydantic import BaseModel, Field

from services.waitlist_service.schemas import TransitionParams
from services.waitlist_service.states import WorkflowEvent


class BulkRequest(BaseModel):
    action: WorkflowEvent
    ids: Set[int] = Field(min_length=1)
    params: TransitionParams = Field(default_factory=TransitionParams)


class BulkResponse(BaseModel):
    succeeded: List[int]
    failed: Dict[int, str]
    warnings: Dict[int, List[str]] = {}
