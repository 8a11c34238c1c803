from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.errors import ApplicationNotFound, ConcurrentModification, InvalidTransition, PersistenceFailure
from shared.security.dependencies import verify_internal_api_key
from services.waitlist_service.router import as_http_error
from services.waitlist_service.service import get_reminder_scheduler
from .repository import ReminderRepository
from .scheduler import ReminderScheduler
from .schemas import ReminderResponse, RescheduleRequest, SweepRequest, SweepResponse

router = APIRouter(dependencies=[Depends(verify_internal_api_key)])
public_router = APIRouter()


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "reminder", "status": "running"}


@router.post("/sweep", response_model=SweepResponse)
async def run_reminder_sweep(
    request: Optional[SweepRequest] = None,
    db: AsyncSession = Depends(get_db),
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
):
    """Entry point for the external cron job."""
    now = request.now if request else None
    report = await scheduler.sweep(db, now=now)
    return SweepResponse(
        started_at=report.started_at,
        skipped=report.skipped,
        due=report.due,
        sent=report.sent,
        cancelled=report.cancelled,
        failed=report.failed,
        already_claimed=report.already_claimed,
    )


@router.get("/{application_id}", response_model=list[ReminderResponse])
async def list_reminders(application_id: int, db: AsyncSession = Depends(get_db)):
    return await ReminderRepository.list_for_application(db, application_id)


@router.post("/{application_id}/reschedule", response_model=list[ReminderResponse],
             status_code=status.HTTP_201_CREATED)
async def reschedule_reminders(
    application_id: int,
    request: RescheduleRequest,
    db: AsyncSession = Depends(get_db),
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
):
    try:
        return await scheduler.reschedule(db, application_id, request.due_date)
    except (ApplicationNotFound, InvalidTransition, ConcurrentModification, PersistenceFailure) as e:
        raise as_http_error(e)
