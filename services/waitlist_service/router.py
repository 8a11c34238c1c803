from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.errors import (
    ApplicationNotFound,
    ConcurrentModification,
    InvalidTransition,
    PaymentGatewayFailure,
    PersistenceFailure,
)
from shared.security.dependencies import verify_internal_api_key
from .schemas import ApplicationCreate, ApplicationResponse, TransitionRequest, TransitionResponse
from .service import WaitlistService, get_workflow
from .workflow import PaymentWorkflowStateMachine

# Every waitlist route is admin-only
router = APIRouter(dependencies=[Depends(verify_internal_api_key)])
public_router = APIRouter()


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "waitlist", "status": "running"}


def as_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ApplicationNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, InvalidTransition):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "invalid_transition", "from": exc.from_state, "event": exc.event, "reason": exc.reason},
        )
    if isinstance(exc, ConcurrentModification):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "concurrent_modification", "message": str(exc), "retry": True},
        )
    if isinstance(exc, PaymentGatewayFailure):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    if isinstance(exc, PersistenceFailure):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="The change could not be saved")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def to_response(result) -> TransitionResponse:
    return TransitionResponse(
        application=ApplicationResponse.model_validate(result.application),
        payment_status=result.payment_status,
        fulfillment_status=result.fulfillment_status,
        warnings=result.warnings,
    )


@router.post("/", response_model=ApplicationResponse, status_code=status.HTTP_201_CREATED)
async def submit_application(
    data: ApplicationCreate,
    db: AsyncSession = Depends(get_db),
    workflow: PaymentWorkflowStateMachine = Depends(get_workflow),
):
    try:
        return await workflow.submit(db, data)
    except PersistenceFailure as e:
        raise as_http_error(e)


@router.get("/{application_id}", response_model=TransitionResponse)
async def get_application(application_id: int, db: AsyncSession = Depends(get_db)):
    try:
        return to_response(await WaitlistService.get_application(db, application_id))
    except ApplicationNotFound as e:
        raise as_http_error(e)


@router.post("/{application_id}/transitions", response_model=TransitionResponse)
async def apply_transition(
    application_id: int,
    request: TransitionRequest,
    db: AsyncSession = Depends(get_db),
    workflow: PaymentWorkflowStateMachine = Depends(get_workflow),
):
    try:
        result = await workflow.apply_transition(db, application_id, request.event, request.params)
    except (ApplicationNotFound, InvalidTransition, ConcurrentModification,
            PaymentGatewayFailure, PersistenceFailure) as e:
        raise as_http_error(e)
    return to_response(result)
