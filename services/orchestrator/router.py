from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security.dependencies import verify_internal_api_key
from services.waitlist_service.service import get_workflow
from .bulk import BulkActionProcessor, UnsupportedBulkAction
from .schemas import BulkRequest, BulkResponse

router = APIRouter(dependencies=[Depends(verify_internal_api_key)])
public_router = APIRouter()


def get_bulk_processor(workflow=Depends(get_workflow)) -> BulkActionProcessor:
    return BulkActionProcessor(workflow)


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "bulk", "status": "running"}


@router.post("/", response_model=BulkResponse)
async def apply_bulk(
    payload: BulkRequest,
    db: AsyncSession = Depends(get_db),
    processor: BulkActionProcessor = Depends(get_bulk_processor),
):
    try:
        result = await processor.apply(db, payload.action, payload.ids, payload.params)
    except UnsupportedBulkAction as e:
        raise HTTPException(status_code=422, detail=str(e))
    return BulkResponse(
        succeeded=sorted(result.succeeded),
        failed=result.failed,
        warnings=result.warnings,
    )
