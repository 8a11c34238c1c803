from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security.dependencies import verify_internal_api_key
from services.waitlist_service.states import FulfillmentStatus, OrderOrigin, PaymentStatus
from .schemas import OrderFilter, OrderListingResponse
from .service import OrderUnificationService

router = APIRouter(dependencies=[Depends(verify_internal_api_key)])
public_router = APIRouter()


def get_order_service() -> OrderUnificationService:
    return OrderUnificationService()


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "order", "status": "running"}


@router.get("/", response_model=OrderListingResponse)
async def list_canonical_orders(
    fulfillment_status: Optional[FulfillmentStatus] = Query(default=None),
    payment_status: Optional[PaymentStatus] = Query(default=None),
    origin: Optional[OrderOrigin] = Query(default=None),
    search: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    service: OrderUnificationService = Depends(get_order_service),
):
    order_filter = OrderFilter(
        fulfillment_status=fulfillment_status,
        payment_status=payment_status,
        origin=origin,
        search=search,
    )
    listing = await service.list_orders(db, order_filter)
    return OrderListingResponse(
        orders=listing.orders,
        failed_sources=listing.failed_sources,
        partial=listing.partial,
        count=len(listing),
    )
