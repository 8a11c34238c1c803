import logging
from itertools import chain
from typing import Iterable, Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import PartialSourceFailure
from shared.observability.metrics import order_listing_partial_total
from services.notification_service.templates import SUPPORTED_CARRIERS, normalize_carrier, tracking_url
from services.waitlist_service.derivation import derive, shipped_signals_agree
from services.waitlist_service.repository import WaitlistRepository
from services.waitlist_service.states import FulfillmentStatus, OrderOrigin, PaymentStatus
from .repository import CatalogOrderRepository
from .schemas import CanonicalOrder, OrderFilter, OrderListing

logger = logging.getLogger(__name__)


def _coerce(enum_cls, raw, default, order_id):
    try:
        return enum_cls(str(raw).lower())
    except ValueError:
        logger.warning(f"Unknown {enum_cls.__name__} '{raw}' on catalog order {order_id}; using '{default.value}'")
        return default


def _tracking_url(carrier, code):
    carrier = normalize_carrier(carrier)
    if not code or carrier not in SUPPORTED_CARRIERS:
        return None
    return tracking_url(carrier, code)


def catalog_to_canonical(order) -> CanonicalOrder:
    """Catalog rows are already canonical at the source; only the shape changes."""
    return CanonicalOrder(
        id=f"{OrderOrigin.CATALOG.value}:{order.id}",
        source_id=order.id,
        display_number=order.order_number,
        origin=OrderOrigin.CATALOG,
        payment_status=_coerce(PaymentStatus, order.payment_status, PaymentStatus.PENDING, order.id),
        fulfillment_status=_coerce(FulfillmentStatus, order.status, FulfillmentStatus.PENDING, order.id),
        total_amount=order.total_amount,
        contact=order.customer_email,
        tracking_code=order.tracking_code,
        shipping_carrier=order.shipping_provider,
        tracking_url=_tracking_url(order.shipping_provider, order.tracking_code),
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


def waitlist_to_canonical(application) -> CanonicalOrder:
    payment_status, fulfillment_status = derive(application)
    if not shipped_signals_agree(application, fulfillment_status):
        logger.error(
            f"Shipped status disagrees with shipment signals on waitlist application {application.id}"
        )
    return CanonicalOrder(
        id=f"{OrderOrigin.WAITLIST.value}:{application.id}",
        source_id=application.id,
        display_number=application.display_number,
        origin=OrderOrigin.WAITLIST,
        payment_status=payment_status,
        fulfillment_status=fulfillment_status,
        total_amount=application.total_amount,
        contact=application.applicant_contact,
        tracking_code=application.tracking_code,
        shipping_carrier=application.shipping_carrier,
        tracking_url=_tracking_url(application.shipping_carrier, application.tracking_code),
        delivered_at=application.delivered_at,
        created_at=application.created_at,
        updated_at=application.updated_at,
    )


def sort_key(order: CanonicalOrder):
    # Newest first; ties go by origin, then numerically by source id
    return (-order.created_at.timestamp(), order.origin.value, order.source_id)


def merge_orders(catalog_orders: Iterable, applications: Iterable) -> Iterator[CanonicalOrder]:
    """Lazily convert both origins into canonical orders."""
    return chain(
        (catalog_to_canonical(order) for order in catalog_orders),
        (waitlist_to_canonical(application) for application in applications),
    )


class OrderUnificationService:
    def __init__(self, catalog_source=None, waitlist_source=None):
        self.catalog_source = catalog_source or CatalogOrderRepository.load_catalog_orders
        self.waitlist_source = waitlist_source or (lambda db, order_filter: WaitlistRepository.list_applications(db))

    async def list_orders(self, db: AsyncSession, order_filter: OrderFilter = None) -> OrderListing:
        order_filter = order_filter or OrderFilter()
        listing = OrderListing()

        catalog_orders = await self._load(db, OrderOrigin.CATALOG, self.catalog_source, order_filter, listing)
        applications = await self._load(db, OrderOrigin.WAITLIST, self.waitlist_source, order_filter, listing)

        merged = merge_orders(catalog_orders, applications)
        listing.orders = sorted((o for o in merged if order_filter.matches(o)), key=sort_key)
        return listing

    async def _load(self, db, origin: OrderOrigin, source, order_filter: OrderFilter, listing: OrderListing):
        if order_filter.origin is not None and order_filter.origin != origin:
            return []
        try:
            return await source(db, order_filter)
        except (SQLAlchemyError, OSError) as e:
            # One origin down must not take the whole listing with it
            failure = PartialSourceFailure(origin.value, e)
            await db.rollback()
            order_listing_partial_total.labels(source=origin.value).inc()
            logger.warning(f"Order listing degraded: {failure}")
            listing.failed_sources.append(origin)
            return []
