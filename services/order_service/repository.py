from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from .models import CatalogOrder


class CatalogOrderRepository:
    @staticmethod
    async def load_catalog_orders(db: AsyncSession, order_filter=None):
        # Filtering happens after the merge so both origins share one meaning
        result = await db.execute(select(CatalogOrder))
        return list(result.scalars().all())
