import logging
from contextlib import asynccontextmanager

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from shared.errors import ConcurrentModification, PersistenceFailure
from .models import WaitlistApplication

logger = logging.getLogger(__name__)


class WaitlistRepository:
    @staticmethod
    async def create_application(db: AsyncSession, application: WaitlistApplication):
        async with WaitlistRepository.unit_of_work(db, None):
            db.add(application)
        await db.refresh(application)
        return application

    @staticmethod
    async def get_application(db: AsyncSession, application_id: int, fresh: bool = False):
        stmt = select(WaitlistApplication).where(WaitlistApplication.id == application_id)
        if fresh:
            # Bypass the identity map so callers see the committed row
            stmt = stmt.execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def list_applications(db: AsyncSession):
        result = await db.execute(select(WaitlistApplication))
        return list(result.scalars().all())

    @staticmethod
    @asynccontextmanager
    async def unit_of_work(db: AsyncSession, application_id):
        """Commit everything staged in the block as one transaction.

        A lost optimistic version race becomes ConcurrentModification, any other
        database error becomes PersistenceFailure. Either way nothing is kept.
        """
        try:
            yield
            await db.commit()
        except StaleDataError:
            await db.rollback()
            raise ConcurrentModification(application_id)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Commit failed for waitlist application {application_id}: {e}")
            raise PersistenceFailure(e) from e
        except Exception:
            await db.rollback()
            raise
