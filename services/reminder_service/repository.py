from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import ReminderRecord


class ReminderRepository:
    @staticmethod
    def add_reminder(db: AsyncSession, reminder: ReminderRecord):
        """Stage a reminder in the caller's transaction. The caller commits."""
        db.add(reminder)
        return reminder

    @staticmethod
    async def list_for_application(db: AsyncSession, application_id: int):
        result = await db.execute(
            select(ReminderRecord)
            .where(ReminderRecord.application_id == application_id)
            .order_by(ReminderRecord.fire_at, ReminderRecord.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_due_reminders(db: AsyncSession, now):
        result = await db.execute(
            select(ReminderRecord)
            .where(ReminderRecord.sent.is_(False))
            .where(ReminderRecord.fire_at <= now)
            .order_by(ReminderRecord.fire_at, ReminderRecord.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def cancel_unsent(db: AsyncSession, application_id: int, now) -> int:
        """Retire every unsent reminder of an application inside the caller's transaction."""
        result = await db.execute(
            update(ReminderRecord)
            .where(ReminderRecord.application_id == application_id)
            .where(ReminderRecord.sent.is_(False))
            .values(sent=True, cancelled=True, sent_at=now)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    @staticmethod
    async def claim_reminder(db: AsyncSession, reminder_id: int, now, cancelled: bool = False) -> bool:
        """Atomically flip sent=false -> true and commit.

        Only one claimant can win; a concurrent sweep sees zero rows updated.
        """
        result = await db.execute(
            update(ReminderRecord)
            .where(ReminderRecord.id == reminder_id)
            .where(ReminderRecord.sent.is_(False))
            .values(sent=True, cancelled=cancelled, sent_at=now)
            .execution_options(synchronize_session="fetch")
        )
        await db.commit()
        return result.rowcount == 1

    @staticmethod
    async def record_dispatch_error(db: AsyncSession, reminder_id: int, error: str):
        await db.execute(
            update(ReminderRecord)
            .where(ReminderRecord.id == reminder_id)
            .values(dispatch_error=error[:500])
            .execution_options(synchronize_session="fetch")
        )
        await db.commit()
