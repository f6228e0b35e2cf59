"""CRUD helpers for the pool store.

None of these commit: callers own the session and wrap writes in
session.begin() so a read-modify-write lands atomically or not at all.
"""

from datetime import datetime
from typing import List
from uuid import UUID

from sqlalchemy import select, desc, func
from sqlalchemy.ext.asyncio import AsyncSession

from squares_core.models.schema_models import AuditEventSchema, WinnerSchema
from squares_core.models.schemas import AuditEvent, GlobalStats, Pool, Winner

GLOBAL_STATS_ID = "global"


class ReadData:
    @staticmethod
    async def read_pool(pool_id: UUID, session: AsyncSession) -> Pool | None:
        stmt = select(Pool).where(Pool.pool_id == pool_id)
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def read_pool_for_update(pool_id: UUID, session: AsyncSession) -> Pool | None:
        """Read the pool row at the start of a transaction.

        The row lock only applies on postgres; the version column catches
        concurrent writers everywhere.

        Args:
            pool_id (UUID): To identify the pool

        Returns:
            Pool | None: Latest committed pool row
        """
        stmt = (
            select(Pool)
            .where(Pool.pool_id == pool_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def read_sync_candidates(session: AsyncSession) -> List[Pool]:
        """Pools tied to a game that has not been seen finishing."""
        stmt = (
            select(Pool)
            .where(
                Pool.game_id.is_not(None),
                Pool.game_status != "post",
                Pool.is_settled.is_(False),
            )
            .order_by(Pool.created_at)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def read_lock_due_pools(deadline: datetime, session: AsyncSession) -> List[UUID]:
        stmt = select(Pool.pool_id).where(
            Pool.is_locked.is_(False),
            Pool.lock_at.is_not(None),
            Pool.lock_at <= deadline,
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def read_locked_pools(session: AsyncSession) -> List[Pool]:
        stmt = select(Pool).where(Pool.is_locked.is_(True))
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def read_winners(pool_id: UUID, session: AsyncSession) -> List[Winner]:
        stmt = select(Winner).where(Winner.pool_id == pool_id).order_by(Winner.position)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def read_audit_events(
        pool_id: UUID, session: AsyncSession, limit: int = 200
    ) -> List[AuditEvent]:
        """Read the newest audit events of a pool, oldest first

        Args:
            pool_id (UUID): To identify the pool
            limit (int): Maximum number of events

        Returns:
            List[AuditEvent]: Audit events in commit order
        """
        stmt = (
            select(AuditEvent)
            .where(AuditEvent.pool_id == pool_id)
            .order_by(desc(AuditEvent.created_at), desc(AuditEvent.event_id))
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(reversed(result.scalars().all()))

    @staticmethod
    async def audit_exists(dedupe_key: str, session: AsyncSession) -> bool:
        stmt = select(func.count()).select_from(AuditEvent).where(
            AuditEvent.dedupe_key == dedupe_key
        )
        result = await session.execute(stmt)
        return result.scalar_one() > 0

    @staticmethod
    async def read_global_stats(session: AsyncSession) -> GlobalStats | None:
        stmt = select(GlobalStats).where(GlobalStats.id == GLOBAL_STATS_ID)
        result = await session.execute(stmt)
        return result.scalars().first()


class CreateData:
    @staticmethod
    async def add_pool(pool: Pool, session: AsyncSession) -> None:
        session.add(pool)

    @staticmethod
    async def add_audit_event(event: AuditEventSchema, session: AsyncSession) -> None:
        """Add an audit event row

        Args:
            event (AuditEventSchema): Event to append to the ledger
        """
        new_event = AuditEvent(
            event_id=event.event_id,
            pool_id=event.pool_id,
            type=event.type,
            message=event.message,
            severity=event.severity,
            actor=event.actor,
            payload=event.payload,
            dedupe_key=event.dedupe_key,
            created_at=event.created_at,
        )
        session.add(new_event)

    @staticmethod
    async def ensure_global_stats(session: AsyncSession) -> GlobalStats:
        stats = await ReadData.read_global_stats(session)
        if stats is None:
            stats = GlobalStats(
                id=GLOBAL_STATS_ID, total_locked_prize_pool=0.0, locked_pool_count=0
            )
            session.add(stats)
        return stats


class UpdateData:
    @staticmethod
    async def replace_winners(
        pool_id: UUID, winners: List[WinnerSchema], session: AsyncSession
    ) -> None:
        """Make the stored winner rows match a freshly derived winner list.

        Rows are matched on winner_key so a key is updated in place and never
        duplicated.

        Args:
            pool_id (UUID): To identify the pool
            winners (List[WinnerSchema]): Derived winners in display order
        """
        existing = {row.winner_key: row for row in await ReadData.read_winners(pool_id, session)}
        for position, winner in enumerate(winners):
            row = existing.pop(winner.winner_key, None)
            if row is None:
                row = Winner(pool_id=pool_id, winner_key=winner.winner_key)
                session.add(row)
            row.position = position
            row.period = winner.period
            row.cell_id = winner.cell_id
            row.owner = winner.owner
            row.amount = winner.amount
            row.home_digit = winner.home_digit
            row.away_digit = winner.away_digit
            row.is_reverse = winner.is_reverse
            row.is_rollover = winner.is_rollover
            row.is_pending = winner.is_pending
            row.rollover_added = winner.rollover_added
            row.description = winner.description
            row.event_id = winner.event_id
        for row in existing.values():
            await session.delete(row)
