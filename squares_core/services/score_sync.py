"""Scheduled passes: score sync and auto-lock.

Both passes only decide *which* pools to touch; every state change goes
through the TransactionCoordinator, which is what keeps the two schedulers
safe when they hit the same pool at once.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from squares_core.converter import DataConverter
from squares_core.crud import ReadData
from squares_core.domain.score_normalizer import merge_scores
from squares_core.models.dc_models import (
    AUTO_LOCK_ACTOR,
    GameStatus,
    OperationStatus,
    SyncSummaryModel,
)
from squares_core.models.schema_models import PoolSchema
from squares_core.services.ledger import TransactionConflictError, TransactionCoordinator
from squares_core.services.score_provider import ScoreProvider
from squares_core.time_utils import utc_now

data_converter = DataConverter()


def should_fetch(pool: PoolSchema, now: datetime, horizon: timedelta) -> bool:
    """Skip unlocked pre-game pools whose game starts beyond the horizon."""
    if pool.is_locked or pool.scores.game_status != GameStatus.pre:
        return True
    start = pool.scores.start_time or pool.start_time
    if start is None:
        return True
    return start <= now + horizon


class ScoreSyncService:
    def __init__(
        self,
        Session: async_sessionmaker,
        coordinator: TransactionCoordinator,
        provider: ScoreProvider,
        fetch_horizon: timedelta = timedelta(hours=2),
        auto_lock_buffer: timedelta = timedelta(seconds=30),
    ):
        self.Session = Session
        self.coordinator = coordinator
        self.provider = provider
        self.fetch_horizon = fetch_horizon
        self.auto_lock_buffer = auto_lock_buffer

    async def sync_pool(self, pool: PoolSchema) -> str:
        """Fetch one pool's game and apply it if anything changed.

        The fetch happens outside any transaction; the coordinator re-reads
        the pool before writing.

        Returns:
            str: "processed", "skipped" or "failed"
        """
        scores = await self.provider.fetch_scores(pool.game_id, pool.league)
        if scores is None:
            return "failed"
        merged, _ = merge_scores(pool.scores, scores, pool.include_overtime)
        if merged == pool.scores:
            return "skipped"
        result = await self.coordinator.apply_score_update(pool.pool_id, scores)
        if result.status == OperationStatus.not_found:
            return "skipped"
        return "processed"

    async def sync_all(self, now: Optional[datetime] = None) -> SyncSummaryModel:
        """Run one score sync pass over every active pool.

        A failure on one pool is logged and never stops the others.
        """
        now = now or utc_now()
        async with self.Session() as session:
            rows = await ReadData.read_sync_candidates(session)
        pools = [data_converter.convert_pool_to_poolschema(row) for row in rows]

        summary = SyncSummaryModel(active=len(pools))
        for pool in pools:
            if not should_fetch(pool, now, self.fetch_horizon):
                summary.skipped += 1
                continue
            try:
                result = await self.sync_pool(pool)
            except Exception as e:
                summary.errors += 1
                logging.error(f"[ScoreSync] Failed to sync pool {pool.pool_id}: {e}")
                continue
            if result == "failed":
                summary.errors += 1
            elif result == "skipped":
                summary.skipped += 1
            else:
                summary.processed += 1

        logging.info(
            f"[ScoreSync] active={summary.active} processed={summary.processed} "
            f"skipped={summary.skipped} errors={summary.errors}"
        )
        return summary

    async def auto_lock_due_pools(self, now: Optional[datetime] = None) -> SyncSummaryModel:
        """Lock every unlocked pool whose lock time is due within the buffer."""
        now = now or utc_now()
        async with self.Session() as session:
            pool_ids = await ReadData.read_lock_due_pools(now + self.auto_lock_buffer, session)

        summary = SyncSummaryModel(active=len(pool_ids))
        for pool_id in pool_ids:
            try:
                result = await self.coordinator.lock_pool(pool_id, AUTO_LOCK_ACTOR)
            except TransactionConflictError as e:
                summary.errors += 1
                logging.error(f"[AutoLock] Failed to lock pool {pool_id}: {e}")
                continue
            if result.status == OperationStatus.applied:
                summary.locked += 1
                logging.info(f"[AutoLock] Locked pool {pool_id}")
            elif result.status == OperationStatus.invalid_config:
                summary.errors += 1
                logging.warning(f"[AutoLock] Pool {pool_id} not locked: {'; '.join(result.reasons)}")
            else:
                summary.skipped += 1
        if pool_ids:
            logging.info(
                f"[AutoLock] due={summary.active} locked={summary.locked} errors={summary.errors}"
            )
        return summary
