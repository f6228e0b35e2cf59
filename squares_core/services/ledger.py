"""Transaction coordinator and idempotency ledger.

Every operation that reads a pool and conditionally writes derived state runs
here as one read-modify-write transaction:

- the pool row is re-read at transaction start, never trusted from before a
  provider fetch
- a stale version (StaleDataError) or a racing dedupe insert (IntegrityError)
  aborts the attempt and the whole transaction is retried
- each externally significant effect is paired with an audit event whose
  dedupe key is derived from stable inputs; a used key makes the write a no-op
- only audit events written by the committed attempt are published
"""

import logging
import random
from datetime import datetime
from typing import Awaitable, Callable, List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from uuid6 import uuid7

from squares_core.converter import DataConverter
from squares_core.crud import CreateData, ReadData, UpdateData
from squares_core.domain.axis_numbers import ensure_quarter_axes, ensure_slot
from squares_core.domain.payout_calculator import compute_pool_winners, total_amount
from squares_core.domain.pool_rules import (
    PENDING_RANDOM_OWNER,
    PERIOD_LABELS,
    bonus_key,
    digits_commit_hash,
    digits_key,
    event_payouts_key,
    event_winner_key,
    lock_key,
    net_pot,
    payment_key,
    period_final_key,
    prize_pool,
    random_draw_key,
    score_step_key,
    settled_key,
    sold_cell_count,
    validate_pool_config,
    winner_digits_key,
)
from squares_core.domain.score_normalizer import merge_scores, score_events_for_change
from squares_core.models.dc_models import (
    ActorModel,
    ActorRole,
    OperationResult,
    OperationStatus,
    Period,
    ProviderScoreModel,
    Severity,
    SYSTEM_ACTOR,
    WinnerPeriod,
)
from squares_core.models.schema_models import (
    AuditEventSchema,
    CellSchema,
    PoolSchema,
    RandomWinnerSchema,
    WinnerSchema,
)
from squares_core.models.schemas import Pool
from squares_core.redis_publisher import NullPublisher
from squares_core.time_utils import utc_now

data_converter = DataConverter()

PERIOD_VALUES = {period.value for period in Period}


class TransactionConflictError(RuntimeError):
    """Raised when a transaction still conflicts after every retry."""


def is_admin(actor: ActorModel) -> bool:
    return actor.role in (ActorRole.super_admin, ActorRole.system)


def can_manage_pool(actor: ActorModel, pool: PoolSchema) -> bool:
    return is_admin(actor) or actor.user_id == pool.owner_id


class AuditLog:
    """Audit events written by one transaction attempt."""

    def __init__(self, session: AsyncSession, clock: Callable[[], datetime]):
        self.session = session
        self.clock = clock
        self.written: List[AuditEventSchema] = []

    async def record(
        self,
        pool_id: Optional[UUID],
        type: str,
        message: str,
        actor: Optional[ActorModel],
        payload: Optional[dict] = None,
        dedupe_key: Optional[str] = None,
        severity: Severity = Severity.info,
    ) -> bool:
        """Append an audit event unless its dedupe key was already used.

        The lookup also sees events added earlier in the same transaction
        because the session autoflushes before querying.

        Returns:
            bool: True if the event was written
        """
        if dedupe_key is not None and await ReadData.audit_exists(dedupe_key, self.session):
            logging.debug(f"[Ledger] Dedupe hit: {dedupe_key}")
            return False
        event = AuditEventSchema(
            event_id=uuid7(),
            pool_id=pool_id,
            type=type,
            message=message,
            severity=severity.value,
            actor=actor.model_dump(mode="json") if actor else None,
            payload=payload or {},
            dedupe_key=dedupe_key,
            created_at=self.clock(),
        )
        await CreateData.add_audit_event(event, self.session)
        self.written.append(event)
        return True


Work = Callable[[AsyncSession, AuditLog], Awaitable[OperationResult]]


class TransactionCoordinator:
    def __init__(
        self,
        Session: async_sessionmaker,
        publisher=None,
        rng: Optional[random.Random] = None,
        max_retries: int = 5,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.Session = Session
        self.publisher = publisher or NullPublisher()
        self.rng = rng or random.SystemRandom()
        self.max_retries = max_retries
        self.clock = clock

    async def run(self, name: str, work: Work) -> OperationResult:
        """Run work in a transaction, retrying it from scratch on conflicts.

        Args:
            name (str): Operation name for logs
            work (Work): Coroutine doing the read-modify-write on the session

        Raises:
            TransactionConflictError: Every attempt conflicted

        Returns:
            OperationResult: Result of the attempt that committed
        """
        for attempt in range(1, self.max_retries + 1):
            async with self.Session() as session:
                audit = AuditLog(session, self.clock)
                try:
                    async with session.begin():
                        result = await work(session, audit)
                except (StaleDataError, IntegrityError) as e:
                    logging.warning(
                        f"[Ledger] {name} conflict on attempt {attempt}/{self.max_retries}: {e}"
                    )
                    continue
            result.audit_events_written = len(audit.written)
            await self.publisher.publish_audit_events(audit.written)
            return result

        logging.error(f"[Ledger] {name} gave up after {self.max_retries} attempts")
        raise TransactionConflictError(f"{name} conflicted {self.max_retries} times")

    # ==========================================================================
    # ==== Shared steps ========================================================
    # ==========================================================================

    async def _record_digits(
        self, audit: AuditLog, pool: PoolSchema, slot: str, actor: ActorModel
    ) -> None:
        axis = pool.axes[slot]
        await audit.record(
            pool.pool_id,
            "DIGITS_GENERATED",
            f"Axis numbers generated for {slot}",
            actor,
            payload={
                "slot": slot,
                "home": list(axis.home),
                "away": list(axis.away),
                "commitHash": digits_commit_hash(pool.pool_id, slot, axis.home, axis.away),
            },
            dedupe_key=digits_key(pool.pool_id, slot),
        )

    async def _record_winner_audits(
        self, audit: AuditLog, pool: PoolSchema, winners: List[WinnerSchema], actor: ActorModel
    ) -> None:
        for winner in winners:
            if winner.period in PERIOD_VALUES:
                dedupe_key = winner_digits_key(
                    pool.pool_id,
                    Period(winner.period),
                    winner.home_digit,
                    winner.away_digit,
                    winner.is_reverse,
                )
            elif winner.period == WinnerPeriod.event.value:
                # Event shares shrink as events are added; amounts are audited at settlement.
                await audit.record(
                    pool.pool_id,
                    "WINNER_COMPUTED",
                    f"{winner.description}: {winner.owner}",
                    actor,
                    payload=winner.model_dump(mode="json", exclude={"amount", "rollover_added"}),
                    dedupe_key=event_winner_key(pool.pool_id, winner.event_id),
                )
                continue
            else:
                dedupe_key = bonus_key(pool.pool_id, winner.winner_key, winner.owner)
            await audit.record(
                pool.pool_id,
                "WINNER_COMPUTED",
                f"{winner.description}: {winner.owner} ${winner.amount:.2f}",
                actor,
                payload=winner.model_dump(mode="json"),
                dedupe_key=dedupe_key,
            )

    async def _record_event_payouts(
        self, audit: AuditLog, pool: PoolSchema, winners: List[WinnerSchema], actor: ActorModel
    ) -> None:
        """Audit the final amount of every score event once the game is over."""
        payouts = [
            {
                "winnerKey": winner.winner_key,
                "eventId": winner.event_id,
                "owner": winner.owner,
                "cellId": winner.cell_id,
                "amount": winner.amount,
            }
            for winner in winners
            if winner.period == WinnerPeriod.event.value
        ]
        total = sum(payout["amount"] for payout in payouts)
        await audit.record(
            pool.pool_id,
            "EVENT_PAYOUTS_FINALIZED",
            f"Finalized event payouts: ${total:.2f} across {len(payouts)} events",
            actor,
            payload={"payouts": payouts},
            dedupe_key=event_payouts_key(pool.pool_id),
        )

    async def _store_derived(
        self,
        session: AsyncSession,
        audit: AuditLog,
        pool: PoolSchema,
        row: Pool,
        actor: ActorModel,
    ) -> List[WinnerSchema]:
        """Derive winners from the updated pool and write everything back."""
        winners = compute_pool_winners(pool)
        await self._record_winner_audits(audit, pool, winners, actor)
        data_converter.apply_poolschema_to_pool(pool, row)
        await UpdateData.replace_winners(pool.pool_id, winners, session)
        return winners

    async def _read_pool(self, session: AsyncSession, pool_id: UUID) -> tuple[Pool | None, PoolSchema | None]:
        row = await ReadData.read_pool_for_update(pool_id, session)
        if row is None:
            return None, None
        return row, data_converter.convert_pool_to_poolschema(row)

    # ==========================================================================
    # ==== Operations ==========================================================
    # ==========================================================================

    async def apply_score_update(
        self, pool_id: UUID, provider: ProviderScoreModel, actor: ActorModel = SYSTEM_ACTOR
    ) -> OperationResult:
        """Fold a provider summary into a pool and derive everything it triggers.

        Args:
            pool_id (UUID): To identify the pool
            provider (ProviderScoreModel): Normalized provider summary, fetched
                before this transaction started
            actor (ActorModel): Who triggered the update

        Returns:
            OperationResult: applied when anything changed, no_op otherwise
        """

        async def work(session: AsyncSession, audit: AuditLog) -> OperationResult:
            row, pool = await self._read_pool(session, pool_id)
            if pool is None:
                return OperationResult(status=OperationStatus.not_found, pool_id=pool_id)

            now = self.clock()
            scores, newly_final = merge_scores(pool.scores, provider, pool.include_overtime)
            new_events = []
            if scores.current != pool.scores.current:
                new_events = score_events_for_change(
                    pool.score_events,
                    pool.scores.current,
                    scores.current,
                    provider.period,
                    provider.game_status,
                    now,
                )
            axes, generated = ensure_quarter_axes(
                pool.axes, scores, pool.number_sets, pool.is_locked, self.rng
            )
            if scores == pool.scores and not new_events and not generated:
                return OperationResult(status=OperationStatus.no_op, pool_id=pool_id)

            updated = pool.model_copy(
                update={
                    "scores": scores,
                    "score_events": pool.score_events + new_events,
                    "axes": axes,
                }
            )
            for event in new_events:
                await audit.record(
                    pool_id,
                    "SCORE_CHANGE",
                    f"{event.description}: {event.home}-{event.away}",
                    actor,
                    payload={"home": event.home, "away": event.away, "clock": scores.clock},
                    dedupe_key=score_step_key(pool_id, event.home, event.away),
                )
            for slot in generated:
                await self._record_digits(audit, updated, slot, actor)
            for period in newly_final:
                snapshot = scores.snapshot(period)
                await audit.record(
                    pool_id,
                    "PERIOD_FINALIZED",
                    f"{PERIOD_LABELS[period]} final: {snapshot.home}-{snapshot.away}",
                    actor,
                    payload={"period": period.value, "home": snapshot.home, "away": snapshot.away},
                    dedupe_key=period_final_key(pool_id, period),
                )

            settling = Period.final in newly_final and not pool.is_settled
            if settling:
                updated.is_settled = True
            winners = await self._store_derived(session, audit, updated, row, actor)
            if settling:
                if updated.rule_variations.score_change_payout:
                    await self._record_event_payouts(audit, updated, winners, actor)
                await audit.record(
                    pool_id,
                    "POOL_SETTLED",
                    f"Pool settled: ${total_amount(winners):.2f} across {len(winners)} records",
                    actor,
                    payload={
                        "netPot": net_pot(
                            sold_cell_count(updated), updated.cost_per_cell, updated.charity_pct
                        ),
                        "totalAwarded": total_amount(winners),
                        "pending": any(winner.is_pending for winner in winners),
                    },
                    dedupe_key=settled_key(pool_id),
                )
            return OperationResult(
                status=OperationStatus.applied,
                pool_id=pool_id,
                changed=True,
                winners_count=len(winners),
            )

        return await self.run("apply_score_update", work)

    async def lock_pool(self, pool_id: UUID, actor: ActorModel) -> OperationResult:
        """Lock a pool, generate its first axis pair and count it into the stats.

        Locking an already locked pool is a no-op that returns the existing digits.
        """

        async def work(session: AsyncSession, audit: AuditLog) -> OperationResult:
            row, pool = await self._read_pool(session, pool_id)
            if pool is None:
                return OperationResult(status=OperationStatus.not_found, pool_id=pool_id)
            if not can_manage_pool(actor, pool):
                return OperationResult(
                    status=OperationStatus.permission_denied,
                    pool_id=pool_id,
                    reasons=["Only the pool owner or an administrator can lock this pool"],
                )
            if pool.is_locked:
                return OperationResult(
                    status=OperationStatus.no_op,
                    pool_id=pool_id,
                    digits=data_converter.convert_axis_to_axispairmodel(pool),
                )
            reasons = validate_pool_config(
                pool.number_sets,
                pool.cost_per_cell,
                pool.payouts,
                pool.charity_pct,
                pool.rule_variations,
            )
            if reasons:
                return OperationResult(
                    status=OperationStatus.invalid_config, pool_id=pool_id, reasons=reasons
                )

            axes, _ = ensure_slot(pool.axes, "q1", self.rng)
            locked = pool.model_copy(update={"is_locked": True, "axes": axes})
            axes, generated = ensure_quarter_axes(
                locked.axes, locked.scores, locked.number_sets, True, self.rng
            )
            locked.axes = axes

            amount = prize_pool(locked)
            stats = await CreateData.ensure_global_stats(session)
            stats.total_locked_prize_pool = (stats.total_locked_prize_pool or 0.0) + amount
            stats.locked_pool_count = (stats.locked_pool_count or 0) + 1
            stats.last_updated = self.clock()

            await audit.record(
                pool_id,
                "POOL_LOCKED",
                f"Pool locked by {actor.label or actor.user_id}",
                actor,
                payload={"prizePool": amount, "soldCells": sold_cell_count(locked)},
                dedupe_key=lock_key(pool_id),
            )
            for slot in ["q1"] + generated:
                await self._record_digits(audit, locked, slot, actor)
            winners = await self._store_derived(session, audit, locked, row, actor)
            return OperationResult(
                status=OperationStatus.applied,
                pool_id=pool_id,
                changed=True,
                digits=data_converter.convert_axis_to_axispairmodel(locked),
                winners_count=len(winners),
                total_locked_prize_pool=stats.total_locked_prize_pool,
            )

        return await self.run("lock_pool", work)

    async def recompute_pool(self, pool_id: UUID, actor: ActorModel) -> OperationResult:
        """Re-derive a pool's winners from its stored scores and axes."""

        async def work(session: AsyncSession, audit: AuditLog) -> OperationResult:
            row, pool = await self._read_pool(session, pool_id)
            if pool is None:
                return OperationResult(status=OperationStatus.not_found, pool_id=pool_id)
            if not is_admin(actor):
                return OperationResult(
                    status=OperationStatus.permission_denied,
                    pool_id=pool_id,
                    reasons=["Administrator role required"],
                )
            axes, generated = ensure_quarter_axes(
                pool.axes, pool.scores, pool.number_sets, pool.is_locked, self.rng
            )
            repaired = pool.model_copy(update={"axes": axes})
            for slot in generated:
                await self._record_digits(audit, repaired, slot, actor)
            winners = await self._store_derived(session, audit, repaired, row, actor)
            await audit.record(
                pool_id,
                "WINNERS_RECALCULATED",
                f"Winners recalculated: {len(winners)} records, ${total_amount(winners):.2f}",
                actor,
                payload={"winners": len(winners), "totalAwarded": total_amount(winners)},
                severity=Severity.warning,
            )
            return OperationResult(
                status=OperationStatus.applied,
                pool_id=pool_id,
                changed=True,
                winners_count=len(winners),
            )

        return await self.run("recompute_pool", work)

    async def recompute_global_stats(self, actor: ActorModel) -> OperationResult:
        """Rebuild the locked-in prize pool aggregate from every locked pool."""

        async def work(session: AsyncSession, audit: AuditLog) -> OperationResult:
            if not is_admin(actor):
                return OperationResult(
                    status=OperationStatus.permission_denied,
                    reasons=["Administrator role required"],
                )
            rows = await ReadData.read_locked_pools(session)
            total = sum(prize_pool(data_converter.convert_pool_to_poolschema(row)) for row in rows)
            stats = await CreateData.ensure_global_stats(session)
            stats.total_locked_prize_pool = total
            stats.locked_pool_count = len(rows)
            stats.last_updated = self.clock()
            await audit.record(
                None,
                "STATS_RECALCULATED",
                f"Locked prize pool recalculated: ${total:.2f} across {len(rows)} pools",
                actor,
                payload={"total": total, "pools": len(rows)},
            )
            return OperationResult(
                status=OperationStatus.applied,
                changed=True,
                total_locked_prize_pool=total,
            )

        return await self.run("recompute_global_stats", work)

    async def draw_random_winner(self, pool_id: UUID, actor: ActorModel) -> OperationResult:
        """Resolve a pending unclaimed final prize by drawing a claimed cell."""

        async def work(session: AsyncSession, audit: AuditLog) -> OperationResult:
            row, pool = await self._read_pool(session, pool_id)
            if pool is None:
                return OperationResult(status=OperationStatus.not_found, pool_id=pool_id)
            if not can_manage_pool(actor, pool):
                return OperationResult(
                    status=OperationStatus.permission_denied,
                    pool_id=pool_id,
                    reasons=["Only the pool owner or an administrator can draw"],
                )
            if pool.random_winner is not None:
                return OperationResult(status=OperationStatus.no_op, pool_id=pool_id)
            pending = [w for w in compute_pool_winners(pool) if w.owner == PENDING_RANDOM_OWNER]
            if not pending:
                return OperationResult(
                    status=OperationStatus.not_pending,
                    pool_id=pool_id,
                    reasons=["No unclaimed final prize is waiting for a random draw"],
                )
            claimed = [cell for cell in pool.cells if cell.owner]
            if not claimed:
                return OperationResult(
                    status=OperationStatus.rejected,
                    pool_id=pool_id,
                    reasons=["No claimed cells to draw from"],
                )

            chosen = self.rng.choice(claimed)
            drawn = pool.model_copy(
                update={
                    "random_winner": RandomWinnerSchema(
                        cell_id=chosen.id,
                        owner=chosen.owner,
                        drawn_at=self.clock(),
                        drawn_by=actor.user_id,
                    )
                }
            )
            await audit.record(
                pool_id,
                "RANDOM_DRAW",
                f"Random draw: cell {chosen.id} ({chosen.owner}) wins ${pending[0].amount:.2f}",
                actor,
                payload={"cellId": chosen.id, "owner": chosen.owner, "amount": pending[0].amount},
                dedupe_key=random_draw_key(pool_id),
            )
            winners = await self._store_derived(session, audit, drawn, row, actor)
            return OperationResult(
                status=OperationStatus.applied,
                pool_id=pool_id,
                changed=True,
                winners_count=len(winners),
            )

        return await self.run("draw_random_winner", work)

    async def claim_cell(self, pool_id: UUID, cell_id: int, actor: ActorModel) -> OperationResult:
        async def work(session: AsyncSession, audit: AuditLog) -> OperationResult:
            row, pool = await self._read_pool(session, pool_id)
            if pool is None:
                return OperationResult(status=OperationStatus.not_found, pool_id=pool_id)
            if pool.is_locked:
                return OperationResult(
                    status=OperationStatus.rejected, pool_id=pool_id, reasons=["Pool is locked"]
                )
            if not 0 <= cell_id < len(pool.cells):
                return OperationResult(
                    status=OperationStatus.rejected,
                    pool_id=pool_id,
                    reasons=[f"Cell {cell_id} does not exist"],
                )
            owner = pool.cells[cell_id].owner
            if owner == actor.user_id:
                return OperationResult(status=OperationStatus.no_op, pool_id=pool_id)
            if owner:
                return OperationResult(
                    status=OperationStatus.rejected,
                    pool_id=pool_id,
                    reasons=[f"Cell {cell_id} is already claimed"],
                )
            owned = sum(1 for cell in pool.cells if cell.owner == actor.user_id)
            if owned >= pool.max_cells_per_player:
                return OperationResult(
                    status=OperationStatus.rejected,
                    pool_id=pool_id,
                    reasons=[f"Limit of {pool.max_cells_per_player} cells per player reached"],
                )

            cells = list(pool.cells)
            cells[cell_id] = CellSchema(id=cell_id, owner=actor.user_id)
            data_converter.apply_poolschema_to_pool(pool.model_copy(update={"cells": cells}), row)
            await audit.record(
                pool_id,
                "CELL_CLAIMED",
                f"Cell {cell_id} claimed by {actor.user_id}",
                actor,
                payload={"cellId": cell_id, "owner": actor.user_id},
            )
            return OperationResult(status=OperationStatus.applied, pool_id=pool_id, changed=True)

        return await self.run("claim_cell", work)

    async def confirm_payment(
        self, pool_id: UUID, cell_ids: List[int], actor: ActorModel
    ) -> OperationResult:
        """Mark claimed cells as paid, once per cell."""

        async def work(session: AsyncSession, audit: AuditLog) -> OperationResult:
            row, pool = await self._read_pool(session, pool_id)
            if pool is None:
                return OperationResult(status=OperationStatus.not_found, pool_id=pool_id)
            if not can_manage_pool(actor, pool):
                return OperationResult(
                    status=OperationStatus.permission_denied,
                    pool_id=pool_id,
                    reasons=["Only the pool owner or an administrator can confirm payments"],
                )
            cells = list(pool.cells)
            reasons = []
            confirmed = []
            for cell_id in sorted(set(cell_ids)):
                if not 0 <= cell_id < len(cells) or not cells[cell_id].owner:
                    reasons.append(f"Cell {cell_id} is not claimed")
                    continue
                if cells[cell_id].is_paid:
                    continue
                cells[cell_id] = cells[cell_id].model_copy(update={"is_paid": True})
                confirmed.append(cell_id)

            if not confirmed:
                return OperationResult(status=OperationStatus.no_op, pool_id=pool_id, reasons=reasons)

            data_converter.apply_poolschema_to_pool(pool.model_copy(update={"cells": cells}), row)
            for cell_id in confirmed:
                await audit.record(
                    pool_id,
                    "PAYMENT_CONFIRMED",
                    f"Payment confirmed for cell {cell_id} ({cells[cell_id].owner})",
                    actor,
                    payload={"cellId": cell_id, "owner": cells[cell_id].owner},
                    dedupe_key=payment_key(pool_id, cell_id),
                )
            return OperationResult(
                status=OperationStatus.applied, pool_id=pool_id, changed=True, reasons=reasons
            )

        return await self.run("confirm_payment", work)
