from typing import List
from uuid import UUID

from uuid6 import uuid7

from squares_core.domain.pool_rules import GRID_SIZE
from squares_core.models.dc_models import AxisPairModel, CreatePoolModel
from squares_core.models.schema_models import (
    AuditEventSchema,
    CellSchema,
    GlobalStatsSchema,
    PayoutConfigSchema,
    PoolSchema,
    RuleVariationsSchema,
    ScoresSchema,
    WinnerSchema,
)
from squares_core.models.schemas import AuditEvent, GlobalStats, Pool, Winner


class DataConverter:
    """This class is used to convert data between ORM rows and schemas."""

    def convert_pool_to_poolschema(self, pool: Pool) -> PoolSchema:
        """Convert a pool row to a validated PoolSchema

        Args:
            pool (Pool): Row read from the pool table

        Returns:
            PoolSchema: Typed snapshot the domain functions work on
        """
        return PoolSchema.model_validate(
            {
                "pool_id": pool.pool_id,
                "name": pool.name,
                "owner_id": pool.owner_id,
                "game_id": pool.game_id,
                "league": pool.league,
                "start_time": pool.start_time,
                "lock_at": pool.lock_at,
                "is_locked": pool.is_locked,
                "is_settled": pool.is_settled,
                "number_sets": pool.number_sets,
                "cost_per_cell": pool.cost_per_cell,
                "payouts": pool.payouts,
                "charity_pct": pool.charity_pct,
                "include_overtime": pool.include_overtime,
                "max_cells_per_player": pool.max_cells_per_player,
                "rule_variations": pool.rule_variations,
                "cells": pool.cells,
                "scores": pool.scores,
                "axes": pool.axes or {},
                "score_events": pool.score_events or [],
                "random_winner": pool.random_winner,
                "version_id": pool.version_id,
                "created_at": pool.created_at,
                "updated_at": pool.updated_at,
            }
        )

    def apply_poolschema_to_pool(self, schema: PoolSchema, pool: Pool) -> None:
        """Write the mutable parts of a PoolSchema back onto its row.

        JSON columns always get fresh objects so the change is detected.
        """
        pool.is_locked = schema.is_locked
        pool.is_settled = schema.is_settled
        pool.cells = [cell.model_dump(mode="json") for cell in schema.cells]
        pool.scores = schema.scores.model_dump(mode="json")
        pool.axes = {slot: axis.model_dump(mode="json") for slot, axis in schema.axes.items()}
        pool.score_events = [event.model_dump(mode="json") for event in schema.score_events]
        pool.random_winner = (
            schema.random_winner.model_dump(mode="json") if schema.random_winner else None
        )
        pool.game_status = schema.scores.game_status.value

    def convert_createpoolmodel_to_pool(self, request: CreatePoolModel, owner_id: str) -> Pool:
        payouts = PayoutConfigSchema.model_validate(request.payouts)
        rules = RuleVariationsSchema.model_validate(request.rule_variations)
        scores = ScoresSchema(start_time=request.start_time)
        return Pool(
            pool_id=uuid7(),
            name=request.name,
            owner_id=owner_id,
            game_id=request.game_id,
            league=request.league.value,
            start_time=request.start_time,
            lock_at=request.lock_at,
            is_locked=False,
            is_settled=False,
            number_sets=request.number_sets,
            cost_per_cell=request.cost_per_cell,
            payouts=payouts.model_dump(mode="json"),
            charity_pct=request.charity_pct,
            include_overtime=request.include_overtime,
            max_cells_per_player=request.max_cells_per_player,
            rule_variations=rules.model_dump(mode="json"),
            cells=[CellSchema(id=i).model_dump(mode="json") for i in range(GRID_SIZE)],
            scores=scores.model_dump(mode="json"),
            axes={},
            score_events=[],
            random_winner=None,
            game_status=scores.game_status.value,
        )

    def convert_winners_to_winnerschemas(self, winners: List[Winner]) -> List[WinnerSchema]:
        return [WinnerSchema.model_validate(winner) for winner in winners]

    def convert_auditevents_to_auditeventschemas(
        self, events: List[AuditEvent]
    ) -> List[AuditEventSchema]:
        return [AuditEventSchema.model_validate(event) for event in events]

    def convert_globalstats_to_globalstatsschema(self, stats: GlobalStats | None) -> GlobalStatsSchema:
        if stats is None:
            return GlobalStatsSchema()
        return GlobalStatsSchema.model_validate(stats)

    def convert_axis_to_axispairmodel(self, schema: PoolSchema, slot: str = "q1") -> AxisPairModel | None:
        axis = schema.axes.get(slot)
        if axis is None:
            return None
        return AxisPairModel(home=list(axis.home), away=list(axis.away))

    def convert_auditeventschema_to_message(self, event: AuditEventSchema) -> str:
        """Serialize an audit event for the pub/sub channel."""
        return event.model_dump_json()


def pool_channel(pool_id: UUID) -> str:
    return f"pool:{pool_id}"
