"""DB service layer for pool read models and pool creation.

- Routers should not touch DB sessions directly; they call this module.
- This layer owns session/transaction boundaries for what is not a
  read-modify-write on an existing pool (those go through the ledger).
"""

from typing import List
from uuid import UUID

from sqlalchemy.ext.asyncio import async_sessionmaker

from squares_core.converter import DataConverter
from squares_core.crud import CreateData, ReadData
from squares_core.domain.pool_rules import validate_pool_config
from squares_core.models.dc_models import CreatePoolModel, OperationResult, OperationStatus
from squares_core.models.schema_models import (
    AuditEventSchema,
    GlobalStatsSchema,
    PayoutConfigSchema,
    PoolSchema,
    RuleVariationsSchema,
    WinnerSchema,
)

data_converter = DataConverter()


async def create_pool(
    Session: async_sessionmaker, request: CreatePoolModel, owner_id: str
) -> tuple[OperationResult, PoolSchema | None]:
    """Validate a pool configuration and store the new, unlocked pool."""
    try:
        payouts = PayoutConfigSchema.model_validate(request.payouts)
        rules = RuleVariationsSchema.model_validate(request.rule_variations)
    except ValueError as e:
        return OperationResult(status=OperationStatus.invalid_config, reasons=[str(e)]), None

    reasons = validate_pool_config(
        request.number_sets, request.cost_per_cell, payouts, request.charity_pct, rules
    )
    if reasons:
        return OperationResult(status=OperationStatus.invalid_config, reasons=reasons), None

    pool = data_converter.convert_createpoolmodel_to_pool(request, owner_id)
    async with Session() as session:
        async with session.begin():
            await CreateData.add_pool(pool, session)
    schema = data_converter.convert_pool_to_poolschema(pool)
    return OperationResult(status=OperationStatus.applied, pool_id=schema.pool_id, changed=True), schema


async def read_pool(Session: async_sessionmaker, pool_id: UUID) -> PoolSchema | None:
    async with Session() as session:
        pool = await ReadData.read_pool(pool_id, session)
        if pool is None:
            return None
        return data_converter.convert_pool_to_poolschema(pool)


async def read_winners(Session: async_sessionmaker, pool_id: UUID) -> List[WinnerSchema]:
    async with Session() as session:
        winners = await ReadData.read_winners(pool_id, session)
        return data_converter.convert_winners_to_winnerschemas(winners)


async def read_audit_events(
    Session: async_sessionmaker, pool_id: UUID, limit: int = 200
) -> List[AuditEventSchema]:
    async with Session() as session:
        events = await ReadData.read_audit_events(pool_id, session, limit)
        return data_converter.convert_auditevents_to_auditeventschemas(events)


async def read_global_stats(Session: async_sessionmaker) -> GlobalStatsSchema:
    async with Session() as session:
        stats = await ReadData.read_global_stats(session)
        return data_converter.convert_globalstats_to_globalstatsschema(stats)
