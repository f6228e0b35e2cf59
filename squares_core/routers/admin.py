from uuid import UUID

from fastapi import APIRouter, Depends, Request

from squares_core.authentication.basic_authentication import admin_actor
from squares_core.domain.score_normalizer import build_provider_score
from squares_core.models.dc_models import ActorModel, OperationResult, SimulatedScoreModel
from squares_core.models.schema_models import GlobalStatsSchema
from squares_core.routers.pools import get_coordinator, get_session_factory, raise_for_result
from squares_core.services import pool_db

admin_router = APIRouter(prefix="/admin", tags=["admin"])


@admin_router.post("/pools/{pool_id}/recompute", response_model=OperationResult)
async def recompute_pool(
    pool_id: UUID, request: Request, actor: ActorModel = Depends(admin_actor)
) -> OperationResult:
    result = await get_coordinator(request).recompute_pool(pool_id, actor)
    return raise_for_result(result)


@admin_router.post("/pools/{pool_id}/random-draw", response_model=OperationResult)
async def random_draw(
    pool_id: UUID, request: Request, actor: ActorModel = Depends(admin_actor)
) -> OperationResult:
    result = await get_coordinator(request).draw_random_winner(pool_id, actor)
    return raise_for_result(result)


@admin_router.post("/pools/{pool_id}/simulate", response_model=OperationResult)
async def simulate_scores(
    pool_id: UUID,
    body: SimulatedScoreModel,
    request: Request,
    actor: ActorModel = Depends(admin_actor),
) -> OperationResult:
    """Apply a hand-made provider summary through the live sync path."""
    provider = build_provider_score(
        body.home_quarters,
        body.away_quarters,
        home_total=body.home_total,
        away_total=body.away_total,
        period=body.period,
        game_status=body.game_status,
        clock=body.clock,
    )
    result = await get_coordinator(request).apply_score_update(pool_id, provider, actor)
    return raise_for_result(result)


@admin_router.post("/stats/recompute", response_model=OperationResult)
async def recompute_stats(
    request: Request, actor: ActorModel = Depends(admin_actor)
) -> OperationResult:
    result = await get_coordinator(request).recompute_global_stats(actor)
    return raise_for_result(result)


@admin_router.get("/stats", response_model=GlobalStatsSchema)
async def get_stats(
    request: Request, actor: ActorModel = Depends(admin_actor)
) -> GlobalStatsSchema:
    return await pool_db.read_global_stats(get_session_factory(request))
