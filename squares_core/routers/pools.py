import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from squares_core.authentication.basic_authentication import current_actor
from squares_core.models.dc_models import (
    ActorModel,
    CreatePoolModel,
    OperationResult,
    OperationStatus,
    PaymentModel,
)
from squares_core.models.schema_models import AuditEventSchema, PoolSchema, WinnerSchema
from squares_core.redis_subscriber import RedisSubscriber
from squares_core.services import pool_db
from squares_core.services.ledger import TransactionCoordinator

pool_router = APIRouter(prefix="/pools", tags=["pools"])

STATUS_CODES = {
    OperationStatus.not_found: status.HTTP_404_NOT_FOUND,
    OperationStatus.permission_denied: status.HTTP_403_FORBIDDEN,
    OperationStatus.invalid_config: status.HTTP_422_UNPROCESSABLE_ENTITY,
    OperationStatus.not_pending: status.HTTP_409_CONFLICT,
    OperationStatus.rejected: status.HTTP_409_CONFLICT,
}


def raise_for_result(result: OperationResult) -> OperationResult:
    """Turn a rejected operation into the matching HTTP error."""
    code = STATUS_CODES.get(result.status)
    if code is not None:
        raise HTTPException(
            status_code=code,
            detail={"status": result.status.value, "reasons": result.reasons},
        )
    return result


def get_coordinator(request: Request) -> TransactionCoordinator:
    return request.app.state.coordinator


def get_session_factory(request: Request):
    return request.app.state.Session


async def require_pool(request: Request, pool_id: UUID) -> PoolSchema:
    pool = await pool_db.read_pool(get_session_factory(request), pool_id)
    if pool is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pool not found")
    return pool


@pool_router.post("", response_model=PoolSchema, status_code=status.HTTP_201_CREATED)
async def create_pool(
    body: CreatePoolModel,
    request: Request,
    actor: ActorModel = Depends(current_actor),
) -> PoolSchema:
    result, pool = await pool_db.create_pool(get_session_factory(request), body, actor.user_id)
    raise_for_result(result)
    logging.info(f"Pool {pool.pool_id} created by {actor.user_id}")
    return pool


@pool_router.get("/{pool_id}", response_model=PoolSchema)
async def get_pool(
    pool_id: UUID, request: Request, actor: ActorModel = Depends(current_actor)
) -> PoolSchema:
    return await require_pool(request, pool_id)


@pool_router.post("/{pool_id}/cells/{cell_id}/claim", response_model=OperationResult)
async def claim_cell(
    pool_id: UUID,
    cell_id: int,
    request: Request,
    actor: ActorModel = Depends(current_actor),
) -> OperationResult:
    result = await get_coordinator(request).claim_cell(pool_id, cell_id, actor)
    return raise_for_result(result)


@pool_router.post("/{pool_id}/lock", response_model=OperationResult)
async def lock_pool(
    pool_id: UUID, request: Request, actor: ActorModel = Depends(current_actor)
) -> OperationResult:
    """Lock the pool and return its axis numbers.

    Allowed for the pool owner and administrators.
    """
    result = await get_coordinator(request).lock_pool(pool_id, actor)
    return raise_for_result(result)


@pool_router.post("/{pool_id}/payments", response_model=OperationResult)
async def confirm_payments(
    pool_id: UUID,
    body: PaymentModel,
    request: Request,
    actor: ActorModel = Depends(current_actor),
) -> OperationResult:
    result = await get_coordinator(request).confirm_payment(pool_id, body.cell_ids, actor)
    return raise_for_result(result)


@pool_router.get("/{pool_id}/winners", response_model=List[WinnerSchema])
async def get_winners(
    pool_id: UUID, request: Request, actor: ActorModel = Depends(current_actor)
) -> List[WinnerSchema]:
    await require_pool(request, pool_id)
    return await pool_db.read_winners(get_session_factory(request), pool_id)


@pool_router.get("/{pool_id}/audit", response_model=List[AuditEventSchema])
async def get_audit_events(
    pool_id: UUID,
    request: Request,
    limit: int = 200,
    actor: ActorModel = Depends(current_actor),
) -> List[AuditEventSchema]:
    await require_pool(request, pool_id)
    return await pool_db.read_audit_events(get_session_factory(request), pool_id, limit)


@pool_router.get("/{pool_id}/audit/stream")
async def stream_audit_events(
    pool_id: UUID, request: Request, actor: ActorModel = Depends(current_actor)
):
    redis = request.app.state.redis
    if redis is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Live audit stream requires Redis",
        )
    await require_pool(request, pool_id)
    redis_subscriber = RedisSubscriber(get_session_factory(request), pool_id)
    return StreamingResponse(
        redis_subscriber.event_generator(redis),
        media_type="text/event-stream",
    )
