from apscheduler.schedulers.asyncio import AsyncIOScheduler
import uvicorn
import logging
import random
from datetime import timedelta
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine

from squares_core import load_secrets
from squares_core.db import create_engine, create_session_factory, create_tables
from squares_core.redis_publisher import NullPublisher, RedisPublisher
from squares_core.routers.admin import admin_router
from squares_core.routers.pools import pool_router
from squares_core.services.ledger import TransactionConflictError, TransactionCoordinator
from squares_core.services.score_provider import ScoreProvider
from squares_core.services.score_sync import ScoreSyncService

logging.basicConfig(level=load_secrets.log_level)
logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def create_app(
    engine: Optional[AsyncEngine] = None,
    publisher=None,
    provider: Optional[ScoreProvider] = None,
    enable_scheduler: bool = True,
    rng: Optional[random.Random] = None,
    redis: Optional[Redis] = None,
) -> FastAPI:
    """Build the API with its collaborators wired in explicitly.

    Args:
        engine (Optional[AsyncEngine]): Store engine, built from DATABASE_URL when omitted
        publisher: Audit event publisher, Redis when REDIS_URL is set
        provider (Optional[ScoreProvider]): Score provider client
        enable_scheduler (bool): Start the score sync and auto-lock jobs
        rng (Optional[random.Random]): Randomness for axis numbers and draws
        redis (Optional[Redis]): Connection used by the SSE audit stream
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create tables and wire components, then start the scheduler.
        This function is called to start the server.
        """
        db_engine = engine or create_engine(load_secrets.database_url)
        await create_tables(db_engine)
        Session = create_session_factory(db_engine)

        live_redis = redis
        if live_redis is None and load_secrets.redis_url:
            live_redis = Redis.from_url(
                load_secrets.redis_url, decode_responses=True, health_check_interval=30
            )
        audit_publisher = publisher
        if audit_publisher is None:
            audit_publisher = RedisPublisher(live_redis) if live_redis else NullPublisher()

        coordinator = TransactionCoordinator(
            Session,
            publisher=audit_publisher,
            rng=rng,
            max_retries=load_secrets.transaction_max_retries,
        )
        score_provider = provider or ScoreProvider(
            load_secrets.score_provider_base_url,
            timeout=load_secrets.provider_timeout_seconds,
        )
        score_sync = ScoreSyncService(
            Session,
            coordinator,
            score_provider,
            fetch_horizon=timedelta(hours=load_secrets.fetch_horizon_hours),
            auto_lock_buffer=timedelta(seconds=load_secrets.auto_lock_buffer_seconds),
        )

        app.state.Session = Session
        app.state.pepper = load_secrets.pepper_data
        app.state.coordinator = coordinator
        app.state.score_sync = score_sync
        app.state.redis = live_redis

        scheduler = AsyncIOScheduler()
        if enable_scheduler:
            scheduler.add_job(
                score_sync.sync_all,
                "interval",
                minutes=load_secrets.score_sync_interval_minutes,
                max_instances=1,
                coalesce=True,
            )
            scheduler.add_job(
                score_sync.auto_lock_due_pools,
                "interval",
                minutes=load_secrets.auto_lock_interval_minutes,
                max_instances=1,
                coalesce=True,
            )
            scheduler.start()
        try:
            yield
        finally:
            if scheduler.running:
                scheduler.shutdown()
            if live_redis is not None and redis is None:
                await live_redis.aclose()
            if engine is None:
                await db_engine.dispose()
            logging.info("Stop Server")

    app = FastAPI(lifespan=lifespan)
    app.include_router(pool_router)
    app.include_router(admin_router)

    @app.exception_handler(TransactionConflictError)
    async def transaction_conflict_handler(request: Request, exc: TransactionConflictError):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Pool is busy, try again"},
        )

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8080)
