"""
tests/conftest.py - Pytest configuration and fixtures

Every test gets a fresh in-memory sqlite store, a seeded random source and a
publisher that records what would have gone out to Redis.
"""

import random
from typing import Dict, Optional
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from squares_core.converter import DataConverter
from squares_core.db import create_session_factory, create_tables
from squares_core.models.dc_models import CreatePoolModel
from squares_core.models.schema_models import CellSchema
from squares_core.services.ledger import TransactionCoordinator

from tests.helpers import FixedClock, RecordingPublisher

data_converter = DataConverter()


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def Session(engine):
    return create_session_factory(engine)


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def coordinator(Session, publisher, clock):
    return TransactionCoordinator(
        Session, publisher=publisher, rng=random.Random(7), max_retries=5, clock=clock
    )


@pytest.fixture
def pool_factory(Session):
    """Insert a pool row directly, bypassing the claim flow."""

    async def factory(
        owners: Optional[Dict[int, str]] = None,
        axes: Optional[Dict[str, dict]] = None,
        is_locked: bool = False,
        owner_id: str = "owner",
        **kwargs,
    ) -> UUID:
        kwargs.setdefault("name", "Sunday Night Squares")
        kwargs.setdefault("game_id", "401772938")
        request = CreatePoolModel(**kwargs)
        pool = data_converter.convert_createpoolmodel_to_pool(request, owner_id)
        owners = owners or {}
        pool.cells = [
            CellSchema(id=i, owner=owners.get(i)).model_dump(mode="json") for i in range(100)
        ]
        pool.axes = axes or {}
        pool.is_locked = is_locked
        async with Session() as session:
            async with session.begin():
                session.add(pool)
        return pool.pool_id

    return factory
