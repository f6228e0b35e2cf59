from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.schema import Column, ForeignKey, UniqueConstraint
from sqlalchemy.types import Boolean, Integer, String, Uuid, Float, DateTime, JSON
from sqlalchemy.dialects.postgresql import JSONB
from uuid6 import uuid7

from squares_core.time_utils import utc_now

# JSONB on postgres, plain JSON on sqlite for local runs and tests.
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class Pool(Base):
    __tablename__ = "pool"
    pool_id = Column(Uuid, primary_key=True, default=uuid7)
    name = Column(String, nullable=False)
    owner_id = Column(String, nullable=False, index=True)
    game_id = Column(String, nullable=True, index=True)
    league = Column(String, default="nfl")
    start_time = Column(DateTime, nullable=True)
    lock_at = Column(DateTime, nullable=True)
    is_locked = Column(Boolean, default=False, nullable=False)
    is_settled = Column(Boolean, default=False, nullable=False)
    number_sets = Column(Integer, default=1, nullable=False)
    cost_per_cell = Column(Float, default=0.0, nullable=False)
    payouts = Column(JSONType)
    charity_pct = Column(Float, default=0.0, nullable=False)
    include_overtime = Column(Boolean, default=True, nullable=False)
    max_cells_per_player = Column(Integer, default=10, nullable=False)
    rule_variations = Column(JSONType)
    cells = Column(JSONType)
    scores = Column(JSONType)
    axes = Column(JSONType)
    score_events = Column(JSONType)
    random_winner = Column(JSONType, nullable=True)
    game_status = Column(String, default="pre", index=True)
    version_id = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    __mapper_args__ = {"version_id_col": version_id}


class Winner(Base):
    __tablename__ = "winner"
    __table_args__ = (UniqueConstraint("pool_id", "winner_key", name="uq_winner_pool_key"),)
    winner_id = Column(Uuid, primary_key=True, default=uuid7)
    pool_id = Column(Uuid, ForeignKey("pool.pool_id"), nullable=False, index=True)
    winner_key = Column(String, nullable=False)
    position = Column(Integer, nullable=False)
    period = Column(String, nullable=False)
    cell_id = Column(Integer, nullable=False)
    owner = Column(String, nullable=False)
    amount = Column(Float, default=0.0)
    home_digit = Column(Integer, nullable=True)
    away_digit = Column(Integer, nullable=True)
    is_reverse = Column(Boolean, default=False)
    is_rollover = Column(Boolean, default=False)
    is_pending = Column(Boolean, default=False)
    rollover_added = Column(Float, default=0.0)
    description = Column(String, default="")
    event_id = Column(String, nullable=True)


class AuditEvent(Base):
    __tablename__ = "audit_event"
    event_id = Column(Uuid, primary_key=True, default=uuid7)
    pool_id = Column(Uuid, nullable=True, index=True)
    type = Column(String, nullable=False)
    message = Column(String, nullable=False)
    severity = Column(String, default="INFO")
    actor = Column(JSONType, nullable=True)
    payload = Column(JSONType)
    dedupe_key = Column(String, unique=True, nullable=True)
    created_at = Column(DateTime, default=utc_now, index=True)


class GlobalStats(Base):
    __tablename__ = "global_stats"
    id = Column(String, primary_key=True, default="global")
    total_locked_prize_pool = Column(Float, default=0.0, nullable=False)
    locked_pool_count = Column(Integer, default=0, nullable=False)
    version_id = Column(Integer, nullable=False)
    last_updated = Column(DateTime, default=utc_now)

    __mapper_args__ = {"version_id_col": version_id}


class UserTable(Base):
    __tablename__ = "users"
    username = Column(String, primary_key=True, index=True)
    hash_password = Column(String)
    salt = Column(String)
    role = Column(String, default="PARTICIPANT")
