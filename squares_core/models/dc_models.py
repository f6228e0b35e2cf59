from pydantic import BaseModel, Field
from enum import Enum
from uuid import UUID
from datetime import datetime
from typing import Optional, Dict, List


class Period(str, Enum):
    q1 = "q1"
    half = "half"
    q3 = "q3"
    final = "final"


class WinnerPeriod(str, Enum):
    q1 = "q1"
    half = "half"
    q3 = "q3"
    final = "final"
    event = "Event"
    bonus = "Bonus"


class GameStatus(str, Enum):
    pre = "pre"
    live = "in"
    post = "post"


class ActorRole(str, Enum):
    participant = "PARTICIPANT"
    super_admin = "SUPER_ADMIN"
    system = "SYSTEM"


class PayoutStrategy(str, Enum):
    equal_split = "equal_split"
    hybrid = "hybrid"


class UnsoldPolicy(str, Enum):
    rollover_next = "rollover_next"
    house = "house"
    split_winners = "split_winners"


class UnclaimedFinalStrategy(str, Enum):
    last_winner = "last_winner"
    random = "random"


class League(str, Enum):
    nfl = "nfl"
    college = "college"


class OperationStatus(str, Enum):
    applied = "applied"
    no_op = "no_op"
    not_found = "not_found"
    permission_denied = "permission_denied"
    invalid_config = "invalid_config"
    not_pending = "not_pending"
    rejected = "rejected"


class Severity(str, Enum):
    info = "INFO"
    warning = "WARNING"
    error = "ERROR"


class ActorModel(BaseModel):
    user_id: str
    role: ActorRole = ActorRole.participant
    label: Optional[str] = None


SYSTEM_ACTOR = ActorModel(user_id="system", role=ActorRole.system, label="Score Sync")
AUTO_LOCK_ACTOR = ActorModel(user_id="system", role=ActorRole.system, label="Auto Lock")


class AxisPairModel(BaseModel):
    home: List[int]
    away: List[int]


class ScorePairModel(BaseModel):
    home: int = 0
    away: int = 0


class ProviderScoreModel(BaseModel):
    """One normalized provider summary, cumulative at every boundary."""

    current: ScorePairModel
    q1: ScorePairModel
    half: ScorePairModel
    q3: ScorePairModel
    final: ScorePairModel
    api_total: ScorePairModel
    game_status: GameStatus = GameStatus.pre
    period: int = 0
    clock: str = "0:00"
    start_time: Optional[datetime] = None


class OperationResult(BaseModel):
    status: OperationStatus
    pool_id: Optional[UUID] = None
    reasons: List[str] = Field(default_factory=list)
    digits: Optional[AxisPairModel] = None
    changed: bool = False
    winners_count: int = 0
    audit_events_written: int = 0
    total_locked_prize_pool: Optional[float] = None


class CreatePoolModel(BaseModel):
    name: str
    game_id: Optional[str] = None
    league: League = League.nfl
    start_time: Optional[datetime] = None
    lock_at: Optional[datetime] = None
    number_sets: int = 1
    cost_per_cell: float = 10.0
    payouts: Dict[str, float] = Field(
        default_factory=lambda: {"q1": 25.0, "half": 25.0, "q3": 25.0, "final": 25.0}
    )
    charity_pct: float = 0.0
    include_overtime: bool = True
    max_cells_per_player: int = 10
    rule_variations: Dict = Field(default_factory=dict)


class PaymentModel(BaseModel):
    cell_ids: List[int]


class SimulatedScoreModel(BaseModel):
    home_quarters: List[int] = Field(default_factory=list)
    away_quarters: List[int] = Field(default_factory=list)
    home_total: Optional[int] = None
    away_total: Optional[int] = None
    period: int = 0
    game_status: GameStatus = GameStatus.live
    clock: str = "0:00"


class SyncSummaryModel(BaseModel):
    active: int = 0
    processed: int = 0
    skipped: int = 0
    errors: int = 0
    locked: int = 0
