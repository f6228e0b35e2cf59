from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, List
from uuid import UUID
from datetime import datetime

from squares_core.models.dc_models import (
    GameStatus,
    Period,
    PayoutStrategy,
    UnclaimedFinalStrategy,
    UnsoldPolicy,
)

DIGITS = list(range(10))


class CellSchema(BaseModel):
    id: int
    owner: Optional[str] = None
    is_paid: bool = False

    @property
    def row(self) -> int:
        return self.id // 10

    @property
    def col(self) -> int:
        return self.id % 10


class AxisPairSchema(BaseModel):
    home: List[int]
    away: List[int]

    @field_validator("home", "away")
    @classmethod
    def check_permutation(cls, value: List[int]) -> List[int]:
        if sorted(value) != DIGITS:
            raise ValueError("axis must be a permutation of the digits 0-9")
        return value


class ScoreSnapshotSchema(BaseModel):
    home: int = 0
    away: int = 0


class ScoresSchema(BaseModel):
    current: Optional[ScoreSnapshotSchema] = None
    q1: Optional[ScoreSnapshotSchema] = None
    half: Optional[ScoreSnapshotSchema] = None
    q3: Optional[ScoreSnapshotSchema] = None
    final: Optional[ScoreSnapshotSchema] = None
    game_status: GameStatus = GameStatus.pre
    period: int = 0
    clock: str = "0:00"
    start_time: Optional[datetime] = None

    def snapshot(self, period: Period) -> Optional[ScoreSnapshotSchema]:
        return getattr(self, period.value)


class ScoreEventSchema(BaseModel):
    event_id: str
    home: int
    away: int
    description: str
    period: int = 0
    timestamp: datetime

    @property
    def is_overtime(self) -> bool:
        return self.period > 4


class PayoutConfigSchema(BaseModel):
    q1: float = 25.0
    half: float = 25.0
    q3: float = 25.0
    final: float = 25.0

    def pct(self, period: Period) -> float:
        return getattr(self, period.value)


class HybridWeightsSchema(BaseModel):
    final: float = 40.0
    halftime: float = 20.0
    other: Optional[float] = 40.0


class RuleVariationsSchema(BaseModel):
    reverse_winners: bool = False
    quarterly_rollover: bool = False
    score_change_payout: bool = False
    score_change_payout_strategy: PayoutStrategy = PayoutStrategy.equal_split
    score_change_hybrid_weights: HybridWeightsSchema = Field(default_factory=HybridWeightsSchema)
    score_change_handle_unsold: UnsoldPolicy = UnsoldPolicy.rollover_next
    combine_td_and_xp: bool = False
    include_ot_in_score_payouts: bool = True
    unclaimed_final_prize_strategy: UnclaimedFinalStrategy = UnclaimedFinalStrategy.last_winner


class RandomWinnerSchema(BaseModel):
    cell_id: int
    owner: str
    drawn_at: datetime
    drawn_by: str


class PoolSchema(BaseModel):
    pool_id: UUID
    name: str
    owner_id: str
    game_id: Optional[str] = None
    league: str = "nfl"
    start_time: Optional[datetime] = None
    lock_at: Optional[datetime] = None
    is_locked: bool = False
    is_settled: bool = False
    number_sets: int = 1
    cost_per_cell: float = 0.0
    payouts: PayoutConfigSchema = Field(default_factory=PayoutConfigSchema)
    charity_pct: float = 0.0
    include_overtime: bool = True
    max_cells_per_player: int = 10
    rule_variations: RuleVariationsSchema = Field(default_factory=RuleVariationsSchema)
    cells: List[CellSchema]
    scores: ScoresSchema = Field(default_factory=ScoresSchema)
    axes: Dict[str, AxisPairSchema] = Field(default_factory=dict)
    score_events: List[ScoreEventSchema] = Field(default_factory=list)
    random_winner: Optional[RandomWinnerSchema] = None
    version_id: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("cells")
    @classmethod
    def check_grid(cls, value: List[CellSchema]) -> List[CellSchema]:
        if [cell.id for cell in value] != list(range(100)):
            raise ValueError("grid must hold 100 cells with ids 0-99 in order")
        return value

    @field_validator("payouts", "rule_variations", "scores", mode="before")
    @classmethod
    def default_when_null(cls, value):
        return {} if value is None else value


class CandidateWinner(BaseModel):
    """A cell the score lands on, before any money is assigned."""

    period: str
    cell_id: int
    owner: Optional[str] = None
    home_digit: int
    away_digit: int
    is_reverse: bool = False

    @property
    def is_claimed(self) -> bool:
        return bool(self.owner)


class WinnerSchema(BaseModel):
    winner_key: str
    period: str
    cell_id: int
    owner: str
    amount: float = 0.0
    home_digit: Optional[int] = None
    away_digit: Optional[int] = None
    is_reverse: bool = False
    is_rollover: bool = False
    is_pending: bool = False
    rollover_added: float = 0.0
    description: str = ""
    event_id: Optional[str] = None

    class Config:
        from_attributes = True


class AuditEventSchema(BaseModel):
    event_id: UUID
    pool_id: Optional[UUID] = None
    type: str
    message: str
    severity: str = "INFO"
    actor: Optional[Dict] = None
    payload: Dict = Field(default_factory=dict)
    dedupe_key: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class GlobalStatsSchema(BaseModel):
    total_locked_prize_pool: float = 0.0
    locked_pool_count: int = 0
    last_updated: Optional[datetime] = None

    class Config:
        from_attributes = True
