"""Turn provider score summaries into cumulative, phase-aware pool scores.

Provider data is untrusted: anything missing or non-numeric reads as 0 and a
summary without the expected structure is rejected as a whole (None).
"""

from datetime import datetime
from typing import Any, List, NamedTuple, Optional

from squares_core.models.dc_models import (
    GameStatus,
    Period,
    ProviderScoreModel,
    ScorePairModel,
)
from squares_core.models.schema_models import (
    ScoreEventSchema,
    ScoreSnapshotSchema,
    ScoresSchema,
)
from squares_core.time_utils import to_naive_utc


class ScoreStep(NamedTuple):
    home: int
    away: int
    description: str


def safe_int(value: Any) -> int:
    """Coerce provider values to int, defaulting to 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def _period_score(lines: List[dict], period: int) -> int:
    for line in lines:
        if isinstance(line, dict) and safe_int(line.get("period")) == period:
            return safe_int(line.get("value", line.get("displayValue")))
    if len(lines) >= period and isinstance(lines[period - 1], dict):
        line = lines[period - 1]
        if line.get("period") is None:
            return safe_int(line.get("value", line.get("displayValue")))
    return 0


def _parse_start_time(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return to_naive_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None


def _game_status(value: Any) -> GameStatus:
    try:
        return GameStatus(value)
    except ValueError:
        return GameStatus.pre


def parse_provider_summary(data: Any) -> Optional[ProviderScoreModel]:
    """Parse an ESPN-style event summary.

    Args:
        data (Any): Decoded JSON body of the summary endpoint

    Returns:
        Optional[ProviderScoreModel]: Cumulative scores at every boundary, or
        None when the body does not describe a two-team competition
    """
    if not isinstance(data, dict):
        return None
    header = data.get("header")
    if not isinstance(header, dict):
        return None
    competitions = header.get("competitions")
    if not isinstance(competitions, list) or not competitions:
        return None
    competition = competitions[0]
    if not isinstance(competition, dict):
        return None
    competitors = competition.get("competitors")
    if not isinstance(competitors, list):
        return None

    home = next((c for c in competitors if isinstance(c, dict) and c.get("homeAway") == "home"), None)
    away = next((c for c in competitors if isinstance(c, dict) and c.get("homeAway") == "away"), None)
    if home is None or away is None:
        return None

    home_lines = home.get("linescores") if isinstance(home.get("linescores"), list) else []
    away_lines = away.get("linescores") if isinstance(away.get("linescores"), list) else []
    home_deltas = [_period_score(home_lines, n) for n in range(1, 5)]
    away_deltas = [_period_score(away_lines, n) for n in range(1, 5)]

    status = header.get("status") or competition.get("status") or {}
    if not isinstance(status, dict):
        status = {}
    status_type = status.get("type") if isinstance(status.get("type"), dict) else {}

    return build_provider_score(
        home_deltas,
        away_deltas,
        home_total=safe_int(home.get("score")),
        away_total=safe_int(away.get("score")),
        period=safe_int(status.get("period")),
        game_status=_game_status(status_type.get("state") or "pre"),
        clock=str(status.get("displayClock") or "0:00"),
        start_time=_parse_start_time(competition.get("date")),
    )


def build_provider_score(
    home_deltas: List[Any],
    away_deltas: List[Any],
    home_total: Optional[int] = None,
    away_total: Optional[int] = None,
    period: int = 0,
    game_status: GameStatus = GameStatus.pre,
    clock: str = "0:00",
    start_time: Optional[datetime] = None,
) -> ProviderScoreModel:
    """Accumulate per-quarter deltas into boundary scores.

    half = q1 + q2, q3 = half + q3 delta, final = q3 + q4 delta. The running
    total falls back to the regulation final when the provider omits it.
    """
    home = [safe_int(v) for v in list(home_deltas)[:4]] + [0] * (4 - min(len(home_deltas), 4))
    away = [safe_int(v) for v in list(away_deltas)[:4]] + [0] * (4 - min(len(away_deltas), 4))

    cumulative = []
    running_home = running_away = 0
    for delta_home, delta_away in zip(home, away):
        running_home += delta_home
        running_away += delta_away
        cumulative.append(ScorePairModel(home=running_home, away=running_away))

    regulation = cumulative[3]
    api_total = ScorePairModel(
        home=regulation.home if home_total is None else safe_int(home_total),
        away=regulation.away if away_total is None else safe_int(away_total),
    )
    return ProviderScoreModel(
        current=api_total,
        q1=cumulative[0],
        half=cumulative[1],
        q3=cumulative[2],
        final=regulation,
        api_total=api_total,
        game_status=game_status,
        period=safe_int(period),
        clock=clock,
        start_time=start_time,
    )


def phase_flags(provider: ProviderScoreModel) -> dict[Period, bool]:
    """A period is final once play has moved past it or the game is over."""
    over = provider.game_status == GameStatus.post
    return {
        Period.q1: provider.period >= 2 or over,
        Period.half: provider.period >= 3 or over,
        Period.q3: provider.period >= 4 or over,
        Period.final: over,
    }


def _snapshot(pair: ScorePairModel) -> ScoreSnapshotSchema:
    return ScoreSnapshotSchema(home=pair.home, away=pair.away)


def merge_scores(
    existing: ScoresSchema, provider: ProviderScoreModel, include_overtime: bool
) -> tuple[ScoresSchema, list[Period]]:
    """Fold a provider summary into the stored scores.

    Period snapshots are write-once: a set snapshot is kept even when the
    provider later reports something different.

    Returns:
        tuple[ScoresSchema, list[Period]]: Merged scores and the periods that
        were finalized by this merge, in order
    """
    flags = phase_flags(provider)
    merged = existing.model_copy(deep=True)
    merged.current = _snapshot(provider.current)
    merged.game_status = provider.game_status
    merged.period = provider.period
    merged.clock = provider.clock
    merged.start_time = provider.start_time or existing.start_time

    newly_final: list[Period] = []
    for period in Period:
        if not flags[period] or existing.snapshot(period) is not None:
            continue
        if period == Period.final:
            value = provider.api_total if include_overtime else provider.final
        else:
            value = getattr(provider, period.value)
        setattr(merged, period.value, _snapshot(value))
        newly_final.append(period)
    return merged, newly_final


def period_label(period: int, game_status: GameStatus) -> str:
    if game_status == GameStatus.pre or period <= 0:
        return "Pre"
    if period > 4:
        return "OT"
    return f"Q{period}"


def decompose_score_change(
    previous: ScoreSnapshotSchema, current: ScoreSnapshotSchema
) -> list[ScoreStep]:
    """Split a live score change into payable scoring steps.

    A single team gaining 7 or 8 is a touchdown followed by the conversion;
    anything else (both teams moved, field goals, corrections) is one step.
    """
    delta_home = current.home - previous.home
    delta_away = current.away - previous.away
    if delta_home == 0 and delta_away == 0:
        return []

    if delta_away == 0 and delta_home in (7, 8):
        conversion = "Extra Point" if delta_home == 7 else "2Pt Conv"
        return [
            ScoreStep(previous.home + 6, previous.away, "Touchdown"),
            ScoreStep(current.home, current.away, conversion),
        ]
    if delta_home == 0 and delta_away in (7, 8):
        conversion = "Extra Point" if delta_away == 7 else "2Pt Conv"
        return [
            ScoreStep(previous.home, previous.away + 6, "Touchdown"),
            ScoreStep(current.home, current.away, conversion),
        ]
    return [ScoreStep(current.home, current.away, "Score Change")]


def score_events_for_change(
    existing_events: List[ScoreEventSchema],
    previous: Optional[ScoreSnapshotSchema],
    current: ScoreSnapshotSchema,
    period: int,
    game_status: GameStatus,
    timestamp: datetime,
) -> list[ScoreEventSchema]:
    """New score events for a change in the live score.

    Event ids are the resulting score, so replaying the same change never
    appends an event twice.
    """
    known = {event.event_id for event in existing_events}
    label = period_label(period, game_status)
    events = []
    for step in decompose_score_change(previous or ScoreSnapshotSchema(), current):
        # A score reached again after a provider correction is not logged twice.
        event_id = f"{step.home}-{step.away}"
        if event_id in known:
            continue
        known.add(event_id)
        events.append(
            ScoreEventSchema(
                event_id=event_id,
                home=step.home,
                away=step.away,
                description=f"{step.description} ({label})",
                period=period,
                timestamp=timestamp,
            )
        )
    return events
