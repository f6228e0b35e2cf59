"""Pool configuration rules that are independent from HTTP and DB.

Rule of thumb:
- OK: configuration validation, pot arithmetic, stable dedupe keys.
- Not OK: touching DB sessions, Redis, FastAPI, datetime.now(), etc.
"""

import hashlib
import json
from uuid import UUID

from squares_core.models.dc_models import (
    Period,
    PayoutStrategy,
    UnsoldPolicy,
)
from squares_core.models.schema_models import (
    PayoutConfigSchema,
    PoolSchema,
    RuleVariationsSchema,
)

GRID_SIZE = 100
ALLOWED_NUMBER_SETS = (1, 4)

# Owner labels written into winner records that are not participants.
ROLLOVER_OWNER = "ROLLOVER"
HOUSE_OWNER = "HOUSE"
UNSOLD_OWNER = "Unsold"
PENDING_RANDOM_OWNER = "PENDING RANDOM DRAW"
UNRESOLVED_OWNER = "UNRESOLVED"
NON_PARTICIPANT_OWNERS = frozenset(
    [ROLLOVER_OWNER, HOUSE_OWNER, UNSOLD_OWNER, PENDING_RANDOM_OWNER, UNRESOLVED_OWNER]
)

PERIOD_LABELS = {
    Period.q1: "Q1",
    Period.half: "Halftime",
    Period.q3: "Q3",
    Period.final: "Final",
}

MONEY_TOLERANCE = 1e-6


def _check_pct(name: str, value: float, reasons: list[str]) -> None:
    if value < 0 or value > 100:
        reasons.append(f"{name} must be between 0 and 100, got {value}")


def validate_rule_variations(rules: RuleVariationsSchema) -> list[str]:
    reasons: list[str] = []
    if rules.combine_td_and_xp:
        reasons.append("combine_td_and_xp is not supported")
    if not rules.score_change_payout:
        return reasons

    if rules.score_change_handle_unsold == UnsoldPolicy.split_winners:
        reasons.append("score_change_handle_unsold 'split_winners' is not supported")

    if rules.score_change_payout_strategy == PayoutStrategy.hybrid:
        weights = rules.score_change_hybrid_weights
        _check_pct("hybrid final weight", weights.final, reasons)
        _check_pct("hybrid halftime weight", weights.halftime, reasons)
        reserved = weights.final + weights.halftime
        if reserved > 100:
            reasons.append(f"hybrid final + halftime weights exceed 100 ({reserved})")
        elif weights.other is not None and abs(reserved + weights.other - 100) > MONEY_TOLERANCE:
            reasons.append(
                f"hybrid weights must sum to 100, got {reserved + weights.other}"
            )
    return reasons


def validate_pool_config(
    number_sets: int,
    cost_per_cell: float,
    payouts: PayoutConfigSchema,
    charity_pct: float,
    rules: RuleVariationsSchema,
) -> list[str]:
    """Validate a pool configuration before it may go live.

    Unsupported rule combinations fail closed instead of being guessed at.

    Args:
        number_sets (int): 1 for a single axis pair, 4 for one per quarter
        cost_per_cell (float): Price of one grid cell
        payouts (PayoutConfigSchema): Percent of the net pot per period
        charity_pct (float): Percent of the gross pot withheld for charity
        rules (RuleVariationsSchema): Rule variation flags

    Returns:
        list[str]: Human readable rejection reasons, empty when valid
    """
    reasons: list[str] = []
    if number_sets not in ALLOWED_NUMBER_SETS:
        reasons.append(f"number_sets must be 1 or 4, got {number_sets}")
    if cost_per_cell < 0:
        reasons.append("cost_per_cell must not be negative")
    _check_pct("charity_pct", charity_pct, reasons)

    for period in Period:
        _check_pct(f"payout for {period.value}", payouts.pct(period), reasons)

    standard_mode = not rules.score_change_payout
    if standard_mode:
        total = sum(payouts.pct(period) for period in Period)
        if abs(total - 100) > MONEY_TOLERANCE:
            reasons.append(f"payout percentages must sum to 100, got {total}")

    reasons.extend(validate_rule_variations(rules))
    return reasons


def sold_cell_count(pool: PoolSchema) -> int:
    return sum(1 for cell in pool.cells if cell.owner)


def gross_pot(sold_cells: int, cost_per_cell: float) -> float:
    return sold_cells * cost_per_cell


def net_pot(sold_cells: int, cost_per_cell: float, charity_pct: float) -> float:
    return gross_pot(sold_cells, cost_per_cell) * (1 - charity_pct / 100)


def prize_pool(pool: PoolSchema) -> float:
    """Amount counted into the global locked-in prize pool aggregate."""
    pot = net_pot(sold_cell_count(pool), pool.cost_per_cell, pool.charity_pct)
    if pool.rule_variations.score_change_payout:
        return pot
    return pot * sum(pool.payouts.pct(period) for period in Period) / 100


def is_participant(owner: str | None) -> bool:
    return bool(owner) and owner not in NON_PARTICIPANT_OWNERS


# ==============================================================================
# ==== Dedupe keys =============================================================
# ==============================================================================


def period_final_key(pool_id: UUID, period: Period) -> str:
    return f"FINAL:{pool_id}:{period.value}"


def winner_digits_key(
    pool_id: UUID, period: Period, home_digit: int, away_digit: int, is_reverse: bool
) -> str:
    """Hash of the stable inputs that decide a period winner."""
    material = {
        "poolId": str(pool_id),
        "period": period.value,
        "homeDigit": home_digit,
        "awayDigit": away_digit,
    }
    if is_reverse:
        material["reverse"] = True
    digest = hashlib.sha256(json.dumps(material, sort_keys=True).encode()).hexdigest()
    return f"WINNER:{digest}"


def event_winner_key(pool_id: UUID, event_id: str) -> str:
    return f"WINNER_EVENT:{pool_id}:{event_id}"


def score_step_key(pool_id: UUID, home: int, away: int) -> str:
    return f"SCORE_STEP:{pool_id}:{home}:{away}"


def digits_key(pool_id: UUID, slot: str) -> str:
    return f"DIGITS:{pool_id}:{slot}"


def digits_commit_hash(pool_id: UUID, slot: str, home: list[int], away: list[int]) -> str:
    material = {"poolId": str(pool_id), "slot": slot, "home": home, "away": away}
    return hashlib.sha256(json.dumps(material, sort_keys=True).encode()).hexdigest()


def lock_key(pool_id: UUID) -> str:
    return f"LOCK:{pool_id}"


def payment_key(pool_id: UUID, cell_id: int) -> str:
    return f"PAYMENT:{pool_id}:{cell_id}"


def random_draw_key(pool_id: UUID) -> str:
    return f"RANDOM_DRAW:{pool_id}"


def settled_key(pool_id: UUID) -> str:
    return f"SETTLED:{pool_id}"


def bonus_key(pool_id: UUID, winner_key: str, owner: str) -> str:
    return f"BONUS:{pool_id}:{winner_key}:{owner}"


def event_payouts_key(pool_id: UUID) -> str:
    return f"EVENT_PAYOUTS:{pool_id}"
