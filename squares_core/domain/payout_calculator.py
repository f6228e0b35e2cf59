"""Turn resolved winners and pool configuration into dollar amounts.

Three mutually exclusive modes are supported:
- standard quarterly: each period pays its configured percent of the net pot
- every score pays, equal split: the whole net pot is divided across events
- every score pays, hybrid: Final and Half keep fixed reserves and the rest
  is divided across events

Every dollar of the net pot ends up on exactly one emitted record: a paid
winner, a house entry, or a pending/unresolved entry. Rollover markers carry
amount 0 so the money is only counted where it lands.
"""

import math
from typing import Dict, List, NamedTuple, Optional

from squares_core.domain.axis_numbers import active_axis, axis_for_period
from squares_core.domain.pool_rules import (
    HOUSE_OWNER,
    PENDING_RANDOM_OWNER,
    PERIOD_LABELS,
    ROLLOVER_OWNER,
    UNRESOLVED_OWNER,
    is_participant,
    net_pot,
    sold_cell_count,
)
from squares_core.domain.winner_resolver import resolve
from squares_core.models.dc_models import (
    Period,
    PayoutStrategy,
    UnclaimedFinalStrategy,
    UnsoldPolicy,
    WinnerPeriod,
)
from squares_core.models.schema_models import (
    CandidateWinner,
    PayoutConfigSchema,
    PoolSchema,
    RandomWinnerSchema,
    RuleVariationsSchema,
    ScoreEventSchema,
    WinnerSchema,
)

# Last live period whose events are paid before each period's own entry.
PERIOD_EVENT_CUTOFF = {Period.q1: 1, Period.half: 2, Period.q3: 3, Period.final: math.inf}


class EventResult(NamedTuple):
    event: ScoreEventSchema
    candidate: CandidateWinner


class _EventEntry(NamedTuple):
    live_period: int
    winner: WinnerSchema


def _period_key(period: Period, candidate: CandidateWinner) -> str:
    return f"{period.value}:reverse" if candidate.is_reverse else period.value


def _period_entries(
    pcts: Dict[Period, float],
    pot: float,
    period_candidates: Dict[Period, List[CandidateWinner]],
    rollover_enabled: bool,
) -> tuple[Dict[Period, List[WinnerSchema]], float]:
    """Pay each finalized period, carrying unclaimed shares forward when enabled.

    Returns:
        tuple[Dict[Period, List[WinnerSchema]], float]: Entries per period and
        the rollover balance still unpaid after the last finalized period
    """
    entries: Dict[Period, List[WinnerSchema]] = {}
    rollover = 0.0
    for period in Period:
        candidates = period_candidates.get(period)
        if not candidates:
            continue
        label = PERIOD_LABELS[period]
        carried = rollover
        rollover = 0.0
        base_share = pot * pcts.get(period, 0.0) / 100 / len(candidates)
        carried_share = carried / len(candidates)

        period_winners = []
        for candidate in candidates:
            amount = base_share + carried_share
            key = _period_key(period, candidate)
            kind = "Reverse Winner" if candidate.is_reverse else "Winner"
            if candidate.is_claimed:
                period_winners.append(
                    WinnerSchema(
                        winner_key=key,
                        period=period.value,
                        cell_id=candidate.cell_id,
                        owner=candidate.owner,
                        amount=amount,
                        home_digit=candidate.home_digit,
                        away_digit=candidate.away_digit,
                        is_reverse=candidate.is_reverse,
                        rollover_added=carried_share,
                        description=f"{label} {kind}",
                    )
                )
            elif rollover_enabled:
                rollover += amount
                period_winners.append(
                    WinnerSchema(
                        winner_key=key,
                        period=period.value,
                        cell_id=-1,
                        owner=ROLLOVER_OWNER,
                        amount=0.0,
                        home_digit=candidate.home_digit,
                        away_digit=candidate.away_digit,
                        is_reverse=candidate.is_reverse,
                        is_rollover=True,
                        description=(
                            f"{label} {kind}: cell {candidate.cell_id} unclaimed, "
                            f"{amount:.2f} rolls over"
                        ),
                    )
                )
            else:
                period_winners.append(
                    WinnerSchema(
                        winner_key=key,
                        period=period.value,
                        cell_id=candidate.cell_id,
                        owner=HOUSE_OWNER,
                        amount=amount,
                        home_digit=candidate.home_digit,
                        away_digit=candidate.away_digit,
                        is_reverse=candidate.is_reverse,
                        rollover_added=carried_share,
                        description=f"{label} {kind}: cell unclaimed, returned to house",
                    )
                )
        entries[period] = period_winners
    return entries, rollover


def payable_events(
    event_results: List[EventResult], rules: RuleVariationsSchema
) -> List[EventResult]:
    """Events that share in the every-score-pays reserve."""
    if rules.include_ot_in_score_payouts:
        return list(event_results)
    return [result for result in event_results if not result.event.is_overtime]


def _event_entries(
    reserve: float,
    events: List[EventResult],
    unsold_policy: UnsoldPolicy,
) -> tuple[List[_EventEntry], float]:
    """Split a reserve equally across events.

    Returns:
        tuple[List[_EventEntry], float]: Entries in event order and the share
        still carried forward after the last event. With no events the
        whole reserve is carried.
    """
    if not events:
        return [], reserve
    per_event = reserve / len(events)
    carry = 0.0
    entries = []
    for result in events:
        event, candidate = result
        key = f"event:{event.event_id}"
        score = f"{event.home}-{event.away}"
        if candidate.is_claimed:
            winner = WinnerSchema(
                winner_key=key,
                period=WinnerPeriod.event.value,
                cell_id=candidate.cell_id,
                owner=candidate.owner,
                amount=per_event + carry,
                home_digit=candidate.home_digit,
                away_digit=candidate.away_digit,
                rollover_added=carry,
                description=f"{event.description} ({score})",
                event_id=event.event_id,
            )
            carry = 0.0
        elif unsold_policy == UnsoldPolicy.rollover_next:
            carry += per_event
            winner = WinnerSchema(
                winner_key=key,
                period=WinnerPeriod.event.value,
                cell_id=-1,
                owner=ROLLOVER_OWNER,
                amount=0.0,
                home_digit=candidate.home_digit,
                away_digit=candidate.away_digit,
                is_rollover=True,
                description=f"{event.description} ({score}): cell {candidate.cell_id} unclaimed, rolls to next score",
                event_id=event.event_id,
            )
        else:
            winner = WinnerSchema(
                winner_key=key,
                period=WinnerPeriod.event.value,
                cell_id=candidate.cell_id,
                owner=HOUSE_OWNER,
                amount=per_event,
                home_digit=candidate.home_digit,
                away_digit=candidate.away_digit,
                description=f"{event.description} ({score}): cell unclaimed, returned to house",
                event_id=event.event_id,
            )
        entries.append(_EventEntry(event.period, winner))
    return entries, carry


def _interleave(
    period_entries: Dict[Period, List[WinnerSchema]], event_entries: List[_EventEntry]
) -> List[WinnerSchema]:
    ordered: List[WinnerSchema] = []
    pending_events = list(event_entries)
    for period in Period:
        cutoff = PERIOD_EVENT_CUTOFF[period]
        while pending_events and pending_events[0].live_period <= cutoff:
            ordered.append(pending_events.pop(0).winner)
        ordered.extend(period_entries.get(period, []))
    return ordered


def _event_carry_entry(amount: float, had_events: bool, rules: RuleVariationsSchema) -> WinnerSchema:
    """Entry for event money no event paid out once the game is final."""
    if not had_events and rules.score_change_handle_unsold == UnsoldPolicy.house:
        return WinnerSchema(
            winner_key="bonus:events",
            period=WinnerPeriod.bonus.value,
            cell_id=-1,
            owner=HOUSE_OWNER,
            amount=amount,
            description="No payable score events: event reserve returned to house",
        )
    if had_events:
        description = "Unclaimed bonus: score events after the last claimed score"
    else:
        description = "Unclaimed bonus: no payable score events"
    return WinnerSchema(
        winner_key="bonus:events",
        period=WinnerPeriod.bonus.value,
        cell_id=-1,
        owner=UNRESOLVED_OWNER,
        amount=amount,
        is_pending=True,
        description=description,
    )


def _last_real_winner(ordered: List[WinnerSchema]) -> Optional[WinnerSchema]:
    for winner in reversed(ordered):
        if is_participant(winner.owner) and not winner.is_rollover and not winner.is_pending:
            return winner
    return None


def _final_rollover_entry(
    amount: float,
    ordered: List[WinnerSchema],
    strategy: UnclaimedFinalStrategy,
    random_winner: Optional[RandomWinnerSchema],
) -> WinnerSchema:
    if strategy == UnclaimedFinalStrategy.random:
        if random_winner is not None:
            return WinnerSchema(
                winner_key="bonus",
                period=WinnerPeriod.bonus.value,
                cell_id=random_winner.cell_id,
                owner=random_winner.owner,
                amount=amount,
                rollover_added=amount,
                description="Unclaimed final prize awarded by random draw",
            )
        return WinnerSchema(
            winner_key="bonus",
            period=WinnerPeriod.bonus.value,
            cell_id=-1,
            owner=PENDING_RANDOM_OWNER,
            amount=amount,
            is_pending=True,
            description="Unclaimed final prize awaiting random draw",
        )

    last = _last_real_winner(ordered)
    if last is None:
        return WinnerSchema(
            winner_key="bonus",
            period=WinnerPeriod.bonus.value,
            cell_id=-1,
            owner=UNRESOLVED_OWNER,
            amount=amount,
            is_pending=True,
            description="Unclaimed final prize with no earlier winner to receive it",
        )
    return WinnerSchema(
        winner_key="bonus",
        period=WinnerPeriod.bonus.value,
        cell_id=last.cell_id,
        owner=last.owner,
        amount=amount,
        rollover_added=amount,
        description=f"Unclaimed final prize awarded to last winner ({last.description})",
    )


def calculate_payouts(
    payouts: PayoutConfigSchema,
    rules: RuleVariationsSchema,
    sold_cells: int,
    cost_per_cell: float,
    charity_pct: float,
    period_candidates: Dict[Period, List[CandidateWinner]],
    event_results: List[EventResult],
    random_winner: Optional[RandomWinnerSchema] = None,
    game_final: bool = False,
) -> List[WinnerSchema]:
    """Compute every winner record for a pool.

    Args:
        payouts (PayoutConfigSchema): Percent of the net pot per period
        rules (RuleVariationsSchema): Rule variation flags selecting the mode
        sold_cells (int): Number of claimed cells
        cost_per_cell (float): Price of one cell
        charity_pct (float): Percent withheld from the gross pot
        period_candidates (Dict[Period, List[CandidateWinner]]): Resolved
            candidates of every finalized period
        event_results (List[EventResult]): Resolved score events in log order
        random_winner (Optional[RandomWinnerSchema]): Result of the admin
            random draw, if it has happened
        game_final (bool): Whether the Final snapshot is set

    Returns:
        List[WinnerSchema]: Winner records in chronological order
    """
    pot = net_pot(sold_cells, cost_per_cell, charity_pct)
    event_entries: List[_EventEntry] = []
    event_carry = 0.0

    if not rules.score_change_payout:
        pcts = {period: payouts.pct(period) for period in Period}
        period_entries, rollover = _period_entries(
            pcts, pot, period_candidates, rules.quarterly_rollover
        )
    elif rules.score_change_payout_strategy == PayoutStrategy.hybrid:
        weights = rules.score_change_hybrid_weights
        pcts = {
            Period.q1: 0.0,
            Period.half: weights.halftime,
            Period.q3: 0.0,
            Period.final: weights.final,
        }
        period_entries, rollover = _period_entries(
            pcts, pot, period_candidates, rules.quarterly_rollover
        )
        reserve = pot * (100 - weights.final - weights.halftime) / 100
        event_entries, event_carry = _event_entries(
            reserve, payable_events(event_results, rules), rules.score_change_handle_unsold
        )
    else:
        period_entries, rollover = {}, 0.0
        event_entries, event_carry = _event_entries(
            pot, payable_events(event_results, rules), rules.score_change_handle_unsold
        )

    ordered = _interleave(period_entries, event_entries)
    if not game_final:
        return ordered

    if event_carry > 0:
        ordered.append(_event_carry_entry(event_carry, bool(event_entries), rules))
    if rollover > 0:
        ordered.append(
            _final_rollover_entry(
                rollover, ordered, rules.unclaimed_final_prize_strategy, random_winner
            )
        )
    return ordered


def resolve_period_candidates(pool: PoolSchema) -> Dict[Period, List[CandidateWinner]]:
    candidates = {}
    for period in Period:
        snapshot = pool.scores.snapshot(period)
        axis = axis_for_period(pool.axes, period)
        if snapshot is None or axis is None:
            continue
        candidates[period] = resolve(
            period.value,
            snapshot.home,
            snapshot.away,
            axis,
            pool.cells,
            pool.rule_variations.reverse_winners,
        )
    return candidates


def resolve_event_results(pool: PoolSchema) -> List[EventResult]:
    """Primary winner of every logged score event (no reverse for events)."""
    if not pool.rule_variations.score_change_payout:
        return []
    results = []
    for event in pool.score_events:
        axis = active_axis(pool.axes, event.period)
        if axis is None:
            continue
        candidate = resolve(
            WinnerPeriod.event.value, event.home, event.away, axis, pool.cells, False
        )[0]
        results.append(EventResult(event, candidate))
    return results


def compute_pool_winners(pool: PoolSchema) -> List[WinnerSchema]:
    """Derive the full winner list from a pool snapshot.

    Shared by live sync, admin recompute and simulation.
    """
    return calculate_payouts(
        pool.payouts,
        pool.rule_variations,
        sold_cell_count(pool),
        pool.cost_per_cell,
        pool.charity_pct,
        resolve_period_candidates(pool),
        resolve_event_results(pool),
        random_winner=pool.random_winner,
        game_final=pool.scores.final is not None,
    )


def total_amount(winners: List[WinnerSchema]) -> float:
    return sum(winner.amount for winner in winners)
