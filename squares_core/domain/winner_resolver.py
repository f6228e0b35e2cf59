"""Map a score onto the grid cell(s) it wins.

Pure functions only; live sync, admin repair and simulation all resolve
winners through here so they can never disagree.
"""

from typing import List, Optional

from squares_core.models.schema_models import AxisPairSchema, CandidateWinner, CellSchema


def last_digit(score: int) -> int:
    return abs(int(score)) % 10


def cell_for_digits(axis: AxisPairSchema, home_digit: int, away_digit: int) -> int:
    row = axis.away.index(away_digit)
    col = axis.home.index(home_digit)
    return row * 10 + col


def _owner(cells: List[CellSchema], cell_id: int) -> Optional[str]:
    if 0 <= cell_id < len(cells):
        return cells[cell_id].owner or None
    return None


def resolve(
    period: str,
    home_score: int,
    away_score: int,
    axis: AxisPairSchema,
    cells: List[CellSchema],
    reverse_enabled: bool,
) -> List[CandidateWinner]:
    """Resolve the winning cells for a score.

    Args:
        period (str): Payout period or "Event" the score belongs to
        home_score (int): Cumulative home score
        away_score (int): Cumulative away score
        axis (AxisPairSchema): Axis numbers active for the period
        cells (List[CellSchema]): The 100 grid cells
        reverse_enabled (bool): Also pay the cell with the digits swapped

    Returns:
        List[CandidateWinner]: Primary candidate first, then the reverse one
        when it lands on a different cell. owner is None for unclaimed cells.
    """
    home_digit = last_digit(home_score)
    away_digit = last_digit(away_score)
    primary_id = cell_for_digits(axis, home_digit, away_digit)
    candidates = [
        CandidateWinner(
            period=period,
            cell_id=primary_id,
            owner=_owner(cells, primary_id),
            home_digit=home_digit,
            away_digit=away_digit,
        )
    ]
    if not reverse_enabled:
        return candidates

    # Reverse: the home digit is looked up on the away axis and vice versa.
    reverse_id = cell_for_digits(axis, away_digit, home_digit)
    if reverse_id != primary_id:
        candidates.append(
            CandidateWinner(
                period=period,
                cell_id=reverse_id,
                owner=_owner(cells, reverse_id),
                home_digit=away_digit,
                away_digit=home_digit,
                is_reverse=True,
            )
        )
    return candidates
