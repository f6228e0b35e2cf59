"""
Tests for mapping scores onto grid cells

The row is the position of the away digit on the away axis and the column
the position of the home digit on the home axis; cell id = row * 10 + col.
"""

from squares_core.domain.winner_resolver import cell_for_digits, last_digit, resolve
from squares_core.models.schema_models import AxisPairSchema, CellSchema

AXIS = AxisPairSchema(
    home=[5, 2, 9, 1, 8, 0, 3, 6, 4, 7],
    away=[1, 0, 9, 2, 8, 3, 4, 7, 6, 5],
)


def grid(owners=None):
    owners = owners or {}
    return [CellSchema(id=i, owner=owners.get(i)) for i in range(100)]


class TestCellMapping:
    def test_last_digit(self):
        assert last_digit(37) == 7
        assert last_digit(0) == 0
        assert last_digit(120) == 0

    def test_cell_row_and_column(self):
        cell = CellSchema(id=69)
        assert (cell.row, cell.col) == (6, 9)

    def test_score_maps_to_expected_cell(self):
        # home 37 -> digit 7 at column 9, away 24 -> digit 4 at row 6
        assert cell_for_digits(AXIS, 7, 4) == 69

    def test_resolution_is_deterministic(self):
        cells = grid({69: "alice"})
        first = resolve("q1", 37, 24, AXIS, cells, True)
        second = resolve("q1", 37, 24, AXIS, cells, True)
        assert first == second


class TestResolve:
    def test_primary_winner_owner(self):
        candidates = resolve("final", 37, 24, AXIS, grid({69: "alice"}), False)

        assert len(candidates) == 1
        assert candidates[0].cell_id == 69
        assert candidates[0].owner == "alice"
        assert (candidates[0].home_digit, candidates[0].away_digit) == (7, 4)

    def test_unclaimed_cell_has_no_owner(self):
        candidates = resolve("final", 37, 24, AXIS, grid(), False)
        assert candidates[0].owner is None
        assert not candidates[0].is_claimed

    def test_reverse_candidate_swaps_digits(self):
        candidates = resolve("half", 37, 24, AXIS, grid({69: "alice", 78: "bob"}), True)

        assert [c.cell_id for c in candidates] == [69, 78]
        assert candidates[1].is_reverse
        assert candidates[1].owner == "bob"
        assert (candidates[1].home_digit, candidates[1].away_digit) == (4, 7)

    def test_matching_digits_have_no_reverse(self):
        candidates = resolve("q3", 15, 25, AXIS, grid(), True)

        assert len(candidates) == 1
        assert not candidates[0].is_reverse
        assert candidates[0].cell_id == 90
