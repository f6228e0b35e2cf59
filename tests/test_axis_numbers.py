"""
Tests for axis number generation

Axis digits are shuffled once per slot and never regenerated afterwards;
four-set pools get a new pair after each of Q1, Halftime and Q3 is final.
"""

import random

from squares_core.domain.axis_numbers import (
    active_axis,
    axis_for_period,
    ensure_quarter_axes,
    ensure_slot,
    generate_axis_pair,
    shuffled_digits,
)
from squares_core.models.dc_models import Period
from squares_core.models.schema_models import AxisPairSchema, ScoreSnapshotSchema, ScoresSchema

from tests.helpers import IDENTITY_AXIS


def axis(offset: int) -> AxisPairSchema:
    digits = [(d + offset) % 10 for d in range(10)]
    return AxisPairSchema(home=digits, away=digits)


class TestShuffle:
    def test_every_shuffle_is_a_permutation(self):
        rng = random.Random(3)
        for _ in range(50):
            assert sorted(shuffled_digits(rng)) == list(range(10))

    def test_seeded_rng_is_deterministic(self):
        assert generate_axis_pair(random.Random(11)) == generate_axis_pair(random.Random(11))


class TestEnsureAxes:
    def test_existing_slot_is_kept(self):
        existing = {"q1": AxisPairSchema(**IDENTITY_AXIS)}
        axes, created = ensure_slot(existing, "q1", random.Random(1))

        assert not created
        assert axes["q1"] == existing["q1"]

    def test_single_set_pool_never_gets_quarter_axes(self):
        scores = ScoresSchema(q1=ScoreSnapshotSchema(home=7))
        axes, generated = ensure_quarter_axes({"q1": axis(0)}, scores, 1, True, random.Random(1))

        assert generated == []
        assert list(axes) == ["q1"]

    def test_unlocked_pool_never_gets_quarter_axes(self):
        scores = ScoresSchema(q1=ScoreSnapshotSchema(home=7))
        _, generated = ensure_quarter_axes({}, scores, 4, False, random.Random(1))
        assert generated == []

    def test_four_set_pool_generates_due_slots_once(self):
        scores = ScoresSchema(
            q1=ScoreSnapshotSchema(home=7), half=ScoreSnapshotSchema(home=14, away=3)
        )
        rng = random.Random(5)
        axes, generated = ensure_quarter_axes({"q1": axis(0)}, scores, 4, True, rng)
        assert generated == ["q2", "q3"]

        again, generated = ensure_quarter_axes(axes, scores, 4, True, rng)
        assert generated == []
        assert again == axes


class TestAxisSelection:
    def test_active_axis_follows_live_period(self):
        axes = {"q1": axis(0), "q2": axis(1), "q3": axis(2)}

        assert active_axis(axes, 1) == axes["q1"]
        assert active_axis(axes, 2) == axes["q2"]
        assert active_axis(axes, 3) == axes["q3"]
        # Q4 axis not generated yet: stay on the latest one.
        assert active_axis(axes, 4) == axes["q3"]

    def test_active_axis_before_kickoff_is_first_set(self):
        assert active_axis({"q1": axis(0)}, 0) == axis(0)
        assert active_axis({}, 2) is None

    def test_axis_for_period_maps_to_slot(self):
        axes = {"q1": axis(0), "q2": axis(1), "q3": axis(2), "q4": axis(3)}

        assert axis_for_period(axes, Period.q1) == axes["q1"]
        assert axis_for_period(axes, Period.half) == axes["q2"]
        assert axis_for_period(axes, Period.q3) == axes["q3"]
        assert axis_for_period(axes, Period.final) == axes["q4"]

    def test_single_set_pool_uses_first_axis_everywhere(self):
        axes = {"q1": axis(4)}
        for period in Period:
            assert axis_for_period(axes, period) == axes["q1"]
