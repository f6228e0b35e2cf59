"""
Tests for provider score normalization

Covers:
1. Defensive integer coercion of provider values
2. Parsing ESPN-style summaries and rejecting malformed ones
3. Write-once period snapshots and overtime handling in the final
4. Decomposing touchdowns into touchdown + conversion events
"""

from datetime import datetime

import pytest

from squares_core.domain.score_normalizer import (
    build_provider_score,
    decompose_score_change,
    merge_scores,
    parse_provider_summary,
    phase_flags,
    safe_int,
    score_events_for_change,
)
from squares_core.models.dc_models import GameStatus, Period
from squares_core.models.schema_models import ScoreSnapshotSchema, ScoresSchema

from tests.helpers import espn_summary

STAMP = datetime(2026, 10, 18, 18, 30)


class TestSafeInt:
    @pytest.mark.parametrize(
        "value,expected",
        [(7, 7), ("14", 14), ("3.0", 3), (None, 0), ("", 0), ("abc", 0), (True, 0), ([], 0)],
    )
    def test_coerces_or_defaults_to_zero(self, value, expected):
        assert safe_int(value) == expected


class TestParseProviderSummary:
    def test_parses_linescores_into_cumulative_boundaries(self):
        data = espn_summary([7, 3, 0, 14], [0, 10, 7, 3], state="post", period=4)
        scores = parse_provider_summary(data)

        assert scores is not None
        assert (scores.q1.home, scores.q1.away) == (7, 0)
        assert (scores.half.home, scores.half.away) == (10, 10)
        assert (scores.q3.home, scores.q3.away) == (10, 17)
        assert (scores.final.home, scores.final.away) == (24, 20)
        assert scores.game_status == GameStatus.post

    def test_api_total_includes_overtime(self):
        data = espn_summary([7, 7, 7, 3], [3, 7, 7, 7], state="post", period=5, home_score=30, away_score=24)
        scores = parse_provider_summary(data)

        assert (scores.final.home, scores.final.away) == (24, 24)
        assert (scores.api_total.home, scores.api_total.away) == (30, 24)

    def test_missing_and_non_numeric_values_read_as_zero(self):
        data = espn_summary(["7", None], ["x"], state="in", period=2)
        scores = parse_provider_summary(data)

        assert (scores.q1.home, scores.q1.away) == (7, 0)
        assert (scores.half.home, scores.half.away) == (7, 0)
        assert scores.period == 2

    @pytest.mark.parametrize(
        "data",
        [
            None,
            [],
            {},
            {"header": {"competitions": []}},
            {"header": {"competitions": [{"competitors": [{"homeAway": "home"}]}]}},
            {"header": {"competitions": ["not a dict"]}},
        ],
    )
    def test_malformed_body_is_rejected(self, data):
        assert parse_provider_summary(data) is None


class TestMergeScores:
    def test_pre_game_finalizes_nothing(self):
        provider = build_provider_score([], [], period=0, game_status=GameStatus.pre)
        flags = phase_flags(provider)
        merged, newly_final = merge_scores(ScoresSchema(), provider, include_overtime=True)

        assert not any(flags.values())
        assert newly_final == []
        assert merged.q1 is None

    def test_period_snapshots_are_write_once(self):
        first = build_provider_score([7], [3], period=2, game_status=GameStatus.live)
        merged, newly_final = merge_scores(ScoresSchema(), first, include_overtime=True)
        assert newly_final == [Period.q1]

        # Provider later corrects the first quarter; the stored snapshot stays.
        corrected = build_provider_score([10, 0, 0], [3, 7, 0], period=3, game_status=GameStatus.live)
        merged, newly_final = merge_scores(merged, corrected, include_overtime=True)

        assert newly_final == [Period.half]
        assert (merged.q1.home, merged.q1.away) == (7, 3)
        assert (merged.half.home, merged.half.away) == (10, 10)

    def test_final_follows_overtime_setting(self):
        provider = build_provider_score(
            [7, 7, 7, 3], [3, 7, 7, 7], home_total=30, away_total=24,
            period=5, game_status=GameStatus.post,
        )
        with_ot, _ = merge_scores(ScoresSchema(), provider, include_overtime=True)
        without_ot, _ = merge_scores(ScoresSchema(), provider, include_overtime=False)

        assert (with_ot.final.home, with_ot.final.away) == (30, 24)
        assert (without_ot.final.home, without_ot.final.away) == (24, 24)

    def test_game_over_finalizes_every_open_period(self):
        provider = build_provider_score([1, 1, 1, 1], [0, 0, 0, 0], period=4, game_status=GameStatus.post)
        _, newly_final = merge_scores(ScoresSchema(), provider, include_overtime=True)

        assert newly_final == [Period.q1, Period.half, Period.q3, Period.final]


class TestScoreEvents:
    def test_touchdown_with_extra_point_is_two_steps(self):
        steps = decompose_score_change(ScoreSnapshotSchema(home=0, away=0), ScoreSnapshotSchema(home=7, away=0))

        assert [(s.home, s.away, s.description) for s in steps] == [
            (6, 0, "Touchdown"),
            (7, 0, "Extra Point"),
        ]

    def test_two_point_conversion_for_away_team(self):
        steps = decompose_score_change(ScoreSnapshotSchema(home=3, away=0), ScoreSnapshotSchema(home=3, away=8))

        assert [(s.home, s.away, s.description) for s in steps] == [
            (3, 6, "Touchdown"),
            (3, 8, "2Pt Conv"),
        ]

    def test_field_goal_is_single_step(self):
        steps = decompose_score_change(ScoreSnapshotSchema(home=7, away=0), ScoreSnapshotSchema(home=10, away=0))
        assert [(s.home, s.away, s.description) for s in steps] == [(10, 0, "Score Change")]

    def test_no_change_no_steps(self):
        assert decompose_score_change(ScoreSnapshotSchema(home=7), ScoreSnapshotSchema(home=7)) == []

    def test_known_event_ids_are_not_appended_again(self):
        events = score_events_for_change(
            [], ScoreSnapshotSchema(), ScoreSnapshotSchema(home=7), 1, GameStatus.live, STAMP
        )
        assert [e.event_id for e in events] == ["6-0", "7-0"]
        assert events[0].description == "Touchdown (Q1)"

        replay = score_events_for_change(
            events, ScoreSnapshotSchema(), ScoreSnapshotSchema(home=7), 1, GameStatus.live, STAMP
        )
        assert replay == []

    def test_overtime_events_are_flagged(self):
        events = score_events_for_change(
            [], ScoreSnapshotSchema(home=24, away=24), ScoreSnapshotSchema(home=27, away=24),
            5, GameStatus.live, STAMP,
        )
        assert events[0].is_overtime
        assert events[0].description == "Score Change (OT)"

    def test_score_restored_after_correction_is_not_logged_again(self):
        logged = score_events_for_change(
            [], ScoreSnapshotSchema(), ScoreSnapshotSchema(home=3), 1, GameStatus.live, STAMP
        )
        corrected = score_events_for_change(
            logged, ScoreSnapshotSchema(home=3), ScoreSnapshotSchema(), 1, GameStatus.live, STAMP
        )
        restored = score_events_for_change(
            logged + corrected, ScoreSnapshotSchema(), ScoreSnapshotSchema(home=3), 1, GameStatus.live, STAMP
        )

        assert [e.event_id for e in logged] == ["3-0"]
        assert [e.event_id for e in corrected] == ["0-0"]
        assert restored == []
