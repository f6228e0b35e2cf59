"""
Tests for the scheduled score sync and auto-lock passes

The provider is faked with httpx.MockTransport so the real client code
(URL building, status handling, JSON parsing) runs on every test.
"""

from datetime import timedelta

import httpx
import pytest

from squares_core.models.dc_models import AUTO_LOCK_ACTOR, GameStatus, OperationStatus
from squares_core.models.schema_models import CellSchema, PoolSchema, ScoresSchema
from squares_core.services import pool_db
from squares_core.services.score_provider import ScoreProvider
from squares_core.services.score_sync import ScoreSyncService, should_fetch

from tests.helpers import IDENTITY_AXIS, NOW, all_cells_owned, espn_summary

BASE_URL = "https://scores.test/apis/site/v2/sports/football"


def mock_provider(responses: dict, calls: list) -> ScoreProvider:
    """Provider whose games answer from a dict of game id -> (status, body)."""

    def handler(request: httpx.Request) -> httpx.Response:
        game_id = request.url.params["event"]
        calls.append((request.url.path, game_id))
        status_code, body = responses[game_id]
        if isinstance(body, Exception):
            raise body
        if isinstance(body, str):
            return httpx.Response(status_code, text=body)
        return httpx.Response(status_code, json=body)

    return ScoreProvider(BASE_URL, transport=httpx.MockTransport(handler))


def sync_service(Session, coordinator, provider) -> ScoreSyncService:
    return ScoreSyncService(
        Session,
        coordinator,
        provider,
        fetch_horizon=timedelta(hours=2),
        auto_lock_buffer=timedelta(seconds=30),
    )


class TestShouldFetch:
    def pool(self, **kwargs) -> PoolSchema:
        return PoolSchema(
            pool_id="0192f4a0-0000-7000-8000-000000000003",
            name="Pool",
            owner_id="owner",
            cells=[CellSchema(id=i) for i in range(100)],
            **kwargs,
        )

    def test_far_future_unlocked_pool_is_skipped(self):
        pool = self.pool(start_time=NOW + timedelta(hours=5))
        assert not should_fetch(pool, NOW, timedelta(hours=2))

    def test_pool_inside_horizon_is_fetched(self):
        pool = self.pool(start_time=NOW + timedelta(hours=1))
        assert should_fetch(pool, NOW, timedelta(hours=2))

    def test_locked_or_live_pools_are_always_fetched(self):
        later = NOW + timedelta(hours=5)
        assert should_fetch(self.pool(start_time=later, is_locked=True), NOW, timedelta(hours=2))
        live = ScoresSchema(game_status=GameStatus.live, start_time=later)
        assert should_fetch(self.pool(start_time=later, scores=live), NOW, timedelta(hours=2))


class TestScoreProvider:
    async def test_league_selects_endpoint(self):
        calls = []
        provider = mock_provider({"1": (200, espn_summary([7], [0]))}, calls)

        await provider.fetch_scores("1", "college")

        assert calls == [("/apis/site/v2/sports/football/college-football/summary", "1")]

    @pytest.mark.parametrize(
        "response",
        [
            (500, {"error": "down"}),
            (200, "<html>not json</html>"),
            (200, {"header": {}}),
            (200, httpx.ConnectTimeout("timed out")),
        ],
    )
    async def test_failures_read_as_none(self, response):
        provider = mock_provider({"1": response}, [])
        assert await provider.fetch_scores("1", "nfl") is None


class TestSyncAll:
    async def test_far_future_pools_are_not_fetched(self, Session, coordinator, pool_factory):
        await pool_factory(game_id="near", start_time=NOW + timedelta(hours=1))
        await pool_factory(game_id="far", start_time=NOW + timedelta(hours=5))
        calls = []
        provider = mock_provider({"near": (200, espn_summary([], [], state="pre", period=0))}, calls)

        summary = await sync_service(Session, coordinator, provider).sync_all(now=NOW)

        assert [game_id for _, game_id in calls] == ["near"]
        assert summary.active == 2
        assert summary.skipped == 1
        assert summary.processed == 1

    async def test_one_failing_pool_does_not_stop_the_pass(self, Session, coordinator, pool_factory):
        good = await pool_factory(
            game_id="good", owners=all_cells_owned(), axes={"q1": IDENTITY_AXIS}, is_locked=True
        )
        await pool_factory(game_id="bad", axes={"q1": IDENTITY_AXIS}, is_locked=True)
        responses = {
            "good": (200, espn_summary([7], [3], state="in", period=2)),
            "bad": (503, {"error": "unavailable"}),
        }
        provider = mock_provider(responses, [])

        summary = await sync_service(Session, coordinator, provider).sync_all(now=NOW)

        assert summary.errors == 1
        assert summary.processed == 1
        winners = await pool_db.read_winners(Session, good)
        assert [(w.winner_key, w.cell_id) for w in winners] == [("q1", 37)]

    async def test_unexpected_error_is_isolated(self, Session, coordinator, pool_factory):
        await pool_factory(game_id="boom", axes={"q1": IDENTITY_AXIS}, is_locked=True)
        await pool_factory(game_id="fine", axes={"q1": IDENTITY_AXIS}, is_locked=True)

        class FlakyProvider:
            async def fetch_scores(self, game_id, league):
                if game_id == "boom":
                    raise RuntimeError("provider client bug")
                return None

        summary = await sync_service(Session, coordinator, FlakyProvider()).sync_all(now=NOW)

        assert summary.errors == 2
        assert summary.active == 2

    async def test_unchanged_scores_are_skipped(self, Session, coordinator, pool_factory):
        await pool_factory(game_id="g1", axes={"q1": IDENTITY_AXIS}, is_locked=True)
        provider = mock_provider({"g1": (200, espn_summary([7], [3], state="in", period=2))}, [])
        service = sync_service(Session, coordinator, provider)

        first = await service.sync_all(now=NOW)
        second = await service.sync_all(now=NOW)

        assert first.processed == 1
        assert second.skipped == 1
        assert second.processed == 0

    async def test_finished_games_leave_the_active_set(self, Session, coordinator, pool_factory):
        await pool_factory(game_id="g1", owners=all_cells_owned(), axes={"q1": IDENTITY_AXIS}, is_locked=True)
        body = espn_summary([7, 3, 0, 14], [0, 10, 7, 3], state="post", period=4)
        service = sync_service(Session, coordinator, mock_provider({"g1": (200, body)}, []))

        await service.sync_all(now=NOW)
        summary = await service.sync_all(now=NOW)

        assert summary.active == 0


class TestAutoLock:
    async def test_due_pools_are_locked(self, Session, coordinator, pool_factory):
        due = await pool_factory(owners={1: "alice"}, lock_at=NOW + timedelta(seconds=10))
        later = await pool_factory(owners={2: "bob"}, lock_at=NOW + timedelta(minutes=10))
        broken = await pool_factory(
            lock_at=NOW - timedelta(minutes=1),
            payouts={"q1": 10, "half": 10, "q3": 10, "final": 10},
        )
        service = sync_service(Session, coordinator, mock_provider({}, []))

        summary = await service.auto_lock_due_pools(now=NOW)

        assert summary.locked == 1
        assert summary.errors == 1
        assert (await pool_db.read_pool(Session, due)).is_locked
        assert not (await pool_db.read_pool(Session, later)).is_locked
        assert not (await pool_db.read_pool(Session, broken)).is_locked

    async def test_auto_lock_is_idempotent(self, Session, coordinator, pool_factory):
        await pool_factory(owners={1: "alice"}, lock_at=NOW)
        service = sync_service(Session, coordinator, mock_provider({}, []))

        await service.auto_lock_due_pools(now=NOW)
        summary = await service.auto_lock_due_pools(now=NOW)

        assert summary.active == 0
        stats = await pool_db.read_global_stats(Session)
        assert stats.locked_pool_count == 1
        assert stats.total_locked_prize_pool == pytest.approx(10)

    async def test_locked_pool_is_a_no_op_afterwards(self, Session, coordinator, pool_factory):
        pool_id = await pool_factory(lock_at=NOW)
        service = sync_service(Session, coordinator, mock_provider({}, []))
        await service.auto_lock_due_pools(now=NOW)

        again = await coordinator.lock_pool(pool_id, AUTO_LOCK_ACTOR)
        assert again.status == OperationStatus.no_op

