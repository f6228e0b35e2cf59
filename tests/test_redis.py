"""
Tests for audit fan-out over Redis

Redis is replaced by a small in-memory pub/sub so the publisher and the SSE
generator run unchanged.
"""

import json
from typing import List, Optional

from uuid6 import uuid7

from squares_core.converter import pool_channel
from squares_core.models.dc_models import ActorModel
from squares_core.models.schema_models import AuditEventSchema
from squares_core.redis_publisher import RedisPublisher
from squares_core.redis_subscriber import RedisSubscriber
from squares_core.services import pool_db

from tests.helpers import NOW


class FakePubSub:
    def __init__(self, messages: List[dict]):
        self.messages = list(messages)
        self.subscribed: List[str] = []
        self.closed = False

    async def subscribe(self, channel: str) -> None:
        self.subscribed.append(channel)

    async def get_message(self, ignore_subscribe_messages: bool = False, timeout: float = 0) -> Optional[dict]:
        if self.messages:
            return self.messages.pop(0)
        return None

    async def unsubscribe(self, channel: str) -> None:
        self.subscribed.remove(channel)

    async def aclose(self) -> None:
        self.closed = True


class FakeRedis:
    def __init__(self, messages: Optional[List[dict]] = None, fail: bool = False):
        self.published = []
        self.fail = fail
        self.pubsub_instance = FakePubSub(messages or [])

    async def publish(self, channel: str, message: str) -> int:
        if self.fail:
            raise ConnectionError("redis is down")
        self.published.append((channel, message))
        return 1

    def pubsub(self) -> FakePubSub:
        return self.pubsub_instance


def audit_event(pool_id, type="RANDOM_DRAW") -> AuditEventSchema:
    return AuditEventSchema(event_id=uuid7(), pool_id=pool_id, type=type, message=type, created_at=NOW)


class TestRedisPublisher:
    async def test_events_go_to_pool_channel(self):
        redis = FakeRedis()
        pool_id = uuid7()
        global_event = AuditEventSchema(
            event_id=uuid7(), type="STATS_RECALCULATED", message="stats", created_at=NOW
        )

        await RedisPublisher(redis).publish_audit_events([audit_event(pool_id), global_event])

        assert len(redis.published) == 1
        channel, message = redis.published[0]
        assert channel == pool_channel(pool_id)
        assert json.loads(message)["type"] == "RANDOM_DRAW"

    async def test_publish_failure_is_logged_not_raised(self, caplog):
        await RedisPublisher(FakeRedis(fail=True)).publish_audit_events([audit_event(uuid7())])
        assert "Failed to publish" in caplog.text


class TestRedisSubscriber:
    async def test_replays_history_then_forwards_live_events(self, Session, coordinator, pool_factory):
        pool_id = await pool_factory(owners={3: "alice"})
        await coordinator.confirm_payment(pool_id, [3], ActorModel(user_id="owner"))
        stored = await pool_db.read_audit_events(Session, pool_id)
        live = audit_event(pool_id)
        redis = FakeRedis(
            [
                {"type": "message", "data": stored[0].model_dump_json()},
                {"type": "message", "data": live.model_dump_json()},
            ]
        )

        generator = RedisSubscriber(Session, pool_id).event_generator(redis)
        frames = [await generator.__anext__() for _ in range(3)]
        await generator.aclose()

        assert str(stored[0].event_id) in frames[0]
        assert str(live.event_id) in frames[1]
        assert frames[2] == ": heartbeat\n\n"
        assert redis.pubsub_instance.subscribed == []
        assert redis.pubsub_instance.closed
