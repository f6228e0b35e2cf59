import json
import logging
from typing import AsyncGenerator
from uuid import UUID

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import async_sessionmaker

from squares_core.converter import DataConverter, pool_channel
from squares_core.crud import ReadData

HEART_BEAT = 15

data_converter = DataConverter()


class RedisSubscriber:
    """Redis subscriber class to stream a pool's audit events as SSE."""

    def __init__(self, Session: async_sessionmaker, pool_id: UUID):
        """Initialize RedisSubscriber with session factory and pool_id."""
        self.pool_id: UUID = pool_id
        self.Session: async_sessionmaker = Session

    async def event_generator(self, redis: Redis) -> AsyncGenerator[str, None]:
        """Replay the stored audit trail, then forward live events.

        Args:
            redis (Redis): Redis connection object.
        """
        channel = pool_channel(self.pool_id)
        pubsub = redis.pubsub()
        # Subscribe before the replay so nothing committed in between is lost.
        await pubsub.subscribe(channel)
        seen = set()
        try:
            async with self.Session() as session:
                events = await ReadData.read_audit_events(self.pool_id, session)
            for event in data_converter.convert_auditevents_to_auditeventschemas(events):
                seen.add(str(event.event_id))
                payload = event.model_dump_json()
                yield f"event: audit\ndata: {payload}\n\n"

            while True:
                msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=HEART_BEAT)
                if msg is None:
                    yield ": heartbeat\n\n"
                    continue
                if msg["type"] != "message":
                    continue
                payload = msg["data"]
                event_id = json.loads(payload).get("event_id")
                if event_id in seen:
                    continue
                logging.debug(f"Payload: {payload}")
                yield f"event: audit\ndata: {payload}\n\n"
        finally:
            logging.info("Unsubscribing from channel")
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
