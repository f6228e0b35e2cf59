import logging
from typing import List

from redis.asyncio import Redis

from squares_core.converter import DataConverter, pool_channel
from squares_core.models.schema_models import AuditEventSchema

data_converter = DataConverter()


class NullPublisher:
    """Publisher used when no Redis is configured; events are only logged."""

    async def publish_audit_events(self, events: List[AuditEventSchema]) -> None:
        for event in events:
            logging.debug(f"[Audit] {event.type} {event.pool_id}: {event.message}")


class RedisPublisher:
    """Fan newly committed audit events out to per-pool Redis channels."""

    def __init__(self, redis: Redis):
        self.redis: Redis = redis

    async def publish_audit_events(self, events: List[AuditEventSchema]) -> None:
        """Publish audit events after their transaction committed.

        A publish failure never undoes the committed state; subscribers can
        always catch up from the audit table.

        Args:
            events (List[AuditEventSchema]): Events written by one transaction
        """
        for event in events:
            if event.pool_id is None:
                continue
            try:
                await self.redis.publish(
                    pool_channel(event.pool_id),
                    data_converter.convert_auditeventschema_to_message(event),
                )
            except Exception as e:
                logging.error(f"Failed to publish audit event {event.event_id}: {e}")
