"""
Redis broker helpers.

Requests travel as stream entries, replies as short lived lists that the
requester pops from. Stream length is capped to keep memory bounded.
"""
import json
import logging
from typing import Any, Dict, Optional

import redis.asyncio as redis
from redis.exceptions import ResponseError

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONNECTIONS = 20
DEFAULT_CONNECT_TIMEOUT_SECONDS = 2.0
DEFAULT_HEALTH_CHECK_SECONDS = 30
DEFAULT_SOCKET_TIMEOUT_SECONDS = 30.0
DEFAULT_STREAM_MAXLEN = 10000
DEFAULT_REPLY_TTL_SECONDS = 30


def create_redis_client(url: str, max_connections: int = DEFAULT_MAX_CONNECTIONS,
                        socket_timeout: float = DEFAULT_SOCKET_TIMEOUT_SECONDS) -> redis.Redis:
    """
    Create an async Redis client backed by a connection pool.

    Responses are decoded to str so stream fields and list values can be
    used directly. ``socket_timeout`` bounds every command and must exceed
    the longest blocking read (reply wait, stream block).
    """
    pool = redis.ConnectionPool.from_url(
        url,
        max_connections=max_connections,
        socket_connect_timeout=DEFAULT_CONNECT_TIMEOUT_SECONDS,
        socket_timeout=socket_timeout,
        health_check_interval=DEFAULT_HEALTH_CHECK_SECONDS,
        retry_on_timeout=True,
        decode_responses=True,
    )
    return redis.Redis(connection_pool=pool)


class Broker:
    """Thin layer over a Redis client for publishing, replying and group setup."""

    def __init__(self, client: redis.Redis, reply_ttl: int = DEFAULT_REPLY_TTL_SECONDS,
                 maxlen: int = DEFAULT_STREAM_MAXLEN, logger: Optional[logging.Logger] = None):
        self.client = client
        self.reply_ttl = reply_ttl
        self.maxlen = maxlen
        self.logger = logger or logging.getLogger(__name__)

    async def publish(self, subject: str, fields: Dict[str, str]) -> str:
        """
        Append an entry to a subject's stream.

        Returns:
            str: The stream entry id
        """
        return await self.client.xadd(subject, fields, maxlen=self.maxlen, approximate=True)

    async def publish_json(self, subject: str, payload: Any) -> str:
        return await self.publish(subject, {'data': json.dumps(payload)})

    async def reply(self, reply_to: str, envelope: Dict[str, Any]) -> None:
        """Push a reply envelope onto the requester's reply list."""
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.rpush(reply_to, json.dumps(envelope))
            pipe.expire(reply_to, self.reply_ttl)
            await pipe.execute()

    async def ensure_group(self, subject: str, group: str) -> None:
        """
        Create a consumer group for a subject, creating the stream if needed.
        An existing group is left as is.
        """
        try:
            await self.client.xgroup_create(subject, group, id='0', mkstream=True)
            self.logger.debug(f"Created group {group} on {subject}")
        except ResponseError as e:
            if 'BUSYGROUP' not in str(e):
                raise

    async def remove_consumer(self, subject: str, group: str, consumer: str) -> None:
        await self.client.xgroup_delconsumer(subject, group, consumer)

    async def has_pending(self, subject: str, group: str, consumer: str) -> bool:
        """Whether the consumer holds delivered but unacknowledged entries."""
        pending = await self.client.xpending_range(subject, group, min='-', max='+', count=1,
                                                   consumername=consumer)
        return bool(pending)
