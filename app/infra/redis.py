"""
Redis Connection Management

Carries "session finalized" events between worker processes so that a
status long-poll served by one worker wakes up when another worker emits
the shared solution. Redis is optional: without it the service keeps
working and waits stay in-process.
"""

import asyncio
import logging
from typing import Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import RedisError

from app.config import settings
from app.core.mediation.events import FinalizationNotifier, LocalFinalizationNotifier
from app.core.mediation.types import MessageRecord

logger = logging.getLogger(__name__)

# Namespace for every key and channel of this service
APP_PREFIX = "mediator:v1:"


class RedisClient:
    """Process-wide Redis connection, None while Redis is unreachable."""

    _client: Optional[Redis] = None

    @classmethod
    async def get_client(cls) -> Optional[Redis]:
        """
        Get or create the Redis client.

        Each call after a failed connect tries again, so Redis coming back
        is picked up without a restart.
        """
        if cls._client is not None:
            return cls._client

        client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5.0,
            retry_on_timeout=True,
            retry=Retry(ExponentialBackoff(), retries=3),
        )
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            logger.error(f"Failed to connect to Redis: {e}")
            await client.aclose()
            return None

        logger.info("Redis connection established")
        cls._client = client
        return client

    @classmethod
    async def close(cls) -> None:
        """Close the Redis connection, if any."""
        if cls._client is None:
            return
        try:
            await cls._client.aclose()
        except RedisError as e:
            logger.error(f"Error closing Redis connection: {e}")
        finally:
            cls._client = None


async def get_redis() -> Optional[Redis]:
    """Get the Redis client, None if Redis is unavailable."""
    return await RedisClient.get_client()


class RedisFinalizationNotifier(FinalizationNotifier):
    """
    Finalization events over Redis pub/sub.

    Keys (with namespace):
    - mediator:v1:finalized:{session_id} -> pub/sub channel
    - mediator:v1:finalized:{session_id} -> marker string, for late subscribers

    Always also notifies in-process waiters. If Redis is unavailable,
    waiting degrades to the in-process notifier.
    """

    FINALIZED_PREFIX = f"{APP_PREFIX}finalized:"
    MARKER_TTL_SECONDS = 24 * 3600

    def __init__(
        self,
        redis_client: Optional[Redis] = None,
        local: Optional[LocalFinalizationNotifier] = None,
    ):
        self._redis = redis_client
        self.local = local or LocalFinalizationNotifier()

    def _key(self, session_id: str) -> str:
        """Generate channel/marker key with namespace."""
        return f"{self.FINALIZED_PREFIX}{session_id}"

    async def _get_client(self) -> Optional[Redis]:
        if self._redis is not None:
            return self._redis
        return await get_redis()

    async def publish(self, session_id: str, entry: MessageRecord) -> None:
        await self.local.publish(session_id, entry)

        client = await self._get_client()
        if client is None:
            logger.warning("Redis unavailable - finalization event not broadcast")
            return

        key = self._key(session_id)
        try:
            await client.set(key, str(entry.seq), ex=self.MARKER_TTL_SECONDS)
            receivers = await client.publish(key, str(entry.seq))
            logger.debug(f"Finalization of {session_id} published to {receivers} subscribers")
        except RedisError as e:
            logger.error(f"Failed to publish finalization of {session_id}: {e}")

    async def wait(self, session_id: str, timeout: float) -> bool:
        if self.local.is_finalized(session_id):
            return True

        client = await self._get_client()
        if client is None:
            return await self.local.wait(session_id, timeout)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        key = self._key(session_id)
        pubsub = client.pubsub()
        try:
            await pubsub.subscribe(key)

            # Published before we subscribed
            if await client.exists(key):
                return True

            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    return False
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=remaining,
                )
                if message is not None and message.get("type") == "message":
                    return True

        except RedisError as e:
            logger.error(f"Finalization wait failed for {session_id}: {e} - falling back")
        finally:
            try:
                await pubsub.unsubscribe(key)
                await pubsub.aclose()
            except RedisError as e:
                logger.debug(f"Error closing pubsub for {session_id}: {e}")

        # The fallback only gets what is left of the caller's timeout
        return await self.local.wait(session_id, max(deadline - loop.time(), 0.0))


async def check_redis_health() -> bool:
    """
    Check Redis connectivity for health checks.

    Returns:
        True if Redis is accessible and responding, False otherwise
    """
    try:
        client = await get_redis()
        if client is None:
            return False

        await client.ping()
        return True

    except Exception as e:
        logger.error(f"Redis health check failed: {e}")
        return False
