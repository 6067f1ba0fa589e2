"""Redis relay carrying room broadcasts between Uvicorn workers.

Each worker owns its connections and room memberships. A broadcast is
delivered to local members first, then published once on ``ws:broadcast``
as ``{"origin", "room_id", "message"}``. Every worker reads the channel and
hands frames from other origins to its local delivery callback. Redis is
optional: without it the process runs as a single worker.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional
from uuid import uuid4

import redis.asyncio as aioredis
from redis.asyncio.client import PubSub

from ..config import settings

logger = logging.getLogger(__name__)

BROADCAST_CHANNEL = "ws:broadcast"

# (room_id, message) -> None
RelayCallback = Callable[[str, dict[str, Any]], Awaitable[None]]


class RedisRelay:
    """Publishes and receives relayed room frames on one pub/sub channel."""

    def __init__(self, channel: str = BROADCAST_CHANNEL) -> None:
        self.channel = channel
        self.origin = uuid4().hex
        self._redis: Optional[aioredis.Redis] = None
        self._pubsub: Optional[PubSub] = None
        self._reader: Optional[asyncio.Task] = None
        self._callback: Optional[RelayCallback] = None

    @property
    def is_connected(self) -> bool:
        return self._redis is not None

    @property
    def is_listening(self) -> bool:
        return self._reader is not None

    async def connect(self) -> None:
        """Open the connection pool and check the server answers."""
        client = aioredis.from_url(
            settings.redis_url,
            max_connections=settings.redis_max_connections,
            socket_timeout=settings.redis_socket_timeout,
            decode_responses=True,
        )
        await client.ping()
        self._redis = client
        logger.info(f"Redis relay connected (origin={self.origin})")

    async def start(self, callback: RelayCallback) -> None:
        """
        Subscribe to the broadcast channel and start reading it.

        Calling it again once the reader runs is a no-op.

        Raises:
            RuntimeError: If ``connect`` has not succeeded
        """
        if self._reader is not None:
            return
        if self._redis is None:
            raise RuntimeError("Redis relay is not connected")

        self._callback = callback
        self._pubsub = self._redis.pubsub()
        await self._pubsub.subscribe(self.channel)
        self._reader = asyncio.create_task(self._read_loop())
        logger.info(f"Redis relay listening on {self.channel}")

    async def relay(self, room_id: str, message: dict[str, Any]) -> None:
        """Publish a frame already delivered locally for the other workers."""
        if self._redis is None:
            return
        envelope = {"origin": self.origin, "room_id": room_id, "message": message}
        await self._redis.publish(self.channel, json.dumps(envelope))

    async def dispatch(self, raw: str) -> bool:
        """
        Decode one channel payload and hand it to the delivery callback.

        Frames published by this worker and malformed frames are dropped.

        Returns:
            bool: True if the callback was invoked
        """
        try:
            envelope = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Dropping undecodable relay frame")
            return False
        if not isinstance(envelope, dict) or envelope.get("origin") == self.origin:
            return False

        room_id = envelope.get("room_id")
        message = envelope.get("message")
        if not isinstance(room_id, str) or not isinstance(message, dict):
            logger.warning(f"Dropping relay frame without room or message from {envelope.get('origin')}")
            return False
        if self._callback is None:
            return False

        await self._callback(room_id, message)
        return True

    async def _read_loop(self) -> None:
        while self._pubsub is not None:
            try:
                frame = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if frame and frame["type"] == "message":
                    await self.dispatch(frame["data"])
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Redis relay read failed: {e}")
                await asyncio.sleep(1)

    async def close(self) -> None:
        """Stop reading and release the connection pool."""
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None
        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        self._callback = None
        logger.info("Redis relay closed")

    async def status(self) -> dict[str, Any]:
        """Relay state for /health."""
        if self._redis is None:
            return {"status": "disconnected"}
        try:
            await self._redis.ping()
        except Exception as e:
            return {"status": "error", "error": str(e)}
        return {"status": "healthy", "channel": self.channel, "listening": self.is_listening}


redis_relay = RedisRelay()
