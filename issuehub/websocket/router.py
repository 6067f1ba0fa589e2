"""Broadcast router: delivers events to the current members of a room.

Delivery is best-effort and at most once per member per publish call. A
connection that joins after a publish does not receive it; there is no
replay buffer. A failing socket never blocks delivery to the other members.
"""

import asyncio
import logging
from typing import Any, Optional

from ..errors import DeliveryError
from ..services.redis_service import RedisRelay, redis_relay
from .events import EventName, ServerEvent
from .registry import RoomMembershipRegistry, registry

logger = logging.getLogger(__name__)


class BroadcastRouter:
    """
    Fans messages out to room members held by this worker, and relays them
    through Redis pub/sub to the other workers when Redis is connected.
    """

    def __init__(
        self,
        registry: RoomMembershipRegistry,
        relay: Optional[RedisRelay] = None,
    ) -> None:
        self._registry = registry
        self._relay = relay

    @property
    def registry(self) -> RoomMembershipRegistry:
        return self._registry

    async def initialize_relay(self) -> None:
        """Start receiving broadcasts relayed by the other workers."""
        if self._relay is None or not self._relay.is_connected:
            return
        await self._relay.start(self._deliver)

    async def send(self, connection_id: str, message: dict[str, Any]) -> bool:
        """
        Send a message to one connection.

        Returns:
            bool: True if sent successfully, False otherwise
        """
        connection = self._registry.get(connection_id)
        if connection is None:
            return False
        try:
            await connection.websocket.send_json(message)
            return True
        except Exception as e:
            error = DeliveryError(connection_id, e)
            logger.warning(str(error))
            return False

    async def publish(self, room_id: str, event_name: str, payload: dict[str, Any]) -> int:
        """
        Deliver ``payload`` tagged with ``event_name`` to every current member.

        Args:
            room_id: Target room
            event_name: Event name placed in the envelope's ``type``
            payload: JSON-serializable event data

        Returns:
            int: Number of successful local sends
        """
        name = event_name.value if isinstance(event_name, EventName) else event_name
        message = {"type": name, "data": payload}

        delivered = await self._deliver(room_id, message)

        if self._relay is not None and self._relay.is_connected:
            try:
                await self._relay.relay(room_id, message)
            except Exception as e:
                logger.warning(f"Redis relay failed for room {room_id}: {e}")

        return delivered

    async def publish_event(self, room_id: str, event: ServerEvent) -> int:
        """Publish a typed event."""
        message = event.to_message()
        return await self.publish(room_id, message["type"], message["data"])

    async def _deliver(self, room_id: str, message: dict[str, Any]) -> int:
        members = self._registry.members_of(room_id)
        if not members:
            logger.debug(f"Broadcast to room {room_id}: no members")
            return 0

        results = await asyncio.gather(
            *(self.send(connection_id, message) for connection_id in members),
            return_exceptions=True,
        )
        success_count = sum(1 for r in results if r is True)
        logger.debug(
            f"Broadcast {message.get('type')} to room {room_id}: "
            f"{success_count}/{len(members)} successful"
        )
        return success_count


# Global singleton instance
broadcast_router = BroadcastRouter(registry, redis_relay)
