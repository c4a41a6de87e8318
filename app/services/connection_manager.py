"""
WebSocket Connection Manager

Maps authenticated user ids to their live delivery channels.
"""

import asyncio
from typing import Any, Dict, Iterable, List, Optional, Protocol, Set

from app.core.logging import get_logger

logger = get_logger("app.ws")


class DeliveryChannel(Protocol):
    """Anything that can push a JSON event to one client (a FastAPI WebSocket)."""

    async def send_json(self, data: Any) -> None: ...


class ConnectionManager:
    def __init__(self):
        # user_id -> live channels (a user may have several tabs/devices)
        self.user_channels: Dict[str, Set[DeliveryChannel]] = {}
        # channel -> user_id, for unregister by channel
        self.channel_users: Dict[DeliveryChannel, str] = {}
        self._lock = asyncio.Lock()

    async def register(self, user_id: str, channel: DeliveryChannel) -> None:
        async with self._lock:
            self.user_channels.setdefault(user_id, set()).add(channel)
            self.channel_users[channel] = user_id
            count = len(self.user_channels[user_id])
        logger.info("ws.registered", user_id=user_id, user_connections=count)

    async def unregister(self, channel: DeliveryChannel) -> Optional[str]:
        """Drop a channel. Returns the owner id, or None if it was already gone."""
        async with self._lock:
            user_id = self.channel_users.pop(channel, None)
            if user_id is None:
                return None
            channels = self.user_channels.get(user_id)
            if channels is not None:
                channels.discard(channel)
                if not channels:
                    del self.user_channels[user_id]
        logger.info("ws.unregistered", user_id=user_id)
        return user_id

    async def channels_for(self, user_id: str) -> List[DeliveryChannel]:
        async with self._lock:
            return list(self.user_channels.get(user_id, ()))

    async def route_to(self, user_id: str, payload: dict) -> int:
        """
        Push payload to every live channel of user_id.

        Returns the number of channels that accepted the payload; 0 means the
        user is offline, which is not an error. Channels that fail are dropped.
        """
        targets = await self.channels_for(user_id)
        if not targets:
            logger.debug("ws.route.offline", user_id=user_id, event_type=payload.get("type"))
            return 0

        results = await asyncio.gather(
            *(channel.send_json(payload) for channel in targets),
            return_exceptions=True,
        )

        delivered = 0
        for channel, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "ws.route.failed",
                    user_id=user_id,
                    event_type=payload.get("type"),
                    error=repr(result),
                )
                await self.unregister(channel)
            else:
                delivered += 1

        logger.debug(
            "ws.route",
            user_id=user_id,
            event_type=payload.get("type"),
            targets=len(targets),
            delivered=delivered,
        )
        return delivered

    async def route_to_many(self, user_ids: Iterable[str], payload: dict) -> Dict[str, int]:
        distinct = list(dict.fromkeys(user_ids))
        counts = await asyncio.gather(*(self.route_to(uid, payload) for uid in distinct))
        return dict(zip(distinct, counts))

    def is_online(self, user_id: str) -> bool:
        return bool(self.user_channels.get(user_id))

    def get_stats(self):
        """
        Return a snapshot of all active connections
        """
        return {
            "online_users_count": len(self.user_channels),
            "active_connections_count": len(self.channel_users),
            "connections_per_user": {
                user_id: len(channels) for user_id, channels in self.user_channels.items()
            },
        }
