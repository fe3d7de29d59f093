"""Tenant-scoped fan-out over a shared ``broadcaster.Broadcast`` instance.

One Broadcast per process. ``memory://`` works for a single worker; a
``redis://`` URL fans out across workers.
"""
import json
import logging
import time
from typing import Any, Optional, Protocol

from broadcaster import Broadcast

from party_playlist.config import settings

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "party-playlist"

PLAYBACK_UPDATE = "playback-update"
STATS_UPDATE = "stats-update"
STATE_UPDATE = "state-update"
REQUEST_SUBMITTED = "request-submitted"
REQUEST_APPROVED = "request-approved"
REQUEST_REJECTED = "request-rejected"


class PublishError(RuntimeError):
    pass


def tenant_channel(user_id: str) -> str:
    return f"{CHANNEL_PREFIX}-{user_id}"


def encode_message(event_type: str, payload: dict[str, Any]) -> str:
    return json.dumps(
        {"event": event_type, "data": payload, "timestamp": int(time.time() * 1000)},
        default=str,
    )


class Publisher(Protocol):
    async def publish(self, channel: str, event_type: str, payload: dict[str, Any]) -> None:
        ...


class BroadcastPublisher:
    """Publishes JSON-encoded events to ``broadcaster`` channels."""

    def __init__(self, url: Optional[str] = None):
        self._url = url or settings.BROADCAST_URL
        self._broadcast: Optional[Broadcast] = None

    @property
    def broadcast(self) -> Broadcast:
        if self._broadcast is None:
            raise PublishError("Broadcast not connected. Call connect() during startup.")
        return self._broadcast

    @property
    def connected(self) -> bool:
        return self._broadcast is not None

    async def connect(self) -> None:
        if self._broadcast is not None:
            return
        broadcast = Broadcast(self._url)
        await broadcast.connect()
        self._broadcast = broadcast
        logger.info("Broadcast connected: %s", self._url)

    async def disconnect(self) -> None:
        if self._broadcast is None:
            return
        await self._broadcast.disconnect()
        self._broadcast = None
        logger.info("Broadcast disconnected")

    async def publish(self, channel: str, event_type: str, payload: dict[str, Any]) -> None:
        try:
            await self.broadcast.publish(channel=channel, message=encode_message(event_type, payload))
        except PublishError:
            raise
        except Exception as exc:
            raise PublishError(f"Failed to publish {event_type} to {channel}: {exc}") from exc
        logger.debug("Published %s to %s", event_type, channel)


publisher = BroadcastPublisher()


async def publish_safely(pub: Publisher, user_id: str, event_type: str, payload: dict[str, Any]) -> bool:
    """Publish to a tenant channel; log and swallow fan-out failures."""
    try:
        await pub.publish(tenant_channel(user_id), event_type, payload)
        return True
    except PublishError:
        logger.exception("Fan-out of %s for tenant %s failed", event_type, user_id)
        return False
