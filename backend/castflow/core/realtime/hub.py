"""
Castflow Realtime - Change Hub
===============================

Row-change fan-out for connected clients.
Subscribers register per (table, key) where key is an episode id or a
user id. Every committed write publishes a change; subscribers re-fetch
the whole collection rather than applying deltas.
"""

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union
from uuid import uuid4

logger = logging.getLogger(__name__)


# ==========================================================================
# Change Events
# ==========================================================================

class ChangeEvent(str, Enum):
    """Row-level change kinds."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class Table(str, Enum):
    """Tables clients may subscribe to, with the id the key filters on."""
    EPISODES = "episodes"                     # key: episode id
    WORKFLOW_STATES = "workflow_states"       # key: episode id
    EPISODE_COMMENTS = "episode_comments"     # key: episode id
    EPISODE_REACTIONS = "episode_reactions"   # key: episode id
    USER_PRESENCE = "user_presence"           # key: episode id
    VERSION_HISTORY = "version_history"       # key: episode id
    NOTIFICATIONS = "notifications"           # key: user id


@dataclass
class Change:
    """A committed change on one (table, key) channel."""
    table: str
    key: str
    event: ChangeEvent
    record_id: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "key": self.key,
            "event": self.event.value,
            "record_id": self.record_id,
            "timestamp": self.timestamp,
        }


ChangeCallback = Callable[[Change], Union[None, Awaitable[None]]]


# ==========================================================================
# WebSocket Message Types
# ==========================================================================

class WSMessageType(str, Enum):
    """WebSocket message types"""
    # Client -> Server
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    PING = "ping"
    PRESENCE = "presence"

    # Server -> Client
    CONNECTED = "connected"
    SUBSCRIBED = "subscribed"
    CHANGE = "change"
    PONG = "pong"
    ERROR = "error"


@dataclass
class WSMessage:
    """WebSocket message structure"""
    type: WSMessageType
    payload: Any
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    message_id: str = field(default_factory=lambda: str(uuid4()))

    def to_json(self) -> str:
        return json.dumps({
            "type": self.type.value,
            "payload": self.payload,
            "timestamp": self.timestamp,
            "message_id": self.message_id,
        })

    @classmethod
    def from_json(cls, data: str) -> "WSMessage":
        parsed = json.loads(data)
        if not isinstance(parsed, dict):
            raise ValueError("Message must be a JSON object")
        payload = parsed.get("payload") or {}
        if not isinstance(payload, dict):
            raise ValueError("Message payload must be a JSON object")
        return cls(
            type=WSMessageType(parsed["type"]),
            payload=payload,
            timestamp=parsed.get("timestamp", datetime.now(timezone.utc).isoformat()),
            message_id=parsed.get("message_id", str(uuid4())),
        )


# ==========================================================================
# Hub
# ==========================================================================

@dataclass
class Subscription:
    """One registered listener on a (table, key) channel."""
    id: str
    table: str
    key: str
    callback: ChangeCallback


def channel_name(table: Union[Table, str], key: Any) -> str:
    table_name = table.value if isinstance(table, Table) else str(table)
    return f"{table_name}:{key}"


class RealtimeHub:
    """
    In-process pub/sub for row changes.

    Callback failures are logged and never reach the publisher, since the
    write that produced the change has already been committed.
    """

    def __init__(self) -> None:
        self._channels: Dict[str, Dict[str, Subscription]] = {}
        self._index: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    def subscribe(self, table: Union[Table, str], key: Any, callback: ChangeCallback) -> str:
        """Register `callback` for changes on (table, key). Returns the subscription id."""
        table_name = table.value if isinstance(table, Table) else str(table)
        channel = channel_name(table_name, key)
        subscription = Subscription(
            id=str(uuid4()),
            table=table_name,
            key=str(key),
            callback=callback,
        )
        self._channels.setdefault(channel, {})[subscription.id] = subscription
        self._index[subscription.id] = channel
        logger.debug(f"Subscription {subscription.id} added on {channel}")
        return subscription.id

    def unsubscribe(self, subscription_id: str) -> bool:
        channel = self._index.pop(subscription_id, None)
        if channel is None:
            return False
        listeners = self._channels.get(channel, {})
        listeners.pop(subscription_id, None)
        if not listeners:
            self._channels.pop(channel, None)
        return True

    def subscriber_count(self, table: Union[Table, str], key: Any) -> int:
        return len(self._channels.get(channel_name(table, key), {}))

    async def publish(
        self,
        table: Union[Table, str],
        key: Any,
        event: ChangeEvent,
        record_id: Any = None,
    ) -> int:
        """
        Deliver a change to every listener on (table, key).

        Returns the number of callbacks that completed without error.
        """
        table_name = table.value if isinstance(table, Table) else str(table)
        change = Change(
            table=table_name,
            key=str(key),
            event=ChangeEvent(event),
            record_id=str(record_id) if record_id is not None else None,
        )

        async with self._lock:
            listeners = list(self._channels.get(channel_name(table_name, key), {}).values())

        delivered = 0
        for subscription in listeners:
            try:
                result = subscription.callback(change)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                logger.error(f"Realtime callback {subscription.id} failed on {table_name}:{key}: {e}")
        return delivered


# ==========================================================================
# Global Instance
# ==========================================================================

_realtime_hub: Optional[RealtimeHub] = None


def get_realtime_hub() -> RealtimeHub:
    """Get or create the global realtime hub"""
    global _realtime_hub
    if _realtime_hub is None:
        _realtime_hub = RealtimeHub()
    return _realtime_hub
