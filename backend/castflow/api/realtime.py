"""
Castflow Studio - Realtime WebSocket
====================================

One socket per client. The client subscribes to (table, key) channels and
receives a `change` message whenever a committed write touches one; it then
re-fetches over HTTP. `presence` messages double as heartbeats, and every
episode the socket heartbeated on is left when it disconnects.

Client -> server:
    {"type": "subscribe",   "payload": {"table": "episode_comments", "key": "<episode id>"}}
    {"type": "unsubscribe", "payload": {"subscription_id": "..."}}
    {"type": "presence",    "payload": {"episode_id": "...", "cursor_position": {...}}}
    {"type": "ping"}
"""

import json
from typing import Any, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status
from starlette.websockets import WebSocketState

from castflow.api.deps import user_from_token
from castflow.core.collaboration import (
    AutoSaveRegistry,
    CollaborationError,
    PresenceTracker,
    RosterService,
    get_autosave_registry,
)
from castflow.core.config import settings
from castflow.core.database import get_db_session
from castflow.core.realtime import (
    Change,
    RealtimeHub,
    Table,
    WSMessage,
    WSMessageType,
    get_realtime_hub,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/realtime", tags=["Realtime"])


class RealtimeConnection:
    """State of one authenticated socket."""

    def __init__(
        self,
        websocket: WebSocket,
        user_id: UUID,
        hub: RealtimeHub,
        registry: Optional[AutoSaveRegistry] = None,
    ):
        self.websocket = websocket
        self.user_id = user_id
        self.hub = hub
        self.registry = get_autosave_registry() if registry is None else registry
        self.subscriptions: set[str] = set()
        self.episodes_seen: set[UUID] = set()

    async def send(self, message: WSMessage) -> None:
        if self.websocket.client_state == WebSocketState.CONNECTED:
            await self.websocket.send_text(message.to_json())

    async def on_change(self, change: Change) -> None:
        await self.send(WSMessage(type=WSMessageType.CHANGE, payload=change.to_dict()))

    async def error(self, detail: str) -> None:
        await self.send(WSMessage(type=WSMessageType.ERROR, payload={"error": detail}))

    async def handle(self, message: WSMessage) -> None:
        if message.type == WSMessageType.PING:
            await self.send(WSMessage(type=WSMessageType.PONG, payload={}))
        elif message.type == WSMessageType.SUBSCRIBE:
            await self._subscribe(message.payload)
        elif message.type == WSMessageType.UNSUBSCRIBE:
            subscription_id = str(message.payload.get("subscription_id", ""))
            if subscription_id in self.subscriptions:
                self.hub.unsubscribe(subscription_id)
                self.subscriptions.discard(subscription_id)
        elif message.type == WSMessageType.PRESENCE:
            await self._presence(message.payload)
        else:
            await self.error(f"Unsupported message type: {message.type.value}")

    async def _subscribe(self, payload: dict[str, Any]) -> None:
        try:
            table = Table(payload.get("table"))
            key = UUID(str(payload.get("key")))
        except ValueError:
            await self.error("subscribe needs a known table and a UUID key")
            return

        if table == Table.NOTIFICATIONS:
            if key != self.user_id:
                await self.error("Notifications are only visible to their recipient")
                return
        else:
            async with get_db_session() as db:
                await RosterService(db, self.hub).resolve_role(key, self.user_id)

        subscription_id = self.hub.subscribe(table, key, self.on_change)
        self.subscriptions.add(subscription_id)
        await self.send(WSMessage(
            type=WSMessageType.SUBSCRIBED,
            payload={"subscription_id": subscription_id, "table": table.value, "key": str(key)},
        ))

    async def _presence(self, payload: dict[str, Any]) -> None:
        try:
            episode_id = UUID(str(payload.get("episode_id")))
        except ValueError:
            await self.error("presence needs an episode_id")
            return

        async with get_db_session() as db:
            await PresenceTracker(db, self.hub).heartbeat(
                self.user_id, episode_id, payload.get("cursor_position")
            )
        self.episodes_seen.add(episode_id)

    async def close(self) -> None:
        for subscription_id in self.subscriptions:
            self.hub.unsubscribe(subscription_id)
        self.subscriptions.clear()

        for episode_id in self.episodes_seen:
            try:
                async with get_db_session() as db:
                    await PresenceTracker(db, self.hub).leave(self.user_id, episode_id)
            except Exception as e:
                logger.warning("presence_leave_on_disconnect_failed", episode_id=str(episode_id), error=str(e))
            await self.registry.release(self.user_id, episode_id)
        self.episodes_seen.clear()


@router.websocket("/ws")
async def realtime_websocket(websocket: WebSocket, token: str = "") -> None:
    """Authenticated change feed. The access token travels as ?token=."""
    try:
        async with get_db_session() as db:
            user = await user_from_token(token, db)
            user_id = user.id
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    connection = RealtimeConnection(websocket, user_id, get_realtime_hub())
    await connection.send(WSMessage(
        type=WSMessageType.CONNECTED,
        payload={"user_id": str(user_id), "heartbeat_seconds": settings.PRESENCE_HEARTBEAT_SECONDS},
    ))
    logger.info("realtime_connected", user_id=str(user_id))

    try:
        while True:
            data = await websocket.receive_text()
            try:
                await connection.handle(WSMessage.from_json(data))
            except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                await connection.error("Invalid message")
            except CollaborationError as e:
                await connection.error(e.message)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("realtime_socket_error", user_id=str(user_id), error=str(e))
    finally:
        await connection.close()
        logger.info("realtime_disconnected", user_id=str(user_id))
