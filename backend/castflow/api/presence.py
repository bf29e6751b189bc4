"""
Castflow Studio - Presence API
==============================

HTTP heartbeat for clients without a WebSocket. The realtime socket
accepts the same heartbeat as a `presence` message.
"""

from uuid import UUID

from fastapi import APIRouter

from castflow.api.deps import CurrentUser, DbSession, Hub, Registry
from castflow.core.collaboration import PresenceTracker
from castflow.core.schemas import MessageResponse, PresenceHeartbeat, PresenceResponse

router = APIRouter(prefix="/episodes", tags=["Presence"])


@router.put(
    "/{episode_id}/presence",
    response_model=PresenceResponse,
    summary="Heartbeat: the caller is viewing this episode",
)
async def heartbeat(
    episode_id: UUID,
    data: PresenceHeartbeat,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
) -> PresenceResponse:
    cursor = data.cursor_position.model_dump() if data.cursor_position else None
    presence = await PresenceTracker(db, hub).heartbeat(current_user.id, episode_id, cursor)
    return PresenceResponse.model_validate(presence)


@router.get(
    "/{episode_id}/presence",
    response_model=list[PresenceResponse],
    summary="Other users currently viewing this episode",
)
async def active_users(
    episode_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
) -> list[PresenceResponse]:
    tracker = PresenceTracker(db, hub)
    await tracker.roster.resolve_role(episode_id, current_user.id)
    rows = await tracker.get_active_users(episode_id, exclude_user_id=current_user.id)
    return [PresenceResponse.model_validate(p) for p in rows]


@router.delete(
    "/{episode_id}/presence",
    response_model=MessageResponse,
    summary="The caller left this episode",
)
async def leave(
    episode_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
    registry: Registry,
) -> MessageResponse:
    """Mark the caller inactive and save any draft they left pending."""
    left = await PresenceTracker(db, hub).leave(current_user.id, episode_id)
    await registry.release(current_user.id, episode_id)
    return MessageResponse(message="Presence cleared" if left else "Presence not cleared", success=left)
