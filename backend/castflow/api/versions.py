"""
Castflow Studio - Versions & Drafts API
=======================================

Explicit version snapshots, restore, and the debounced draft endpoint.
"""

from uuid import UUID

from fastapi import APIRouter, status

from castflow.api.deps import CurrentUser, DbSession, Hub, Registry
from castflow.core.collaboration import AutoSaveCoordinator, RosterService, VersionStore
from castflow.core.schemas import (
    AutoSaveStateResponse,
    DraftUpdate,
    VersionCreate,
    VersionResponse,
)

router = APIRouter(prefix="/episodes", tags=["Versions"])


def _state_response(coordinator: AutoSaveCoordinator) -> AutoSaveStateResponse:
    return AutoSaveStateResponse(**coordinator.state(), scheduled=coordinator.is_scheduled)


# ==========================================================================
# Versions
# ==========================================================================

@router.get(
    "/{episode_id}/versions",
    response_model=list[VersionResponse],
    summary="Version history, newest first",
)
async def list_versions(
    episode_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
) -> list[VersionResponse]:
    store = VersionStore(db, hub)
    await store.roster.resolve_role(episode_id, current_user.id)
    versions = await store.get_version_history(episode_id)
    return [VersionResponse.model_validate(v) for v in versions]


@router.post(
    "/{episode_id}/versions",
    response_model=VersionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a snapshot",
)
async def create_version(
    episode_id: UUID,
    data: VersionCreate,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
) -> VersionResponse:
    version = await VersionStore(db, hub).save_version(
        episode_id, data.content, current_user.id, data.description
    )
    return VersionResponse.model_validate(version)


@router.post(
    "/{episode_id}/versions/{version_id}/restore",
    response_model=VersionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Restore a snapshot into the episode",
)
async def restore_version(
    episode_id: UUID,
    version_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
) -> VersionResponse:
    version = await VersionStore(db, hub).restore_version(episode_id, version_id, current_user.id)
    return VersionResponse.model_validate(version)


# ==========================================================================
# Drafts (auto-save)
# ==========================================================================

@router.put(
    "/{episode_id}/draft",
    response_model=AutoSaveStateResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Report edited content; saved after the debounce delay",
)
async def update_draft(
    episode_id: UUID,
    data: DraftUpdate,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
    registry: Registry,
) -> AutoSaveStateResponse:
    roster = RosterService(db, hub)
    await roster.resolve_role(episode_id, current_user.id)

    coordinator = registry.get(current_user.id, episode_id)
    if coordinator is None:
        episode = await roster.get_episode(episode_id)
        coordinator = registry.get_or_create(current_user.id, episode_id, initial=episode.content)

    coordinator.notify_change(data.content)
    return _state_response(coordinator)


@router.post(
    "/{episode_id}/draft/flush",
    response_model=AutoSaveStateResponse,
    summary="Save pending draft content now",
)
async def flush_draft(
    episode_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
    registry: Registry,
) -> AutoSaveStateResponse:
    await RosterService(db, hub).resolve_role(episode_id, current_user.id)
    # The coordinator saves through its own session
    await db.commit()

    coordinator = registry.get_or_create(current_user.id, episode_id)
    await coordinator.flush()
    return _state_response(coordinator)
