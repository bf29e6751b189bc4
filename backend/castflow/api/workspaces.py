"""
Castflow Studio - Workspaces API
================================

Workspaces, team members, episodes, episode collaborators and the role
matrix.
"""

from uuid import UUID

from fastapi import APIRouter, status

from castflow.api.deps import CurrentUser, DbSession, Hub
from castflow.core.collaboration import (
    ROLE_PERMISSIONS,
    NotFoundError,
    PermissionDeniedError,
    RosterService,
)
from castflow.core.schemas import (
    CollaboratorCreate,
    CollaboratorResponse,
    EpisodeCreate,
    EpisodeResponse,
    MessageResponse,
    PermissionsSchema,
    RolePermissionsResponse,
    TeamMemberInvite,
    TeamMemberResponse,
    TeamMemberRoleUpdate,
    WorkspaceCreate,
    WorkspaceResponse,
)

router = APIRouter(tags=["Workspaces"])


async def _require_member(roster: RosterService, workspace_id: UUID, user_id: UUID) -> None:
    if await roster.workspace_role(workspace_id, user_id) is None:
        raise PermissionDeniedError("You are not a member of this workspace")


# ==========================================================================
# Roles
# ==========================================================================

@router.get(
    "/roles",
    response_model=RolePermissionsResponse,
    summary="Role to permission matrix",
)
async def list_roles(current_user: CurrentUser) -> RolePermissionsResponse:
    return RolePermissionsResponse(
        roles={
            role: PermissionsSchema(**permissions.to_dict())
            for role, permissions in ROLE_PERMISSIONS.items()
        }
    )


# ==========================================================================
# Workspaces
# ==========================================================================

@router.post(
    "/workspaces",
    response_model=WorkspaceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a workspace",
)
async def create_workspace(
    data: WorkspaceCreate,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
) -> WorkspaceResponse:
    workspace = await RosterService(db, hub).create_workspace(data.name, current_user.id)
    return WorkspaceResponse.model_validate(workspace)


@router.get(
    "/workspaces",
    response_model=list[WorkspaceResponse],
    summary="Workspaces the caller owns or belongs to",
)
async def list_workspaces(
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
) -> list[WorkspaceResponse]:
    workspaces = await RosterService(db, hub).list_workspaces(current_user.id)
    return [WorkspaceResponse.model_validate(w) for w in workspaces]


# ==========================================================================
# Team Members
# ==========================================================================

@router.post(
    "/workspaces/{workspace_id}/members",
    response_model=TeamMemberResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Invite a registered user to the workspace",
    responses={
        403: {"description": "Caller cannot invite members"},
        404: {"description": "No user with that email"},
    },
)
async def invite_member(
    workspace_id: UUID,
    data: TeamMemberInvite,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
) -> TeamMemberResponse:
    member = await RosterService(db, hub).invite_team_member(
        workspace_id, data.email, data.role, current_user.id
    )
    return TeamMemberResponse.model_validate(member)


@router.post(
    "/workspaces/{workspace_id}/join",
    response_model=TeamMemberResponse,
    summary="Accept a pending invitation",
)
async def join_workspace(
    workspace_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
) -> TeamMemberResponse:
    member = await RosterService(db, hub).accept_invitation(workspace_id, current_user.id)
    return TeamMemberResponse.model_validate(member)


@router.get(
    "/workspaces/{workspace_id}/members",
    response_model=list[TeamMemberResponse],
    summary="List team members",
)
async def list_members(
    workspace_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
) -> list[TeamMemberResponse]:
    roster = RosterService(db, hub)
    await _require_member(roster, workspace_id, current_user.id)
    members = await roster.get_team_members(workspace_id)
    return [TeamMemberResponse.model_validate(m) for m in members]


@router.patch(
    "/workspaces/{workspace_id}/members/{member_id}",
    response_model=TeamMemberResponse,
    summary="Change a member's role",
)
async def update_member_role(
    workspace_id: UUID,
    member_id: UUID,
    data: TeamMemberRoleUpdate,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
) -> TeamMemberResponse:
    roster = RosterService(db, hub)
    await _ensure_member_in_workspace(roster, workspace_id, member_id)
    member = await roster.update_team_member_role(member_id, data.role, current_user.id)
    return TeamMemberResponse.model_validate(member)


@router.delete(
    "/workspaces/{workspace_id}/members/{member_id}",
    response_model=MessageResponse,
    summary="Remove a member",
)
async def remove_member(
    workspace_id: UUID,
    member_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
) -> MessageResponse:
    roster = RosterService(db, hub)
    await _ensure_member_in_workspace(roster, workspace_id, member_id)
    await roster.remove_team_member(member_id, current_user.id)
    return MessageResponse(message="Team member removed")


async def _ensure_member_in_workspace(
    roster: RosterService,
    workspace_id: UUID,
    member_id: UUID,
) -> None:
    members = await roster.get_team_members(workspace_id)
    if not any(m.id == member_id for m in members):
        raise NotFoundError("Team member not found")


# ==========================================================================
# Episodes & Collaborators
# ==========================================================================

@router.post(
    "/workspaces/{workspace_id}/episodes",
    response_model=EpisodeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a draft episode",
)
async def create_episode(
    workspace_id: UUID,
    data: EpisodeCreate,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
) -> EpisodeResponse:
    roster = RosterService(db, hub)
    episode = await roster.create_episode(
        workspace_id,
        data.title,
        current_user.id,
        content=data.content,
        assigned_to=data.assigned_to,
        due_date=data.due_date,
    )
    return EpisodeResponse.model_validate(await roster.get_episode(episode.id))


@router.get(
    "/episodes/{episode_id}",
    response_model=EpisodeResponse,
    summary="Get an episode",
)
async def get_episode(
    episode_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
) -> EpisodeResponse:
    roster = RosterService(db, hub)
    await roster.resolve_role(episode_id, current_user.id)
    return EpisodeResponse.model_validate(await roster.get_episode(episode_id))


@router.post(
    "/episodes/{episode_id}/collaborators",
    response_model=CollaboratorResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add or update an episode collaborator",
)
async def add_collaborator(
    episode_id: UUID,
    data: CollaboratorCreate,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
) -> CollaboratorResponse:
    collaborator = await RosterService(db, hub).add_episode_collaborator(
        episode_id, data.user_id, data.role, current_user.id
    )
    return CollaboratorResponse.model_validate(collaborator)


@router.get(
    "/episodes/{episode_id}/collaborators",
    response_model=list[CollaboratorResponse],
    summary="List episode collaborators",
)
async def list_collaborators(
    episode_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
) -> list[CollaboratorResponse]:
    roster = RosterService(db, hub)
    await roster.resolve_role(episode_id, current_user.id)
    collaborators = await roster.get_episode_collaborators(episode_id)
    return [CollaboratorResponse.model_validate(c) for c in collaborators]
