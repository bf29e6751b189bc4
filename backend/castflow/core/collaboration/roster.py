"""
Roster - workspaces, team members and episode collaborators.

Answers the two questions every other collaboration module asks:
who collaborates on an episode, and which role does a user act with.
A user's effective role on an episode is the collaborator override if one
exists, else their active workspace role, else `host` for the owner.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from castflow.core.collaboration.errors import (
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from castflow.core.collaboration.notifications import NotificationService
from castflow.core.collaboration.permissions import grants_within, permissions_for
from castflow.core.models import (
    Episode,
    EpisodeCollaborator,
    NotificationType,
    TeamMember,
    TeamMemberStatus,
    User,
    UserRole,
    Workspace,
    WorkflowStatus,
)
from castflow.core.realtime import RealtimeHub, get_realtime_hub

logger = structlog.get_logger()


class RosterService:
    """Workspace membership, episode creation and role resolution."""

    def __init__(self, db: AsyncSession, hub: Optional[RealtimeHub] = None):
        self.db = db
        self.hub = hub or get_realtime_hub()
        self.notifications = NotificationService(db, self.hub)

    # ==========================================================================
    # Lookups
    # ==========================================================================

    async def get_user(self, user_id: UUID) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def get_workspace(self, workspace_id: UUID) -> Workspace:
        workspace = await self.db.get(Workspace, workspace_id)
        if workspace is None:
            raise NotFoundError("Workspace not found")
        return workspace

    async def get_episode(self, episode_id: UUID) -> Episode:
        result = await self.db.execute(
            select(Episode)
            .where(Episode.id == episode_id)
            .execution_options(populate_existing=True)
        )
        episode = result.scalar_one_or_none()
        if episode is None:
            raise NotFoundError("Episode not found")
        return episode

    # ==========================================================================
    # Role Resolution
    # ==========================================================================

    async def workspace_role(self, workspace_id: UUID, user_id: UUID) -> Optional[UserRole]:
        """Active workspace role, `host` for the owner, None for outsiders."""
        workspace = await self.get_workspace(workspace_id)
        if workspace.owner_id == user_id:
            return UserRole.HOST

        result = await self.db.execute(
            select(TeamMember.role).where(
                TeamMember.workspace_id == workspace_id,
                TeamMember.user_id == user_id,
                TeamMember.status == TeamMemberStatus.ACTIVE,
            )
        )
        return result.scalar_one_or_none()

    async def resolve_role(self, episode_id: UUID, user_id: UUID) -> UserRole:
        """Effective role of `user_id` on the episode."""
        episode = await self.get_episode(episode_id)

        result = await self.db.execute(
            select(EpisodeCollaborator.role).where(
                EpisodeCollaborator.episode_id == episode_id,
                EpisodeCollaborator.user_id == user_id,
            )
        )
        role = result.scalar_one_or_none()
        if role is None:
            role = await self.workspace_role(episode.workspace_id, user_id)
        if role is None:
            raise PermissionDeniedError(
                "You are not a collaborator on this episode",
                {"episode_id": str(episode_id)},
            )
        return UserRole(role)

    async def require_workspace_capability(
        self,
        workspace_id: UUID,
        user_id: UUID,
        capability: str,
    ) -> UserRole:
        role = await self.workspace_role(workspace_id, user_id)
        if role is None:
            raise PermissionDeniedError("You are not a member of this workspace")
        if not getattr(permissions_for(role), capability):
            raise PermissionDeniedError(
                f"Role '{role.value}' lacks {capability}",
                {"role": role.value, "capability": capability},
            )
        return role

    # ==========================================================================
    # Workspaces
    # ==========================================================================

    async def create_workspace(self, name: str, owner_id: UUID) -> Workspace:
        """Create a workspace; the owner joins as an active host."""
        workspace = Workspace(id=uuid4(), name=name, owner_id=owner_id, settings={})
        self.db.add(workspace)
        self.db.add(TeamMember(
            id=uuid4(),
            workspace_id=workspace.id,
            user_id=owner_id,
            role=UserRole.HOST,
            status=TeamMemberStatus.ACTIVE,
        ))
        await self.db.commit()

        logger.info("workspace_created", workspace_id=str(workspace.id), owner_id=str(owner_id))
        return workspace

    async def list_workspaces(self, user_id: UUID) -> list[Workspace]:
        member_of = select(TeamMember.workspace_id).where(
            TeamMember.user_id == user_id,
            TeamMember.status == TeamMemberStatus.ACTIVE,
        )
        result = await self.db.execute(
            select(Workspace)
            .where(or_(Workspace.owner_id == user_id, Workspace.id.in_(member_of)))
            .order_by(Workspace.created_at)
        )
        return list(result.scalars().all())

    # ==========================================================================
    # Team Members
    # ==========================================================================

    async def invite_team_member(
        self,
        workspace_id: UUID,
        email: str,
        role: UserRole,
        invited_by: UUID,
    ) -> TeamMember:
        """Add a pending member by email and send them a team invitation."""
        await self.require_workspace_capability(workspace_id, invited_by, "can_invite_members")

        result = await self.db.execute(select(User).where(User.email == email.lower()))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User not found. They need to sign up first.")

        existing = await self.db.execute(
            select(TeamMember).where(
                TeamMember.workspace_id == workspace_id,
                TeamMember.user_id == user.id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ValidationError("User is already a member of this workspace")

        member = TeamMember(
            id=uuid4(),
            workspace_id=workspace_id,
            user_id=user.id,
            role=UserRole(role),
            invited_by=invited_by,
            status=TeamMemberStatus.PENDING,
        )
        self.db.add(member)
        await self.db.commit()
        member_id = member.id
        invitee_id = user.id

        try:
            await self.notifications.notify(
                invitee_id,
                NotificationType.TEAM_INVITATION,
                "Team Invitation",
                f"You've been invited to join a workspace as {UserRole(role).value}",
                {"workspace_id": str(workspace_id), "role": role.value},
            )
        except Exception as e:
            await self.db.rollback()
            logger.warning("team_invitation_notify_failed", user_id=str(invitee_id), error=str(e))

        return await self._load_member(member_id)

    async def accept_invitation(self, workspace_id: UUID, user_id: UUID) -> TeamMember:
        result = await self.db.execute(
            select(TeamMember).where(
                TeamMember.workspace_id == workspace_id,
                TeamMember.user_id == user_id,
            )
        )
        member = result.scalar_one_or_none()
        if member is None:
            raise NotFoundError("No invitation for this workspace")
        member.status = TeamMemberStatus.ACTIVE
        await self.db.commit()
        return await self._load_member(member.id)

    async def get_team_members(self, workspace_id: UUID) -> list[TeamMember]:
        result = await self.db.execute(
            select(TeamMember)
            .where(TeamMember.workspace_id == workspace_id)
            .order_by(TeamMember.created_at)
        )
        return list(result.scalars().all())

    async def update_team_member_role(
        self,
        member_id: UUID,
        role: UserRole,
        acting_user_id: UUID,
    ) -> TeamMember:
        member = await self._get_member(member_id)
        await self.require_workspace_capability(member.workspace_id, acting_user_id, "can_manage_team")
        member.role = UserRole(role)
        await self.db.commit()
        return await self._load_member(member.id)

    async def remove_team_member(self, member_id: UUID, acting_user_id: UUID) -> None:
        member = await self._get_member(member_id)
        await self.require_workspace_capability(member.workspace_id, acting_user_id, "can_manage_team")
        workspace = await self.get_workspace(member.workspace_id)
        if member.user_id == workspace.owner_id:
            raise ValidationError("The workspace owner cannot be removed")
        await self.db.delete(member)
        await self.db.commit()

    async def _get_member(self, member_id: UUID) -> TeamMember:
        member = await self.db.get(TeamMember, member_id)
        if member is None:
            raise NotFoundError("Team member not found")
        return member

    async def _load_member(self, member_id: UUID) -> TeamMember:
        result = await self.db.execute(
            select(TeamMember)
            .where(TeamMember.id == member_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    # ==========================================================================
    # Episodes & Collaborators
    # ==========================================================================

    async def create_episode(
        self,
        workspace_id: UUID,
        title: str,
        user_id: UUID,
        content: Optional[dict[str, Any]] = None,
        assigned_to: Optional[UUID] = None,
        due_date: Optional[datetime] = None,
    ) -> Episode:
        """Create a draft episode; the creator becomes its first collaborator."""
        role = await self.require_workspace_capability(workspace_id, user_id, "can_create_episodes")

        episode = Episode(
            id=uuid4(),
            workspace_id=workspace_id,
            title=title,
            current_status=WorkflowStatus.DRAFT,
            content=content or {},
            created_by=user_id,
            assigned_to=assigned_to,
            due_date=due_date,
        )
        self.db.add(episode)
        self.db.add(EpisodeCollaborator(
            id=uuid4(),
            episode_id=episode.id,
            user_id=user_id,
            role=role,
        ))
        await self.db.commit()

        logger.info("episode_created", episode_id=str(episode.id), workspace_id=str(workspace_id))
        return episode

    async def add_episode_collaborator(
        self,
        episode_id: UUID,
        user_id: UUID,
        role: UserRole,
        acting_user_id: UUID,
    ) -> EpisodeCollaborator:
        """
        Attach a user to an episode, or change their episode role.

        The granted role may not exceed the acting role, the target must be
        an active member of the episode's workspace, and only team managers
        may change their own episode role.
        """
        role = UserRole(role)
        episode = await self.get_episode(episode_id)
        acting_role = await self.resolve_role(episode_id, acting_user_id)
        permissions = permissions_for(acting_role)
        if not (permissions.can_manage_team or permissions.can_edit_all):
            raise PermissionDeniedError(
                f"Role '{acting_role.value}' cannot manage episode collaborators",
                {"role": acting_role.value},
            )
        if user_id == acting_user_id and not permissions.can_manage_team:
            raise PermissionDeniedError(
                "You cannot change your own episode role",
                {"role": acting_role.value},
            )
        if not grants_within(role, acting_role):
            raise PermissionDeniedError(
                f"Role '{acting_role.value}' cannot grant '{role.value}'",
                {"role": acting_role.value, "granted_role": role.value},
            )

        await self.get_user(user_id)
        if await self.workspace_role(episode.workspace_id, user_id) is None:
            raise ValidationError(
                "Collaborators must be active members of the episode's workspace",
                {"user_id": str(user_id)},
            )

        result = await self.db.execute(
            select(EpisodeCollaborator).where(
                EpisodeCollaborator.episode_id == episode_id,
                EpisodeCollaborator.user_id == user_id,
            )
        )
        collaborator = result.scalar_one_or_none()
        if collaborator is not None and not grants_within(collaborator.role, acting_role):
            raise PermissionDeniedError(
                f"Role '{acting_role.value}' cannot change a '{UserRole(collaborator.role).value}' collaborator",
                {"role": acting_role.value},
            )
        if collaborator is None:
            collaborator = EpisodeCollaborator(
                id=uuid4(),
                episode_id=episode_id,
                user_id=user_id,
                role=role,
            )
            self.db.add(collaborator)
        else:
            collaborator.role = role
        await self.db.commit()
        collaborator_id = collaborator.id

        if user_id != acting_user_id:
            try:
                await self.notifications.notify(
                    user_id,
                    NotificationType.EPISODE_ASSIGNED,
                    "Added to Episode",
                    f"You were added to an episode as {role.value}",
                    {"episode_id": str(episode_id), "role": role.value},
                )
            except Exception as e:
                await self.db.rollback()
                logger.warning("collaborator_notify_failed", user_id=str(user_id), error=str(e))

        result = await self.db.execute(
            select(EpisodeCollaborator)
            .where(EpisodeCollaborator.id == collaborator_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def get_episode_collaborators(self, episode_id: UUID) -> list[EpisodeCollaborator]:
        result = await self.db.execute(
            select(EpisodeCollaborator)
            .where(EpisodeCollaborator.episode_id == episode_id)
            .order_by(EpisodeCollaborator.created_at)
        )
        return list(result.scalars().all())
