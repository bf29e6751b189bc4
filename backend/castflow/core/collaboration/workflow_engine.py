"""
Workflow Engine - episode status transitions.

Moves an episode through draft -> in_review -> approved -> published,
with needs_changes as a detour. Every accepted move updates the episode
and appends a history row in the same transaction.
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from castflow.core.collaboration.errors import (
    InvalidTransitionError,
    PermissionDeniedError,
    StaleStatusError,
    ValidationError,
)
from castflow.core.collaboration.notifications import NotificationService
from castflow.core.collaboration.permissions import permissions_for
from castflow.core.collaboration.roster import RosterService
from castflow.core.collaboration.transitions import (
    WORKFLOW_TRANSITIONS,
    available_transitions,
    is_transition_allowed,
    role_may_enter,
)
from castflow.core.models import (
    Episode,
    NotificationType,
    UserRole,
    WorkflowState,
    WorkflowStatus,
    utcnow,
)
from castflow.core.realtime import ChangeEvent, RealtimeHub, Table, get_realtime_hub

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """
    Validates and applies status transitions.

    Checks, in order:
    - the target is allowed from the status read fresh from the database
    - the acting user's effective role may enter the target
    - nobody moved the episode in between (conditional update)

    Any failed check raises before a single row is written.
    """

    def __init__(self, db: AsyncSession, hub: Optional[RealtimeHub] = None):
        self.db = db
        self.hub = hub or get_realtime_hub()
        self.roster = RosterService(db, self.hub)
        self.notifications = NotificationService(db, self.hub)

    async def request_transition(
        self,
        episode_id: UUID,
        target_status: WorkflowStatus,
        acting_user_id: UUID,
        notes: Optional[str] = None,
    ) -> WorkflowState:
        """
        Move an episode to `target_status`.

        Args:
            episode_id: Episode to move
            target_status: Requested status
            acting_user_id: User performing the move
            notes: Optional reviewer notes stored on the history row

        Returns:
            The appended WorkflowState row

        Raises:
            InvalidTransitionError: target not reachable from current status
            PermissionDeniedError: role may not enter the target
            StaleStatusError: status changed after it was read
        """
        try:
            target = WorkflowStatus(target_status)
        except ValueError:
            raise ValidationError(f"Unknown status '{target_status}'")

        episode = await self.roster.get_episode(episode_id)
        observed = WorkflowStatus(episode.current_status)

        if not is_transition_allowed(observed, target):
            allowed = [s.value for s in WORKFLOW_TRANSITIONS[observed]]
            raise InvalidTransitionError(
                f"Cannot move episode from {observed.value} to {target.value}",
                {"current_status": observed.value, "target_status": target.value, "allowed": allowed},
            )

        role = await self.roster.resolve_role(episode_id, acting_user_id)
        if not role_may_enter(target, permissions_for(role)):
            raise PermissionDeniedError(
                f"Role '{role.value}' may not move an episode to {target.value}",
                {"role": role.value, "target_status": target.value},
            )

        result = await self.db.execute(
            update(Episode)
            .where(Episode.id == episode_id, Episode.current_status == observed)
            .values(current_status=target, updated_at=utcnow())
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount != 1:
            await self.db.rollback()
            raise StaleStatusError(
                "Episode status changed while the transition was being applied",
                {"expected_status": observed.value},
            )

        state = WorkflowState(
            id=uuid4(),
            episode_id=episode_id,
            from_status=observed,
            status=target,
            changed_by=acting_user_id,
            notes=notes,
        )
        self.db.add(state)
        await self.db.commit()
        state_id = state.id

        logger.info(
            f"Episode {episode_id} moved {observed.value} -> {target.value} by {acting_user_id}"
        )

        await self.notifications.fan_out(
            episode_id,
            acting_user_id,
            NotificationType.STATUS_CHANGED,
            "Status Updated",
            f"Episode status changed to {target.value}",
            {"episode_id": str(episode_id), "status": target.value},
        )
        await self.hub.publish(Table.EPISODES, episode_id, ChangeEvent.UPDATE, episode_id)
        await self.hub.publish(Table.WORKFLOW_STATES, episode_id, ChangeEvent.INSERT, state_id)

        return await self._load_state(state_id)

    async def get_workflow_history(self, episode_id: UUID) -> list[WorkflowState]:
        """History rows for an episode, newest first, with author profiles."""
        result = await self.db.execute(
            select(WorkflowState)
            .where(WorkflowState.episode_id == episode_id)
            .order_by(WorkflowState.created_at.desc())
        )
        return list(result.scalars().all())

    async def available_transitions_for(
        self,
        episode_id: UUID,
        user_id: UUID,
    ) -> tuple[Episode, UserRole, list[WorkflowStatus]]:
        """Episode, the caller's role, and the targets that role may pick."""
        episode = await self.roster.get_episode(episode_id)
        role = await self.roster.resolve_role(episode_id, user_id)
        return episode, role, available_transitions(episode.current_status, role)

    async def _load_state(self, state_id: UUID) -> WorkflowState:
        result = await self.db.execute(
            select(WorkflowState)
            .where(WorkflowState.id == state_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()
