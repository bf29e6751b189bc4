"""
Status Transition Table and progress view.

The table below is the only definition of which workflow moves exist. The
engine enforces it server-side and the API derives offered actions from it.
"""

from dataclasses import dataclass
from typing import Optional

from castflow.core.collaboration.permissions import Permissions, permissions_for
from castflow.core.models import UserRole, WorkflowStatus


WORKFLOW_TRANSITIONS: dict[WorkflowStatus, tuple[WorkflowStatus, ...]] = {
    WorkflowStatus.DRAFT: (WorkflowStatus.IN_REVIEW,),
    WorkflowStatus.IN_REVIEW: (WorkflowStatus.NEEDS_CHANGES, WorkflowStatus.APPROVED),
    WorkflowStatus.NEEDS_CHANGES: (WorkflowStatus.DRAFT, WorkflowStatus.IN_REVIEW),
    WorkflowStatus.APPROVED: (WorkflowStatus.PUBLISHED, WorkflowStatus.NEEDS_CHANGES),
    WorkflowStatus.PUBLISHED: (),
}

HAPPY_PATH: tuple[WorkflowStatus, ...] = (
    WorkflowStatus.DRAFT,
    WorkflowStatus.IN_REVIEW,
    WorkflowStatus.APPROVED,
    WorkflowStatus.PUBLISHED,
)

STEP_LABELS: dict[WorkflowStatus, str] = {
    WorkflowStatus.DRAFT: "Draft",
    WorkflowStatus.IN_REVIEW: "Review",
    WorkflowStatus.APPROVED: "Approved",
    WorkflowStatus.PUBLISHED: "Published",
}

ACTION_LABELS: dict[WorkflowStatus, str] = {
    WorkflowStatus.DRAFT: "Return to Draft",
    WorkflowStatus.IN_REVIEW: "Submit for Review",
    WorkflowStatus.NEEDS_CHANGES: "Request Changes",
    WorkflowStatus.APPROVED: "Approve",
    WorkflowStatus.PUBLISHED: "Publish",
}


def is_transition_allowed(current: WorkflowStatus, target: WorkflowStatus) -> bool:
    return WorkflowStatus(target) in WORKFLOW_TRANSITIONS[WorkflowStatus(current)]


def role_may_enter(target: WorkflowStatus, permissions: Permissions) -> bool:
    """Role rule for moving an episode into `target`."""
    target = WorkflowStatus(target)
    if target == WorkflowStatus.IN_REVIEW:
        return permissions.can_edit_all or permissions.can_create_episodes
    if target in (WorkflowStatus.APPROVED, WorkflowStatus.NEEDS_CHANGES):
        return permissions.can_approve
    if target == WorkflowStatus.PUBLISHED:
        return permissions.can_publish
    return True


def available_transitions(current: WorkflowStatus, role: UserRole) -> list[WorkflowStatus]:
    """Targets a user with `role` may move the episode to from `current`."""
    permissions = permissions_for(role)
    return [
        target
        for target in WORKFLOW_TRANSITIONS[WorkflowStatus(current)]
        if role_may_enter(target, permissions)
    ]


@dataclass(frozen=True)
class WorkflowProgress:
    """Position of a status on the happy path."""
    status: WorkflowStatus
    steps: tuple[WorkflowStatus, ...]
    step_index: Optional[int]
    is_detour: bool

    @property
    def completed_steps(self) -> tuple[WorkflowStatus, ...]:
        if self.step_index is None:
            return ()
        return self.steps[: self.step_index]


def workflow_progress(status: WorkflowStatus) -> WorkflowProgress:
    """
    Locate `status` on draft -> in_review -> approved -> published.

    needs_changes is a detour off the path and has no step index.
    """
    status = WorkflowStatus(status)
    if status == WorkflowStatus.NEEDS_CHANGES:
        return WorkflowProgress(status=status, steps=HAPPY_PATH, step_index=None, is_detour=True)
    return WorkflowProgress(
        status=status,
        steps=HAPPY_PATH,
        step_index=HAPPY_PATH.index(status),
        is_detour=False,
    )
