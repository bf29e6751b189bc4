"""
Castflow Collaboration
======================

Episode review workflow and the team features around it.

Components:
- WorkflowEngine: status transitions with role gating and history
- CommentStore: threaded, anchored comments with reactions
- PresenceTracker: heartbeat liveness per (user, episode)
- NotificationService: per-recipient fan-out and read tracking
- VersionStore / AutoSaveCoordinator: debounced content snapshots
- RosterService: workspaces, team members, collaborators, role resolution
"""

from castflow.core.collaboration.autosave import (
    AutoSaveCoordinator,
    AutoSaveRegistry,
    AutoSaveStatus,
    VersionStore,
    get_autosave_registry,
)
from castflow.core.collaboration.comments import (
    CommentStore,
    CommentThread,
    build_threads,
    comments_for_section,
)
from castflow.core.collaboration.errors import (
    CollaborationError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    StaleStatusError,
    ValidationError,
    VersionConflictError,
)
from castflow.core.collaboration.notifications import NotificationService, unread_count
from castflow.core.collaboration.permissions import (
    ROLE_PERMISSIONS,
    Permissions,
    grants_within,
    permissions_for,
)
from castflow.core.collaboration.presence import PresenceTracker
from castflow.core.collaboration.roster import RosterService
from castflow.core.collaboration.transitions import (
    WORKFLOW_TRANSITIONS,
    WorkflowProgress,
    available_transitions,
    is_transition_allowed,
    workflow_progress,
)
from castflow.core.collaboration.workflow_engine import WorkflowEngine

__all__ = [
    "AutoSaveCoordinator",
    "AutoSaveRegistry",
    "AutoSaveStatus",
    "CollaborationError",
    "CommentStore",
    "CommentThread",
    "InvalidTransitionError",
    "NotFoundError",
    "NotificationService",
    "PermissionDeniedError",
    "Permissions",
    "PresenceTracker",
    "ROLE_PERMISSIONS",
    "RosterService",
    "StaleStatusError",
    "ValidationError",
    "VersionConflictError",
    "VersionStore",
    "WORKFLOW_TRANSITIONS",
    "WorkflowEngine",
    "WorkflowProgress",
    "available_transitions",
    "build_threads",
    "comments_for_section",
    "get_autosave_registry",
    "grants_within",
    "is_transition_allowed",
    "permissions_for",
    "unread_count",
    "workflow_progress",
]
