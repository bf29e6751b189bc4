"""
Castflow Studio - Database Models
==================================

SQLAlchemy models for the collaboration subsystem.
Workflow history, comments and version history are append-only
from the application's point of view.
"""

import enum
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from castflow.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum(enum_cls: type[enum.Enum]) -> Enum:
    """Store enum values (not member names) so rows read like the API."""
    return Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=32,
    )


# ==========================================================================
# Enums
# ==========================================================================

class UserRole(str, enum.Enum):
    """Fixed team roles. Not user-extensible."""
    HOST = "host"
    EDITOR = "editor"
    MARKETER = "marketer"
    VA = "va"


class WorkflowStatus(str, enum.Enum):
    """Episode review status."""
    DRAFT = "draft"
    IN_REVIEW = "in_review"
    NEEDS_CHANGES = "needs_changes"
    APPROVED = "approved"
    PUBLISHED = "published"    # Terminal


class TeamMemberStatus(str, enum.Enum):
    """Membership state inside a workspace."""
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"


class CommentStatus(str, enum.Enum):
    """Comment lifecycle. Any status is reachable from any other."""
    OPEN = "open"
    RESOLVED = "resolved"
    ARCHIVED = "archived"


class CommentPriority(str, enum.Enum):
    """Comment priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class NotificationType(str, enum.Enum):
    """Types of user notifications."""
    EPISODE_ASSIGNED = "episode_assigned"
    COMMENT_ADDED = "comment_added"
    STATUS_CHANGED = "status_changed"
    APPROVAL_REQUESTED = "approval_requested"
    MENTION = "mention"
    DEADLINE_REMINDER = "deadline_reminder"
    TEAM_INVITATION = "team_invitation"


# ==========================================================================
# Mixins
# ==========================================================================

class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


# ==========================================================================
# Accounts & Workspaces
# ==========================================================================

class User(Base, TimestampMixin):
    """User account. The author profile joined into reads is (id, name, avatar_url)."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    avatar_url: Mapped[Optional[str]] = mapped_column(
        String(1000),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class Workspace(Base, TimestampMixin):
    """Tenant boundary containing team members and episodes."""

    __tablename__ = "workspaces"

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    owner_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    settings: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        default=dict,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Workspace {self.name}>"


class TeamMember(Base, TimestampMixin):
    """Workspace-scoped role assignment."""

    __tablename__ = "team_members"
    __table_args__ = (
        UniqueConstraint("workspace_id", "user_id", name="uq_team_members_workspace_user"),
    )

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    workspace_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[UserRole] = mapped_column(
        _enum(UserRole),
        nullable=False,
    )
    invited_by: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    status: Mapped[TeamMemberStatus] = mapped_column(
        _enum(TeamMemberStatus),
        default=TeamMemberStatus.PENDING,
        nullable=False,
    )

    # Relationships
    user: Mapped["User"] = relationship(
        foreign_keys=[user_id],
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<TeamMember {self.user_id} {self.role}>"


# ==========================================================================
# Episodes
# ==========================================================================

class Episode(Base, TimestampMixin):
    """
    Unit of content carrying a workflow status.

    current_status is written only by the workflow engine.
    """

    __tablename__ = "episodes"

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    workspace_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )
    current_status: Mapped[WorkflowStatus] = mapped_column(
        _enum(WorkflowStatus),
        default=WorkflowStatus.DRAFT,
        nullable=False,
        index=True,
    )
    content: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        default=dict,
        nullable=False,
    )
    created_by: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    assigned_to: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    due_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Episode {self.title[:50]} [{self.current_status}]>"


class EpisodeCollaborator(Base, TimestampMixin):
    """Explicit user/episode association. Its role overrides the workspace role."""

    __tablename__ = "episode_collaborators"
    __table_args__ = (
        UniqueConstraint("episode_id", "user_id", name="uq_episode_collaborators_episode_user"),
    )

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    episode_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("episodes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[UserRole] = mapped_column(
        _enum(UserRole),
        nullable=False,
    )

    # Relationships
    user: Mapped["User"] = relationship(lazy="selectin")

    def __repr__(self) -> str:
        return f"<EpisodeCollaborator {self.user_id} {self.role}>"


class WorkflowState(Base):
    """
    One row per status transition.

    The newest row's status always equals Episode.current_status.
    """

    __tablename__ = "workflow_states"

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    episode_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("episodes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_status: Mapped[Optional[WorkflowStatus]] = mapped_column(
        _enum(WorkflowStatus),
        nullable=True,
    )
    status: Mapped[WorkflowStatus] = mapped_column(
        _enum(WorkflowStatus),
        nullable=False,
    )
    changed_by: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    # Relationships
    author: Mapped["User"] = relationship(lazy="selectin")

    def __repr__(self) -> str:
        return f"<WorkflowState {self.from_status} -> {self.status}>"


# ==========================================================================
# Comments
# ==========================================================================

class EpisodeComment(Base, TimestampMixin):
    """
    Annotation on an episode, optionally anchored to a text span.

    text_selection is {"start": int, "end": int, "text": str}.
    """

    __tablename__ = "episode_comments"

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    episode_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("episodes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    parent_id: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("episode_comments.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    text_selection: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=True,
    )
    status: Mapped[CommentStatus] = mapped_column(
        _enum(CommentStatus),
        default=CommentStatus.OPEN,
        nullable=False,
    )
    priority: Mapped[CommentPriority] = mapped_column(
        _enum(CommentPriority),
        default=CommentPriority.MEDIUM,
        nullable=False,
    )

    # Relationships
    author: Mapped["User"] = relationship(lazy="selectin")
    reactions: Mapped[list["EpisodeReaction"]] = relationship(
        back_populates="comment",
        lazy="selectin",
        order_by="EpisodeReaction.created_at",
    )

    def __repr__(self) -> str:
        return f"<EpisodeComment {self.content[:40]}>"


class EpisodeReaction(Base):
    """Emoji reaction. At most one per (comment, user); last write wins."""

    __tablename__ = "episode_reactions"
    __table_args__ = (
        UniqueConstraint("comment_id", "user_id", name="uq_episode_reactions_comment_user"),
    )

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    comment_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("episode_comments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    emoji: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    # Relationships
    comment: Mapped["EpisodeComment"] = relationship(back_populates="reactions")
    user: Mapped["User"] = relationship(lazy="selectin")

    def __repr__(self) -> str:
        return f"<EpisodeReaction {self.emoji}>"


# ==========================================================================
# Presence
# ==========================================================================

class UserPresence(Base):
    """
    Ephemeral "currently viewing" signal.

    Live only while is_active and last_seen is inside the TTL window.
    """

    __tablename__ = "user_presence"
    __table_args__ = (
        UniqueConstraint("user_id", "episode_id", name="uq_user_presence_user_episode"),
    )

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    user_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    episode_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("episodes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    cursor_position: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=True,
    )
    last_seen: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    # Relationships
    user: Mapped["User"] = relationship(lazy="selectin")

    def __repr__(self) -> str:
        return f"<UserPresence {self.user_id} active={self.is_active}>"


# ==========================================================================
# Notifications
# ==========================================================================

class Notification(Base):
    """Per-recipient notification. Only the recipient flips `read`."""

    __tablename__ = "notifications"

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    user_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[NotificationType] = mapped_column(
        _enum(NotificationType),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    message: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    data: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        default=dict,
        nullable=False,
    )
    read: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<Notification {self.type} -> {self.user_id}>"


# ==========================================================================
# Version History
# ==========================================================================

class VersionHistory(Base):
    """
    Full content snapshot of an episode.

    version_number is unique and increasing per episode.
    """

    __tablename__ = "version_history"
    __table_args__ = (
        UniqueConstraint("episode_id", "version_number", name="uq_version_history_episode_version"),
    )

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    episode_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("episodes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content_snapshot: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
    )
    changed_by: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    change_description: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
    )
    version_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    # Relationships
    author: Mapped["User"] = relationship(lazy="selectin")

    def __repr__(self) -> str:
        return f"<VersionHistory {self.episode_id} v{self.version_number}>"
