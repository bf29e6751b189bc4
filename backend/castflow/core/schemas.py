"""
Castflow Studio - Pydantic Schemas
===================================

Request and response schemas for API validation.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from castflow.core.models import (
    CommentPriority,
    CommentStatus,
    NotificationType,
    TeamMemberStatus,
    UserRole,
    WorkflowStatus,
)


# ==========================================================================
# Base Schemas
# ==========================================================================

class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class TimestampSchema(BaseSchema):
    """Schema with timestamp fields."""

    created_at: datetime
    updated_at: datetime


# ==========================================================================
# Auth Schemas
# ==========================================================================

class UserCreate(BaseSchema):
    """Schema for user registration."""

    email: EmailStr
    password: str = Field(min_length=8, max_length=100)
    name: str = Field(min_length=1, max_length=255)
    avatar_url: Optional[str] = Field(None, max_length=1000)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        """Validate password strength."""
        if not any(c.isupper() for c in v):
            raise ValueError("Password must contain at least one uppercase letter")
        if not any(c.islower() for c in v):
            raise ValueError("Password must contain at least one lowercase letter")
        if not any(c.isdigit() for c in v):
            raise ValueError("Password must contain at least one digit")
        return v


class UserLogin(BaseSchema):
    """Schema for user login."""

    email: EmailStr
    password: str


class UserResponse(TimestampSchema):
    """Schema for user in responses (no password)."""

    id: UUID
    email: EmailStr
    name: str
    avatar_url: Optional[str] = None
    is_active: bool


class AuthorProfile(BaseSchema):
    """Minimal profile joined into comments, history, presence and versions."""

    id: UUID
    name: str
    avatar_url: Optional[str] = None


class TokenResponse(BaseSchema):
    """Schema for authentication tokens."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds until access token expires


# ==========================================================================
# Roles
# ==========================================================================

class PermissionsSchema(BaseSchema):
    can_create_episodes: bool
    can_delete_episodes: bool
    can_invite_members: bool
    can_manage_team: bool
    can_publish: bool
    can_approve: bool
    can_edit_all: bool
    can_view_analytics: bool
    can_manage_workspace: bool


class RolePermissionsResponse(BaseSchema):
    """The whole role matrix, shared with clients."""

    roles: dict[UserRole, PermissionsSchema]


# ==========================================================================
# Workspaces & Team
# ==========================================================================

class WorkspaceCreate(BaseSchema):
    name: str = Field(min_length=1, max_length=255)


class WorkspaceResponse(TimestampSchema):
    id: UUID
    name: str
    owner_id: UUID
    settings: dict[str, Any] = Field(default_factory=dict)


class TeamMemberInvite(BaseSchema):
    email: EmailStr
    role: UserRole


class TeamMemberRoleUpdate(BaseSchema):
    role: UserRole


class TeamMemberResponse(TimestampSchema):
    id: UUID
    workspace_id: UUID
    user_id: UUID
    role: UserRole
    invited_by: Optional[UUID] = None
    status: TeamMemberStatus
    user: Optional[AuthorProfile] = None


# ==========================================================================
# Episodes
# ==========================================================================

class EpisodeCreate(BaseSchema):
    """Schema for creating an episode. Content sections are free-form."""

    title: str = Field(min_length=1, max_length=500)
    content: dict[str, Any] = Field(default_factory=dict)
    assigned_to: Optional[UUID] = None
    due_date: Optional[datetime] = None


class EpisodeResponse(TimestampSchema):
    id: UUID
    workspace_id: UUID
    title: str
    current_status: WorkflowStatus
    content: dict[str, Any]
    created_by: UUID
    assigned_to: Optional[UUID] = None
    due_date: Optional[datetime] = None


class CollaboratorCreate(BaseSchema):
    user_id: UUID
    role: UserRole


class CollaboratorResponse(TimestampSchema):
    id: UUID
    episode_id: UUID
    user_id: UUID
    role: UserRole
    user: Optional[AuthorProfile] = None


# ==========================================================================
# Workflow
# ==========================================================================

class TransitionRequest(BaseSchema):
    status: WorkflowStatus
    notes: Optional[str] = Field(None, max_length=5000)


class WorkflowStateResponse(BaseSchema):
    id: UUID
    episode_id: UUID
    from_status: Optional[WorkflowStatus] = None
    status: WorkflowStatus
    changed_by: UUID
    notes: Optional[str] = None
    created_at: datetime
    author: Optional[AuthorProfile] = None


class TransitionOption(BaseSchema):
    status: WorkflowStatus
    label: str


class WorkflowProgressSchema(BaseSchema):
    steps: list[WorkflowStatus]
    labels: list[str]
    step_index: Optional[int] = None
    is_detour: bool


class WorkflowResponse(BaseSchema):
    """Current status, what the caller may do next, and the full history."""

    episode_id: UUID
    current_status: WorkflowStatus
    role: UserRole
    available_transitions: list[TransitionOption]
    progress: WorkflowProgressSchema
    history: list[WorkflowStateResponse]


# ==========================================================================
# Comments
# ==========================================================================

class TextSelection(BaseSchema):
    """Anchor span inside a content section."""

    model_config = ConfigDict(str_strip_whitespace=False)

    start: int = Field(ge=0)
    end: int = Field(ge=0)
    text: str

    @field_validator("end")
    @classmethod
    def validate_range(cls, v: int, info) -> int:
        start = info.data.get("start")
        if start is not None and v < start:
            raise ValueError("end must not be before start")
        return v


class CommentCreate(BaseSchema):
    content: str = Field(min_length=1, max_length=10000)
    text_selection: Optional[TextSelection] = None
    parent_id: Optional[UUID] = None
    priority: CommentPriority = CommentPriority.MEDIUM


class CommentStatusUpdate(BaseSchema):
    status: CommentStatus


class ReactionRequest(BaseSchema):
    emoji: str = Field(min_length=1, max_length=32)


class ReactionResponse(BaseSchema):
    id: UUID
    comment_id: UUID
    user_id: UUID
    emoji: str
    created_at: datetime
    user: Optional[AuthorProfile] = None


class CommentResponse(TimestampSchema):
    id: UUID
    episode_id: UUID
    user_id: UUID
    parent_id: Optional[UUID] = None
    content: str
    text_selection: Optional[dict[str, Any]] = None
    status: CommentStatus
    priority: CommentPriority
    author: Optional[AuthorProfile] = None
    reactions: list[ReactionResponse] = Field(default_factory=list)


class CommentThreadResponse(CommentResponse):
    """Top-level comment with its direct replies."""

    replies: list[CommentResponse] = Field(default_factory=list)


# ==========================================================================
# Presence
# ==========================================================================

class CursorPosition(BaseSchema):
    section: str
    position: int = Field(ge=0)


class PresenceHeartbeat(BaseSchema):
    cursor_position: Optional[CursorPosition] = None


class PresenceResponse(BaseSchema):
    id: UUID
    user_id: UUID
    episode_id: UUID
    cursor_position: Optional[dict[str, Any]] = None
    last_seen: datetime
    is_active: bool
    user: Optional[AuthorProfile] = None


# ==========================================================================
# Notifications
# ==========================================================================

class NotificationResponse(BaseSchema):
    id: UUID
    user_id: UUID
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    read: bool
    created_at: datetime


class NotificationListResponse(BaseSchema):
    items: list[NotificationResponse]
    unread_count: int


class MarkAllReadResponse(BaseSchema):
    updated: int


# ==========================================================================
# Versions & Drafts
# ==========================================================================

class VersionCreate(BaseSchema):
    content: dict[str, Any]
    description: Optional[str] = Field(None, max_length=500)


class VersionResponse(BaseSchema):
    id: UUID
    episode_id: UUID
    content_snapshot: dict[str, Any]
    changed_by: UUID
    change_description: Optional[str] = None
    version_number: int
    timestamp: datetime
    author: Optional[AuthorProfile] = None


class DraftUpdate(BaseSchema):
    content: dict[str, Any]


class AutoSaveStateResponse(BaseSchema):
    """Debounce state of the caller's draft on one episode."""

    status: str
    has_unsaved_changes: bool
    scheduled: bool
    last_saved: Optional[datetime] = None
    last_error: Optional[str] = None
    save_count: int = 0


# ==========================================================================
# Common Response Schemas
# ==========================================================================

class MessageResponse(BaseSchema):
    """Generic message response."""

    message: str
    success: bool = True


class ErrorResponse(BaseSchema):
    """Error response schema."""

    error: str
    detail: Optional[str] = None
    code: Optional[str] = None


class HealthResponse(BaseSchema):
    """Health check response."""

    status: str
    version: str
    environment: str
    database: str
