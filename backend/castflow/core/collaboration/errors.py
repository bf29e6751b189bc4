"""
Collaboration domain errors.

Raised by the core services before any write happens; the API layer maps
each one to an HTTP status in a single exception handler.
"""

from typing import Any, Optional


class CollaborationError(Exception):
    """Base class for rejected collaboration operations."""

    status_code: int = 400
    code: str = "COLLABORATION_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(CollaborationError):
    status_code = 404
    code = "NOT_FOUND"


class PermissionDeniedError(CollaborationError):
    """Acting user's role lacks the capability the operation needs."""

    status_code = 403
    code = "PERMISSION_DENIED"


class InvalidTransitionError(CollaborationError):
    """Target status is not reachable from the episode's current status."""

    status_code = 422
    code = "INVALID_TRANSITION"


class StaleStatusError(CollaborationError):
    """Episode status changed between read and conditional write."""

    status_code = 409
    code = "STALE_STATUS"


class ValidationError(CollaborationError):
    status_code = 422
    code = "VALIDATION_ERROR"


class VersionConflictError(CollaborationError):
    """Version number stayed contended after the bounded retries."""

    status_code = 409
    code = "VERSION_CONFLICT"
