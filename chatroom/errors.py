"""
Error taxonomy for the chat core.

Every error carries the HTTP status it maps to, so the API layer can
translate it without knowing which component raised it.
"""

from fastapi import status


class ChatError(Exception):
    """Base class for all business and storage errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "internal error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(ChatError):
    """Malformed or missing input; never reaches the store."""

    status_code = 422
    default_detail = "invalid input"


class Conflict(ChatError):
    """Duplicate participant name."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "name already taken"


class NotFound(ChatError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "not found"


class Unauthorized(ChatError):
    """Actor is not the owner of the resource."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "not the author"


class StorageError(ChatError):
    """The backing store failed. Surfaced to clients as a generic 500."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "storage unavailable"
