"""Exception classes for the ingestion and sync pipeline."""
from fastapi import HTTPException


class MediaHubError(Exception):
    """Base exception for all pipeline errors."""
    pass


class ValidationError(MediaHubError):
    """Raised when a payload is missing a required field. Never retried."""
    pass


class TransientError(MediaHubError):
    """Raised when a network, API or database call fails."""
    pass


class ConflictError(MediaHubError):
    """Raised when a uniqueness constraint rejects a write (already present)."""
    pass


class PartialFailureError(MediaHubError):
    """Raised when the first of two denormalized writes succeeded and the second did not."""

    def __init__(self, message: str, completed: str, failed: str) -> None:
        super().__init__(message)
        self.completed = completed
        self.failed = failed


class RecordNotFoundError(MediaHubError):
    """Raised when a referenced row does not exist."""
    pass


class TelegramAPIError(TransientError):
    """Raised when the Telegram Bot API rejects a call."""
    pass


class GlideAPIError(TransientError):
    """Raised when the Glide API rejects a call."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def to_http_exception(exc: MediaHubError) -> HTTPException:
    """Map a pipeline error onto the HTTP status a route should answer with."""
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, RecordNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=502, detail=str(exc))
