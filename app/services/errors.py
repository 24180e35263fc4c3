"""
Typed errors raised by the team membership service.

Route handlers map each kind to a stable HTTP status through the exception
handler registered in app.main.
"""

from enum import Enum

from fastapi import status


class ErrorCode(str, Enum):
    VALIDATION_FAILED = "VALIDATION_FAILED"
    CONFLICT = "CONFLICT"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"


class TeamServiceError(Exception):
    """Base class for all membership service errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: ErrorCode = ErrorCode.VALIDATION_FAILED

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail
        # Failures of compensating actions that ran before this error surfaced
        self.compensation_failures: list[Exception] = []

    @property
    def public_message(self) -> str:
        """Message safe to show to end users."""
        return self.message

    def to_dict(self) -> dict:
        return {"detail": self.public_message, "code": self.code.value}


class ValidationError(TeamServiceError):
    """Caller-supplied input violates a precondition."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = ErrorCode.VALIDATION_FAILED


class ConflictError(TeamServiceError):
    """Operation is blocked by the current state."""

    status_code = status.HTTP_409_CONFLICT
    code = ErrorCode.CONFLICT


class ForbiddenError(TeamServiceError):
    """Actor lacks the required role, status or membership."""

    status_code = status.HTTP_403_FORBIDDEN
    code = ErrorCode.FORBIDDEN


class NotFoundError(TeamServiceError):
    """Referenced team, membership or invite does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    code = ErrorCode.NOT_FOUND


class LimitExceededError(TeamServiceError):
    """A per-user quota has been reached."""

    status_code = status.HTTP_403_FORBIDDEN
    code = ErrorCode.LIMIT_EXCEEDED


class PersistenceError(TeamServiceError):
    """The data store failed.

    ``message`` names the operation, ``detail`` carries the store's original
    message for diagnostics. End users only ever see a generic message.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = ErrorCode.PERSISTENCE_FAILED

    def __init__(self, message: str, detail: str | None = None, operation: str | None = None):
        super().__init__(message, detail)
        self.operation = operation

    @property
    def public_message(self) -> str:
        return "Internal server error"
