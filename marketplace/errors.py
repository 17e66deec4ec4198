"""Application errors and response helpers."""

from typing import Any, Dict

from fastapi import status


class AppError(Exception):
    """Base application error."""

    def __init__(self, message: str, code: str, http_status: int = 400):
        """Initialize error."""
        self.message = message
        self.code = code
        self.http_status = http_status
        super().__init__(message)


class ValidationError(AppError):
    """Malformed or out-of-range input."""

    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, "validation_error", status.HTTP_400_BAD_REQUEST)


class NotFoundError(AppError):
    """Unknown user, server, invitation or token."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message, "not_found", status.HTTP_404_NOT_FOUND)


class AuthenticationError(AppError):
    """Missing, invalid or expired identity header."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message, "not_authenticated", status.HTTP_401_UNAUTHORIZED)


class AuthorizationError(AppError):
    """Caller lacks the required relationship to the resource."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, "unauthorized", status.HTTP_403_FORBIDDEN)


class ConflictError(AppError):
    """Duplicate active share or duplicate pending invitation."""

    def __init__(self, message: str = "Conflict"):
        super().__init__(message, "conflict", status.HTTP_400_BAD_REQUEST)


class InsufficientFundsError(AppError):
    """Balance is below the requested deduction."""

    def __init__(self, message: str = "Insufficient credits"):
        super().__init__(message, "insufficient_funds", status.HTTP_400_BAD_REQUEST)


class InvalidStateError(AppError):
    """Invitation is no longer pending or has expired."""

    def __init__(self, message: str = "This invitation is no longer valid"):
        super().__init__(message, "invalid_state", status.HTTP_400_BAD_REQUEST)


class InternalError(AppError):
    """Unexpected failure during a transactional write. Details stay in the log."""

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message, "internal_error", status.HTTP_500_INTERNAL_SERVER_ERROR)


def error_response(error: AppError) -> Dict[str, Any]:
    """Create a standardized error response."""
    return {
        "error": {
            "code": error.code,
            "message": error.message,
        }
    }


__all__ = [
    "AppError",
    "ValidationError",
    "NotFoundError",
    "AuthenticationError",
    "AuthorizationError",
    "ConflictError",
    "InsufficientFundsError",
    "InvalidStateError",
    "InternalError",
    "error_response",
]
