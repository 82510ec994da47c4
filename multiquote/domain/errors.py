from __future__ import annotations

from typing import List, Optional


class MultiquoteError(Exception):
    """Base class for domain failures mapped to HTTP responses."""

    status_code: int = 400
    default_message: str = "Bad request"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentials(MultiquoteError):
    status_code = 400
    default_message = "Invalid credentials"


class AccountInactive(MultiquoteError):
    status_code = 403
    default_message = "Your account is currently inactive"


class InvalidOrExpiredCode(MultiquoteError):
    status_code = 400
    default_message = "Invalid or expired verification code"


class CodeExpired(MultiquoteError):
    """Resend requested while no live code exists; the caller must log in again."""

    status_code = 400
    default_message = "Verification code expired. Please log in again to request a new one."


class TooManyAttempts(MultiquoteError):
    status_code = 429

    def __init__(self, retry_after_minutes: int) -> None:
        self.retry_after_minutes = retry_after_minutes
        super().__init__(f"Too many attempts. Please wait {retry_after_minutes} minutes.")


class InvalidRefreshToken(MultiquoteError):
    status_code = 401
    default_message = "Invalid or expired refresh token"


class InvalidAccessToken(MultiquoteError):
    status_code = 401
    default_message = "Invalid or expired token"

    def __init__(self, message: Optional[str] = None, *, reason: str = "invalid") -> None:
        self.reason = reason
        super().__init__(message)


class UserInactiveOrMissing(MultiquoteError):
    status_code = 403
    default_message = "User inactive or no longer exists"


class Forbidden(MultiquoteError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(MultiquoteError):
    status_code = 404
    default_message = "Not found"


class Conflict(MultiquoteError):
    status_code = 400
    default_message = "Email already in use"


class ValidationFailed(MultiquoteError):
    status_code = 400
    default_message = "Validation failed"

    def __init__(self, errors: List[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or None)


class UpstreamDispatchFailure(MultiquoteError):
    status_code = 502
    default_message = "Unable to deliver email at the moment. Please try again."


class StorageFailure(MultiquoteError):
    status_code = 500
    default_message = "Internal server error"


__all__ = [
    "AccountInactive",
    "CodeExpired",
    "Conflict",
    "Forbidden",
    "InvalidAccessToken",
    "InvalidCredentials",
    "InvalidOrExpiredCode",
    "InvalidRefreshToken",
    "MultiquoteError",
    "NotFound",
    "StorageFailure",
    "TooManyAttempts",
    "UpstreamDispatchFailure",
    "UserInactiveOrMissing",
    "ValidationFailed",
]
