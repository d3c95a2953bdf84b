"""
Error taxonomy for the HMS client.

Every failure a caller can see maps onto one of these classes, and every
class carries a message that is safe to show to an end user.
"""

from typing import Any, Optional


class HmsClientError(Exception):
    """
    Base class for client errors.

    Attributes:
        message: Human-readable message for the UI
        status: HTTP status code, if the error came from a response
    """

    default_message = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None, status: Optional[int] = None):
        self.message = message or self.default_message
        self.status = status
        super().__init__(self.message)


class CredentialError(HmsClientError):
    """Missing, invalid or expired credentials. Resolved by logging out."""

    default_message = "Your session has expired. Please log in again."


class ValidationError(HmsClientError):
    """Bad input caught before any network call."""

    default_message = "Please check your input."


class AuthorizationError(HmsClientError):
    """Caller is authenticated but may not act on this resource (403)."""

    default_message = "You are not allowed to perform this action."


class NotFoundError(HmsClientError):
    """Resource not found (404)."""

    default_message = "Resource not found."


class TransientError(HmsClientError):
    """Network failure, 5xx or any other unexpected status. The user may retry."""

    default_message = "The request failed. Please try again."


def _backend_message(body: Any) -> Optional[str]:
    # Backend errors are either {"message": "..."} or a bare string
    if isinstance(body, dict):
        message = body.get("message") or body.get("error")
        return str(message) if message else None
    if isinstance(body, str) and body.strip():
        return body.strip()
    return None


def error_for_status(status: int, body: Any = None) -> HmsClientError:
    """
    Map an HTTP status (and optional response body) to an error instance.

    Args:
        status: HTTP status code (non-2xx)
        body: Decoded response body, used for the backend's own message

    Returns:
        HmsClientError subclass instance
    """
    message = _backend_message(body)
    if status == 401:
        return CredentialError(status=status)
    if status == 403:
        return AuthorizationError(message, status=status)
    if status == 404:
        return NotFoundError(message, status=status)
    if status in (400, 422):
        return ValidationError(message, status=status)
    return TransientError(message, status=status)


def user_message(error: BaseException) -> str:
    """Render any exception as a single line for the UI (never a traceback)."""
    if isinstance(error, HmsClientError):
        return error.message
    return TransientError.default_message
