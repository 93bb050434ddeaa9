"""
Error taxonomy for remote synchronization.

Every failure raised while talking to a provider is converted into a
SyncError carrying a kind and a fixed retryable flag. Callers use the
flag to decide whether to back off and retry or surface the error to the
user.
"""

from __future__ import annotations

import logging
import socket
from enum import Enum
from typing import Any

import httplib2
from google.auth.exceptions import RefreshError, TransportError
from googleapiclient.errors import HttpError

logger = logging.getLogger(__name__)


class SyncErrorKind(str, Enum):
    """Kinds of synchronization failures."""

    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_EXPIRED = "AUTH_EXPIRED"
    AUTH_INVALID = "AUTH_INVALID"
    NETWORK_ERROR = "NETWORK_ERROR"
    NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    NETWORK_UNAVAILABLE = "NETWORK_UNAVAILABLE"
    RATE_LIMIT = "RATE_LIMIT"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_DATA = "INVALID_DATA"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    SERVER_ERROR = "SERVER_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    SYNC_FAILED = "SYNC_FAILED"


# Retry logic downstream depends on this table; do not derive it from messages
RETRYABLE_KINDS: dict[SyncErrorKind, bool] = {
    SyncErrorKind.AUTH_REQUIRED: False,
    SyncErrorKind.AUTH_EXPIRED: False,
    SyncErrorKind.AUTH_INVALID: False,
    SyncErrorKind.NETWORK_ERROR: True,
    SyncErrorKind.NETWORK_TIMEOUT: True,
    SyncErrorKind.NETWORK_UNAVAILABLE: True,
    SyncErrorKind.RATE_LIMIT: True,
    SyncErrorKind.QUOTA_EXCEEDED: True,
    SyncErrorKind.VALIDATION_ERROR: False,
    SyncErrorKind.INVALID_DATA: False,
    SyncErrorKind.PERMISSION_DENIED: False,
    SyncErrorKind.FORBIDDEN: False,
    SyncErrorKind.NOT_FOUND: False,
    SyncErrorKind.RESOURCE_CONFLICT: False,
    SyncErrorKind.SERVER_ERROR: True,
    SyncErrorKind.SERVICE_UNAVAILABLE: True,
    SyncErrorKind.UNKNOWN_ERROR: True,
    SyncErrorKind.SYNC_FAILED: True,
}

USER_MESSAGES: dict[SyncErrorKind, str] = {
    SyncErrorKind.AUTH_REQUIRED: "Not connected. Please connect your account.",
    SyncErrorKind.AUTH_EXPIRED: "Your session has expired. Please reconnect.",
    SyncErrorKind.AUTH_INVALID: "Invalid credentials. Please reconnect.",
    SyncErrorKind.NETWORK_ERROR: "Network error. Check your connection.",
    SyncErrorKind.NETWORK_TIMEOUT: "The request timed out. Please try again.",
    SyncErrorKind.NETWORK_UNAVAILABLE: "No network connection available.",
    SyncErrorKind.RATE_LIMIT: "Too many requests. Please wait a moment.",
    SyncErrorKind.QUOTA_EXCEEDED: "API quota exceeded. Try again later.",
    SyncErrorKind.VALIDATION_ERROR: "The data sent was rejected as invalid.",
    SyncErrorKind.INVALID_DATA: "The data received was invalid.",
    SyncErrorKind.PERMISSION_DENIED: "Permission denied for this resource.",
    SyncErrorKind.FORBIDDEN: "Access to this resource is forbidden.",
    SyncErrorKind.NOT_FOUND: "The requested resource was not found.",
    SyncErrorKind.RESOURCE_CONFLICT: "The resource was modified elsewhere.",
    SyncErrorKind.SERVER_ERROR: "The provider reported a server error.",
    SyncErrorKind.SERVICE_UNAVAILABLE: "The service is temporarily unavailable.",
    SyncErrorKind.UNKNOWN_ERROR: "An unexpected error occurred.",
    SyncErrorKind.SYNC_FAILED: "Synchronization failed.",
}

AUTH_KEYWORDS = ("token", "expired", "unauthorized")
NETWORK_KEYWORDS = ("network", "fetch", "connection")


class SyncError(Exception):
    """
    Classified synchronization failure.

    Attributes:
        kind: Category of the failure
        message: Human readable description
        retryable: Whether a caller may retry the operation
        cause: Original exception, if any
    """

    def __init__(
        self,
        kind: SyncErrorKind,
        message: str,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.kind = SyncErrorKind(kind)
        self.message = message
        self.retryable = RETRYABLE_KINDS[self.kind]
        self.cause = cause

    def __repr__(self) -> str:
        return (
            f"SyncError(kind={self.kind.value}, message={self.message!r}, "
            f"retryable={self.retryable})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging or status output."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "retryable": self.retryable,
        }


def _status_of(error: BaseException) -> int | None:
    """Extract an HTTP status code from an exception, if it carries one."""
    if isinstance(error, HttpError):
        try:
            return int(error.resp.status)
        except (AttributeError, TypeError, ValueError):
            return None

    for attr in ("status", "status_code", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and 100 <= value < 600:
            return value
    return None


def _message_of(error: BaseException) -> str:
    """
    Get the text used for keyword matching.

    HttpError.__str__ embeds the request URI, which may contain words like
    "pageToken"; only the reason is inspected for those errors.
    """
    if isinstance(error, HttpError):
        reason = getattr(error, "reason", None)
        return str(reason) if reason else ""
    return str(error)


def classify(error: BaseException | Any) -> SyncError:
    """
    Convert an arbitrary failure into a SyncError.

    Classifying an existing SyncError returns it unchanged. Otherwise the
    status code and message are matched in precedence order: auth,
    network, rate limit, validation, permission, not found, conflict,
    server, unknown.

    Args:
        error: Exception (or any value) describing the failure

    Returns:
        The classified SyncError
    """
    if isinstance(error, SyncError):
        return error

    if not isinstance(error, BaseException):
        error = Exception(str(error))

    status = _status_of(error)
    message = _message_of(error) or error.__class__.__name__
    text = message.lower()

    def make(kind: SyncErrorKind) -> SyncError:
        return SyncError(kind, message, cause=error)

    # Authentication
    if isinstance(error, RefreshError):
        if "invalid_grant" in text or "invalid" in text:
            return make(SyncErrorKind.AUTH_INVALID)
        if "expired" in text:
            return make(SyncErrorKind.AUTH_EXPIRED)
        return make(SyncErrorKind.AUTH_REQUIRED)
    if status == 401 or any(word in text for word in AUTH_KEYWORDS):
        if "expired" in text:
            return make(SyncErrorKind.AUTH_EXPIRED)
        return make(SyncErrorKind.AUTH_REQUIRED)

    # Network
    if isinstance(error, (TimeoutError, socket.timeout)) or "timed out" in text:
        return make(SyncErrorKind.NETWORK_TIMEOUT)
    if "offline" in text:
        return make(SyncErrorKind.NETWORK_UNAVAILABLE)
    if (
        isinstance(
            error,
            (ConnectionError, httplib2.HttpLib2Error, TransportError, socket.gaierror),
        )
        or status in (502, 503, 504)
        or any(word in text for word in NETWORK_KEYWORDS)
    ):
        return make(SyncErrorKind.NETWORK_ERROR)

    # Rate limiting
    if status == 429 or "rate limit" in text:
        return make(SyncErrorKind.RATE_LIMIT)
    if "quota" in text:
        return make(SyncErrorKind.QUOTA_EXCEEDED)

    # Validation
    if status == 400 or "invalid" in text:
        return make(SyncErrorKind.VALIDATION_ERROR)

    # Permission
    if status == 403 or "forbidden" in text or "permission" in text:
        return make(SyncErrorKind.PERMISSION_DENIED)

    # Not found
    if status == 404 or "not found" in text:
        return make(SyncErrorKind.NOT_FOUND)

    if status == 409:
        return make(SyncErrorKind.RESOURCE_CONFLICT)

    # Server
    if status is not None and status >= 500:
        return make(SyncErrorKind.SERVER_ERROR)

    return make(SyncErrorKind.UNKNOWN_ERROR)


def is_auth_error(error: BaseException) -> bool:
    """Check whether an error requires the user to reconnect."""
    return classify(error).kind in (
        SyncErrorKind.AUTH_REQUIRED,
        SyncErrorKind.AUTH_EXPIRED,
        SyncErrorKind.AUTH_INVALID,
    )


def is_network_error(error: BaseException) -> bool:
    """Check whether an error is a transient network failure."""
    return classify(error).kind in (
        SyncErrorKind.NETWORK_ERROR,
        SyncErrorKind.NETWORK_TIMEOUT,
        SyncErrorKind.NETWORK_UNAVAILABLE,
    )


def user_message(error: BaseException) -> str:
    """Get a short message suitable for showing to the user."""
    return USER_MESSAGES[classify(error).kind]


__all__ = [
    "SyncErrorKind",
    "SyncError",
    "RETRYABLE_KINDS",
    "classify",
    "is_auth_error",
    "is_network_error",
    "user_message",
]
