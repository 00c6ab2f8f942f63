"""Exception hierarchy for BlueBoxy."""

import asyncio
import json
from enum import Enum
from typing import Any

from pydantic import ValidationError


class BlueBoxyError(Exception):
    """Base class for all exceptions in BlueBoxy."""


class CacheError(BlueBoxyError):
    """Exception raised for cache-related errors."""


class SerializationError(CacheError):
    """A value could not be encoded for storage or decoded from it."""


class SessionError(BlueBoxyError):
    """Exception raised for session-related errors."""


class AuthExpiredError(SessionError):
    """There is no valid authenticated session."""


class RefreshError(SessionError):
    """The token refresh call failed."""


class ErrorKind(str, Enum):
    """Kinds of failure a network-backed operation can end in."""

    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "notFound"
    BAD_REQUEST = "badRequest"
    SERVER = "server"
    DECODING = "decoding"
    CONNECTIVITY = "connectivity"
    CANCELLED = "cancelled"
    RATE_LIMITED = "rateLimited"
    UNKNOWN = "unknown"


_TITLES = {
    ErrorKind.UNAUTHORIZED: "Sign In Required",
    ErrorKind.FORBIDDEN: "Access Denied",
    ErrorKind.NOT_FOUND: "Not Found",
    ErrorKind.BAD_REQUEST: "Invalid Request",
    ErrorKind.SERVER: "Server Error",
    ErrorKind.DECODING: "Data Error",
    ErrorKind.CONNECTIVITY: "Connection Error",
    ErrorKind.CANCELLED: "Cancelled",
    ErrorKind.RATE_LIMITED: "Too Many Requests",
    ErrorKind.UNKNOWN: "Error",
}

_DEFAULT_MESSAGES = {
    ErrorKind.UNAUTHORIZED: "You're not signed in. Please log in to continue.",
    ErrorKind.FORBIDDEN: "You don't have permission to access this content.",
    ErrorKind.NOT_FOUND: "We couldn't find what you're looking for.",
    ErrorKind.BAD_REQUEST: "There was a problem with your request.",
    ErrorKind.SERVER: "We're experiencing server issues. Please try again later.",
    ErrorKind.DECODING: "We couldn't process the server response. Please try again.",
    ErrorKind.CONNECTIVITY: "Please check your internet connection and try again.",
    ErrorKind.CANCELLED: "Request was cancelled.",
    ErrorKind.RATE_LIMITED: (
        "You're making requests too quickly. Please wait a moment and try again."
    ),
    ErrorKind.UNKNOWN: "Something unexpected happened. Please try again.",
}

_RECOVERY_SUGGESTIONS = {
    ErrorKind.UNAUTHORIZED: "Please sign in to your account and try again.",
    ErrorKind.FORBIDDEN: (
        "Contact support if you believe you should have access to this content."
    ),
    ErrorKind.CONNECTIVITY: "Check your internet connection and try again.",
    ErrorKind.SERVER: (
        "Our servers are experiencing issues. Please try again in a few minutes."
    ),
    ErrorKind.RATE_LIMITED: "Wait a few moments before making another request.",
    ErrorKind.BAD_REQUEST: "Please check your input and try again.",
}

_RETRYABLE = frozenset(
    {
        ErrorKind.CONNECTIVITY,
        ErrorKind.SERVER,
        ErrorKind.RATE_LIMITED,
        ErrorKind.UNKNOWN,
    }
)

_CLIENT_ERRORS = frozenset(
    {
        ErrorKind.BAD_REQUEST,
        ErrorKind.UNAUTHORIZED,
        ErrorKind.FORBIDDEN,
        ErrorKind.NOT_FOUND,
        ErrorKind.DECODING,
    }
)


class NetworkError(BlueBoxyError):
    """Structured, user-presentable failure of a network-backed operation.

    Args:
        kind: What went wrong
        message: Optional detail; replaces the default user message when set
        status: HTTP status code, if one was received
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str | None = None,
        status: int | None = None,
    ) -> None:
        self.kind = ErrorKind(kind)
        self.message = message
        self.status = status
        super().__init__(self.user_message)

    @classmethod
    def unauthorized(cls) -> "NetworkError":
        return cls(ErrorKind.UNAUTHORIZED, status=401)

    @classmethod
    def not_found(cls) -> "NetworkError":
        return cls(ErrorKind.NOT_FOUND, status=404)

    @classmethod
    def connectivity(cls, details: str | None = None) -> "NetworkError":
        return cls(ErrorKind.CONNECTIVITY, details)

    @classmethod
    def decoding(cls, details: str | None = None) -> "NetworkError":
        return cls(ErrorKind.DECODING, details)

    @classmethod
    def from_status(cls, status: int, message: str | None = None) -> "NetworkError":
        """Map an HTTP status code to an error."""
        if status == 400:
            kind = ErrorKind.BAD_REQUEST
        elif status == 401:
            kind = ErrorKind.UNAUTHORIZED
        elif status == 403:
            kind = ErrorKind.FORBIDDEN
        elif status == 404:
            kind = ErrorKind.NOT_FOUND
        elif status == 429:
            kind = ErrorKind.RATE_LIMITED
        elif 500 <= status < 600:
            kind = ErrorKind.SERVER
        else:
            kind = ErrorKind.UNKNOWN
        return cls(kind, message, status)

    @classmethod
    def from_exception(cls, exc: BaseException) -> "NetworkError":
        """Convert an arbitrary exception into a NetworkError for display."""
        if isinstance(exc, NetworkError):
            return exc
        if isinstance(exc, asyncio.CancelledError):
            return cls(ErrorKind.CANCELLED)
        if isinstance(exc, TimeoutError):
            return cls.connectivity("The request timed out. Please try again.")
        if isinstance(exc, ConnectionError):
            return cls.connectivity(
                "Cannot reach the server. Please check your connection."
            )
        if isinstance(exc, (ValidationError, json.JSONDecodeError, SerializationError)):
            return cls.decoding(str(exc))
        if isinstance(exc, AuthExpiredError):
            return cls.unauthorized()
        return cls(ErrorKind.UNKNOWN)

    @property
    def title(self) -> str:
        """Short description for alerts."""
        return _TITLES[self.kind]

    @property
    def user_message(self) -> str:
        if self.message and self.kind in (
            ErrorKind.BAD_REQUEST,
            ErrorKind.SERVER,
            ErrorKind.CONNECTIVITY,
        ):
            return self.message
        if self.kind is ErrorKind.UNKNOWN and self.status is not None:
            return (
                f"Something unexpected happened (Error {self.status}). "
                "Please try again."
            )
        return _DEFAULT_MESSAGES[self.kind]

    @property
    def is_retryable(self) -> bool:
        return self.kind in _RETRYABLE

    @property
    def is_authentication_error(self) -> bool:
        return self.kind in (ErrorKind.UNAUTHORIZED, ErrorKind.FORBIDDEN)

    @property
    def is_client_error(self) -> bool:
        return self.kind in _CLIENT_ERRORS

    @property
    def recovery_suggestion(self) -> str:
        return _RECOVERY_SUGGESTIONS.get(
            self.kind, "Try again, and contact support if the problem persists."
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.kind.value}
        if self.message is not None:
            data["message"] = self.message
        if self.status is not None:
            data["status"] = self.status
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NetworkError":
        try:
            kind = ErrorKind(data.get("type"))
        except ValueError:
            kind = ErrorKind.UNKNOWN
        return cls(kind, data.get("message"), data.get("status"))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NetworkError):
            return NotImplemented
        return (self.kind, self.message, self.status) == (
            other.kind,
            other.message,
            other.status,
        )

    def __hash__(self) -> int:
        return hash((self.kind, self.message, self.status))

    def __repr__(self) -> str:
        return (
            f"NetworkError(kind={self.kind.value!r}, message={self.message!r}, "
            f"status={self.status!r})"
        )
