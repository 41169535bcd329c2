"""
AppStorys Core Exceptions

Error taxonomy shared by authentication, transport and offline delivery.
"""

from enum import Enum
from typing import Any, Dict, Optional


class AppStorysError(Exception):
    """Base exception for SDK operations."""

    error_code = "APPSTORYS_ERROR"

    def __init__(self, message: str = "AppStorys error"):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "error_code": self.error_code,
            "message": self.message,
        }


class NotInitializedError(AppStorysError):
    """SDK used before configuration or authentication completed."""

    error_code = "NOT_INITIALIZED"

    def __init__(self, message: str = "SDK not initialized. Call initialize() first."):
        super().__init__(message)


class InvalidURLError(AppStorysError):
    """
    Malformed endpoint URL.

    This is a configuration bug and is fatal to the call that hit it.
    """

    error_code = "INVALID_URL"

    def __init__(self, message: str = "Invalid URL", url: Optional[str] = None):
        self.url = url
        super().__init__(message)


class InvalidResponseError(AppStorysError):
    """The server answered with something that is not a usable HTTP response."""

    error_code = "INVALID_RESPONSE"

    def __init__(self, message: str = "Invalid server response"):
        super().__init__(message)


class DecodingError(InvalidResponseError):
    """Response body could not be decoded."""

    error_code = "DECODING_ERROR"

    def __init__(
        self,
        message: str = "Failed to decode response",
        original_error: Optional[Exception] = None,
    ):
        self.original_error = original_error
        super().__init__(message)


class AuthenticationFailedError(AppStorysError):
    """Credentials were rejected (HTTP 401/403). Never retried."""

    error_code = "AUTHENTICATION_FAILED"

    def __init__(
        self,
        message: str = "Authentication failed. Check your credentials.",
        status_code: Optional[int] = None,
    ):
        self.status_code = status_code
        super().__init__(message)


class ServerError(AppStorysError):
    """Unexpected HTTP status from the backend."""

    error_code = "SERVER_ERROR"

    def __init__(self, status_code: int, message: Optional[str] = None):
        self.status_code = status_code
        super().__init__(message or f"Server error: {status_code}")

    @property
    def is_server_side(self) -> bool:
        """True for 5xx statuses."""
        return 500 <= self.status_code <= 599

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["status_code"] = self.status_code
        return data


class TransportErrorKind(str, Enum):
    """Transport-layer failure categories."""

    NOT_CONNECTED = "not_connected"
    CANNOT_FIND_HOST = "cannot_find_host"
    CANNOT_CONNECT = "cannot_connect"
    CONNECTION_LOST = "connection_lost"
    DNS_FAILURE = "dns_failure"
    TIMED_OUT = "timed_out"
    OTHER = "other"


class NetworkError(AppStorysError):
    """Transport failure before an HTTP status was received."""

    error_code = "NETWORK_ERROR"

    def __init__(
        self,
        message: str,
        kind: TransportErrorKind = TransportErrorKind.OTHER,
        original_error: Optional[Exception] = None,
    ):
        self.kind = kind
        self.original_error = original_error
        super().__init__(message)

    @property
    def is_timeout(self) -> bool:
        return self.kind == TransportErrorKind.TIMED_OUT

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["kind"] = self.kind.value
        return data


class NoAccessTokenError(AppStorysError):
    """No cached credential is available; the caller must re-authenticate."""

    error_code = "NO_ACCESS_TOKEN"

    def __init__(self, message: str = "No access token found."):
        super().__init__(message)


class StorageError(AppStorysError):
    """Secure-store write or delete failure."""

    error_code = "STORAGE_ERROR"

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.key = key
        self.original_error = original_error
        super().__init__(message)


class InvalidParameterError(AppStorysError):
    """Caller passed an out-of-range argument."""

    error_code = "INVALID_PARAMETER"
