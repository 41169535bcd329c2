"""
AppStorys Core - shared error taxonomy

Every SDK failure derives from AppStorysError so callers can catch
one base class.
"""

from .exceptions import (
    AppStorysError,
    AuthenticationFailedError,
    DecodingError,
    InvalidParameterError,
    InvalidResponseError,
    InvalidURLError,
    NetworkError,
    NoAccessTokenError,
    NotInitializedError,
    ServerError,
    StorageError,
    TransportErrorKind,
)

__all__ = [
    "AppStorysError",
    "NotInitializedError",
    "InvalidURLError",
    "InvalidResponseError",
    "DecodingError",
    "AuthenticationFailedError",
    "ServerError",
    "NetworkError",
    "TransportErrorKind",
    "NoAccessTokenError",
    "StorageError",
    "InvalidParameterError",
]
