"""HTTP Transport for the AppStorys SDK.

Provides the async HTTP client shared by authentication and delivery:
- JSON POST with bearer authentication
- Per-request timeouts
- Mapping of httpx transport failures onto the SDK error taxonomy
- Request statistics
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from ..core.exceptions import (
    DecodingError,
    InvalidParameterError,
    InvalidResponseError,
    InvalidURLError,
    NetworkError,
    TransportErrorKind,
)
from ..utils.encryption import redact_dict
from .config import SDKConfig

logger = logging.getLogger(__name__)

_UNKNOWN_HOST_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "no address associated",
    "no such host",
)
_DNS_MARKERS = (
    "temporary failure in name resolution",
    "getaddrinfo failed",
    "name resolution",
)
_OFFLINE_MARKERS = (
    "network is unreachable",
    "no route to host",
)


def classify_transport_error(error: httpx.TransportError) -> NetworkError:
    """Wrap an httpx transport failure in a NetworkError of the right kind."""
    message = str(error) or type(error).__name__
    lowered = message.lower()

    if isinstance(error, httpx.TimeoutException):
        kind = TransportErrorKind.TIMED_OUT
    elif isinstance(error, httpx.ConnectError):
        if any(marker in lowered for marker in _UNKNOWN_HOST_MARKERS):
            kind = TransportErrorKind.CANNOT_FIND_HOST
        elif any(marker in lowered for marker in _DNS_MARKERS):
            kind = TransportErrorKind.DNS_FAILURE
        elif any(marker in lowered for marker in _OFFLINE_MARKERS):
            kind = TransportErrorKind.NOT_CONNECTED
        else:
            kind = TransportErrorKind.CANNOT_CONNECT
    elif isinstance(error, (httpx.ReadError, httpx.WriteError, httpx.CloseError)):
        kind = TransportErrorKind.CONNECTION_LOST
    elif isinstance(error, httpx.RemoteProtocolError):
        kind = TransportErrorKind.CONNECTION_LOST
    elif isinstance(error, httpx.ProxyError):
        kind = TransportErrorKind.CANNOT_CONNECT
    else:
        kind = TransportErrorKind.OTHER

    return NetworkError(f"Network error: {message}", kind=kind, original_error=error)


def validate_url(url: str) -> httpx.URL:
    """Parse an endpoint URL, rejecting anything that is not http(s) with a host.

    Raises:
        InvalidURLError: If the URL is malformed
    """
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError) as e:
        raise InvalidURLError(f"Invalid URL: {url} ({e})", url=url)

    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise InvalidURLError(f"Invalid URL: {url}", url=url)

    return parsed


@dataclass
class ApiResponse:
    """An HTTP response reduced to what the SDK inspects."""

    status_code: int
    content: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code <= 299

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            DecodingError: If the body is not valid JSON
        """
        try:
            return json.loads(self.content)
        except (ValueError, UnicodeDecodeError) as e:
            raise DecodingError(f"Failed to decode response: {e}", original_error=e)


class ApiClient:
    """Async HTTP client for the AppStorys backend.

    Features:
    - Shared connection pool (httpx.AsyncClient)
    - Bearer token header per request
    - Request ID header for tracing
    - Transport errors normalized to NetworkError
    """

    def __init__(
        self,
        config: Optional[SDKConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize API client.

        Args:
            config: SDK configuration
            transport: Optional httpx transport (tests inject MockTransport)
        """
        self.config = config or SDKConfig()
        self._client = httpx.AsyncClient(
            transport=transport,
            headers=self.config.get_headers(),
            timeout=self.config.request_timeout,
        )
        self._request_count = 0
        self._error_count = 0
        self._last_request_time: Optional[datetime] = None

    async def post(
        self,
        url: str,
        data: Dict[str, Any],
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ApiResponse:
        """Make a JSON POST request.

        Args:
            url: Absolute endpoint URL
            data: JSON-serializable body
            token: Bearer token, if the endpoint is authenticated
            timeout: Per-request timeout override in seconds

        Returns:
            The response, whatever its status code

        Raises:
            InvalidURLError: If the URL is malformed
            NetworkError: On transport failure
            InvalidResponseError: If the exchange did not yield a usable response
        """
        validate_url(url)

        headers = {"X-Request-ID": str(uuid.uuid4())[:8]}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            body = json.dumps(data, default=str)
        except (TypeError, ValueError) as e:
            raise InvalidParameterError(f"Request body is not JSON serializable: {e}")

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"POST {url}")
            logger.debug(f"Body: {json.dumps(redact_dict(data), default=str)}")

        try:
            response = await self._client.post(
                url,
                content=body,
                headers=headers,
                timeout=timeout if timeout is not None else self.config.request_timeout,
            )
        except httpx.TransportError as e:
            self._error_count += 1
            raise classify_transport_error(e)
        except httpx.RequestError as e:
            self._error_count += 1
            raise InvalidResponseError(f"Invalid server response: {e}")

        self._request_count += 1
        self._last_request_time = datetime.now()
        logger.debug(f"Response: {response.status_code}")

        return ApiResponse(
            status_code=response.status_code,
            content=response.content,
            headers=dict(response.headers),
        )

    async def close(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()

    def get_stats(self) -> Dict[str, Any]:
        """Get client statistics."""
        return {
            "request_count": self._request_count,
            "error_count": self._error_count,
            "last_request": (
                self._last_request_time.isoformat() if self._last_request_time else None
            ),
        }
