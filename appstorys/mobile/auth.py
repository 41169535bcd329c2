"""Account Authentication for the AppStorys SDK.

Provides the authentication session used by every campaign request:
- Account validation handshake against /validate-account
- Exponential backoff on transient network and server failures
- Token persistence in the secure token store
- Cold-start token recovery from the store
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..core.exceptions import (
    AppStorysError,
    AuthenticationFailedError,
    DecodingError,
    NoAccessTokenError,
    ServerError,
)
from .backoff import BackoffPolicy
from .client import ApiClient
from .config import SDKConfig
from .keychain import ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, SecureTokenStore

logger = logging.getLogger(__name__)


class AuthState(str, Enum):
    """Authentication states."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class Credentials:
    """Access/refresh token pair."""

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None

    @classmethod
    def from_response(cls, data: Any) -> "Credentials":
        """Create from a /validate-account response body.

        Raises:
            DecodingError: If either token is missing or not a string
        """
        if not isinstance(data, dict):
            raise DecodingError("Token response is not a JSON object")

        access_token = data.get("access_token")
        refresh_token = data.get("refresh_token")
        if not isinstance(access_token, str) or not isinstance(refresh_token, str):
            raise DecodingError("Token response missing access_token or refresh_token")

        return cls(access_token=access_token, refresh_token=refresh_token)


class AuthSession:
    """Authentication session manager.

    Features:
    - Idempotent authenticate(): no network call once authenticated
    - Single in-flight handshake shared by concurrent callers
    - Retry of 5xx and connectivity failures, no retry on 401/403
    - Store-then-cache token writes
    """

    def __init__(
        self,
        config: SDKConfig,
        token_store: SecureTokenStore,
        client: Optional[ApiClient] = None,
        backoff: Optional[BackoffPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize auth session.

        Args:
            config: SDK configuration (account_id, app_id, base_url)
            token_store: Durable secret storage
            client: HTTP client; one is created from config if omitted
            backoff: Retry schedule
            sleep: Coroutine used to wait between attempts
        """
        self.config = config
        self.token_store = token_store
        self.client = client or ApiClient(config)
        self.backoff = backoff or BackoffPolicy()
        self._sleep = sleep
        self._state = AuthState.UNAUTHENTICATED
        self._state_callbacks: List[Callable[[AuthState], None]] = []
        self._credentials = Credentials()
        self._lock = asyncio.Lock()
        self._inflight: Optional["asyncio.Future[Credentials]"] = None
        self._attempt_count = 0

    @property
    def state(self) -> AuthState:
        """Get current auth state."""
        return self._state

    @property
    def is_authenticated(self) -> bool:
        """Check if the session holds a token from a completed handshake."""
        return self._state == AuthState.AUTHENTICATED and self._credentials.access_token is not None

    @property
    def endpoint(self) -> str:
        return f"{self.config.base_url}/validate-account"

    def on_state_change(self, callback: Callable[[AuthState], None]) -> None:
        """Register state change callback."""
        self._state_callbacks.append(callback)

    def _set_state(self, state: AuthState) -> None:
        """Set auth state and notify callbacks."""
        if self._state != state:
            old_state = self._state
            self._state = state
            logger.info(f"Auth state changed: {old_state.value} -> {state.value}")
            for callback in self._state_callbacks:
                try:
                    callback(state)
                except Exception as e:
                    logger.warning(f"State callback error: {e}")

    async def authenticate(self) -> Credentials:
        """Authenticate the account and store tokens.

        Concurrent callers wait on the same handshake.

        Returns:
            The issued credentials

        Raises:
            InvalidURLError: If base_url is malformed
            InvalidResponseError: If the response cannot be used
            AuthenticationFailedError: On 401/403
            ServerError: On 5xx after the retry budget, or any other status
            NetworkError: On connectivity failure after the retry budget
            StorageError: If the tokens cannot be persisted
        """
        async with self._lock:
            if self.is_authenticated:
                logger.debug("Already authenticated, skipping handshake")
                return self._credentials

            if self._inflight is None or self._inflight.done():
                self._inflight = asyncio.ensure_future(self._run_authentication())
            inflight = self._inflight

        return await asyncio.shield(inflight)

    async def _run_authentication(self) -> Credentials:
        self._set_state(AuthState.AUTHENTICATING)
        logger.info("Authenticating with AppStorys...")

        try:
            credentials = await self._authenticate_with_retry()

            async with self._lock:
                self.token_store.save(ACCESS_TOKEN_KEY, credentials.access_token)
                self.token_store.save(REFRESH_TOKEN_KEY, credentials.refresh_token)
                self._credentials = credentials
                self._set_state(AuthState.AUTHENTICATED)
        except BaseException:
            self._set_state(AuthState.UNAUTHENTICATED)
            raise

        logger.info("Authentication successful")
        return credentials

    async def _authenticate_with_retry(self) -> Credentials:
        body = {
            "account_id": self.config.account_id,
            "app_id": self.config.app_id,
        }
        last_error: Optional[AppStorysError] = None

        for attempt in range(self.backoff.max_attempts):
            try:
                return await self._perform_authentication(body)
            except AppStorysError as e:
                if not self.backoff.is_retryable(e):
                    logger.error(f"Authentication failed: {e}")
                    raise
                last_error = e

            if attempt < self.backoff.max_retries:
                delay = self.backoff.delay_for_attempt(attempt)
                logger.warning(
                    f"Auth attempt {attempt + 1} failed ({last_error}), retrying in {delay}s..."
                )
                await self._sleep(delay)

        logger.error(f"Authentication failed after {self.backoff.max_attempts} attempts")
        raise last_error

    async def _perform_authentication(self, body: Dict[str, str]) -> Credentials:
        """Run one handshake attempt."""
        self._attempt_count += 1
        response = await self.client.post(
            self.endpoint,
            body,
            timeout=self.config.auth_timeout,
        )
        status = response.status_code

        if status == 200:
            return Credentials.from_response(response.json())

        if status in (401, 403):
            logger.error("Authentication rejected: invalid credentials")
            raise AuthenticationFailedError(status_code=status)

        if 500 <= status <= 599:
            logger.warning(f"Server error: {status}")
            raise ServerError(status)

        logger.error(f"Unexpected status code: {status}")
        raise ServerError(status)

    async def get_access_token(self) -> str:
        """Get the access token, recovering it from the store after a restart.

        Never triggers authentication.

        Raises:
            NoAccessTokenError: If no token is cached or stored
        """
        async with self._lock:
            if self._credentials.access_token:
                return self._credentials.access_token

            stored = self.token_store.get(ACCESS_TOKEN_KEY)
            if stored:
                self._credentials = replace(self._credentials, access_token=stored)
                logger.debug("Access token restored from secure storage")
                return stored

        raise NoAccessTokenError()

    async def authorization_header(self) -> str:
        """Get the Authorization header value."""
        return f"Bearer {await self.get_access_token()}"

    async def clear_tokens(self) -> None:
        """Delete both tokens from storage and memory.

        Raises:
            StorageError: If the store delete fails
        """
        async with self._lock:
            self.token_store.delete(ACCESS_TOKEN_KEY)
            self._credentials = replace(self._credentials, access_token=None)
            self.token_store.delete(REFRESH_TOKEN_KEY)
            self._credentials = Credentials()
            self._set_state(AuthState.UNAUTHENTICATED)

        logger.debug("Tokens cleared from secure storage")

    def get_session_info(self) -> Dict[str, Any]:
        """Get current session information."""
        return {
            "state": self._state.value,
            "is_authenticated": self.is_authenticated,
            "has_access_token": self._credentials.access_token is not None,
            "has_refresh_token": self._credentials.refresh_token is not None,
            "handshake_attempts": self._attempt_count,
            "endpoint": self.endpoint,
        }
