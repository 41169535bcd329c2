"""
Pytest Configuration and Shared Fixtures

Fixtures for testing the AppStorys delivery core without a network,
an OS keychain or a persistent data directory.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional, Tuple, Union

import httpx
import keyring
import pytest
from keyring.backend import KeyringBackend
from keyring.errors import PasswordDeleteError

from appstorys.mobile.config import SDKConfig
from appstorys.mobile.keychain import InMemoryTokenStore
from appstorys.mobile.storage import InMemoryKeyValueStore, OfflineOutbox


# =============================================================================
# Environment Setup
# =============================================================================


@pytest.fixture(autouse=True)
def clean_environment():
    """Ensure clean environment for each test."""
    # Store original environment
    original_env = os.environ.copy()

    for key in list(os.environ):
        if key.startswith("APPSTORYS_"):
            del os.environ[key]

    yield

    # Restore original environment
    os.environ.clear()
    os.environ.update(original_env)


# =============================================================================
# Temporary Directory Fixtures
# =============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that's cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def sdk_config(temp_dir: Path) -> SDKConfig:
    """Provide an SDKConfig pointing at a throwaway data directory."""
    return SDKConfig(
        account_id="acct-123",
        app_id="app-456",
        user_id="user-789",
        data_dir=temp_dir,
        token_backend="memory",
    )


# =============================================================================
# Storage Fixtures
# =============================================================================


@pytest.fixture
def token_store() -> InMemoryTokenStore:
    return InMemoryTokenStore()


@pytest.fixture
def outbox() -> OfflineOutbox:
    return OfflineOutbox(InMemoryKeyValueStore())


class MemoryKeyring(KeyringBackend):
    """Keyring backend that keeps passwords in a dict."""

    priority = 1

    def __init__(self):
        super().__init__()
        self.passwords: Dict[Tuple[str, str], str] = {}

    def get_password(self, service: str, username: str) -> Optional[str]:
        return self.passwords.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        self.passwords[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        try:
            del self.passwords[(service, username)]
        except KeyError:
            raise PasswordDeleteError("Password not found")


@pytest.fixture
def memory_keyring() -> Generator[MemoryKeyring, None, None]:
    """Install an in-memory keyring backend for the duration of a test."""
    previous = keyring.get_keyring()
    backend = MemoryKeyring()
    keyring.set_keyring(backend)
    yield backend
    keyring.set_keyring(previous)


# =============================================================================
# HTTP Fixtures
# =============================================================================


ResponseSpec = Union[int, Tuple[int, Any], httpx.Response, Exception]


class FakeBackend:
    """Scripted httpx handler that records every request.

    Each request consumes the next scripted reply; the last reply is
    repeated once the script runs out. A reply is a status code, a
    (status, json_body) pair, an httpx.Response or an exception to raise.
    """

    def __init__(self, *replies: ResponseSpec):
        self.replies: List[ResponseSpec] = list(replies) or [200]
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]

        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        if isinstance(reply, tuple):
            status, body = reply
            return httpx.Response(status, json=body)
        return httpx.Response(reply)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def bodies(self) -> List[Dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]

    def paths(self) -> List[str]:
        return [request.url.path for request in self.requests]


@pytest.fixture
def fake_backend() -> Callable[..., FakeBackend]:
    """Factory for scripted HTTP backends."""
    return FakeBackend


class RecordingSleep:
    """Stand-in for asyncio.sleep that returns immediately."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
