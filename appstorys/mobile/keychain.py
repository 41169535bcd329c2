"""Secure Token Storage for the AppStorys SDK.

Key/value persistence for opaque secrets (access and refresh tokens):
- OS credential store via keyring
- Encrypted file fallback for headless hosts
- In-memory store for tests and ephemeral sessions

Stores never cache; every call touches the backend.
"""

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from ..core.exceptions import StorageError
from ..utils.encryption import EncryptionService
from .config import SDKConfig

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"


class SecureTokenStore(ABC):
    """Persistence for string secrets addressed by stable keys."""

    @abstractmethod
    def save(self, key: str, value: str) -> None:
        """Persist a secret.

        Raises:
            StorageError: If the backend write fails
        """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Read a secret, or None when absent or unreadable."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a secret. Absent keys are not an error.

        Raises:
            StorageError: If the backend delete fails
        """


class KeyringTokenStore(SecureTokenStore):
    """Token store backed by the OS keychain through keyring."""

    def __init__(self, service_name: str = "appstorys"):
        self.service_name = service_name

    def save(self, key: str, value: str) -> None:
        try:
            keyring.set_password(self.service_name, key, value)
        except KeyringError as e:
            raise StorageError(f"Failed to save {key} to keyring", key=key, original_error=e)

    def get(self, key: str) -> Optional[str]:
        try:
            return keyring.get_password(self.service_name, key)
        except KeyringError as e:
            logger.warning(f"Could not read {key} from keyring: {e}")
            return None

    def delete(self, key: str) -> None:
        try:
            keyring.delete_password(self.service_name, key)
        except PasswordDeleteError:
            pass  # Already absent
        except KeyringError as e:
            raise StorageError(f"Failed to delete {key} from keyring", key=key, original_error=e)


class EncryptedFileTokenStore(SecureTokenStore):
    """Token store persisted as an encrypted JSON file.

    Each value is sealed with AES-256-GCM; the key name is bound as
    associated data so values cannot be swapped between keys.
    """

    def __init__(
        self,
        path: Path,
        encryption: Optional[EncryptionService] = None,
    ):
        self.path = Path(path)
        self.encryption = encryption or EncryptionService()
        self._lock = threading.Lock()

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("Token file is not a JSON object")
        return data

    def _write_all(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".tokens-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def save(self, key: str, value: str) -> None:
        with self._lock:
            try:
                data = self._read_all()
                data[key] = self.encryption.encrypt(value, associated_data=key.encode())
                self._write_all(data)
            except (OSError, ValueError) as e:
                raise StorageError(f"Failed to save {key} to {self.path}", key=key, original_error=e)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            try:
                encrypted = self._read_all().get(key)
                if encrypted is None:
                    return None
                return self.encryption.decrypt(encrypted, associated_data=key.encode())
            except (OSError, ValueError) as e:
                logger.warning(f"Could not read {key} from {self.path}: {e}")
                return None

    def delete(self, key: str) -> None:
        with self._lock:
            try:
                data = self._read_all()
                if key not in data:
                    return
                del data[key]
                self._write_all(data)
            except (OSError, ValueError) as e:
                raise StorageError(
                    f"Failed to delete {key} from {self.path}", key=key, original_error=e
                )


class InMemoryTokenStore(SecureTokenStore):
    """Process-local token store."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._values: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def save(self, key: str, value: str) -> None:
        with self._lock:
            self._values[key] = value

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._values.get(key)

    def delete(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._values


def create_token_store(config: SDKConfig) -> SecureTokenStore:
    """Build the token store selected by config.token_backend."""
    if config.token_backend == "memory":
        return InMemoryTokenStore()
    if config.token_backend == "file":
        return EncryptedFileTokenStore(config.token_file_path)
    return KeyringTokenStore(config.keyring_service)
