"""
Encryption Utilities

Provides the primitives used to keep SDK secrets out of plain text:
- Symmetric encryption (AES-256-GCM) for file-backed token storage
- Machine-bound key derivation (PBKDF2)
- Sensitive field redaction for debug logging
"""

import base64
import binascii
import getpass
import logging
import os
import platform
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

ENCRYPTION_KEY_ENV = "APPSTORYS_ENCRYPTION_KEY"


# =============================================================================
# Configuration
# =============================================================================


@dataclass
class EncryptionConfig:
    """Encryption configuration."""

    key_length: int = 32  # 256 bits
    iv_length: int = 12  # 96 bits for GCM
    tag_length: int = 16
    machine_key_iterations: int = 100000
    machine_key_salt: bytes = b"appstorys-machine-key-v1"


# =============================================================================
# Encryption Service
# =============================================================================


class EncryptionService:
    """
    Encrypts and decrypts short secrets with AES-256-GCM.

    The key comes from APPSTORYS_ENCRYPTION_KEY (base64) when set,
    otherwise it is derived from machine identifiers so a copied
    token file is useless on another host.
    """

    def __init__(
        self, master_key: Optional[bytes] = None, config: Optional[EncryptionConfig] = None
    ):
        self.config = config or EncryptionConfig()
        self._master_key = master_key or self._load_master_key()

        if len(self._master_key) < self.config.key_length:
            raise ValueError(f"Encryption key must be at least {self.config.key_length} bytes")

    def _load_master_key(self) -> bytes:
        env_key = os.environ.get(ENCRYPTION_KEY_ENV)
        if env_key:
            try:
                return base64.b64decode(env_key)
            except (binascii.Error, ValueError) as e:
                raise ValueError(f"{ENCRYPTION_KEY_ENV} is not valid base64") from e

        return self._derive_machine_key()

    def _derive_machine_key(self) -> bytes:
        """Derive a key bound to this machine and user."""
        machine_id = ":".join(
            [
                platform.node(),
                getpass.getuser(),
                os.path.expanduser("~"),
                platform.machine(),
            ]
        ).encode()

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=self.config.key_length,
            salt=self.config.machine_key_salt,
            iterations=self.config.machine_key_iterations,
        )
        return kdf.derive(machine_id)

    @staticmethod
    def generate_key() -> str:
        """Generate a random base64 key suitable for APPSTORYS_ENCRYPTION_KEY."""
        return base64.b64encode(secrets.token_bytes(32)).decode()

    def encrypt(self, plaintext: str, associated_data: Optional[bytes] = None) -> str:
        """
        Encrypt a string.

        Returns:
            "enc:<iv>:<ciphertext>:<tag>" with base64 parts
        """
        iv = secrets.token_bytes(self.config.iv_length)
        aesgcm = AESGCM(self._master_key[: self.config.key_length])
        sealed = aesgcm.encrypt(iv, plaintext.encode("utf-8"), associated_data)

        ciphertext = sealed[: -self.config.tag_length]
        tag = sealed[-self.config.tag_length :]

        parts = [base64.b64encode(p).decode() for p in (iv, ciphertext, tag)]
        return "enc:" + ":".join(parts)

    def decrypt(self, encrypted: str, associated_data: Optional[bytes] = None) -> str:
        """
        Decrypt a value produced by encrypt().

        Raises:
            ValueError: If the value is malformed or fails authentication
        """
        parts = encrypted.split(":")
        if len(parts) != 4 or parts[0] != "enc":
            raise ValueError("Invalid encrypted format")

        try:
            iv, ciphertext, tag = (base64.b64decode(p) for p in parts[1:])
            aesgcm = AESGCM(self._master_key[: self.config.key_length])
            return aesgcm.decrypt(iv, ciphertext + tag, associated_data).decode("utf-8")
        except (InvalidTag, binascii.Error, UnicodeDecodeError) as e:
            logger.error(f"Decryption failed: {type(e).__name__}")
            raise ValueError("Decryption failed") from e


# =============================================================================
# Sensitive Data Redaction
# =============================================================================


SENSITIVE_FIELDS = {
    "access_token",
    "refresh_token",
    "authorization",
    "token",
    "password",
    "secret",
}


def redact_dict(data: Dict[str, Any], depth: int = 0) -> Dict[str, Any]:
    """Return a copy of data with sensitive fields masked for logging."""
    if depth > 10:
        return data

    result: Dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(key, str) and key.lower() in SENSITIVE_FIELDS:
            result[key] = "[REDACTED]"
        elif isinstance(value, dict):
            result[key] = redact_dict(value, depth + 1)
        else:
            result[key] = value
    return result
