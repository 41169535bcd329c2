"""Tests for configuration, data paths and encryption utilities."""

import base64
import os
from pathlib import Path

import pytest

from appstorys.mobile.config import DEFAULT_BASE_URL, SDKConfig
from appstorys.utils.encryption import ENCRYPTION_KEY_ENV, EncryptionService, redact_dict
from appstorys.utils.paths import get_data_dir, get_outbox_path, get_token_file_path


class TestSDKConfig:
    """Tests for SDKConfig."""

    def test_defaults(self, temp_dir):
        config = SDKConfig(data_dir=temp_dir)

        assert config.base_url == DEFAULT_BASE_URL
        assert config.auth_timeout == 15.0
        assert config.attributes_timeout == 40.0
        assert config.token_backend == "keyring"
        assert config.user_id is None

    def test_derived_hosts(self, temp_dir):
        config = SDKConfig(data_dir=temp_dir)

        assert config.tracking_url == "https://tracking.appstorys.com"
        assert config.backend_url == "https://backend.appstorys.com"

    def test_trailing_slash_stripped(self, temp_dir):
        config = SDKConfig(base_url="https://users.example.com/", data_dir=temp_dir)
        assert config.base_url == "https://users.example.com"

    def test_host_overrides(self, temp_dir):
        config = SDKConfig(
            data_dir=temp_dir,
            tracking_url_override="http://localhost:9000/",
            backend_url_override="http://localhost:9001",
        )

        assert config.tracking_url == "http://localhost:9000"
        assert config.backend_url == "http://localhost:9001"

    def test_storage_paths(self, temp_dir):
        config = SDKConfig(data_dir=str(temp_dir))

        assert config.data_dir == temp_dir
        assert config.outbox_path == temp_dir / "outbox.db"
        assert config.token_file_path == temp_dir / "tokens.enc.json"

    def test_invalid_token_backend(self, temp_dir):
        with pytest.raises(ValueError):
            SDKConfig(data_dir=temp_dir, token_backend="plaintext")

    def test_headers(self, temp_dir):
        config = SDKConfig(data_dir=temp_dir, headers={"X-App": "demo"})
        headers = config.get_headers()

        assert headers["Content-Type"] == "application/json"
        assert headers["X-App"] == "demo"

    def test_from_env(self, temp_dir):
        os.environ.update(
            {
                "APPSTORYS_ACCOUNT_ID": "acct",
                "APPSTORYS_APP_ID": "app",
                "APPSTORYS_USER_ID": "user",
                "APPSTORYS_BASE_URL": "https://users.staging.appstorys.com",
                "APPSTORYS_AUTH_TIMEOUT": "5",
                "APPSTORYS_DATA_DIR": str(temp_dir),
                "APPSTORYS_TOKEN_BACKEND": "file",
            }
        )

        config = SDKConfig.from_env()

        assert config.account_id == "acct"
        assert config.app_id == "app"
        assert config.user_id == "user"
        assert config.tracking_url == "https://tracking.staging.appstorys.com"
        assert config.auth_timeout == 5.0
        assert config.data_dir == temp_dir
        assert config.token_backend == "file"

    def test_from_env_defaults(self):
        config = SDKConfig.from_env()

        assert config.account_id == ""
        assert config.user_id is None
        assert config.base_url == DEFAULT_BASE_URL


class TestPaths:
    """Tests for data directory resolution."""

    def test_explicit_override(self, temp_dir):
        os.environ["APPSTORYS_DATA_DIR"] = str(temp_dir)

        assert get_data_dir() == temp_dir
        assert get_outbox_path() == temp_dir / "outbox.db"
        assert get_token_file_path() == temp_dir / "tokens.enc.json"

    def test_xdg_fallback(self, temp_dir):
        os.environ["XDG_DATA_HOME"] = str(temp_dir)
        assert get_data_dir() == temp_dir / "appstorys"

    def test_home_default(self):
        os.environ.pop("XDG_DATA_HOME", None)
        assert get_data_dir() == Path(os.path.expanduser("~/.local/share")) / "appstorys"


class TestEncryptionService:
    """Tests for EncryptionService."""

    def test_round_trip(self):
        service = EncryptionService(master_key=b"k" * 32)
        sealed = service.encrypt("hello", associated_data=b"ctx")

        assert sealed.startswith("enc:")
        assert service.decrypt(sealed, associated_data=b"ctx") == "hello"

    def test_random_iv(self):
        service = EncryptionService(master_key=b"k" * 32)
        assert service.encrypt("hello") != service.encrypt("hello")

    def test_tampered_value(self):
        service = EncryptionService(master_key=b"k" * 32)
        prefix, iv, ciphertext, tag = service.encrypt("hello").split(":")
        forged = ":".join([prefix, iv, base64.b64encode(b"xxxxx").decode(), tag])

        with pytest.raises(ValueError):
            service.decrypt(forged)

    def test_malformed_value(self):
        with pytest.raises(ValueError):
            EncryptionService(master_key=b"k" * 32).decrypt("plaintext")

    def test_short_key_rejected(self):
        with pytest.raises(ValueError):
            EncryptionService(master_key=b"short")

    def test_key_from_environment(self):
        os.environ[ENCRYPTION_KEY_ENV] = EncryptionService.generate_key()
        first = EncryptionService()
        second = EncryptionService()

        assert second.decrypt(first.encrypt("hello")) == "hello"

    def test_invalid_environment_key(self):
        os.environ[ENCRYPTION_KEY_ENV] = "not base64!!"
        with pytest.raises(ValueError):
            EncryptionService()


class TestRedaction:
    """Tests for log redaction."""

    def test_nested_fields(self):
        data = {
            "user_id": "u1",
            "access_token": "secret",
            "attributes": {"Password": "hunter2", "tier": "gold"},
        }

        assert redact_dict(data) == {
            "user_id": "u1",
            "access_token": "[REDACTED]",
            "attributes": {"Password": "[REDACTED]", "tier": "gold"},
        }
        assert data["access_token"] == "secret"

    def test_non_string_keys(self):
        data = {1: "one", ("a", "b"): "pair", "secret": "s", "nested": {2: {"token": "t"}}}

        assert redact_dict(data) == {
            1: "one",
            ("a", "b"): "pair",
            "secret": "[REDACTED]",
            "nested": {2: {"token": "[REDACTED]"}},
        }
