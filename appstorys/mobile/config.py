"""
SDK Configuration

Configuration settings for the AppStorys delivery core.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from ..utils.paths import get_data_dir

DEFAULT_BASE_URL = "https://users.appstorys.com"

TOKEN_BACKENDS = ("keyring", "file", "memory")


@dataclass
class SDKConfig:
    """Configuration for the SDK delivery core."""

    account_id: str = ""
    app_id: str = ""
    user_id: Optional[str] = None

    # Endpoints
    base_url: str = DEFAULT_BASE_URL
    tracking_url_override: Optional[str] = None
    backend_url_override: Optional[str] = None

    # Timeouts (seconds)
    auth_timeout: float = 15.0
    request_timeout: float = 30.0
    attributes_timeout: float = 40.0

    # Persistence
    data_dir: Path = field(default_factory=get_data_dir)
    token_backend: str = "keyring"
    keyring_service: str = "appstorys"

    # Offline replay
    auto_retry_interval: float = 300.0

    user_agent: str = "AppStorys-Python/0.1.0"
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.base_url = self.base_url.rstrip("/")
        self.data_dir = Path(self.data_dir)
        if self.token_backend not in TOKEN_BACKENDS:
            raise ValueError(
                f"token_backend must be one of {', '.join(TOKEN_BACKENDS)}, "
                f"got {self.token_backend!r}"
            )

    @property
    def tracking_url(self) -> str:
        """Event capture host, derived from base_url unless overridden."""
        if self.tracking_url_override:
            return self.tracking_url_override.rstrip("/")
        return self.base_url.replace("users", "tracking")

    @property
    def backend_url(self) -> str:
        """Campaign backend host, derived from base_url unless overridden."""
        if self.backend_url_override:
            return self.backend_url_override.rstrip("/")
        return self.base_url.replace("users", "backend")

    @property
    def outbox_path(self) -> Path:
        return self.data_dir / "outbox.db"

    @property
    def token_file_path(self) -> Path:
        return self.data_dir / "tokens.enc.json"

    def get_headers(self) -> Dict[str, str]:
        """Get default request headers."""
        headers = {
            "User-Agent": self.user_agent,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        headers.update(self.headers)
        return headers

    @classmethod
    def from_env(cls) -> "SDKConfig":
        """Create configuration from environment variables."""
        data_dir = os.getenv("APPSTORYS_DATA_DIR")

        return cls(
            account_id=os.getenv("APPSTORYS_ACCOUNT_ID", ""),
            app_id=os.getenv("APPSTORYS_APP_ID", ""),
            user_id=os.getenv("APPSTORYS_USER_ID") or None,
            base_url=os.getenv("APPSTORYS_BASE_URL", DEFAULT_BASE_URL),
            tracking_url_override=os.getenv("APPSTORYS_TRACKING_URL") or None,
            backend_url_override=os.getenv("APPSTORYS_BACKEND_URL") or None,
            auth_timeout=float(os.getenv("APPSTORYS_AUTH_TIMEOUT", "15")),
            request_timeout=float(os.getenv("APPSTORYS_REQUEST_TIMEOUT", "30")),
            attributes_timeout=float(os.getenv("APPSTORYS_ATTRIBUTES_TIMEOUT", "40")),
            data_dir=Path(data_dir) if data_dir else get_data_dir(),
            token_backend=os.getenv("APPSTORYS_TOKEN_BACKEND", "keyring"),
            auto_retry_interval=float(os.getenv("APPSTORYS_AUTO_RETRY_INTERVAL", "300")),
        )
