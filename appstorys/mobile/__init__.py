"""Mobile SDK Delivery Core for AppStorys.

Provides the networking and persistence layer behind in-app campaigns:
- Account authentication with retry and secure token storage
- Event, CSAT and user-attribute delivery
- Offline outbox with replay
- Configuration and admin CLI
"""

from .auth import (
    AuthSession,
    AuthState,
    Credentials,
)
from .backoff import (
    BackoffPolicy,
    RetryAttempt,
    is_retryable,
)
from .client import (
    ApiClient,
    ApiResponse,
    classify_transport_error,
)
from .config import SDKConfig
from .delivery import (
    SYSTEM_EVENTS,
    DeliveryService,
)
from .keychain import (
    EncryptedFileTokenStore,
    InMemoryTokenStore,
    KeyringTokenStore,
    SecureTokenStore,
    create_token_store,
)
from .models import (
    PendingCsatResponse,
    PendingEvent,
    PendingUserAttributes,
)
from .storage import (
    InMemoryKeyValueStore,
    KeyValueStore,
    OfflineOutbox,
    SQLiteKeyValueStore,
)

__all__ = [
    # Config
    "SDKConfig",
    # Client
    "ApiClient",
    "ApiResponse",
    "classify_transport_error",
    # Auth
    "AuthSession",
    "AuthState",
    "Credentials",
    "BackoffPolicy",
    "RetryAttempt",
    "is_retryable",
    # Token storage
    "SecureTokenStore",
    "KeyringTokenStore",
    "EncryptedFileTokenStore",
    "InMemoryTokenStore",
    "create_token_store",
    # Outbox
    "OfflineOutbox",
    "KeyValueStore",
    "SQLiteKeyValueStore",
    "InMemoryKeyValueStore",
    "PendingEvent",
    "PendingCsatResponse",
    "PendingUserAttributes",
    # Delivery
    "DeliveryService",
    "SYSTEM_EVENTS",
]
