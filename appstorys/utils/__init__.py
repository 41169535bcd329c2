"""
AppStorys Utilities

Common utility modules for the SDK.
"""

from .encryption import EncryptionConfig, EncryptionService, redact_dict
from .paths import get_data_dir, get_outbox_path, get_token_file_path

__all__ = [
    "EncryptionService",
    "EncryptionConfig",
    "redact_dict",
    "get_data_dir",
    "get_outbox_path",
    "get_token_file_path",
]
