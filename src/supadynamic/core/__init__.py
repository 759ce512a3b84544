"""Core module for supa-dynamic.

Exports the core components: exceptions, configuration, and keystore.
"""

from supadynamic.core.exceptions import (
    SupaDynamicError,
    InvalidArgument,
    TransportError,
    ServerErrorResponse,
    RetryExhausted,
    PermissionDenied,
    ConfigurationError,
    DecryptionError,
    SecretAlreadyExists,
    SecretNotFound,
)
from supadynamic.core.config import (
    get_settings,
    reset_settings,
    Settings,
    DispatchConfig,
    VaultConfig,
    LoggingConfig,
)
from supadynamic.core.keystore import (
    Keystore,
    derive_key,
    encrypt,
    decrypt,
    generate_salt,
)

__all__ = [
    # Exceptions
    "SupaDynamicError",
    "InvalidArgument",
    "TransportError",
    "ServerErrorResponse",
    "RetryExhausted",
    "PermissionDenied",
    "ConfigurationError",
    "DecryptionError",
    "SecretAlreadyExists",
    "SecretNotFound",
    # Configuration
    "get_settings",
    "reset_settings",
    "Settings",
    "DispatchConfig",
    "VaultConfig",
    "LoggingConfig",
    # Keystore (PBKDF2 + AES-256-GCM)
    "Keystore",
    "derive_key",
    "encrypt",
    "decrypt",
    "generate_salt",
]
