from .accessor import Identity, SecretAccessor, fetch_secret
from .store import SecretStore

__all__ = [
    "Identity",
    "SecretAccessor",
    "SecretStore",
    "fetch_secret",
]
