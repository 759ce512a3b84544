"""
supa-dynamic - Retrying HTTP dispatch with region rotation and a guarded
secret vault.
"""

from supadynamic.http import RetryingDispatcher, SingleShotRequester, dispatch
from supadynamic.vault import SecretAccessor, fetch_secret

__version__ = "0.1.0"

__all__ = [
    "RetryingDispatcher",
    "SingleShotRequester",
    "dispatch",
    "SecretAccessor",
    "fetch_secret",
]
