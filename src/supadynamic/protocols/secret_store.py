"""Secret store protocol for supa-dynamic."""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class SecretStoreProtocol(Protocol):
    """Protocol for name-keyed secret lookup.

    Note:
        Implementations do NOT need to inherit from this class.
    """

    def get_decrypted(self, name: str) -> Optional[str]:
        """Return the decrypted secret, or None if no secret has this name."""
        ...
