"""Protocol abstractions for supa-dynamic.

Structural interfaces used for dependency injection. All protocols use
`typing.Protocol` with `@runtime_checkable` for isinstance() support.

Protocols:
    RequesterProtocol: One-attempt HTTP requester used by the dispatcher.
    SecretStoreProtocol: Name-keyed secret lookup used by the accessor.

Usage:
    from supadynamic.protocols import RequesterProtocol

    assert isinstance(SingleShotRequester(), RequesterProtocol)
"""

from __future__ import annotations

from supadynamic.protocols.requester import RequesterProtocol
from supadynamic.protocols.secret_store import SecretStoreProtocol

__all__ = [
    "RequesterProtocol",
    "SecretStoreProtocol",
]
