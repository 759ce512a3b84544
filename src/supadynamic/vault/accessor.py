"""Guarded secret retrieval.

Secrets are only handed to a privileged service role (by JWT ``role``
claim) or to an administrative database user. Everyone else gets
``PermissionDenied`` before the store is touched.

Usage:
    from supadynamic.vault.accessor import Identity, SecretAccessor

    identity = Identity.from_claims_json('{"role": "service_role"}', current_user="authenticator")
    SecretAccessor(store).fetch_secret("stripe_key", identity)
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

import structlog

from supadynamic.core.config import Settings, get_settings
from supadynamic.core.exceptions import PermissionDenied
from supadynamic.protocols import SecretStoreProtocol
from supadynamic.vault.store import SecretStore

log = structlog.get_logger()


@dataclass(frozen=True)
class Identity:
    """Caller identity evaluated per call.

    Attributes:
        current_user: Database/session user name.
        claims: Decoded request JWT claims, if any.
    """

    current_user: str
    claims: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_claims_json(cls, raw: Optional[str], current_user: str) -> "Identity":
        """Build an identity from raw claims JSON.

        Missing, malformed or non-object claims yield an identity without
        a role rather than an error.
        """
        claims: Mapping[str, Any] = {}
        if raw:
            try:
                decoded = json.loads(raw)
            except ValueError:
                log.warning("identity_claims_malformed", current_user=current_user)
                decoded = None
            if isinstance(decoded, dict):
                claims = decoded
        return cls(current_user=current_user, claims=claims)

    @property
    def role(self) -> Optional[str]:
        role = self.claims.get("role")
        return role if isinstance(role, str) else None

    def describe(self) -> str:
        return f"user={self.current_user!r}, role={self.role!r}"


class SecretAccessor:
    """Authorizes and performs single-row secret lookups by name."""

    def __init__(
        self,
        store: SecretStoreProtocol,
        privileged_roles: Sequence[str] = ("service_role",),
        admin_users: Sequence[str] = ("postgres",),
    ) -> None:
        self._store = store
        self._privileged_roles = frozenset(privileged_roles)
        self._admin_users = frozenset(admin_users)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "SecretAccessor":
        """Build an accessor over the configured vault."""
        settings = settings or get_settings()
        return cls(
            SecretStore.from_settings(settings),
            privileged_roles=settings.vault.privileged_roles,
            admin_users=settings.vault.admin_users,
        )

    def is_authorized(self, identity: Identity) -> bool:
        return identity.role in self._privileged_roles or identity.current_user in self._admin_users

    def fetch_secret(self, name: str, identity: Identity) -> Optional[str]:
        """Return the decrypted secret for an authorized identity.

        Returns:
            The secret value, or None if no secret has this name.

        Raises:
            PermissionDenied: If the identity is neither a privileged role
                nor an administrative user.
        """
        if not self.is_authorized(identity):
            log.warning("secret_access_denied", name=name, identity=identity.describe())
            raise PermissionDenied(identity.describe())

        value = self._store.get_decrypted(name)
        log.info("secret_accessed", name=name, found=value is not None, role=identity.role)
        return value


def fetch_secret(
    name: str,
    identity: Identity,
    accessor: Optional[SecretAccessor] = None,
) -> Optional[str]:
    """Fetch a secret by name on behalf of ``identity``.

    Uses the configured vault unless an accessor is supplied.
    """
    accessor = accessor or SecretAccessor.from_settings()
    return accessor.fetch_secret(name, identity)
