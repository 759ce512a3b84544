"""Encrypted secret store.

Secrets are held in the ``secrets`` table, encrypted with a key derived
from the vault master password. The PBKDF2 salt is generated once and kept
in ``vault_metadata`` so the same password unlocks the vault on reopen.

Usage:
    from supadynamic.vault.store import SecretStore

    store = SecretStore.open("sqlite:///vault.sqlite", "master-password")
    store.create_secret("stripe_key", "sk_live_...")
    store.get_decrypted("stripe_key")  # "sk_live_..."
"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Optional

import structlog
from sqlalchemy import create_engine, delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from supadynamic.core.config import Settings, get_settings
from supadynamic.core.exceptions import (
    ConfigurationError,
    SecretAlreadyExists,
    SecretNotFound,
)
from supadynamic.core.keystore import DEFAULT_ITERATIONS, Keystore, generate_salt
from supadynamic.vault.schema import (
    CURRENT_SCHEMA_VERSION,
    Secret,
    VaultMetadata,
    create_all_tables,
)

log = structlog.get_logger()

SALT_KEY = "kdf_salt"
SCHEMA_VERSION_KEY = "schema_version"


def _expand_sqlite_url(database_url: str) -> str:
    """Expand ``~`` in file-backed SQLite URLs and create the parent dir."""
    prefix = "sqlite:///"
    if not database_url.startswith(prefix) or database_url == "sqlite:///:memory:":
        return database_url
    path = Path(database_url[len(prefix):]).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"{prefix}{path}"


class SecretStore:
    """Name-keyed secret store with AES-256-GCM encryption at rest."""

    def __init__(self, engine: Engine, keystore: Keystore) -> None:
        """Initialize SecretStore.

        Args:
            engine: Engine whose database already holds the vault tables.
            keystore: Keystore holding the derived vault key.

        Note:
            Use SecretStore.open() for typical usage.
        """
        self._engine = engine
        self._keystore = keystore

    @classmethod
    def open(
        cls,
        database_url: str,
        master_password: str,
        iterations: int = DEFAULT_ITERATIONS,
    ) -> "SecretStore":
        """Open (creating if needed) a vault database.

        Args:
            database_url: SQLAlchemy URL of the vault database.
            master_password: Password the vault key is derived from.
            iterations: PBKDF2 iteration count.
        """
        engine = create_engine(_expand_sqlite_url(database_url))
        create_all_tables(engine)
        salt = cls._load_or_create_salt(engine)
        return cls(engine, Keystore.from_password(master_password, salt, iterations))

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "SecretStore":
        """Open the vault described by the ``vault`` settings section.

        Raises:
            ConfigurationError: If no master password is configured.
        """
        cfg = (settings or get_settings()).vault
        if cfg.master_password is None:
            raise ConfigurationError(
                config_path="SUPADYNAMIC_VAULT__MASTER_PASSWORD",
                key="vault.master_password",
                message="Vault master password is not configured",
            )
        return cls.open(
            cfg.database_url,
            cfg.master_password.get_secret_value(),
            cfg.kdf_iterations,
        )

    @staticmethod
    def _load_or_create_salt(engine: Engine) -> bytes:
        with Session(engine) as session, session.begin():
            row = session.get(VaultMetadata, SALT_KEY)
            if row is not None:
                return bytes.fromhex(row.value)

            salt = generate_salt()
            session.add(VaultMetadata(key=SALT_KEY, value=salt.hex()))
            session.merge(VaultMetadata(key=SCHEMA_VERSION_KEY, value=CURRENT_SCHEMA_VERSION))
            log.info("vault_initialized", schema_version=CURRENT_SCHEMA_VERSION)
            return salt

    def create_secret(self, name: str, value: str, description: str = "") -> str:
        """Encrypt and store a new secret.

        Returns:
            The new secret's id.

        Raises:
            SecretAlreadyExists: If a secret with this name exists.
        """
        if not name:
            raise ValueError("Secret name cannot be empty")

        sealed = self._keystore.encrypt(value.encode("utf-8"), name.encode("utf-8"))
        secret_id = str(uuid.uuid4())
        with Session(self._engine) as session, session.begin():
            if self._find(session, name) is not None:
                raise SecretAlreadyExists(name)
            session.add(
                Secret(
                    id=secret_id,
                    name=name,
                    description=description,
                    secret=sealed["ciphertext"],
                    nonce=sealed["nonce"],
                )
            )
        log.info("secret_created", name=name)
        return secret_id

    def update_secret(self, name: str, value: str, description: Optional[str] = None) -> None:
        """Re-encrypt an existing secret with a new value.

        Raises:
            SecretNotFound: If no secret with this name exists.
        """
        sealed = self._keystore.encrypt(value.encode("utf-8"), name.encode("utf-8"))
        with Session(self._engine) as session, session.begin():
            row = self._find(session, name)
            if row is None:
                raise SecretNotFound(name)
            row.secret = sealed["ciphertext"]
            row.nonce = sealed["nonce"]
            if description is not None:
                row.description = description
        log.info("secret_updated", name=name)

    def delete_secret(self, name: str) -> bool:
        """Delete a secret. Returns True if one was removed."""
        with Session(self._engine) as session, session.begin():
            result = session.execute(delete(Secret).where(Secret.name == name))
        removed = bool(result.rowcount)
        if removed:
            log.info("secret_deleted", name=name)
        return removed

    def list_secret_names(self) -> list[str]:
        """Return all secret names, sorted."""
        with Session(self._engine) as session:
            return list(session.scalars(select(Secret.name).order_by(Secret.name)))

    def get_decrypted(self, name: str) -> Optional[str]:
        """Return the decrypted secret, or None if it does not exist.

        Raises:
            DecryptionError: If the stored ciphertext cannot be decrypted
                with this vault key.
        """
        with Session(self._engine) as session:
            row = self._find(session, name)
            if row is None:
                return None
            ciphertext, nonce = row.secret, row.nonce

        plaintext = self._keystore.decrypt(ciphertext, nonce, name.encode("utf-8"))
        return plaintext.decode("utf-8")

    def close(self) -> None:
        """Dispose the engine and clear the key from memory."""
        self._keystore.clear()
        self._engine.dispose()

    @staticmethod
    def _find(session: Session, name: str) -> Optional[Secret]:
        return session.scalars(select(Secret).where(Secret.name == name)).one_or_none()
