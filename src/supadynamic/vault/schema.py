"""SQLAlchemy Schema Module for the supa-dynamic secret vault.

Tables:
    - vault_metadata: Key-value settings for the vault (e.g. the KDF salt)
    - secrets: Named secrets, AES-256-GCM encrypted at rest

Usage:
    from supadynamic.vault.schema import create_all_tables

    engine = create_engine("sqlite:///vault.sqlite")
    create_all_tables(engine)
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, LargeBinary, String, Text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


CURRENT_SCHEMA_VERSION = "1.0.0"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all vault models."""

    pass


class VaultMetadata(Base):
    """Key-value metadata storage (schema version, KDF salt)."""

    __tablename__ = "vault_metadata"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)


class Secret(Base):
    """Encrypted secret keyed by unique name.

    ``secret`` holds the ciphertext (auth tag included); the name is bound
    into the ciphertext as associated data.
    """

    __tablename__ = "secrets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    secret: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    nonce: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )


def create_all_tables(engine: Engine) -> None:
    """Create all vault tables.

    Args:
        engine: SQLAlchemy engine to create tables on.
    """
    Base.metadata.create_all(engine)
