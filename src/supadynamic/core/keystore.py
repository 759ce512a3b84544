"""Keystore module for vault secret encryption.

Provides PBKDF2-HMAC-SHA256 key derivation and AES-256-GCM authenticated
encryption for values held in the secret vault.

Security Notes:
- The master password is discarded immediately after key derivation
- Uses cryptographically secure random number generation
- AES-256-GCM provides authenticated encryption (confidentiality + integrity)

Usage:
    from supadynamic.core.keystore import Keystore, generate_salt

    ks = Keystore.from_password("password", generate_salt())
    sealed = ks.encrypt(b"secret")
    plaintext = ks.decrypt(sealed["ciphertext"], sealed["nonce"])
"""

import os
from typing import Tuple, TypedDict

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from supadynamic.core.exceptions import DecryptionError

DEFAULT_ITERATIONS = 600_000
KEY_LENGTH = 32  # AES-256
SALT_LENGTH = 16
NONCE_LENGTH = 12  # GCM


class EncryptionResult(TypedDict):
    """Result of encryption operation."""

    ciphertext: bytes
    nonce: bytes


def generate_salt(length: int = SALT_LENGTH) -> bytes:
    """Generate cryptographically secure random salt."""
    return os.urandom(length)


def derive_key(
    password: str,
    salt: bytes,
    iterations: int = DEFAULT_ITERATIONS,
) -> bytes:
    """Derive AES-256 key from password using PBKDF2-HMAC-SHA256.

    Args:
        password: The vault master password.
        salt: Random salt bytes.
        iterations: PBKDF2 iteration count.

    Returns:
        32-byte key suitable for AES-256 encryption.

    Raises:
        ValueError: If password is empty or salt is empty.
    """
    if not password:
        raise ValueError("Password cannot be empty")
    if not salt:
        raise ValueError("Salt cannot be empty")

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


def encrypt(plaintext: bytes, key: bytes, associated_data: bytes | None = None) -> Tuple[bytes, bytes]:
    """Encrypt data using AES-256-GCM.

    Args:
        plaintext: Data to encrypt.
        key: 32-byte encryption key.
        associated_data: Optional authenticated (unencrypted) data, e.g. the
            secret name, binding the ciphertext to its row.

    Returns:
        Tuple of (ciphertext, nonce) where ciphertext includes auth tag.
    """
    nonce = os.urandom(NONCE_LENGTH)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, associated_data)
    return ciphertext, nonce


def decrypt(
    ciphertext: bytes,
    key: bytes,
    nonce: bytes,
    associated_data: bytes | None = None,
) -> bytes:
    """Decrypt data using AES-256-GCM.

    Raises:
        DecryptionError: If decryption fails (wrong key, tampered data, etc).
    """
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, associated_data)
    except InvalidTag as e:
        raise DecryptionError("Invalid tag (wrong key or tampered data)") from e
    except ValueError as e:
        # Wrong nonce length
        raise DecryptionError(str(e)) from e


class Keystore:
    """High-level keystore wrapping a derived vault key.

    Usage:
        ks = Keystore.from_password("secret", salt)
        sealed = ks.encrypt(b"data", b"api_key")
        plaintext = ks.decrypt(sealed["ciphertext"], sealed["nonce"], b"api_key")
        ks.clear()
    """

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_LENGTH:
            raise ValueError(f"Key must be {KEY_LENGTH} bytes")
        self._key: bytes | None = key

    @classmethod
    def from_password(
        cls,
        password: str,
        salt: bytes,
        iterations: int = DEFAULT_ITERATIONS,
    ) -> "Keystore":
        """Create Keystore by deriving key from password."""
        return cls(derive_key(password, salt, iterations))

    def encrypt(self, plaintext: bytes, associated_data: bytes | None = None) -> EncryptionResult:
        """Encrypt data and return result as dict.

        Raises:
            RuntimeError: If keystore has been cleared.
        """
        if self._key is None:
            raise RuntimeError("Keystore is closed/cleared")

        ciphertext, nonce = encrypt(plaintext, self._key, associated_data)
        return {
            "ciphertext": ciphertext,
            "nonce": nonce,
        }

    def decrypt(
        self,
        ciphertext: bytes,
        nonce: bytes,
        associated_data: bytes | None = None,
    ) -> bytes:
        """Decrypt data.

        Raises:
            DecryptionError: If decryption fails.
            RuntimeError: If keystore has been cleared.
        """
        if self._key is None:
            raise RuntimeError("Keystore is closed/cleared")

        return decrypt(ciphertext, self._key, nonce, associated_data)

    def clear(self) -> None:
        """Drop the key reference so the instance can no longer be used."""
        self._key = None
