"""Secret encryption for credentials at rest.

The default codec uses:
- Fernet symmetric encryption (AES-128-CBC + HMAC)
- OS keyring for encryption key storage (Keychain, libsecret, DPAPI)
- A machine-derived key when no keyring backend is available
"""

import base64
import hashlib
import logging
import os
from pathlib import Path
from typing import Protocol

import keyring
from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

# Keyring service name for binance-link
KEYRING_SERVICE = "binance-link"
KEYRING_USERNAME = "credential-encryption-key"


class SecretCodecError(Exception):
    """Error encrypting or decrypting a secret."""

    pass


class SecretCodec(Protocol):
    """Encrypts and decrypts secrets for storage.

    Both methods raise SecretCodecError on failure.
    """

    def encrypt(self, plaintext: str) -> bytes: ...

    def decrypt(self, ciphertext: bytes) -> str: ...


MACHINE_ID_FILE = Path("/etc/machine-id")


def _derive_fallback_key() -> bytes:
    """Derive a Fernet key from the machine id, home directory and user.

    Only used without a keyring. Anyone on the same account can rebuild it.
    """
    machine_id = MACHINE_ID_FILE.read_text().strip() if MACHINE_ID_FILE.exists() else ""
    user = os.environ.get("USER") or os.environ.get("USERNAME") or "bnlink"
    seed = "|".join([KEYRING_SERVICE, machine_id, str(Path.home()), user])
    return base64.urlsafe_b64encode(hashlib.sha256(seed.encode()).digest())


class FernetSecretCodec:
    """Fernet-backed secret codec with the key held in the OS keyring."""

    def __init__(self, key: bytes | None = None):
        """Initialize the codec.

        Args:
            key: Optional Fernet key. When omitted the key is read from
                (or generated into) the OS keyring.
        """
        self._using_keyring = False
        if key is None:
            key = self._keyring_key()
        self._cipher = Fernet(key)

    def _keyring_key(self) -> bytes:
        """Read the key from the keyring, creating it on first use.

        Falls back to a machine-derived key when no keyring backend works.
        """
        try:
            stored = keyring.get_password(KEYRING_SERVICE, KEYRING_USERNAME)
            if stored is None:
                stored = Fernet.generate_key().decode("ascii")
                keyring.set_password(KEYRING_SERVICE, KEYRING_USERNAME, stored)
                logger.debug("Stored a new credential key in the keyring")
        except Exception as e:
            logger.warning(
                f"Keyring unavailable ({type(e).__name__}: {e}); "
                f"encrypting credentials with a machine-derived key instead"
            )
            return _derive_fallback_key()

        self._using_keyring = True
        return stored.encode("ascii")

    def encrypt(self, plaintext: str) -> bytes:
        """Encrypt a string.

        Args:
            plaintext: String to encrypt

        Returns:
            Fernet token bytes
        """
        try:
            return self._cipher.encrypt(plaintext.encode("utf-8"))
        except (TypeError, UnicodeEncodeError) as e:
            raise SecretCodecError(f"Failed to encrypt secret: {e}") from e

    def decrypt(self, ciphertext: bytes) -> str:
        """Decrypt a Fernet token.

        Raises:
            SecretCodecError: If decryption fails
        """
        try:
            return self._cipher.decrypt(ciphertext).decode("utf-8")
        except (InvalidToken, TypeError, UnicodeDecodeError) as e:
            raise SecretCodecError(
                "Failed to decrypt secret. The encryption key may have changed."
            ) from e

    def is_using_keyring(self) -> bool:
        """Check if keyring is being used for encryption key storage."""
        return self._using_keyring
