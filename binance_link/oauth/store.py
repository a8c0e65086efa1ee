"""Encrypted credential storage.

Each token is encrypted independently with a SecretCodec, base64-encoded,
and written to the preference store under a fixed key. Persistence is best
effort: the in-memory credential is updated before anything is written and
is never rolled back when encryption or the write fails.
"""

import base64
import binascii
import logging

from .codec import SecretCodec, SecretCodecError
from .prefs import PreferenceStore, PreferenceStoreError
from .tokens import Credential

logger = logging.getLogger(__name__)

# Preference keys
ACCESS_TOKEN_KEY = "binance.access_token"
REFRESH_TOKEN_KEY = "binance.refresh_token"


class CredentialStore:
    """In-memory credential mirrored, encrypted, in a preference store."""

    def __init__(self, codec: SecretCodec, prefs: PreferenceStore):
        """Initialize credential store.

        Args:
            codec: Secret codec used to encrypt tokens at rest
            prefs: Preference store holding the encoded ciphertexts
        """
        self.codec = codec
        self.prefs = prefs
        self._credential = Credential()

    @property
    def credential(self) -> Credential:
        """The in-memory credential."""
        return self._credential

    def save(self, access_token: str, refresh_token: str) -> bool:
        """Set the credential and persist it encrypted.

        Args:
            access_token: New access token ("" to sign out)
            refresh_token: New refresh token ("" to sign out)

        Returns:
            True if both tokens were persisted, False otherwise
        """
        self._credential.set(access_token, refresh_token)

        try:
            encrypted_access = self.codec.encrypt(access_token)
            encrypted_refresh = self.codec.encrypt(refresh_token)
        except SecretCodecError as e:
            logger.error(f"Could not encrypt and save Binance token info: {e}")
            return False

        try:
            # The pair lands in a single write or not at all
            self.prefs.set_many(
                {
                    ACCESS_TOKEN_KEY: base64.b64encode(encrypted_access).decode("ascii"),
                    REFRESH_TOKEN_KEY: base64.b64encode(encrypted_refresh).decode("ascii"),
                }
            )
        except PreferenceStoreError as e:
            logger.error(f"Could not persist Binance token info: {e}")
            return False

        logger.debug("Stored Binance credentials")
        return True

    def load(self) -> bool:
        """Load the persisted credential into memory.

        On any decode or decrypt failure the in-memory credential is left
        empty and the user has to authenticate again.

        Returns:
            True if both tokens were restored
        """
        encoded_access = self.prefs.get(ACCESS_TOKEN_KEY)
        encoded_refresh = self.prefs.get(REFRESH_TOKEN_KEY)

        if not encoded_access and not encoded_refresh:
            logger.debug("No stored Binance credentials")
            return False

        try:
            encrypted_access = base64.b64decode(encoded_access, validate=True)
            encrypted_refresh = base64.b64decode(encoded_refresh, validate=True)
        except (binascii.Error, ValueError) as e:
            logger.error(f"Could not Base64 decode Binance token info: {e}")
            return False

        try:
            access_token = self.codec.decrypt(encrypted_access)
            refresh_token = self.codec.decrypt(encrypted_refresh)
        except SecretCodecError as e:
            logger.error(f"Could not decrypt Binance token info: {e}")
            return False

        self._credential.set(access_token, refresh_token)
        return True
