"""OAuth credential support for binance-link.

Main Components:
    PKCEPair: PKCE verifier/challenge pair
    Credential: Access/refresh token pair
    CredentialStore: Encrypted credential persistence
    FernetSecretCodec: Keyring-backed secret encryption
    JsonPreferenceStore: Key-value storage for persisted strings
"""

from .codec import FernetSecretCodec, SecretCodec, SecretCodecError
from .pkce import PKCEPair, generate_code_challenge, generate_code_verifier, generate_pkce_pair
from .prefs import (
    JsonPreferenceStore,
    MemoryPreferenceStore,
    PreferenceStore,
    PreferenceStoreError,
)
from .store import CredentialStore
from .tokens import Credential

__all__ = [
    # Storage
    "CredentialStore",
    "Credential",
    # Encryption
    "SecretCodec",
    "FernetSecretCodec",
    "SecretCodecError",
    # Preferences
    "PreferenceStore",
    "JsonPreferenceStore",
    "MemoryPreferenceStore",
    "PreferenceStoreError",
    # PKCE
    "generate_pkce_pair",
    "generate_code_verifier",
    "generate_code_challenge",
    "PKCEPair",
]
