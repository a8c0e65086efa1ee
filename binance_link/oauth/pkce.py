"""PKCE code verifiers and S256 challenges (RFC 7636).

Binance requires the S256 challenge method. The verifier is the upper-case
hex encoding of a 32-byte random seed, which stays inside the unreserved
character set and the 43-128 length window of RFC 7636.
"""

import base64
import binascii
import hashlib
import secrets
from dataclasses import dataclass


# Size of the random seed behind each code verifier
SEED_BYTE_LENGTH = 32


@dataclass
class PKCEPair:
    """A verifier and the challenge derived from it.

    The challenge goes into the authorization URL; the verifier only ever
    leaves the process inside the token request.
    """

    verifier: str
    challenge: str
    method: str = "S256"


def generate_code_verifier() -> str:
    """Return 64 upper-case hex characters drawn from `secrets`."""
    seed = secrets.token_bytes(SEED_BYTE_LENGTH)
    return binascii.hexlify(seed).decode("ascii").upper()


def generate_code_challenge(verifier: str) -> str:
    """Derive the S256 challenge: unpadded URL-safe base64 of SHA-256(verifier)."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()

    # Standard base64 rewritten to the URL-safe alphabet, padding stripped
    challenge = base64.b64encode(digest).decode("ascii")
    challenge = challenge.replace("+", "-").replace("/", "_")
    return challenge.rstrip("=")


def generate_pkce_pair() -> PKCEPair:
    verifier = generate_code_verifier()
    return PKCEPair(verifier=verifier, challenge=generate_code_challenge(verifier))
