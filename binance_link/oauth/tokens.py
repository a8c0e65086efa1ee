"""OAuth credential data structure."""

from dataclasses import dataclass
from typing import Any


@dataclass
class Credential:
    """Access/refresh token pair for the Binance account API.

    The two tokens are always set or cleared together. The refresh token
    is kept alongside the access token but never sent anywhere.

    Attributes:
        access_token: The access token string ("" when signed out)
        refresh_token: The refresh token string ("" when signed out)
    """

    access_token: str = ""
    refresh_token: str = ""

    def set(self, access_token: str, refresh_token: str) -> None:
        """Replace both tokens."""
        self.access_token = access_token
        self.refresh_token = refresh_token

    def clear(self) -> None:
        """Forget both tokens."""
        self.set("", "")

    def is_authenticated(self) -> bool:
        """Check if an access token is available."""
        return len(self.access_token) > 0

    def has_refresh_token(self) -> bool:
        """Check if a refresh token is available."""
        return len(self.refresh_token) > 0

    def redacted(self) -> dict[str, Any]:
        """Get non-sensitive credential info for display."""
        return {
            "authenticated": self.is_authenticated(),
            "has_refresh_token": self.has_refresh_token(),
        }
