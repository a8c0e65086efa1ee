"""Host configuration and endpoint constants for binance-link."""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Fixed OAuth parameters
OAUTH_AUTHORIZE_URL = "https://accounts.binance.com/en/oauth/authorize"
OAUTH_CALLBACK = "com.brave.binance://authorization"
OAUTH_SCOPE = "user:email,user:address,asset:balance,asset:ocbs"

DEFAULT_OAUTH_HOST = "accounts.binance.com"
DEFAULT_API_HOST = "api.binance.com"

# Paths on the OAuth host
OAUTH_PATH_ACCESS_TOKEN = "/oauth/token"
OAUTH_PATH_ACCOUNT_BALANCES = "/oauth-api/v1/balance"
OAUTH_PATH_CONVERT_QUOTE = "/oauth-api/v1/ocbs/quote"
OAUTH_PATH_CONVERT_CONFIRM = "/oauth-api/v1/ocbs/confirm"
OAUTH_PATH_CONVERT_ASSETS = "/oauth-api/v1/ocbs/support-coins"
OAUTH_PATH_DEPOSIT_INFO = "/oauth-api/v1/get-charge-address"
OAUTH_PATH_REVOKE_TOKEN = "/oauth-api/v1/revoke-token"

# Paths on the public API host
API_PATH_TICKER_PRICE = "/api/v3/ticker/price"
API_PATH_TICKER_VOLUME = "/api/v3/ticker/24hr"

# Environment variables
ENV_CLIENT_ID = "BINANCE_CLIENT_ID"
ENV_OAUTH_HOST = "BINANCE_OAUTH_HOST"
ENV_API_HOST = "BINANCE_API_HOST"

# Env file search paths in priority order
ENV_SEARCH_PATHS = [
    Path(".env"),
    Path.home() / ".cache" / "binance-link" / ".env",
]


@dataclass
class HostConfig:
    """Hosts and client id the service talks to."""

    oauth_host: str = DEFAULT_OAUTH_HOST
    api_host: str = DEFAULT_API_HOST
    client_id: str = ""

    def oauth_url(self, path: str) -> str:
        """Build an https URL on the OAuth host."""
        return f"https://{self.oauth_host}{path}"

    def api_url(self, path: str) -> str:
        """Build an https URL on the public API host."""
        return f"https://{self.api_host}{path}"


def find_env_file(explicit_path: Path | None = None) -> Path | None:
    """Find the .env file, checking project then user level."""
    if explicit_path:
        if explicit_path.exists():
            return explicit_path
        return None

    for path in ENV_SEARCH_PATHS:
        if path.exists():
            return path
    return None


def load_host_config(env_path: Path | None = None) -> HostConfig:
    """Load host configuration from the environment.

    An optional .env file is loaded first; variables already set in the
    environment win over it.

    Args:
        env_path: Explicit path to .env file (optional)

    Returns:
        HostConfig with defaults for anything unset
    """
    env_file = find_env_file(env_path)
    if env_file:
        load_dotenv(env_file)

    return HostConfig(
        oauth_host=os.environ.get(ENV_OAUTH_HOST) or DEFAULT_OAUTH_HOST,
        api_host=os.environ.get(ENV_API_HOST) or DEFAULT_API_HOST,
        client_id=os.environ.get(ENV_CLIENT_ID, ""),
    )


def get_binance_tld(country_code: str) -> str:
    """Get the Binance top-level domain for a two-letter country code."""
    return "us" if country_code.strip().upper() == "US" else "com"
