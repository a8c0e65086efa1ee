"""Binance OAuth service: authorization, token exchange, revocation and API calls.

The OAuth round trip:
1. get_oauth_client_url() generates a fresh PKCE pair and returns the
   authorization URL to open in a browser.
2. The browser redirects to the custom-scheme callback with a one-time
   authorization code, handed to set_auth_code().
3. exchange_token() trades the code (plus the PKCE verifier) for an
   access/refresh token pair, which is stored encrypted.
4. revoke_token() invalidates the access token and clears local state.

Every operation is callback based: it returns True once the request is
accepted and later invokes the callback on the event loop with the parsed
result. Non-2xx responses and transport failures are reported through the
callback as defaults, never as exceptions. await_callback() adapts any
operation into an awaitable.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable
from urllib.parse import urlencode

import httpx

from . import parser
from .config import (
    API_PATH_TICKER_PRICE,
    API_PATH_TICKER_VOLUME,
    OAUTH_AUTHORIZE_URL,
    OAUTH_CALLBACK,
    OAUTH_PATH_ACCESS_TOKEN,
    OAUTH_PATH_ACCOUNT_BALANCES,
    OAUTH_PATH_CONVERT_ASSETS,
    OAUTH_PATH_CONVERT_CONFIRM,
    OAUTH_PATH_CONVERT_QUOTE,
    OAUTH_PATH_DEPOSIT_INFO,
    OAUTH_PATH_REVOKE_TOKEN,
    OAUTH_SCOPE,
    HostConfig,
    load_host_config,
)
from .multiplexer import RequestMultiplexer
from .oauth.codec import FernetSecretCodec
from .oauth.pkce import generate_pkce_pair
from .oauth.prefs import PREFERENCES_FILE, JsonPreferenceStore
from .oauth.store import CredentialStore
from .oauth.tokens import Credential

logger = logging.getLogger(__name__)

DEFAULT_TICKER_PRICE = "0.00"
DEFAULT_TICKER_VOLUME = "0"


def is_success_status(status: int) -> bool:
    """Check for a 2xx status."""
    return 200 <= status <= 299


def _with_query(url: str, params: dict[str, str]) -> str:
    return f"{url}?{urlencode(params)}"


class BinanceService:
    """OAuth flow controller and API client for one Binance account.

    Not thread-safe: drive it from a single event loop. Stored credentials
    are loaded once at construction; a load failure only means the user has
    to authenticate again.

    Usage:
        service = create_service()
        url = service.get_oauth_client_url()
        # ... user authorizes in the browser, redirect yields `code` ...
        service.set_auth_code(code)
        ok, = await await_callback(service.exchange_token)
    """

    def __init__(
        self,
        store: CredentialStore,
        multiplexer: RequestMultiplexer,
        config: HostConfig | None = None,
    ):
        """Initialize the service.

        Args:
            store: Encrypted credential store
            multiplexer: Request multiplexer used for all network calls
            config: Hosts and client id (defaults to production hosts)
        """
        self.store = store
        self.multiplexer = multiplexer
        self.config = config or HostConfig()

        self._code_verifier = ""
        self._code_challenge = ""
        self._auth_code = ""

        if self.store.load():
            logger.debug("Restored stored Binance credentials")

    # State accessors

    @property
    def credential(self) -> Credential:
        return self.store.credential

    @property
    def code_verifier(self) -> str:
        return self._code_verifier

    @property
    def code_challenge(self) -> str:
        return self._code_challenge

    def is_connected(self) -> bool:
        """Check if an access token is available."""
        return self.credential.is_authenticated()

    def set_auth_code(self, auth_code: str) -> None:
        """Record the authorization code received on the redirect."""
        self._auth_code = auth_code

    # Test configuration

    def set_client_id_for_test(self, client_id: str) -> None:
        self.config.client_id = client_id

    def set_oauth_host_for_test(self, oauth_host: str) -> None:
        self.config.oauth_host = oauth_host

    def set_api_host_for_test(self, api_host: str) -> None:
        self.config.api_host = api_host

    # OAuth flow

    def get_oauth_client_url(self) -> str:
        """Build the authorization URL with a fresh PKCE challenge.

        Any previous verifier is discarded; only the verifier behind the
        most recently returned URL can complete a token exchange.
        """
        pkce = generate_pkce_pair()
        self._code_verifier = pkce.verifier
        self._code_challenge = pkce.challenge

        params = {
            "response_type": "code",
            "client_id": self.config.client_id,
            "redirect_uri": OAUTH_CALLBACK,
            "scope": OAUTH_SCOPE,
            "code_challenge": pkce.challenge,
            "code_challenge_method": pkce.method,
        }
        return _with_query(OAUTH_AUTHORIZE_URL, params)

    def exchange_token(self, callback: Callable[[bool], Any]) -> bool:
        """Exchange the authorization code for tokens.

        The code is cleared as soon as it is copied into the request.

        Args:
            callback: Called with True if a non-empty access token was obtained

        Returns:
            True if the request was accepted
        """
        body = urlencode(
            {
                "grant_type": "authorization_code",
                "code": self._auth_code,
                "client_id": self.config.client_id,
                "code_verifier": self._code_verifier,
                "redirect_uri": OAUTH_CALLBACK,
            }
        )
        self._auth_code = ""

        def on_complete(status: int, response_body: str, headers: dict[str, str]) -> None:
            access_token = ""
            if is_success_status(status):
                access_token = parser.get_tokens_from_json(response_body, "access_token")
                refresh_token = parser.get_tokens_from_json(response_body, "refresh_token")
                if not self.store.save(access_token, refresh_token):
                    logger.warning("Obtained Binance tokens but could not persist them")
            else:
                logger.warning(f"Token exchange failed (HTTP {status})")
            callback(len(access_token) > 0)

        return self.multiplexer.issue(
            self.config.oauth_url(OAUTH_PATH_ACCESS_TOKEN), "POST", body, on_complete
        )

    def revoke_token(self, callback: Callable[[bool], Any]) -> bool:
        """Revoke the access token and clear local credentials.

        Local state is only cleared when the server confirms revocation.

        Args:
            callback: Called with the server's success flag
        """

        def on_complete(status: int, response_body: str, headers: dict[str, str]) -> None:
            success = False
            if is_success_status(status):
                success = parser.revoke_token_from_json(response_body)
            if success:
                self._code_challenge = ""
                self._code_verifier = ""
                self.store.save("", "")
                logger.info("Revoked Binance access token")
            else:
                logger.warning(f"Token revocation was not confirmed (HTTP {status})")
            callback(success)

        url = self._authenticated_url(OAUTH_PATH_REVOKE_TOKEN, {})
        return self.multiplexer.issue(url, "POST", "", on_complete)

    # Account and market operations

    def _authenticated_url(self, path: str, params: dict[str, str]) -> str:
        params = dict(params)
        params["access_token"] = self.credential.access_token
        return _with_query(self.config.oauth_url(path), params)

    def get_account_balances(self, callback: Callable[[dict[str, str], bool], Any]) -> bool:
        def on_complete(status: int, response_body: str, headers: dict[str, str]) -> None:
            balances: dict[str, str] = {}
            success = is_success_status(status)
            if success:
                balances = parser.get_account_balances_from_json(response_body)
            callback(balances, success)

        url = self._authenticated_url(OAUTH_PATH_ACCOUNT_BALANCES, {})
        return self.multiplexer.issue(url, "GET", "", on_complete)

    def get_convert_quote(
        self,
        from_asset: str,
        to_asset: str,
        amount: str,
        callback: Callable[[str, str, str, str], Any],
    ) -> bool:
        """Request a quote for converting `amount` of `from_asset` into `to_asset`.

        The callback receives (quote_id, quote_price, total_fee, total_amount),
        all empty on failure.
        """

        def on_complete(status: int, response_body: str, headers: dict[str, str]) -> None:
            quote = parser.ConvertQuote()
            if is_success_status(status):
                quote = parser.get_quote_info_from_json(response_body)
            callback(quote.quote_id, quote.quote_price, quote.total_fee, quote.total_amount)

        url = self._authenticated_url(
            OAUTH_PATH_CONVERT_QUOTE,
            {
                "fromAsset": from_asset,
                "toAsset": to_asset,
                "baseAsset": from_asset,
                "amount": amount,
            },
        )
        return self.multiplexer.issue(url, "POST", "", on_complete)

    def get_ticker_price(self, symbol_pair: str, callback: Callable[[str], Any]) -> bool:
        def on_complete(status: int, response_body: str, headers: dict[str, str]) -> None:
            price = DEFAULT_TICKER_PRICE
            if is_success_status(status):
                price = parser.get_ticker_price_from_json(response_body, DEFAULT_TICKER_PRICE)
            callback(price)

        url = _with_query(self.config.api_url(API_PATH_TICKER_PRICE), {"symbol": symbol_pair})
        return self.multiplexer.issue(url, "GET", "", on_complete)

    def get_ticker_volume(self, symbol_pair: str, callback: Callable[[str], Any]) -> bool:
        def on_complete(status: int, response_body: str, headers: dict[str, str]) -> None:
            volume = DEFAULT_TICKER_VOLUME
            if is_success_status(status):
                volume = parser.get_ticker_volume_from_json(response_body, DEFAULT_TICKER_VOLUME)
            callback(volume)

        url = _with_query(self.config.api_url(API_PATH_TICKER_VOLUME), {"symbol": symbol_pair})
        return self.multiplexer.issue(url, "GET", "", on_complete)

    def get_deposit_info(self, symbol: str, callback: Callable[[str, str, bool], Any]) -> bool:
        def on_complete(status: int, response_body: str, headers: dict[str, str]) -> None:
            info = parser.DepositInfo()
            success = is_success_status(status)
            if success:
                info = parser.get_deposit_info_from_json(response_body)
            callback(info.address, info.url, success)

        url = self._authenticated_url(OAUTH_PATH_DEPOSIT_INFO, {"coin": symbol})
        return self.multiplexer.issue(url, "GET", "", on_complete)

    def confirm_convert(self, quote_id: str, callback: Callable[[bool, str], Any]) -> bool:
        def on_complete(status: int, response_body: str, headers: dict[str, str]) -> None:
            success, error_message = False, ""
            if is_success_status(status):
                success, error_message = parser.get_confirm_status_from_json(response_body)
            callback(success, error_message)

        url = self._authenticated_url(OAUTH_PATH_CONVERT_CONFIRM, {"quoteId": quote_id})
        return self.multiplexer.issue(url, "POST", "", on_complete)

    def get_convert_assets(self, callback: Callable[[dict[str, list[str]]], Any]) -> bool:
        def on_complete(status: int, response_body: str, headers: dict[str, str]) -> None:
            assets: dict[str, list[str]] = {}
            if is_success_status(status):
                assets = parser.get_convert_assets_from_json(response_body)
            callback(assets)

        url = self._authenticated_url(OAUTH_PATH_CONVERT_ASSETS, {})
        return self.multiplexer.issue(url, "GET", "", on_complete)


class RequestNotAcceptedError(Exception):
    """The service refused to issue a request."""

    pass


async def await_callback(start: Callable[[Callable[..., None]], bool]) -> tuple[Any, ...]:
    """Run a callback-style operation and await the values it reports.

    Args:
        start: Called with the callback; returns whether the request was accepted

    Returns:
        The positional arguments passed to the callback

    Raises:
        RequestNotAcceptedError: If the operation was not accepted
    """
    future: asyncio.Future[tuple[Any, ...]] = asyncio.get_running_loop().create_future()

    def done(*args: Any) -> None:
        if not future.done():
            future.set_result(args)

    if not start(done):
        raise RequestNotAcceptedError("Request was not accepted")
    return await future


def create_service(
    config: HostConfig | None = None,
    state_dir: Path | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> BinanceService:
    """Wire a service with the default codec, preference file and multiplexer.

    Args:
        config: Host configuration (defaults to load_host_config())
        state_dir: Directory for the preference file
        transport: Optional httpx transport
    """
    prefs_file = state_dir / PREFERENCES_FILE if state_dir else None
    store = CredentialStore(FernetSecretCodec(), JsonPreferenceStore(prefs_file))
    return BinanceService(
        store,
        RequestMultiplexer(transport=transport),
        config or load_host_config(),
    )
