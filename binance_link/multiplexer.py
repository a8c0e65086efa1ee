"""Concurrent request tracking against the Binance hosts.

Every outbound call goes through RequestMultiplexer.issue(), which records
the request in an active set keyed by a generated id, dispatches it on the
running event loop, and hands the response to a caller-supplied
continuation once it completes.

Ordering per request:
1. The entry is added to the active set before dispatch.
2. The response (or transport failure) is extracted.
3. The entry is removed from the active set.
4. The continuation is invoked with (status, body, headers).

Completed requests therefore never linger in the active set and a request
cannot complete twice. Completions of concurrent requests arrive in no
particular order.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass
from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import Any, Callable

import httpx

logger = logging.getLogger(__name__)

# Status reported when the transport produced no response
NO_RESPONSE_STATUS = -1

# Automatic retries, only on connection failure
RETRIES_ON_NETWORK_CHANGE = 1

DEFAULT_TIMEOUT = 30.0

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

# Sent with every request so no intermediary serves a cached response
NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

Continuation = Callable[[int, str, dict[str, str]], Any]


@dataclass
class InFlightRequest:
    """A dispatched request that has not completed yet."""

    request_id: int
    method: str
    url: str
    task: "asyncio.Task[None] | None" = None


def _cookie_free_jar() -> CookieJar:
    """Create a cookie jar that refuses to store or send any cookie."""
    return CookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))


def _safe_url(url: str) -> str:
    """Strip the query string (which may carry an access token) for logging."""
    return str(httpx.URL(url).copy_with(query=None))


def build_http_client(
    transport: httpx.AsyncBaseTransport | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> httpx.AsyncClient:
    """Build the HTTP client used for all Binance requests.

    Cookies are disabled in both directions. The default transport retries
    once when the connection cannot be established.

    Args:
        transport: Optional transport (tests pass httpx.MockTransport)
        timeout: Per-request timeout in seconds
    """
    return httpx.AsyncClient(
        transport=transport or httpx.AsyncHTTPTransport(retries=RETRIES_ON_NETWORK_CHANGE),
        cookies=_cookie_free_jar(),
        timeout=timeout,
    )


class RequestMultiplexer:
    """Owns the set of in-flight requests and completes them exactly once.

    Must be driven from a single event loop. issue() returns immediately;
    continuations run later on the same loop.

    Usage:
        mux = RequestMultiplexer()
        mux.issue(url, "GET", "", on_done)
        await mux.join()
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """Initialize the multiplexer.

        Args:
            transport: Optional httpx transport for the underlying client
            timeout: Per-request timeout in seconds
        """
        self._transport = transport
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None
        self._active: dict[int, InFlightRequest] = {}
        self._ids = itertools.count(1)

    @property
    def active_count(self) -> int:
        """Number of requests currently in flight."""
        return len(self._active)

    def is_active(self, request_id: int) -> bool:
        return request_id in self._active

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = build_http_client(self._transport, self._timeout)
        return self._client

    def issue(
        self,
        url: str,
        method: str,
        body: str,
        continuation: Continuation,
    ) -> bool:
        """Dispatch a request and schedule its continuation.

        Args:
            url: Absolute request URL
            method: HTTP method ("GET" or "POST")
            body: Form-encoded body, or "" for none
            continuation: Called as continuation(status, body, headers)

        Returns:
            True if the request was accepted, False if the URL is invalid or
            no event loop is running
        """
        try:
            safe_url = _safe_url(url)
        except httpx.InvalidURL as e:
            logger.error(f"Cannot issue {method} request: invalid URL ({e})")
            return False

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error(f"Cannot issue {method} {safe_url}: no running event loop")
            return False

        request_id = next(self._ids)
        entry = InFlightRequest(request_id=request_id, method=method, url=url)
        self._active[request_id] = entry
        entry.task = loop.create_task(self._run(request_id, url, method, body, continuation))

        logger.debug(f"Issued request #{request_id}: {method} {safe_url}")
        return True

    async def _send(self, url: str, method: str, body: str) -> tuple[int, str, dict[str, str]]:
        """Perform the request, mapping transport failure to NO_RESPONSE_STATUS."""
        headers = dict(NO_CACHE_HEADERS)
        content = None
        if body:
            headers["Content-Type"] = FORM_CONTENT_TYPE
            content = body.encode("utf-8")

        try:
            response = await self._get_client().request(
                method, url, content=content, headers=headers
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"Request {method} {_safe_url(url)} failed: {type(e).__name__}: {e}")
            return NO_RESPONSE_STATUS, "", {}
        except Exception as e:
            logger.error(
                f"Request {method} {_safe_url(url)} raised {type(e).__name__}: {e}",
                exc_info=True,
            )
            return NO_RESPONSE_STATUS, "", {}

        response_headers = {key.lower(): value for key, value in response.headers.items()}
        return response.status_code, response.text, response_headers

    async def _run(
        self,
        request_id: int,
        url: str,
        method: str,
        body: str,
        continuation: Continuation,
    ) -> None:
        try:
            status, response_body, headers = await self._send(url, method, body)
        finally:
            self._active.pop(request_id, None)

        logger.debug(f"Request #{request_id} completed with status {status}")

        try:
            continuation(status, response_body, headers)
        except Exception as e:
            logger.error(
                f"Continuation for request #{request_id} raised {type(e).__name__}: {e}",
                exc_info=True,
            )

    async def join(self) -> None:
        """Wait until no request is in flight.

        Requests issued by continuations while waiting are waited for too.
        """
        while self._active:
            tasks = [entry.task for entry in self._active.values() if entry.task is not None]
            await asyncio.gather(*tasks, return_exceptions=True)

    async def aclose(self) -> None:
        """Wait for in-flight requests, then close the HTTP client."""
        await self.join()
        if self._client is not None:
            await self._client.aclose()
            self._client = None
