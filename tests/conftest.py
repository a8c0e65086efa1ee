"""Shared fixtures and utilities for binance-link tests."""

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from binance_link.config import HostConfig
from binance_link.multiplexer import RequestMultiplexer
from binance_link.oauth.codec import SecretCodecError
from binance_link.oauth.prefs import MemoryPreferenceStore
from binance_link.oauth.store import CredentialStore
from binance_link.service import BinanceService


# ============================================================================
# Test Doubles
# ============================================================================


class FakeSecretCodec:
    """Reversible stand-in for the Fernet codec.

    Ciphertext is the plaintext prefixed with a marker, so tests can inspect
    what was persisted. Failures can be switched on per direction.
    """

    PREFIX = b"sealed:"

    def __init__(self) -> None:
        self.fail_encrypt = False
        self.fail_decrypt = False
        self.encrypted: list[str] = []

    def encrypt(self, plaintext: str) -> bytes:
        if self.fail_encrypt:
            raise SecretCodecError("encryption unavailable")
        self.encrypted.append(plaintext)
        return self.PREFIX + plaintext.encode("utf-8")

    def decrypt(self, ciphertext: bytes) -> str:
        if self.fail_decrypt or not ciphertext.startswith(self.PREFIX):
            raise SecretCodecError("cannot decrypt")
        return ciphertext[len(self.PREFIX):].decode("utf-8")


class FakeBinance:
    """httpx.MockTransport handler serving canned responses by path.

    Every request is recorded. Paths without a route answer 404.
    """

    def __init__(self) -> None:
        self.routes: dict[str, tuple[int, str, dict[str, str]]] = {}
        self.requests: list[httpx.Request] = []

    def route(
        self,
        path: str,
        status: int = 200,
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        text = body if isinstance(body, str) else json.dumps(body if body is not None else {})
        self.routes[path] = (status, text, headers or {})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, text, headers = self.routes.get(request.url.path, (404, "", {}))
        return httpx.Response(status, text=text, headers=headers)

    def last_request(self, path: str) -> httpx.Request:
        matching = [r for r in self.requests if r.url.path == path]
        assert matching, f"no request to {path}"
        return matching[-1]


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def codec() -> FakeSecretCodec:
    return FakeSecretCodec()


@pytest.fixture
def prefs() -> MemoryPreferenceStore:
    return MemoryPreferenceStore()


@pytest.fixture
def store(codec: FakeSecretCodec, prefs: MemoryPreferenceStore) -> CredentialStore:
    return CredentialStore(codec, prefs)


@pytest.fixture
def fake_binance() -> FakeBinance:
    return FakeBinance()


@pytest.fixture
def host_config() -> HostConfig:
    return HostConfig(
        oauth_host="accounts.test.example",
        api_host="api.test.example",
        client_id="test_client",
    )


@pytest.fixture
def make_service(
    codec: FakeSecretCodec,
    prefs: MemoryPreferenceStore,
    fake_binance: FakeBinance,
    host_config: HostConfig,
) -> Callable[[], BinanceService]:
    """Build services sharing the same codec, preferences and fake server.

    Building a second service simulates a process restart.
    """

    def factory() -> BinanceService:
        return BinanceService(
            CredentialStore(codec, prefs),
            RequestMultiplexer(transport=httpx.MockTransport(fake_binance)),
            HostConfig(
                oauth_host=host_config.oauth_host,
                api_host=host_config.api_host,
                client_id=host_config.client_id,
            ),
        )

    return factory


@pytest.fixture
def service(make_service: Callable[[], BinanceService]) -> BinanceService:
    return make_service()
