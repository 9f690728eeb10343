"""Shared test fixtures for the Spark auth test suite."""

import inspect
import json

import httpx
import pytest

from spark_auth.auth.manager import TokenManager
from spark_auth.client import SparkClient
from spark_auth.config import ClientConfig
from spark_auth.oauth.client import TokenServiceClient
from spark_auth.oauth.storage import MemoryKeyValueStore, TokenStore

SAMPLE_APP_ID = "app_test123"
API_ROOT = "https://sandbox.spark.test/api/v1"
GUEST_URL = "https://auth.example.com/guest"
ACCESS_URL = "https://auth.example.com/access"
REFRESH_URL = "https://auth.example.com/refresh"
REDIRECT_URI = "https://app.example.com/callback"

# 2024-01-15T10:00:00Z
NOW_MS = 1705312800000


# ============================================================================
# Helpers
# ============================================================================


class FakeClock:
    """Deterministic epoch-millisecond clock."""

    def __init__(self, now: int = NOW_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


class RecordingTransport(httpx.MockTransport):
    """MockTransport that answers from a url -> payload table and records requests.

    A payload may be a dict (200 JSON), an httpx.Response, or a callable
    taking the request. An async callable is awaited, which lets a test
    hold a request open while other tasks run.
    """

    def __init__(self, routes: dict | None = None):
        self.routes = dict(routes or {})
        self.requests: list[httpx.Request] = []
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url).split("?")[0]
        payload = self.routes.get(url)
        if payload is None:
            return httpx.Response(404, json={"error": "not found"})
        if inspect.iscoroutinefunction(payload):
            return self._handle_async(payload, request)
        if callable(payload):
            payload = payload(request)
        return self._to_response(payload)

    async def _handle_async(self, handler, request: httpx.Request) -> httpx.Response:
        return self._to_response(await handler(request))

    @staticmethod
    def _to_response(payload) -> httpx.Response:
        if isinstance(payload, httpx.Response):
            return payload
        return httpx.Response(200, json=payload)

    def calls_to(self, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if str(r.url).split("?")[0] == url]


def stored(backend: MemoryKeyValueStore, key: str) -> dict | None:
    raw = backend.get(key)
    return json.loads(raw) if raw is not None else None


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend():
    return MemoryKeyValueStore()


@pytest.fixture
def store(backend, clock):
    return TokenStore(backend, clock)


@pytest.fixture
def config():
    """Config with every auth server endpoint configured."""
    return ClientConfig.create(
        SAMPLE_APP_ID,
        api_root=API_ROOT,
        redirect_uri=REDIRECT_URI,
        guest_token_url=GUEST_URL,
        access_token_url=ACCESS_URL,
        refresh_token_url=REFRESH_URL,
    )


@pytest.fixture
def bare_config():
    """Config without any auth server endpoints."""
    return ClientConfig.create(SAMPLE_APP_ID, api_root=API_ROOT)


@pytest.fixture
def auth_transport():
    return RecordingTransport()


@pytest.fixture
def api_transport():
    return RecordingTransport()


@pytest.fixture
def auth_http(auth_transport):
    return httpx.AsyncClient(transport=auth_transport)


@pytest.fixture
def api_http(api_transport):
    return httpx.AsyncClient(transport=api_transport)


@pytest.fixture
def service(config, auth_http):
    return TokenServiceClient(config, http_client=auth_http)


@pytest.fixture
def manager(config, store, service, clock):
    return TokenManager(config, store, service, clock=clock)


@pytest.fixture
def make_client(backend, clock, auth_http, api_http):
    """Factory for SparkClient instances sharing the fixture backend and transports."""

    def _create(config: ClientConfig, **kwargs) -> SparkClient:
        kwargs.setdefault("storage", backend)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("auth_http_client", auth_http)
        kwargs.setdefault("http_client", api_http)
        return SparkClient(config, **kwargs)

    return _create


@pytest.fixture
def spark(make_client, config):
    return make_client(config)


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner."""
    from typer.testing import CliRunner
    return CliRunner()
