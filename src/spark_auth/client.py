"""Spark client - public entry point for authentication and API calls."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import httpx

from .api.request import ApiRequest, AuthorizedRequestFactory
from .auth.manager import TokenManager
from .clock import Clock, system_clock
from .config import ClientConfig, SparkSettings
from .oauth.client import MissingInputError, TokenServiceClient
from .oauth.redirect import api_name, build_login_url
from .oauth.storage import FileKeyValueStore, KeyValueStore, MemoryKeyValueStore, TokenRecord, TokenStore


class SparkClient:
    """Spark API client with token management.

    Usage:
        async with SparkClient.initialize("app_key", guest_token_url=...) as spark:
            url = spark.get_login_redirect_url()
            ...
            await spark.complete_login(False, redirect_url)
            member = await spark.authorized_api_request("/members/me").get()
            files = await spark.authorized_as_guest_api_request("/files").get()
    """

    def __init__(
        self,
        config: ClientConfig,
        storage: KeyValueStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        auth_http_client: httpx.AsyncClient | None = None,
        clock: Clock = system_clock,
        single_flight_refresh: bool = False,
        timeout: float = 30.0,
    ):
        """Initialize the client.

        Args:
            config: Client configuration
            storage: Token backend (default: in-memory)
            http_client: Client used for Spark API calls (created if omitted)
            auth_http_client: Client used for auth server calls (per-call if omitted)
            clock: Source of the current time in epoch milliseconds
            single_flight_refresh: Share one in-flight refresh between callers
            timeout: HTTP timeout in seconds for clients created here
        """
        self.config = config
        self.clock = clock
        self.store = TokenStore(storage if storage is not None else MemoryKeyValueStore(), clock)
        self.service = TokenServiceClient(config, http_client=auth_http_client, timeout=timeout)
        self.tokens = TokenManager(
            config,
            self.store,
            self.service,
            clock=clock,
            single_flight_refresh=single_flight_refresh,
        )

        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self.requests = AuthorizedRequestFactory(config, self.tokens, self._http)

    @classmethod
    def initialize(cls, app_id: str, **options: Any) -> "SparkClient":
        """Create a client the way the JavaScript SDK's ``initialize`` does.

        Config options (``api_root``, ``is_production``, ``redirect_uri`` and
        the three auth server URLs) go to ClientConfig; the rest are passed
        to the constructor.
        """
        config_keys = (
            "api_root",
            "is_production",
            "redirect_uri",
            "guest_token_url",
            "access_token_url",
            "refresh_token_url",
        )
        config_options = {k: options.pop(k) for k in config_keys if k in options}
        return cls(ClientConfig.create(app_id, **config_options), **options)

    @classmethod
    def from_settings(cls, settings: SparkSettings | None = None, **kwargs: Any) -> "SparkClient":
        """Create a client from environment / .env settings with file-backed tokens."""
        settings = settings or SparkSettings()
        kwargs.setdefault("storage", FileKeyValueStore(Path(settings.token_dir)))
        kwargs.setdefault("single_flight_refresh", settings.single_flight_refresh)
        kwargs.setdefault("timeout", settings.http_timeout)
        return cls(settings.to_client_config(), **kwargs)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    async def aclose(self):
        """Close the HTTP client if this client created it."""
        if self._owns_http:
            await self._http.aclose()

    # Environment

    def get_api_name(self) -> str:
        """Name of the API in use, normally ``sandbox`` or ``production``."""
        return api_name(self.config.api_url)

    def get_login_redirect_url(self, show_register: bool = False, is_server_flow: bool = False) -> str:
        """URL to send the browser to for logging in.

        Raises:
            MissingInputError: If no redirect URI is configured
        """
        if not self.config.redirect_uri:
            raise MissingInputError("No redirect_uri configured")
        return build_login_url(self.config, self.config.redirect_uri, show_register, is_server_flow)

    # Tokens

    def logout(self) -> None:
        self.tokens.logout()

    def is_access_token_valid(self) -> bool:
        return self.tokens.is_access_token_valid()

    def get_access_token_object(self) -> TokenRecord | None:
        return self.tokens.get_access_token_object()

    def get_access_token(self) -> str | None:
        return self.tokens.get_access_token()

    async def get_guest_token(self) -> str:
        return await self.tokens.get_guest_token()

    async def refresh_access_token(self) -> dict[str, Any]:
        return await self.tokens.refresh_access_token()

    async def complete_login(self, is_server_flow: bool, redirect_url: str) -> str:
        return await self.tokens.complete_login(is_server_flow, redirect_url)

    # Requests

    def authorized_api_request(self, endpoint: str, **options: Any) -> ApiRequest:
        return self.requests.authorized_api_request(endpoint, **options)

    def authorized_as_guest_api_request(self, endpoint: str, **options: Any) -> ApiRequest:
        return self.requests.authorized_as_guest_api_request(endpoint, **options)
