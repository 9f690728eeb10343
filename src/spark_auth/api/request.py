"""Spark API requests with a per-call Authorization header.

An ApiRequest is bound to one endpoint and to an async resolver that
produces the Authorization header value right before each send.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

import httpx

from ..auth.manager import TokenManager
from ..config import ClientConfig
from ..oauth.client import OAuthError
from ..oauth.storage import TokenSlot, TokenStore

logger = logging.getLogger(__name__)

AuthorizationResolver = Callable[[], Awaitable[str | None]]


class SparkAPIError(Exception):
    """Base exception for Spark API errors."""

    def __init__(self, message: str, status_code: int | None = None, response: Any = None):
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(self.message)


class SparkAuthError(SparkAPIError):
    """Authentication error."""

    pass


class SparkRateLimitError(SparkAPIError):
    """Rate limit exceeded."""

    pass


def bearer(token: str | None) -> str | None:
    return f"Bearer {token}" if token else None


class ApiRequest:
    """One Spark API endpoint, called with a freshly resolved Authorization header.

    Usage:
        request = client.authorized_api_request("/members/me")
        member = await request.get()
        await request.put(json={"first_name": "Ada"})
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        url: str,
        authorization: AuthorizationResolver | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ):
        self.http = http
        self.url = url
        self._authorization = authorization
        self.headers = dict(headers or {})
        self.timeout = timeout

    async def resolve_authorization(self) -> str | None:
        """Authorization header value for the next send, or None."""
        if self._authorization is None:
            return None
        return await self._authorization()

    async def _request(
        self,
        method: str,
        params: dict | None = None,
        json: Any = None,
        data: dict | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Send the request with error handling."""
        request_headers = {**self.headers, **(headers or {})}
        authorization = await self.resolve_authorization()
        if authorization:
            request_headers["Authorization"] = authorization

        kwargs: dict[str, Any] = {
            "params": params,
            "json": json,
            "data": data,
            "headers": request_headers,
        }
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout

        try:
            response = await self.http.request(method, self.url, **kwargs)

            if response.status_code == 401:
                raise SparkAuthError("Invalid or expired token", 401, _body(response))

            if response.status_code == 429:
                raise SparkRateLimitError(
                    "Rate limit exceeded. Wait and retry.",
                    429,
                    _body(response),
                )

            response.raise_for_status()
            return response.json() if response.content else {}

        except httpx.HTTPStatusError as e:
            raise SparkAPIError(
                f"API error: {e.response.status_code}",
                e.response.status_code,
                _body(e.response),
            ) from e

    async def get(self, params: dict | None = None, headers: dict[str, str] | None = None) -> Any:
        return await self._request("GET", params=params, headers=headers)

    async def post(
        self,
        json: Any = None,
        data: dict | None = None,
        params: dict | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        return await self._request("POST", params=params, json=json, data=data, headers=headers)

    async def put(
        self,
        json: Any = None,
        data: dict | None = None,
        params: dict | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        return await self._request("PUT", params=params, json=json, data=data, headers=headers)

    async def patch(
        self,
        json: Any = None,
        data: dict | None = None,
        params: dict | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        return await self._request("PATCH", params=params, json=json, data=data, headers=headers)

    async def delete(self, params: dict | None = None, headers: dict[str, str] | None = None) -> Any:
        return await self._request("DELETE", params=params, headers=headers)


def _body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return {"raw_response": response.text[:500]}


class AuthorizedRequestFactory:
    """Builds ApiRequests whose Authorization header comes from the token state.

    User requests send the access token, refreshing it first when it has
    expired and a refresh endpoint exists; with no usable token they go out
    without a header. Guest requests always carry a token and fail when
    none can be issued.
    """

    def __init__(self, config: ClientConfig, manager: TokenManager, http: httpx.AsyncClient):
        self.config = config
        self.manager = manager
        self.http = http

    @property
    def store(self) -> TokenStore:
        return self.manager.store

    async def user_authorization(self) -> str | None:
        """Header for user-scoped calls. Never raises."""
        record = self.store.get(TokenSlot.ACCESS, include_expired=True)
        if record is None:
            return None

        expired = record.expires_at is not None and not record.is_valid(self.manager.clock())
        if not expired or not self.config.refresh_token_url:
            return bearer(record.access_token)

        try:
            refreshed = await self.manager.refresh_access_token()
        except OAuthError as e:
            logger.warning("Could not refresh access token, sending unauthenticated: %s", e)
            return None

        if refreshed.get("Error"):
            return None
        return bearer(refreshed.get("access_token"))

    async def guest_authorization(self) -> str | None:
        """Header for guest calls. Propagates guest token issuance failures."""
        return bearer(await self.manager.get_guest_token())

    def _url(self, endpoint: str) -> str:
        return self.config.api_url + endpoint

    def authorized_api_request(self, endpoint: str, **options: Any) -> ApiRequest:
        """Request to ``endpoint`` authorized with the user's access token, if any.

        Args:
            endpoint: API path appended to the configured API URL
            **options: Extra ApiRequest options (headers, timeout)
        """
        return ApiRequest(self.http, self._url(endpoint), self.user_authorization, **options)

    def authorized_as_guest_api_request(self, endpoint: str, **options: Any) -> ApiRequest:
        """Request to ``endpoint`` authorized with a guest token."""
        return ApiRequest(self.http, self._url(endpoint), self.guest_authorization, **options)
