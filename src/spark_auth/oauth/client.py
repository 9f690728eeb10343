"""HTTP client for the app's own authentication server.

The auth server holds the client secret and exposes up to three endpoints:
1. Guest token issuance (no user involved)
2. Authorization code exchange for a user access token
3. Access token refresh (credentials carried by cookies)

Each endpoint is optional. Calling an operation whose endpoint is not
configured fails immediately without touching the network.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import ClientConfig

logger = logging.getLogger(__name__)

NO_SERVER_IMPLEMENTATION = "No Server Implementation"


class OAuthError(Exception):
    """OAuth-related error."""

    def __init__(self, message: str, error_code: str | None = None, details: dict | None = None):
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}


class UnsupportedOperationError(OAuthError):
    """The auth server endpoint for this operation was not configured."""

    def __init__(self, operation: str):
        super().__init__(
            NO_SERVER_IMPLEMENTATION,
            error_code="not_configured",
            details={"operation": operation},
        )
        self.operation = operation


class ServerReportedError(OAuthError):
    """The auth server answered with an explicit error payload."""

    def __init__(self, message: str | None, details: dict | None = None):
        super().__init__(message or "Token exchange failed", error_code="server_error", details=details)


class MissingInputError(OAuthError):
    """A required code, token or redirect URI was not supplied."""

    def __init__(self, message: str):
        super().__init__(message, error_code="missing_input")


class TokenServiceClient:
    """Calls the guest, exchange and refresh endpoints of the auth server.

    Responses are returned as parsed JSON dicts; persisting them is the
    caller's job.

    Credentials for exchange and refresh travel as cookies in ``cookies``,
    which is shared across calls so the server session survives.

    Usage:
        service = TokenServiceClient(config)
        data = await service.fetch_guest_token()
        data = await service.refresh()
    """

    def __init__(
        self,
        config: ClientConfig,
        http_client: httpx.AsyncClient | None = None,
        cookies: httpx.Cookies | None = None,
        timeout: float = 30.0,
    ):
        self.config = config
        self.cookies = cookies if cookies is not None else httpx.Cookies()
        self.timeout = timeout
        self._http = http_client

    async def _get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        with_credentials: bool = False,
    ) -> dict[str, Any]:
        """GET ``url`` and return the JSON body.

        Raises:
            OAuthError: On transport failure, non-2xx status or a non-object body
        """
        try:
            if self._http is not None:
                response = await self._http.get(url, params=params)
            else:
                cookies = self.cookies if with_credentials else None
                async with httpx.AsyncClient(timeout=self.timeout, cookies=cookies) as client:
                    response = await client.get(url, params=params)
                    if with_credentials:
                        self.cookies.update(client.cookies)
        except httpx.HTTPError as e:
            raise OAuthError(
                f"Request to auth server failed: {e}",
                error_code="transport_error",
                details={"url": url},
            ) from e

        if not response.is_success:
            try:
                error_data = response.json() if response.content else {}
            except ValueError:
                error_data = {"raw_response": response.text[:500]}
            raise OAuthError(
                f"Auth server returned {response.status_code}",
                error_code="http_error",
                details={"status_code": response.status_code, "response": error_data},
            )

        try:
            data = response.json()
        except ValueError as e:
            raise OAuthError(
                "Auth server returned invalid JSON",
                error_code="invalid_response",
                details={"raw_response": response.text[:500]},
            ) from e

        if not isinstance(data, dict):
            raise OAuthError(
                "Auth server returned an unexpected payload",
                error_code="invalid_response",
                details={"response": data},
            )
        return data

    async def fetch_guest_token(self) -> dict[str, Any]:
        """Request a new guest token.

        Raises:
            UnsupportedOperationError: If no guest token URL is configured
            OAuthError: If the request fails
        """
        if not self.config.guest_token_url:
            raise UnsupportedOperationError("guest_token")

        logger.debug("Requesting guest token from %s", self.config.guest_token_url)
        return await self._get_json(self.config.guest_token_url)

    async def exchange_code(self, code: str, redirect_uri: str) -> dict[str, Any]:
        """Exchange an authorization code for an access token.

        The server's answer is returned untouched, including an ``Error``
        payload; interpreting it is left to the caller.

        Raises:
            UnsupportedOperationError: If no access token URL is configured
            OAuthError: If the request fails
        """
        if not self.config.access_token_url:
            raise UnsupportedOperationError("access_token")

        logger.debug("Exchanging authorization code at %s", self.config.access_token_url)
        return await self._get_json(
            self.config.access_token_url,
            params={"code": code, "redirect_uri": redirect_uri},
            with_credentials=True,
        )

    async def refresh(self) -> dict[str, Any]:
        """Ask the server to refresh the current user's access token.

        Raises:
            UnsupportedOperationError: If no refresh token URL is configured
            OAuthError: If the request fails
        """
        if not self.config.refresh_token_url:
            raise UnsupportedOperationError("refresh_token")

        logger.debug("Refreshing access token at %s", self.config.refresh_token_url)
        return await self._get_json(self.config.refresh_token_url, with_credentials=True)
