"""Token lifecycle for guest and user access tokens.

Handles persisting tokens, guest token issuance with fallback to the
user's access token, refresh of expired access tokens, and completion
of both OAuth login flows.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..clock import Clock, expires_at_from, parse_int, system_clock
from ..config import ClientConfig
from ..oauth.client import (
    MissingInputError,
    OAuthError,
    ServerReportedError,
    TokenServiceClient,
)
from ..oauth.redirect import extract_code, extract_token_data, redirect_uri_from, strip_code
from ..oauth.storage import TokenRecord, TokenSlot, TokenStore

logger = logging.getLogger(__name__)


def _has_token_fields(data: dict[str, Any]) -> bool:
    return bool(data.get("access_token")) and data.get("expires_in") is not None


class TokenManager:
    """Token state machine over a TokenStore and the auth server.

    The only suspension points are the three auth server calls: guest
    issuance, code exchange and refresh. Everything else is synchronous.

    Concurrent refreshes are not de-duplicated unless
    ``single_flight_refresh`` is set; without it, two callers that both see
    an expired token each hit the refresh endpoint and the last write wins.

    Usage:
        manager = TokenManager(config, store, service)

        token = await manager.get_guest_token()
        data = await manager.refresh_access_token()
        token = await manager.complete_login(True, "https://app/cb?code=abc")
    """

    def __init__(
        self,
        config: ClientConfig,
        store: TokenStore,
        service: TokenServiceClient,
        clock: Clock = system_clock,
        single_flight_refresh: bool = False,
    ):
        self.config = config
        self.store = store
        self.service = service
        self.clock = clock
        self.single_flight_refresh = single_flight_refresh
        self._refresh_task: asyncio.Task | None = None

    # Access token state

    def logout(self) -> None:
        """Forget the user's access token."""
        self.store.remove(TokenSlot.ACCESS)

    def is_access_token_valid(self) -> bool:
        """True if an unexpired access token is stored. Drops an expired one."""
        return TokenStore.is_valid(self.store.get(TokenSlot.ACCESS), self.clock())

    def get_access_token_object(self) -> TokenRecord | None:
        """The stored access token record, expired or not."""
        return self.store.get(TokenSlot.ACCESS, include_expired=True)

    def get_access_token(self) -> str | None:
        record = self.get_access_token_object()
        return record.access_token if record else None

    # Guest tokens

    async def get_guest_token(self) -> str:
        """Return a usable guest token.

        Tries the stored guest token, then the user's access token, and only
        then asks the auth server for a new guest token.

        Raises:
            UnsupportedOperationError: If a new token is needed but no guest
                token URL is configured
            OAuthError: If issuance fails
        """
        now = self.clock()

        guest = self.store.get(TokenSlot.GUEST)
        if TokenStore.is_valid(guest, now):
            return guest.access_token

        # Read without purging so an expired token can still be refreshed
        access = self.store.get(TokenSlot.ACCESS, include_expired=True)
        if TokenStore.is_valid(access, now):
            return access.access_token

        return await self._issue_guest_token()

    async def _issue_guest_token(self) -> str:
        data = await self.service.fetch_guest_token()
        try:
            if not _has_token_fields(data):
                raise KeyError("access_token/expires_in")
            data["expires_at"] = expires_at_from(self.clock(), data["expires_in"])
        except (KeyError, TypeError, ValueError) as e:
            raise OAuthError(
                f"Invalid guest token response: {e}",
                error_code="invalid_response",
                details={"response_keys": list(data.keys())},
            ) from e

        self.store.set(TokenSlot.GUEST, TokenRecord.from_dict(data))
        logger.debug("Stored new guest token expiring at %s", data["expires_at"])
        return data["access_token"]

    # Refresh

    async def refresh_access_token(self) -> dict[str, Any]:
        """Refresh the user's access token via the auth server.

        Returns the server response as received. A response carrying
        ``Error`` is returned, not raised, and nothing is stored for it.

        Raises:
            UnsupportedOperationError: If no refresh token URL is configured
            OAuthError: If the request fails
        """
        if not self.single_flight_refresh:
            return await self._refresh()

        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.ensure_future(self._refresh())
        return await asyncio.shield(self._refresh_task)

    async def _refresh(self) -> dict[str, Any]:
        data = await self.service.refresh()

        if data.get("Error"):
            logger.warning("Access token refresh rejected: %s", data["Error"])
            return data

        if not _has_token_fields(data):
            logger.warning("Access token refresh returned no token, keys: %s", list(data.keys()))
            return data

        try:
            data["expires_at"] = expires_at_from(self.clock(), data["expires_in"])
        except (TypeError, ValueError):
            logger.warning("Access token refresh returned bad expires_in: %r", data["expires_in"])
            return data

        self.store.set(TokenSlot.ACCESS, TokenRecord.from_dict(data))
        logger.debug("Stored refreshed access token expiring at %s", data["expires_at"])
        return data

    # Login completion

    def complete_implicit_login(self, access_token: str, expires_in: int | str | None) -> str:
        """Store a token received directly in the redirect fragment.

        Raises:
            MissingInputError: If expires_in is not a number
        """
        record = TokenRecord(access_token=access_token)
        if expires_in is not None:
            try:
                record.expires_in = parse_int(expires_in)
            except (TypeError, ValueError) as e:
                raise MissingInputError(f"Invalid expires_in supplied: {expires_in!r}") from e
            record.expires_at = expires_at_from(self.clock(), record.expires_in)

        self.store.set(TokenSlot.ACCESS, record)
        return access_token

    async def complete_server_login(self, code: str, redirect_uri: str | None = None) -> str:
        """Exchange an authorization code and store the resulting token.

        Raises:
            MissingInputError: If no redirect URI is given or configured
            UnsupportedOperationError: If no access token URL is configured
            ServerReportedError: If the server answers without a token
            OAuthError: If the token response has an unusable expires_in
        """
        code = strip_code(code)
        redirect_uri = redirect_uri or self.config.redirect_uri
        if not redirect_uri:
            raise MissingInputError("No redirect_uri supplied")

        data = await self.service.exchange_code(code, redirect_uri)
        if not _has_token_fields(data):
            raise ServerReportedError(data.get("Error"), details=data)

        try:
            data["expires_at"] = expires_at_from(self.clock(), data["expires_in"])
        except (TypeError, ValueError) as e:
            raise OAuthError(
                f"Invalid expires_in in token response: {data['expires_in']!r}",
                error_code="invalid_response",
                details=data,
            ) from e

        self.store.set(TokenSlot.ACCESS, TokenRecord.from_dict(data))
        return data["access_token"]

    async def complete_login(self, is_server_flow: bool, redirect_url: str) -> str:
        """Finish a login from the URL the browser was redirected to.

        Raises:
            MissingInputError: If the URL carries no code (server flow) or
                no access token (implicit flow)
        """
        if is_server_flow:
            code = extract_code(redirect_url)
            if not code:
                raise MissingInputError("No code supplied")
            return await self.complete_server_login(
                code,
                self.config.redirect_uri or redirect_uri_from(redirect_url),
            )

        data = extract_token_data(redirect_url)
        if not data.access_token:
            raise MissingInputError("No access_token supplied")
        return self.complete_implicit_login(data.access_token, data.expires_in)
