"""Client configuration via pydantic-settings."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


API_HOST_PROD = "https://api.spark.autodesk.com/api/v1"
API_HOST_SANDBOX = "https://sandbox.spark.autodesk.com/api/v1"

DEFAULT_TOKEN_DIR = Path.home() / ".spark"


@dataclass(frozen=True)
class ClientConfig:
    """Immutable client configuration passed to every component.

    A collaborator URL left as ``None`` means the matching operation
    (guest issuance, code exchange, refresh) is not supported.
    """

    app_id: str
    api_url: str
    redirect_uri: str | None = None
    guest_token_url: str | None = None
    access_token_url: str | None = None
    refresh_token_url: str | None = None

    @classmethod
    def create(
        cls,
        app_id: str,
        api_root: str | None = None,
        is_production: bool = False,
        redirect_uri: str | None = None,
        guest_token_url: str | None = None,
        access_token_url: str | None = None,
        refresh_token_url: str | None = None,
    ) -> "ClientConfig":
        """Build a config the way ``initialize(appKey, options)`` resolves it.

        Args:
            app_id: The app key provided when the app was registered
            api_root: Explicit API root, overrides ``is_production``
            is_production: Use the production host instead of the sandbox
            redirect_uri: URI the OAuth service returns the browser to
            guest_token_url: Server endpoint that issues guest tokens
            access_token_url: Server endpoint that exchanges a code for a token
            refresh_token_url: Server endpoint that refreshes an access token
        """
        if api_root:
            api_url = api_root
        elif is_production:
            api_url = API_HOST_PROD
        else:
            api_url = API_HOST_SANDBOX

        return cls(
            app_id=app_id,
            api_url=api_url.rstrip("/"),
            redirect_uri=redirect_uri or None,
            guest_token_url=guest_token_url or None,
            access_token_url=access_token_url or None,
            refresh_token_url=refresh_token_url or None,
        )


class SparkSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SPARK_",
        env_file=".env",
        extra="ignore",
    )

    app_id: str = ""
    api_root: str | None = None
    is_production: bool = False
    redirect_uri: str | None = None

    # Auth server endpoints (optional, each enables one operation)
    guest_token_url: str | None = None
    access_token_url: str | None = None
    refresh_token_url: str | None = None

    token_dir: Path = DEFAULT_TOKEN_DIR
    single_flight_refresh: bool = False
    http_timeout: float = 30.0

    def to_client_config(self) -> ClientConfig:
        return ClientConfig.create(
            app_id=self.app_id,
            api_root=self.api_root,
            is_production=self.is_production,
            redirect_uri=self.redirect_uri,
            guest_token_url=self.guest_token_url,
            access_token_url=self.access_token_url,
            refresh_token_url=self.refresh_token_url,
        )
