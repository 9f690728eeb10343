"""OAuth redirect helpers.

Builds the authorize URL the browser is sent to, and reads the
code or token data back out of the URL the browser returns to.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from ..config import ClientConfig

_TRAILING_SEPARATORS = re.compile(r"[/\\]+$")


@dataclass
class RedirectTokenData:
    """Token data carried in an implicit-flow redirect."""

    access_token: str | None = None
    expires_in: str | None = None


def build_login_url(
    config: ClientConfig,
    redirect_uri: str,
    show_register: bool = False,
    is_server_flow: bool = False,
) -> str:
    """Authorize URL for the implicit (``token``) or server (``code``) flow."""
    params = {
        "response_type": "code" if is_server_flow else "token",
        "client_id": config.app_id,
        "redirect_uri": redirect_uri,
    }
    if show_register:
        params["register"] = "true"

    return f"{config.api_url}/oauth/authorize?{urlencode(params)}"


def api_name(api_url: str) -> str:
    """Short name of the API environment, e.g. ``sandbox`` or ``production``."""
    name = ""
    if api_url:
        split = api_url.split("//")
        if len(split) > 1:
            name = split[1].split(".")[0]
        if name == "api":
            name = "production"
    return name


def _first(params: dict[str, list[str]], key: str) -> str | None:
    values = params.get(key)
    return values[0] if values else None


def extract_code(redirect_url: str) -> str | None:
    """Authorization code from the redirect query string, separators trimmed."""
    code = _first(parse_qs(urlparse(redirect_url).query), "code")
    if not code:
        return None
    return strip_code(code)


def strip_code(code: str) -> str:
    return _TRAILING_SEPARATORS.sub("", code)


def extract_token_data(redirect_url: str) -> RedirectTokenData:
    """Token data from the redirect fragment, falling back to the query."""
    parsed = urlparse(redirect_url)
    params = parse_qs(parsed.fragment)
    if "access_token" not in params:
        params = parse_qs(parsed.query)

    return RedirectTokenData(
        access_token=_first(params, "access_token"),
        expires_in=_first(params, "expires_in"),
    )


def redirect_uri_from(redirect_url: str) -> str:
    """The redirect URI a login returned to: the URL without query or fragment."""
    parsed = urlparse(redirect_url)
    return urlunparse(parsed._replace(query="", fragment="", params=""))
