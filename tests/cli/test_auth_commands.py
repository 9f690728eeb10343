"""Tests for 'spark auth' CLI commands."""

import httpx
import pytest
from unittest.mock import patch

from spark_auth.cli import app
from spark_auth.oauth.storage import TokenRecord, TokenSlot
from tests.conftest import ACCESS_URL, GUEST_URL, NOW_MS, REDIRECT_URI, REFRESH_URL


@pytest.fixture
def cli_client(spark):
    """Route the CLI to the fixture-backed client."""
    with patch("spark_auth.cli._build_client", return_value=spark):
        yield spark


class TestAuthStatus:
    def test_status_without_tokens(self, cli_runner, cli_client):
        result = cli_runner.invoke(app, ["auth", "status"])

        assert result.exit_code == 0
        assert "Spark Authentication Status" in result.output
        assert "app_test123" in result.output
        assert "None" in result.output

    def test_status_with_tokens(self, cli_runner, cli_client, store):
        store.set(TokenSlot.GUEST, TokenRecord(access_token="g", expires_at=NOW_MS + 60000))
        store.set(TokenSlot.ACCESS, TokenRecord(access_token="a", expires_at=NOW_MS - 60000))

        result = cli_runner.invoke(app, ["auth", "status"])

        assert result.exit_code == 0
        assert "Valid until" in result.output
        assert "Expired" in result.output


class TestLoginCommands:
    def test_login_url(self, cli_runner, cli_client):
        result = cli_runner.invoke(app, ["auth", "login-url", "--server", "--register"])

        assert result.exit_code == 0
        assert "response_type=code" in result.output
        assert "register=true" in result.output

    def test_login_url_without_redirect_uri(self, cli_runner, make_client, bare_config):
        with patch("spark_auth.cli._build_client", return_value=make_client(bare_config)):
            result = cli_runner.invoke(app, ["auth", "login-url"])

        assert result.exit_code == 1
        assert "No redirect_uri configured" in result.output

    def test_complete_server_login(self, cli_runner, cli_client, auth_transport):
        auth_transport.routes[ACCESS_URL] = {"access_token": "user", "expires_in": 3600}

        result = cli_runner.invoke(app, ["auth", "complete", f"{REDIRECT_URI}?code=abc/", "--server"])

        assert result.exit_code == 0
        assert "Logged in!" in result.output
        assert cli_client.get_access_token() == "user"
        assert auth_transport.calls_to(ACCESS_URL)[0].url.params["code"] == "abc"

    def test_complete_login_failure(self, cli_runner, cli_client, auth_transport):
        auth_transport.routes[ACCESS_URL] = {"Error": "Invalid code"}

        result = cli_runner.invoke(app, ["auth", "complete", f"{REDIRECT_URI}?code=bad", "--server"])

        assert result.exit_code == 1
        assert "Invalid code" in result.output

    def test_complete_implicit_login_bad_expiry(self, cli_runner, cli_client):
        result = cli_runner.invoke(app, ["auth", "complete", f"{REDIRECT_URI}#access_token=t&expires_in=soon"])

        assert result.exit_code == 1
        assert "Login failed" in result.output
        assert cli_client.get_access_token() is None

    def test_logout(self, cli_runner, cli_client, store):
        store.set(TokenSlot.ACCESS, TokenRecord(access_token="a", expires_at=NOW_MS + 60000))

        result = cli_runner.invoke(app, ["auth", "logout"])

        assert result.exit_code == 0
        assert store.get(TokenSlot.ACCESS) is None


class TestTokenCommands:
    def test_guest_token(self, cli_runner, cli_client, auth_transport):
        auth_transport.routes[GUEST_URL] = {"access_token": "guest-xyz", "expires_in": 60}

        result = cli_runner.invoke(app, ["auth", "guest-token"])

        assert result.exit_code == 0
        assert "guest-xyz" in result.output

    def test_guest_token_unsupported(self, cli_runner, make_client, bare_config):
        with patch("spark_auth.cli._build_client", return_value=make_client(bare_config)):
            result = cli_runner.invoke(app, ["auth", "guest-token"])

        assert result.exit_code == 1
        assert "No Server Implementation" in result.output

    def test_refresh(self, cli_runner, cli_client, auth_transport):
        auth_transport.routes[REFRESH_URL] = {"access_token": "new", "expires_in": 60}

        result = cli_runner.invoke(app, ["auth", "refresh"])

        assert result.exit_code == 0
        assert "Token refreshed!" in result.output

    def test_refresh_rejected(self, cli_runner, cli_client, auth_transport):
        auth_transport.routes[REFRESH_URL] = {"Error": "Session expired"}

        result = cli_runner.invoke(app, ["auth", "refresh"])

        assert result.exit_code == 1
        assert "Session expired" in result.output

    def test_refresh_http_failure(self, cli_runner, cli_client, auth_transport):
        auth_transport.routes[REFRESH_URL] = httpx.Response(500)

        result = cli_runner.invoke(app, ["auth", "refresh"])

        assert result.exit_code == 1
        assert "Refresh failed" in result.output


def test_version(cli_runner):
    result = cli_runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert "Spark Auth v0.1.0" in result.output
