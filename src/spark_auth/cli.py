"""Spark auth CLI - Main entry point."""

import asyncio
import logging
from datetime import datetime

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .client import SparkClient
from .oauth.client import OAuthError
from .oauth.storage import TokenSlot

app = typer.Typer(
    name="spark",
    help="Spark API authentication - tokens, login and refresh",
    no_args_is_help=True,
)
console = Console()

auth_app = typer.Typer(help="Authentication commands")
app.add_typer(auth_app, name="auth")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Spark API authentication client."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _build_client() -> SparkClient:
    """Client from SPARK_* environment settings with file-backed tokens."""
    return SparkClient.from_settings()


def _format_expiry(expires_at: int | None) -> str:
    if expires_at is None:
        return "unknown"
    return datetime.fromtimestamp(expires_at / 1000).isoformat(timespec="seconds")


# ============================================================================
# Auth Commands
# ============================================================================


@auth_app.command("status")
def auth_status():
    """Show configuration and stored token status."""
    client = _build_client()
    config = client.config
    now = client.clock()

    table = Table(title=f"Spark Authentication Status ({client.get_api_name() or 'custom'})")
    table.add_column("Setting", style="cyan")
    table.add_column("Status", style="green")

    table.add_row("App ID", config.app_id or "[red]Not set[/red]")
    table.add_row("API URL", config.api_url)
    table.add_row("Redirect URI", config.redirect_uri or "[dim]Not set[/dim]")
    table.add_row("Guest token URL", config.guest_token_url or "[dim]Not supported[/dim]")
    table.add_row("Access token URL", config.access_token_url or "[dim]Not supported[/dim]")
    table.add_row("Refresh token URL", config.refresh_token_url or "[dim]Not supported[/dim]")

    for label, slot in (("Guest token", TokenSlot.GUEST), ("Access token", TokenSlot.ACCESS)):
        record = client.store.get(slot, include_expired=True)
        if record is None:
            table.add_row(label, "[yellow]None[/yellow]")
        elif record.is_valid(now):
            table.add_row(label, f"Valid until {_format_expiry(record.expires_at)}")
        else:
            table.add_row(label, f"[red]Expired ({_format_expiry(record.expires_at)})[/red]")

    console.print(table)


@auth_app.command("login-url")
def auth_login_url(
    register: bool = typer.Option(False, "--register", help="Show the register screen"),
    server: bool = typer.Option(False, "--server", help="Use the server (code) flow"),
):
    """Print the URL to open in a browser to log in."""
    client = _build_client()
    try:
        url = client.get_login_redirect_url(show_register=register, is_server_flow=server)
    except OAuthError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(url, soft_wrap=True)


@auth_app.command("complete")
def auth_complete(
    redirect_url: str = typer.Argument(..., help="URL the browser was redirected to"),
    server: bool = typer.Option(False, "--server", help="Redirect carries a code (server flow)"),
):
    """Finish a login from the redirect URL and store the access token."""

    async def _complete():
        async with _build_client() as client:
            await client.complete_login(server, redirect_url)
            return client.get_access_token_object()

    try:
        record = asyncio.run(_complete())
    except OAuthError as e:
        console.print(f"[red]Login failed: {e}[/red]")
        if e.details:
            console.print(f"[dim]Details: {e.details}[/dim]")
        raise typer.Exit(1)

    console.print(
        Panel(
            f"[bold green]Logged in![/bold green]\n\n"
            f"Expires: {_format_expiry(record.expires_at if record else None)}",
            title="Spark Login",
        )
    )


@auth_app.command("guest-token")
def auth_guest_token():
    """Print a guest token, requesting a new one if needed."""

    async def _guest():
        async with _build_client() as client:
            return await client.get_guest_token()

    try:
        token = asyncio.run(_guest())
    except OAuthError as e:
        console.print(f"[red]Could not get guest token: {e}[/red]")
        raise typer.Exit(1)

    console.print(token)


@auth_app.command("refresh")
def auth_refresh():
    """Force refresh the access token."""

    async def _refresh():
        async with _build_client() as client:
            return await client.refresh_access_token()

    try:
        console.print("[dim]Refreshing token...[/dim]")
        data = asyncio.run(_refresh())
    except OAuthError as e:
        console.print(f"[red]Refresh failed: {e}[/red]")
        raise typer.Exit(1)

    if data.get("Error"):
        console.print(f"[red]Refresh rejected: {data['Error']}[/red]")
        console.print("[dim]You may need to log in again.[/dim]")
        raise typer.Exit(1)

    console.print(f"[green]Token refreshed! Valid until {_format_expiry(data.get('expires_at'))}[/green]")


@auth_app.command("logout")
def auth_logout():
    """Forget the stored access token."""
    _build_client().logout()
    console.print("[green]Logged out.[/green]")


# ============================================================================
# Main
# ============================================================================


@app.command()
def version():
    """Show version information."""
    from . import __version__

    console.print(f"Spark Auth v{__version__}")


if __name__ == "__main__":
    app()
