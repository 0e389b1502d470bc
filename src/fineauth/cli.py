"""FineAuth command line interface."""

import asyncio
from pathlib import Path

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from fineauth import __version__
from fineauth.config.settings import Settings, get_settings
from fineauth.db.engine import dispose_db, init_db
from fineauth.db.models import Account
from fineauth.db.repositories import AccountRepository, CharacterRepository
from fineauth.exceptions import ConfigurationError
from fineauth.permissions import ADMIN_PERMISSION, PermissionRegistry


console = Console()

app = typer.Typer(
    name="fineauth",
    help="EVE Online SSO identity federation server.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    if value:
        console.print(f"fineauth {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """FineAuth server and administration commands."""


def load_settings(config: Path | None) -> Settings:
    try:
        return get_settings(config_path=config)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e.message}")
        raise typer.Exit(1) from e


ConfigOption = typer.Option(
    None, "--config", "-c", help="Path to a TOML configuration file."
)


@app.command()
def serve(
    config: Path | None = ConfigOption,
    host: str | None = typer.Option(None, "--host", help="Bind address."),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port."),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes."),
) -> None:
    """Run the HTTP server."""
    settings = load_settings(config)
    from fineauth.api.app import create_app

    if not settings.esi.is_configured:
        console.print(
            "[yellow]ESI__CLIENT_ID / ESI__CLIENT_SECRET are not set; "
            "logins are disabled.[/yellow]"
        )

    if reload:
        uvicorn.run(
            "fineauth.api.app:get_app",
            factory=True,
            host=host or settings.server.host,
            port=port or settings.server.port,
            reload=True,
            log_config=None,
        )
        return

    uvicorn.run(
        create_app(settings),
        host=host or settings.server.host,
        port=port or settings.server.port,
        log_config=None,
    )


@app.command("set-admin")
def set_admin(
    account_name: str = typer.Argument(..., help="Account display name."),
    revoke: bool = typer.Option(False, "--revoke", help="Remove admin instead."),
    config: Path | None = ConfigOption,
) -> None:
    """Grant (or revoke) admin permissions for an account."""
    settings = load_settings(config)
    registry = PermissionRegistry(settings.permissions.path)

    changed = registry.set_account_permission(ADMIN_PERMISSION, account_name, not revoke)
    verb = "Revoked admin access from" if revoke else "Granted admin access to"
    if changed:
        console.print(f"[green]{verb} {account_name}.[/green]")
    else:
        console.print(f"[yellow]No change for {account_name}.[/yellow]")


async def _load_accounts(settings: Settings) -> list[tuple[Account, list[str]]]:
    await init_db(settings.database.path)
    try:
        characters = CharacterRepository()
        rows = []
        for account in await AccountRepository().list_all():
            assert account.id is not None
            names = [c.display_name for c in await characters.list_for_account(account.id)]
            rows.append((account, names))
        return rows
    finally:
        await dispose_db()


@app.command("accounts")
def list_accounts(config: Path | None = ConfigOption) -> None:
    """List accounts and their characters."""
    settings = load_settings(config)
    registry = PermissionRegistry(settings.permissions.path)
    rows = asyncio.run(_load_accounts(settings))

    if not rows:
        console.print("[yellow]No accounts found.[/yellow]")
        return

    table = Table(title="Accounts")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Kind")
    table.add_column("Characters")
    table.add_column("Created")
    table.add_column("Admin")

    for account, names in rows:
        table.add_row(
            str(account.id),
            account.display_name,
            account.kind,
            ", ".join(names) or "-",
            account.created_at.strftime("%Y-%m-%d"),
            "[green]yes[/green]" if registry.is_admin(account.display_name) else "-",
        )

    console.print(table)


if __name__ == "__main__":
    app()
