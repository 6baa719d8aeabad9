"""
CLI interface for AutoGuardian.

Provides command-line access to setup, serving and account administration.
"""

import logging
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from autoguardian.config.loader import load_config
from autoguardian.core.usage_gate import Tier, month_start
from autoguardian.storage.models import RECORD_TYPES, ConsultationRecord
from autoguardian.storage.repository import UsageRepository, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to YAML config file (defaults to $AUTOGUARDIAN_CONFIG)",
)


def _repository(config_path: Optional[str]) -> UsageRepository:
    config = load_config(config_path)
    return UsageRepository(config.storage.db_path)


def _parse_tier(value: str) -> Tier:
    try:
        return Tier(value.lower())
    except ValueError:
        valid = ", ".join(t.value for t in Tier)
        console.print(f"[red]Error:[/] unknown tier '{value}' (expected one of: {valid})")
        sys.exit(EXIT_CODE_FAIL)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """AutoGuardian CLI."""
    if ctx.invoked_subcommand is None:
        console.print("AutoGuardian - Use --help to see available commands")


@app.command()
def init(config_path: Optional[str] = ConfigOption):
    """Initialize the AutoGuardian database."""
    try:
        config = load_config(config_path)
        initialize_schema(config.storage.db_path)
        console.print(f"[green]✓[/] Database initialized at {config.storage.db_path}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to listen on"),
    config_path: Optional[str] = ConfigOption,
):
    """Run the HTTP API."""
    import uvicorn

    from autoguardian.api.app import create_app

    try:
        config = load_config(config_path)
        logging.basicConfig(
            level=config.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        api = create_app(config)
    except Exception as e:
        console.print(f"[red]Error starting server:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    uvicorn.run(api, host=host, port=port, log_level=config.log_level.lower())


@app.command("create-user")
def create_user(
    email: str = typer.Argument(..., help="Email address of the new account"),
    tier: str = typer.Option("free", "--tier", "-t", help="free, pro or shop"),
    config_path: Optional[str] = ConfigOption,
):
    """Create an account and print its API access token."""
    parsed_tier = _parse_tier(tier)
    try:
        repository = _repository(config_path)
        repository.initialize()
        profile = repository.create_profile(email, tier=parsed_tier)
    except Exception as e:
        console.print(f"[red]Error creating user:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"[green]✓[/] Created {profile.email} ({profile.tier.value})")
    console.print(f"User id: {profile.user_id}")
    console.print(f"Access token: {profile.access_token}")


@app.command("set-tier")
def set_tier(
    user_id: str = typer.Argument(..., help="Account id"),
    tier: str = typer.Argument(..., help="free, pro or shop"),
    config_path: Optional[str] = ConfigOption,
):
    """Change an account's tier without going through billing."""
    parsed_tier = _parse_tier(tier)
    try:
        updated = _repository(config_path).set_tier(user_id, parsed_tier)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if not updated:
        console.print(f"[red]Error:[/] no account with id {user_id}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] {user_id} is now on the {parsed_tier.value} tier")


@app.command()
def usage(
    user_id: str = typer.Argument(..., help="Account id"),
    config_path: Optional[str] = ConfigOption,
):
    """Show this month's usage for an account."""
    try:
        config = load_config(config_path)
        repository = UsageRepository(config.storage.db_path)
        profile = repository.get_profile(user_id)
        if profile is None:
            console.print(f"[red]Error:[/] no account with id {user_id}")
            sys.exit(EXIT_CODE_FAIL)

        since = month_start()
        counts = {
            kind: repository.count_records_since(kind, user_id, since)
            for kind in RECORD_TYPES
        }
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title=f"Usage since {since:%Y-%m-%d} for {profile.email}")
    table.add_column("Kind")
    table.add_column("This month", justify="right")
    for kind, count in counts.items():
        table.add_row(kind, str(count))
    console.print(table)

    console.print(f"Tier: {profile.tier.value}")
    if profile.tier.is_metered:
        used = counts[ConsultationRecord.table]
        remaining = max(0, config.quota.free_tier_limit - used)
        console.print(f"Remaining consultations: {remaining}")
    else:
        console.print("Remaining consultations: unlimited")


@app.command()
def waitlist(
    limit: int = typer.Option(100, "--limit", "-n", help="Maximum entries to show"),
    config_path: Optional[str] = ConfigOption,
):
    """List waitlist sign-ups, newest first."""
    try:
        entries = _repository(config_path).list_waitlist(limit=limit)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if not entries:
        console.print("[dim]No one on the waitlist yet.[/]")
        return

    table = Table(title=f"Waitlist ({len(entries)})")
    table.add_column("Email")
    table.add_column("Source")
    table.add_column("Joined")
    for entry in entries:
        table.add_row(entry.email, entry.source, f"{entry.created_at:%Y-%m-%d %H:%M}")
    console.print(table)


if __name__ == "__main__":
    app()
