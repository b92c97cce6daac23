"""Typer CLI for EventHub."""

from __future__ import annotations

import json
from pathlib import Path

from sqlalchemy.exc import OperationalError
import typer
import uvicorn

from .config import (
    BACKENDS,
    ConfigError,
    load_settings,
    settings,
    settings_as_dict,
    update_config_file,
)
from .seed import DEMO_PASSWORD, seed_fake_data
from .storage import init_db, upgrade_database

app = typer.Typer(help="EventHub command-line interface")
config_app = typer.Typer(help="View or update the persistent configuration file")
app.add_typer(config_app, name="config")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Show help when no subcommand is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _require_valid_settings() -> None:
    try:
        settings.validate()
    except ConfigError as exc:
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _require_sql_backend(command: str) -> None:
    if settings.backend != "sql":
        typer.secho(
            f"{command} only applies to the sql backend; apply "
            "eventhub/sql/supabase_schema.sql to a Supabase project instead.",
            err=True,
            fg=typer.colors.RED,
        )
        raise typer.Exit(code=1)


@app.command("runserver")
def runserver(
    host: str = typer.Option(settings.app_host, "--host", help="Host to bind"),
    port: int = typer.Option(settings.app_port, "--port", help="Port to bind"),
):
    """Start the FastAPI app with uvicorn."""
    _require_valid_settings()
    config = uvicorn.Config(
        "eventhub.api:app",
        host=host,
        port=port,
        reload=False,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
    server = uvicorn.Server(config)
    typer.echo(f"Starting EventHub ({settings.backend} backend) on {host}:{port}")
    server.run()


@app.command("init-db")
def init_database() -> None:
    """Create the SQL backend schema."""
    _require_sql_backend("init-db")
    init_db()
    typer.echo(f"Database ready at {settings.database_url}")


@app.command("upgrade-db")
def upgrade_db(
    no_backup: bool = typer.Option(
        False,
        "--no-backup",
        help="Skip creating a .bak copy of the database before upgrading",
    ),
) -> None:
    """Upgrade the SQL backend schema if needed."""
    _require_sql_backend("upgrade-db")
    try:
        actions = upgrade_database(make_backup=not no_backup)
    except OperationalError as exc:
        message = str(getattr(exc, "orig", exc)).lower()
        if "readonly" in message or "read-only" in message:
            typer.secho(
                "Unable to upgrade because the database is read-only. "
                f"Ensure write access to {settings.database_url}.",
                err=True,
                fg=typer.colors.RED,
            )
            raise typer.Exit(code=1)
        raise

    if not actions:
        typer.echo("Database already up to date.")
        return

    typer.echo("Database upgrade complete:")
    for action in actions:
        typer.echo(f"- {action}")


@app.command("seed-data")
def seed_data(
    users: int = typer.Option(
        settings.seed_users, "--users", min=0, help="Number of users to register"
    ),
    max_events: int = typer.Option(
        settings.seed_events_per_user,
        "--max-events",
        min=0,
        help="Maximum events each user organizes",
    ),
    max_attendees: int = typer.Option(
        settings.seed_attendees_per_event,
        "--max-attendees",
        min=0,
        help="Maximum attendees to add to each event",
    ),
    password: str = typer.Option(
        DEMO_PASSWORD, "--password", help="Password shared by the demo users"
    ),
):
    """Populate the backend with fake users, events and attendance."""
    _require_valid_settings()
    stats = seed_fake_data(
        user_count=users,
        max_events_per_user=max_events,
        max_attendees_per_event=max_attendees,
        password=password,
    )
    typer.echo(
        f"Seed complete: {stats['users']} users, {stats['events']} events, "
        f"{stats['attendees']} attendees created. Demo password: {password}"
    )


@config_app.command("show")
def config_show(
    config_path: Path | None = typer.Option(
        None, "--config-path", help="Path to eventhub.toml (default: ./eventhub.toml)"
    ),
) -> None:
    """Show the current effective configuration."""
    target_path = config_path or settings.config_path
    effective = settings_as_dict(load_settings(target_path))
    effective["config_path"] = str(target_path)
    typer.echo(json.dumps(effective, indent=2))


@config_app.command("set")
def config_set(
    backend: str | None = typer.Option(
        None, "--backend", help=f"Backend driver ({', '.join(sorted(BACKENDS))})"
    ),
    supabase_url: str | None = typer.Option(
        None, "--supabase-url", help="Supabase project URL"
    ),
    supabase_key: str | None = typer.Option(
        None, "--supabase-key", help="Supabase anon key"
    ),
    site_url: str | None = typer.Option(
        None, "--site-url", help="Public URL used in password reset links"
    ),
    session_cookie_secure: bool | None = typer.Option(
        None,
        "--secure-cookies/--insecure-cookies",
        help="Send session cookies over HTTPS only",
    ),
    access_token_ttl_minutes: int | None = typer.Option(
        None, "--access-token-ttl", min=1, help="Minutes an access token stays valid"
    ),
    recovery_token_ttl_minutes: int | None = typer.Option(
        None,
        "--recovery-token-ttl",
        min=1,
        help="Minutes a password reset link stays valid",
    ),
    host: str | None = typer.Option(None, "--host", help="Default host for runserver"),
    port: int | None = typer.Option(None, "--port", help="Default port for runserver"),
    seed_users: int | None = typer.Option(
        None, "--seed-users", min=0, help="Default seed-data users"
    ),
    seed_events_per_user: int | None = typer.Option(
        None, "--seed-events-per-user", min=0, help="Default seed-data events/user"
    ),
    seed_attendees_per_event: int | None = typer.Option(
        None,
        "--seed-attendees-per-event",
        min=0,
        help="Default seed-data attendees/event",
    ),
    config_path: Path | None = typer.Option(
        None, "--config-path", help="Path to eventhub.toml (default: ./eventhub.toml)"
    ),
) -> None:
    """Write settings to the configuration file."""
    if backend is not None and backend not in BACKENDS:
        typer.secho(
            f"Unknown backend {backend!r}; expected one of {sorted(BACKENDS)}",
            err=True,
            fg=typer.colors.RED,
        )
        raise typer.Exit(code=1)
    updates = {
        "backend": backend,
        "supabase_url": supabase_url,
        "supabase_key": supabase_key,
        "site_url": site_url,
        "session_cookie_secure": session_cookie_secure,
        "access_token_ttl_minutes": access_token_ttl_minutes,
        "recovery_token_ttl_minutes": recovery_token_ttl_minutes,
        "app_host": host,
        "app_port": port,
        "seed_users": seed_users,
        "seed_events_per_user": seed_events_per_user,
        "seed_attendees_per_event": seed_attendees_per_event,
    }
    clean_updates = {k: v for k, v in updates.items() if v is not None}
    if not clean_updates:
        typer.echo("Nothing to update.")
        raise typer.Exit()

    target_path = config_path or settings.config_path
    updated = update_config_file(clean_updates, path=target_path)
    typer.echo(f"Updated configuration in {target_path}")
    effective = settings_as_dict(updated)
    effective["config_path"] = str(target_path)
    typer.echo(json.dumps(effective, indent=2))


if __name__ == "__main__":
    app()
