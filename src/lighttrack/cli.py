"""Command-line interface for the tracker."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import typer

from .config import DEFAULT_SETTINGS, RULE_TABLES_KEY
from .db import database_connection
from .paths import get_log_path, resolve_db_path
from .store import SqliteActivityStore, SqliteSettings

app = typer.Typer(help="Local-first activity tracker.")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
    )


@app.command()
def track(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the local API."),
    port: int = typer.Option(
        41417, "--port", min=1, max=65535, help="TCP port the browser extension connects to."
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the activity SQLite database."
    ),
    start: bool = typer.Option(
        True, "--start/--no-start", help="Begin a tracking session immediately."
    ),
    open_browser: bool = typer.Option(
        False,
        "--open-browser/--no-open-browser",
        help="Open the API docs in your default browser.",
    ),
) -> None:
    """Run the tracking engine and local API until interrupted."""
    from .server_runner import run_dashboard

    file_handler = logging.FileHandler(get_log_path(), encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(file_handler)

    run_dashboard(
        host=host,
        port=port,
        db_path=resolve_db_path(db_path),
        start_tracking=start,
        open_browser=open_browser,
    )


@app.command()
def summary(
    date: Optional[str] = typer.Option(
        None,
        "--date",
        help="Date (YYYY-MM-DD) to summarize. Defaults to today.",
    ),
    db_path: Optional[Path] = typer.Option(
        None,
        "--db",
        path_type=Path,
        help="Location of the activity SQLite database.",
    ),
) -> None:
    """Print per-project and per-application totals for a day."""
    from .reporting import SummaryPrinter

    try:
        target = datetime.strptime(date, "%Y-%m-%d").date() if date else datetime.now().date()
    except ValueError as exc:
        raise typer.BadParameter("Expected YYYY-MM-DD", param_hint="--date") from exc
    with database_connection(resolve_db_path(db_path)) as conn:
        SummaryPrinter(SqliteActivityStore(conn)).print_daily_summary(target)


@app.command("settings")
def show_settings(
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the activity SQLite database."
    ),
) -> None:
    """Show effective settings (defaults overlaid with stored values)."""
    with database_connection(resolve_db_path(db_path)) as conn:
        stored = SqliteSettings(conn).as_dict()
    stored.pop(RULE_TABLES_KEY, None)
    typer.echo(json.dumps({**DEFAULT_SETTINGS, **stored}, indent=2, sort_keys=True))


def parse_setting_value(key: str, raw: str) -> Any:
    """Parse ``raw`` as JSON, falling back to a plain string."""
    if key not in DEFAULT_SETTINGS:
        raise ValueError(f"Unknown setting {key!r}")
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


@app.command("set-setting")
def set_setting(
    key: str = typer.Argument(..., help="Setting name, e.g. idleThreshold."),
    value: str = typer.Argument(..., help="JSON value, e.g. 300, true or '\"Acme\"'."),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the activity SQLite database."
    ),
) -> None:
    """Persist one setting; a running tracker picks it up on its next tick."""
    try:
        parsed = parse_setting_value(key, value)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="KEY") from exc
    with database_connection(resolve_db_path(db_path)) as conn:
        SqliteSettings(conn).set(key, parsed)
    typer.echo(f"{key} = {json.dumps(parsed)}")
