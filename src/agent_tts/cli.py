"""
agent-tts CLI - Main command-line interface.

Run the pipeline, inspect the playback log and maintain the state store.
"""

import json
import os
import re
import signal
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

import typer
from dateutil import parser as date_parser
from rich.console import Console
from rich.table import Table

from agent_tts.logging_config import setup_logging

app = typer.Typer(
    name="agent-tts",
    help="agent-tts - Speak AI coding assistant sessions aloud",
    no_args_is_help=True,
)

console = Console()

RELATIVE_TIME_RE = re.compile(
    r"^(\d+)\s+(second|minute|hour|day|week|month|year)s?\s+ago$", re.IGNORECASE
)
UNIT_SECONDS = {
    "second": 1,
    "minute": 60,
    "hour": 3600,
    "day": 86400,
    "week": 7 * 86400,
    "month": 30 * 86400,
    "year": 365 * 86400,
}


def parse_since(value: str, now: Optional[datetime] = None) -> datetime:
    """
    Parse "N units ago" or a date/time string into an aware datetime.

    Raises:
        typer.BadParameter: If the value cannot be parsed
    """
    from agent_tts.utils.timeutil import utc_now

    match = RELATIVE_TIME_RE.match(value.strip())
    if match:
        amount = int(match.group(1))
        unit = match.group(2).lower()
        return (now or utc_now()) - timedelta(seconds=amount * UNIT_SECONDS[unit])

    try:
        parsed = date_parser.parse(value)
    except (ValueError, OverflowError) as e:
        raise typer.BadParameter(f"Invalid date format: {value}") from e
    if parsed.tzinfo is None:
        # Naive input means local time
        parsed = parsed.astimezone()
    return parsed


def resolve_cwd(value: Optional[str]) -> Optional[str]:
    if value == ".":
        return os.getcwd()
    return value


def format_markdown(rows: list[dict]) -> str:
    lines = ["# Agent TTS Conversation Log", ""]
    for row in rows:
        label = "**User**" if row.get("role") == "user" else "**Assistant**"
        timestamp = datetime.fromisoformat(row["timestamp"]).astimezone()
        lines.append(f"## {label} - {timestamp:%Y-%m-%d %H:%M:%S}")
        lines.append("")
        if row.get("cwd"):
            lines.append(f"_Working Directory: {row['cwd']}_")
            lines.append("")
        lines.append(row["original_text"])
        lines.append("")
        lines.append("---")
        lines.append("")
    return "\n".join(lines)


def _open_database(must_exist: bool = True):
    from agent_tts.config import settings
    from agent_tts.db.connection import Database

    url = settings.resolved_database_url
    if must_exist and url.startswith("sqlite:///") and url != "sqlite:///:memory:":
        db_path = Path(url[len("sqlite:///") :]).expanduser()
        if not db_path.exists():
            console.print(f"[bold red]Error:[/bold red] Database not found at: {db_path}")
            raise typer.Exit(1)

    database = Database(url, echo=settings.database_echo)
    database.init()
    return database


@app.command()
def run(
    api: bool = typer.Option(False, "--api", help="Also serve the HTTP API"),
    host: Optional[str] = typer.Option(None, help="API host (default from settings)"),
    port: Optional[int] = typer.Option(None, help="API port (default from settings)"),
) -> None:
    """
    Start watching the configured profiles and speaking new messages.

    Runs until interrupted (Ctrl+C).
    """
    from agent_tts.config import settings
    from agent_tts.exceptions import ConfigError, StoreInitError
    from agent_tts.pipeline import build_pipeline

    setup_logging(context="daemon")

    pipeline = build_pipeline(settings)
    try:
        pipeline.start()
    except StoreInitError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    except ConfigError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {e}")
        console.print(f"  Config file: {settings.config_path}")
        pipeline.shutdown()
        raise typer.Exit(1)

    status = pipeline.get_status()
    console.print("[bold green]✓ agent-tts running[/bold green]")
    for profile in status["profiles"]:
        marker = "[green]●[/green]" if profile["watching"] else "[dim]○[/dim]"
        console.print(f"  {marker} {profile['name']} ({profile['id']})")
    if status["muted"]:
        console.print("  [yellow]Muted[/yellow]")

    try:
        if api:
            import uvicorn

            from agent_tts.api import create_app

            bind_host = host or settings.api_host
            bind_port = port or settings.api_port
            console.print(f"\n  API: http://{bind_host}:{bind_port}/docs")
            uvicorn.run(create_app(pipeline), host=bind_host, port=bind_port, log_config=None)
        else:
            shutdown_event = threading.Event()

            def _handle_signal(signum, frame):
                shutdown_event.set()

            signal.signal(signal.SIGINT, _handle_signal)
            signal.signal(signal.SIGTERM, _handle_signal)
            while not shutdown_event.is_set():
                shutdown_event.wait(timeout=1)
    finally:
        pipeline.shutdown()
        console.print("[green]✓ Stopped[/green]")


@app.command()
def logs(
    last: int = typer.Option(20, "--last", help="Number of entries to show"),
    since: Optional[str] = typer.Option(
        None, "--since", help="Only entries since a date or 'N units ago' (e.g. '2 hours ago')"
    ),
    cwd: Optional[str] = typer.Option(None, "--cwd", help="Only this working directory ('.' = here)"),
    exclude_cwd: Optional[str] = typer.Option(
        None, "--exclude-cwd", help="Hide this working directory ('.' = here)"
    ),
    profile: Optional[str] = typer.Option(None, "--profile", help="Only this profile"),
    favorites: bool = typer.Option(False, "--favorites", help="Only favorites"),
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """
    Show the conversation log, oldest first.
    """
    from agent_tts.db.repositories import QueueRecordRepository

    since_dt = parse_since(since) if since else None
    database = _open_database()
    with database.session() as session:
        records = QueueRecordRepository(session).search(
            limit=last,
            profile_id=profile,
            favorites_only=favorites,
            cwd=resolve_cwd(cwd),
            exclude_cwd=resolve_cwd(exclude_cwd),
            since=since_dt,
        )
        rows = [record.to_dict() for record in reversed(records)]
    database.dispose()

    if not rows:
        console.print("No logs found matching the criteria")
        return

    if as_json:
        typer.echo(json.dumps(rows, indent=2, ensure_ascii=False))
    else:
        typer.echo(format_markdown(rows))


@app.command()
def status() -> None:
    """
    Show configured profiles, persisted toggles and queue statistics.
    """
    from sqlalchemy import func

    from agent_tts.config import settings
    from agent_tts.db.repositories import QueueRecordRepository, SettingsRepository
    from agent_tts.exceptions import ConfigError
    from agent_tts.models.db import QueueRecord
    from agent_tts.profiles import load_config

    database = _open_database(must_exist=False)
    with database.session() as session:
        settings_repo = SettingsRepository(session)
        muted = settings_repo.is_muted()
        counts = dict(
            session.query(QueueRecord.state, func.count(QueueRecord.id))
            .group_by(QueueRecord.state)
            .all()
        )
        favorites = QueueRecordRepository(session).count_favorites()

        try:
            config = load_config(settings.config_path)
        except ConfigError as e:
            config = None
            console.print(f"[yellow]⚠ {e}[/yellow]")

        table = Table(title="Profiles")
        table.add_column("ID")
        table.add_column("Name")
        table.add_column("Parser")
        table.add_column("Voice")
        table.add_column("Enabled")
        for profile in config.profiles if config else []:
            enabled = profile.enabled and settings_repo.is_profile_enabled(profile.id)
            table.add_row(
                profile.id,
                profile.name,
                profile.parser.type,
                f"{profile.tts.type}:{profile.tts.voice_id or 'default'}",
                "[green]yes[/green]" if enabled else "[red]no[/red]",
            )
    database.dispose()

    console.print(table)
    console.print(f"Muted: {'[yellow]yes[/yellow]' if muted else 'no'}")
    console.print(f"Favorites: {favorites}")
    for state, count in sorted(counts.items(), key=lambda item: item[0].value):
        console.print(f"  {state.value}: {count}")


@app.command()
def prune(
    days: Optional[int] = typer.Option(None, "--days", help="Keep this many days (default from settings)"),
) -> None:
    """
    Delete log entries and cached audio older than N days. Favorites are kept.
    """
    from agent_tts.audio import AudioCache
    from agent_tts.config import settings
    from agent_tts.db.repositories import QueueRecordRepository

    setup_logging(context="cli")
    retention = days if days is not None else settings.retention_days

    database = _open_database()
    with database.session() as session:
        deleted = QueueRecordRepository(session).delete_older_than(retention)
    database.dispose()

    removed = AudioCache(Path(settings.audio_cache_dir).expanduser()).prune(retention)
    console.print(
        f"[green]✓ Deleted {deleted} log entr{'y' if deleted == 1 else 'ies'} "
        f"and {removed} cached audio file(s) older than {retention} days[/green]"
    )


@app.command("check-config")
def check_config(
    config_file: Optional[Path] = typer.Option(None, "--config", help="Profiles file to check"),
) -> None:
    """
    Validate the profiles file, parser types and filter plugins.
    """
    from agent_tts.config import settings
    from agent_tts.exceptions import ConfigError, FilterPluginError
    from agent_tts.filters.chain import build_filter_chain
    from agent_tts.parsers import UnknownParserError, create_default_registry
    from agent_tts.profiles import load_config

    path = config_file or settings.config_path
    try:
        config = load_config(path)
    except ConfigError as e:
        console.print(f"[bold red]✗[/bold red] {e}")
        raise typer.Exit(1)

    registry = create_default_registry(extra_modules=settings.parser_module_list)
    problems = 0
    for profile in config.profiles:
        try:
            registry.get(profile.parser.type)
            chain = build_filter_chain(profile.filters, profile.pronunciations)
        except (UnknownParserError, FilterPluginError) as e:
            problems += 1
            console.print(f"[red]✗ {profile.id}:[/red] {e}")
            continue
        console.print(
            f"[green]✓ {profile.id}[/green] ({profile.parser.type}, {profile.tts.type}) "
            f"filters: {' -> '.join(chain.names())}"
        )

    if problems:
        raise typer.Exit(1)
    console.print(f"[bold green]✓ {path} is valid[/bold green]")


if __name__ == "__main__":
    app()
