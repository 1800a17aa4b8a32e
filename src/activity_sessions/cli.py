"""Command-line interface for building work sessions."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

import typer

from .config import SessionSettings
from .dates import InvalidDateError, to_ms
from .db import SqliteRepository, database_connection
from .paths import get_db_path, get_log_path
from .service import SessionBuilder

app = typer.Typer(help="Group activity evidence into work sessions.")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

DbOption = typer.Option(
    None,
    "--db",
    path_type=Path,
    help="Location of the activity SQLite database.",
)
IdleGapOption = typer.Option(
    10.0,
    "--idle-gap",
    min=0.5,
    help="Minutes of silence that split two sessions.",
)
MinSessionOption = typer.Option(
    2.0,
    "--min-session",
    min=0.0,
    help="Minutes below which sessions without evidence are dropped.",
)
FocusAnchoredOption = typer.Option(
    False,
    "--focus-anchored/--activity",
    help="Let only focus events open sessions; diffs and visits are evidence only.",
)


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
    )


@contextmanager
def _session_builder(
    db_path: Optional[Path],
    settings: SessionSettings,
    *,
    stop_event: Optional[threading.Event] = None,
) -> Iterator[SessionBuilder]:
    with database_connection(db_path or get_db_path(), check_same_thread=False) as conn:
        repo = SqliteRepository(conn)
        yield SessionBuilder(
            repo, repo, repo, repo, repo, settings, stop_event=stop_event
        )


def _settings(
    idle_gap: float, min_session: float, focus_anchored: bool, **extra: float
) -> SessionSettings:
    return SessionSettings.from_minutes(
        idle_gap_minutes=idle_gap,
        min_session_minutes=min_session,
        focus_anchored=focus_anchored,
        **extra,
    )


def _parse_datetime(value: str, option: str) -> int:
    try:
        return to_ms(datetime.fromisoformat(value))
    except ValueError as exc:
        raise typer.BadParameter(f"{option} must be an ISO datetime") from exc


@app.command()
def build(
    date: Optional[str] = typer.Option(
        None,
        "--date",
        help="Date (YYYY-MM-DD) to build. Defaults to today.",
    ),
    start: Optional[str] = typer.Option(
        None, "--start", help="Range start as an ISO datetime (use with --end)."
    ),
    end: Optional[str] = typer.Option(
        None, "--end", help="Range end as an ISO datetime (use with --start)."
    ),
    db_path: Optional[Path] = DbOption,
    idle_gap: float = IdleGapOption,
    min_session: float = MinSessionOption,
    focus_anchored: bool = FocusAnchoredOption,
) -> None:
    """Build sessions for a date or an explicit time range."""
    settings = _settings(idle_gap, min_session, focus_anchored)
    with _session_builder(db_path, settings) as builder:
        try:
            if start or end:
                if not (start and end):
                    raise typer.BadParameter("--start and --end must be used together")
                created = builder.build_for_range(
                    _parse_datetime(start, "--start"), _parse_datetime(end, "--end")
                )
            else:
                created = builder.build_for_date(
                    date or datetime.now().strftime("%Y-%m-%d")
                )
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
    typer.echo(f"Created {created} sessions.")


@app.command()
def rebuild(
    date: str = typer.Option(..., "--date", help="Date (YYYY-MM-DD) to rebuild."),
    db_path: Optional[Path] = DbOption,
    idle_gap: float = IdleGapOption,
    min_session: float = MinSessionOption,
    focus_anchored: bool = FocusAnchoredOption,
) -> None:
    """Build a new session version for a date, keeping older versions."""
    settings = _settings(idle_gap, min_session, focus_anchored)
    with _session_builder(db_path, settings) as builder:
        try:
            created = builder.rebuild_for_date(date)
        except InvalidDateError as exc:
            raise typer.BadParameter(str(exc)) from exc
    typer.echo(f"Created {created} sessions.")


@app.command()
def incremental(
    db_path: Optional[Path] = DbOption,
    idle_gap: float = IdleGapOption,
    min_session: float = MinSessionOption,
    focus_anchored: bool = FocusAnchoredOption,
) -> None:
    """Build sessions for activity since the last stored session."""
    settings = _settings(idle_gap, min_session, focus_anchored)
    with _session_builder(db_path, settings) as builder:
        created = builder.build_incremental()
    typer.echo(f"Created {created} sessions.")


@app.command()
def repair(
    date: Optional[str] = typer.Option(
        None, "--date", help="Date (YYYY-MM-DD) to repair. Defaults to today."
    ),
    attach_gap: int = typer.Option(
        10, "--attach-gap", min=1, help="Maximum minutes between an orphan and a session."
    ),
    limit: int = typer.Option(
        500, "--limit", min=1, help="Maximum number of orphans to attach."
    ),
    db_path: Optional[Path] = DbOption,
) -> None:
    """Attach unreferenced diffs and visits to the nearest session."""
    settings = SessionSettings()
    with _session_builder(db_path, settings) as builder:
        try:
            result = builder.repair_evidence_for_date(
                date or datetime.now().strftime("%Y-%m-%d"),
                attach_gap_minutes=attach_gap,
                limit=limit,
            )
        except InvalidDateError as exc:
            raise typer.BadParameter(str(exc)) from exc
    typer.echo(result.model_dump_json(indent=2))


@app.command()
def sessions(
    date: Optional[str] = typer.Option(
        None,
        "--date",
        help="Date (YYYY-MM-DD) to show. Defaults to today.",
    ),
    db_path: Optional[Path] = DbOption,
) -> None:
    """Print the newest session version of a day."""
    from .reporting import SessionPrinter

    printer = SessionPrinter(db_path=db_path or get_db_path())
    try:
        printer.print_sessions(date or datetime.now().strftime("%Y-%m-%d"))
    except InvalidDateError as exc:
        raise typer.BadParameter(str(exc)) from exc


@app.command()
def watch(
    interval: float = typer.Option(
        5.0,
        "--interval",
        min=0.1,
        help="Minutes between incremental builds.",
    ),
    log_file: bool = typer.Option(
        False,
        "--log-file/--no-log-file",
        help="Also write logs to the application data directory.",
    ),
    db_path: Optional[Path] = DbOption,
    idle_gap: float = IdleGapOption,
    min_session: float = MinSessionOption,
    focus_anchored: bool = FocusAnchoredOption,
) -> None:
    """Build sessions incrementally until interrupted."""
    from .runner import PeriodicBuilder

    if log_file:
        handler = logging.FileHandler(get_log_path(), encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(handler)

    settings = _settings(
        idle_gap, min_session, focus_anchored, build_interval_minutes=interval
    )
    stop_event = threading.Event()
    with _session_builder(db_path, settings, stop_event=stop_event) as builder:
        periodic = PeriodicBuilder(builder, settings.build_interval)
        try:
            periodic.run_until_stopped(stop_event)
        except KeyboardInterrupt:
            logging.getLogger(__name__).info("Interrupted; stopping session builds.")
            stop_event.set()
        typer.echo(builder.stats().model_dump_json(indent=2))
