"""oom_ledger.cli

Command-line entrypoint for the results ledger.

Usage:
    oom-ledger --config config/oom_ledger.yml init-db

    oom-ledger --config config/oom_ledger.yml publish \\
        --events-path exports/events.json \\
        --roster-path exports/members.json \\
        --event-id evt-2024-06

    oom-ledger --config config/oom_ledger.yml unpublish --event-id evt-2024-06

    oom-ledger --config config/oom_ledger.yml results --event-id evt-2024-06

    oom-ledger season \\
        --events-path exports/events.json \\
        --roster-path exports/members.json \\
        --season-year 2024 --oom-only --source recompute

Events and members are JSON arrays in the app's export shape.  The
database DSN and society id come from --db-dsn / --society-id, the
OOM_LEDGER_* environment variables, or the YAML config file.
"""

from __future__ import annotations

import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import NoReturn

import click

from oom_ledger.config import ConfigValidationError, LedgerConfig, resolve_config
from oom_ledger.leaderboard import compute_leaderboard, event_winner
from oom_ledger.ledger import publish_results, read_results, unpublish_results
from oom_ledger.season import (
    AggregationCounters,
    aggregate_season,
    build_season_report,
)
from oom_ledger.shared import (
    InputFileError,
    PersistenceError,
    load_events,
    load_roster,
    write_run_report,
)
from oom_ledger.store import PostgresDocumentStore


def _fail(run_id: str, message: str) -> NoReturn:
    click.echo(f"[{run_id}] ERROR: {message}", err=True)
    sys.exit(1)


def _config(ctx: click.Context) -> LedgerConfig:
    opts = ctx.obj
    try:
        return resolve_config(
            config_path=opts["config_path"],
            db_dsn=opts["db_dsn"],
            society_id=opts["society_id"],
        )
    except (ConfigValidationError, FileNotFoundError) as exc:
        _fail(opts["run_id"], str(exc))


def _open_store(ctx: click.Context, cfg: LedgerConfig) -> PostgresDocumentStore:
    try:
        return PostgresDocumentStore.connect(cfg.db_dsn, table=cfg.table)
    except PersistenceError as exc:
        _fail(ctx.obj["run_id"], str(exc))


def _load_inputs(run_id: str, events_path: str, roster_path: str | None):
    try:
        events = load_events(Path(events_path))
        roster = load_roster(Path(roster_path)) if roster_path else []
    except InputFileError as exc:
        _fail(run_id, str(exc))
    return events, roster


@click.group()
@click.option("--config", "config_path", default=None, type=click.Path(exists=True, dir_okay=False), help="YAML config file")
@click.option("--db-dsn", default=None, help="PostgreSQL DSN (overrides env/config)")
@click.option("--society-id", default=None, help="Society (tenant) id (overrides env/config)")
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    show_default=True,
)
@click.pass_context
def main(
    ctx: click.Context,
    config_path: str | None,
    db_dsn: str | None,
    society_id: str | None,
    run_id: str | None,
    log_level: str,
) -> None:
    """Order-of-Merit results ledger."""
    logging.basicConfig(level=log_level, format="%(levelname)s %(name)s: %(message)s")
    ctx.obj = {
        "config_path": Path(config_path) if config_path else None,
        "db_dsn": db_dsn,
        "society_id": society_id,
        "run_id": run_id or str(uuid.uuid4()),
    }


@main.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create the ledger table if it does not exist."""
    run_id = ctx.obj["run_id"]
    cfg = _config(ctx)
    store = _open_store(ctx, cfg)
    try:
        store.create_schema()
    except PersistenceError as exc:
        _fail(run_id, str(exc))
    finally:
        store.close()
    click.echo(f"[{run_id}] Table {cfg.table} ready")


@main.command()
@click.option("--events-path", required=True, type=click.Path(exists=True, dir_okay=False), help="Events JSON export")
@click.option("--roster-path", default=None, type=click.Path(exists=True, dir_okay=False), help="Members JSON export")
@click.option("--event-id", required=True, help="Event to publish")
@click.option("--dry-run", is_flag=True, default=False, help="Print the leaderboard without writing")
@click.pass_context
def publish(
    ctx: click.Context,
    events_path: str,
    roster_path: str | None,
    event_id: str,
    dry_run: bool,
) -> None:
    """Publish one event's results to the ledger (replaces any earlier publish)."""
    run_id = ctx.obj["run_id"]
    events, roster = _load_inputs(run_id, events_path, roster_path)
    event = next((e for e in events if e.id == event_id), None)
    if event is None:
        _fail(run_id, f"event {event_id!r} not found in {events_path}")

    leaderboard = compute_leaderboard(event)
    winner = event_winner(leaderboard, roster)
    click.echo(
        f"[{run_id}] {event_id}: {len(leaderboard)} ranked participant(s)"
        + (f", winner {winner[1]} ({winner[0]})" if winner else "")
    )
    if dry_run:
        for entry in leaderboard:
            click.echo(f"  {entry.position:>3}  {entry.member_id:<24} {entry.score} ({entry.score_type})")
        click.echo(f"[{run_id}] [dry-run] Nothing written.")
        return

    cfg = _config(ctx)
    store = _open_store(ctx, cfg)
    try:
        summary = publish_results(store, cfg.society_id, event, roster)
    except PersistenceError as exc:
        _fail(run_id, f"publish failed, ledger unchanged: {exc}")
    finally:
        store.close()
    if summary.skipped:
        click.echo(f"[{run_id}] Left off (no usable score): {', '.join(summary.skipped)}")
    click.echo(f"[{run_id}] Wrote {summary.written} result(s)")


@main.command()
@click.option("--event-id", required=True)
@click.pass_context
def unpublish(ctx: click.Context, event_id: str) -> None:
    """Remove an event's results from the ledger."""
    run_id = ctx.obj["run_id"]
    cfg = _config(ctx)
    store = _open_store(ctx, cfg)
    try:
        deleted = unpublish_results(store, cfg.society_id, event_id)
    except PersistenceError as exc:
        _fail(run_id, f"unpublish failed, ledger unchanged: {exc}")
    finally:
        store.close()
    click.echo(f"[{run_id}] Deleted {deleted} result(s) for {event_id}")


@main.command()
@click.option("--event-id", required=True)
@click.pass_context
def results(ctx: click.Context, event_id: str) -> None:
    """Print an event's published results."""
    run_id = ctx.obj["run_id"]
    cfg = _config(ctx)
    store = _open_store(ctx, cfg)
    try:
        records = read_results(store, cfg.society_id, event_id)
    except PersistenceError as exc:
        _fail(run_id, str(exc))
    finally:
        store.close()
    if not records:
        click.echo(f"[{run_id}] No published results for {event_id}")
        return
    for r in records:
        click.echo(f"  {r.position:>3}  {r.member_name:<28} {r.points:>4} pts  {r.score} ({r.score_type})")


@main.command()
@click.option("--events-path", required=True, type=click.Path(exists=True, dir_okay=False), help="Events JSON export")
@click.option("--roster-path", default=None, type=click.Path(exists=True, dir_okay=False), help="Members JSON export")
@click.option("--season-year", default=None, type=int)
@click.option("--oom-only", is_flag=True, default=False, help="Only count Order-of-Merit events")
@click.option(
    "--source",
    default="ledger",
    type=click.Choice(["ledger", "recompute"]),
    show_default=True,
    help="Read published ledger records, or recompute from the events' scores",
)
@click.option("--report-dir", default=None, type=click.Path(file_okay=False), help="Write a JSON run report here")
@click.pass_context
def season(
    ctx: click.Context,
    events_path: str,
    roster_path: str | None,
    season_year: int | None,
    oom_only: bool,
    source: str,
    report_dir: str | None,
) -> None:
    """Print the season standings."""
    run_id = ctx.obj["run_id"]
    started_at = datetime.now(timezone.utc).isoformat()
    events, roster = _load_inputs(run_id, events_path, roster_path)
    ctrs = AggregationCounters()

    if source == "ledger":
        cfg = _config(ctx)
        store = _open_store(ctx, cfg)
        try:
            entries = aggregate_season(
                events, roster, season_year, oom_only,
                store=store, society_id=cfg.society_id, counters=ctrs,
            )
        finally:
            store.close()
    else:
        entries = aggregate_season(events, roster, season_year, oom_only, counters=ctrs)

    title = "Order of Merit" if oom_only else "Season Leaderboard"
    if season_year is not None:
        title = f"{title} {season_year}"
    click.echo(build_season_report(entries, ctrs, title=title))

    if report_dir:
        report_path = write_run_report(
            run_id, started_at, "season",
            {
                "events_path": events_path,
                "season_year": season_year,
                "oom_only": oom_only,
                "source": source,
                "standings": [e.to_dict() for e in entries],
            },
            ctrs.to_dict(),
            report_dir=Path(report_dir),
        )
        click.echo(f"[{run_id}] Run report: {report_path}")

    if ctrs.events_failed:
        click.echo(f"[{run_id}] {ctrs.events_failed} event(s) could not be read", err=True)


if __name__ == "__main__":
    main()
