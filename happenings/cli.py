"""Typer CLI for happenings."""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import subprocess
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError

from .config import load_settings, settings, settings_as_dict, update_config_file
from .dates import InvalidDateKeyError, add_days, today_key
from .digest import build_happenings_digest, format_time_display
from .ics import generate_occurrences_ics
from .models import EventFieldsPayload, OccurrenceOverridePayload, VenueResolvePayload
from .occurrences import (
    build_override_map,
    compute_next_occurrence,
    expand_and_group_events,
    expand_occurrences_for_event,
    format_date_group_header,
)
from .recurrence import interpret_recurrence, label_from_recurrence
from .seed import seed_fake_data
from .venues import resolve_venue

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent

app = typer.Typer(help="Happenings recurrence and venue tools")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    log_level: str = typer.Option(
        settings.log_level, "--log-level", help="Logging level (DEBUG, INFO, WARNING)"
    ),
) -> None:
    """Show help when no subcommand is provided."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _fail(message: str) -> None:
    typer.secho(message, err=True, fg=typer.colors.RED)
    raise typer.Exit(code=1)


@contextmanager
def _input_errors() -> Iterator[None]:
    """Turn caller mistakes in JSON input into a red message and exit 1."""
    try:
        yield
    except InvalidDateKeyError as exc:
        _fail(f"Invalid date: {exc}")
    except ValidationError as exc:
        _fail(f"Invalid input:\n{exc}")


def _read_json(source: str) -> Any:
    try:
        if source == "-":
            text = typer.get_text_stream("stdin").read()
        else:
            text = Path(source).read_text(encoding="utf-8")
    except OSError as exc:
        _fail(f"Unable to read {source}: {exc}")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        _fail(f"Unable to parse JSON from {source}: {exc}")


def _load_events(source: str) -> list[EventFieldsPayload]:
    data = _read_json(source)
    rows = data if isinstance(data, list) else [data]
    return [EventFieldsPayload.model_validate(row) for row in rows]


def _load_overrides(source: str | None) -> list[OccurrenceOverridePayload]:
    if not source:
        return []
    data = _read_json(source)
    rows = data if isinstance(data, list) else [data]
    return [OccurrenceOverridePayload.model_validate(row) for row in rows]


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2))


def _event_summary(event: EventFieldsPayload, start_time: str | None = None) -> dict[str, Any]:
    time = start_time or event.start_time
    return {
        "id": event.id,
        "title": event.title,
        "start_time": time,
        "time_display": format_time_display(time),
    }


@app.command("occurrences")
def occurrences(
    events_file: str = typer.Argument(..., help="JSON event or list of events ('-' for stdin)"),
    start: str | None = typer.Option(None, "--start", help="Window start (default: today)"),
    end: str | None = typer.Option(None, "--end", help="Window end (inclusive)"),
    days: int = typer.Option(
        settings.default_window_days, "--days", min=0, help="Window length when --end is omitted"
    ),
    group: bool = typer.Option(
        False, "--group", help="Group all occurrences by date with overrides applied"
    ),
    overrides_file: str | None = typer.Option(
        None, "--overrides", help="JSON list of occurrence overrides (with --group)"
    ),
) -> None:
    """Expand events into concrete dates inside a window."""
    with _input_errors():
        events = _load_events(events_file)
        start_key = start or today_key()
        end_key = end or add_days(start_key, days)

        if not group:
            _echo_json(
                [
                    {
                        "id": event.id,
                        "label": label_from_recurrence(interpret_recurrence(event)),
                        "occurrences": [
                            occurrence.date_key
                            for occurrence in expand_occurrences_for_event(
                                event, start_key=start_key, end_key=end_key
                            )
                        ],
                    }
                    for event in events
                ]
            )
            return

        override_map = build_override_map(
            payload.to_override() for payload in _load_overrides(overrides_file)
        )
        result = expand_and_group_events(
            events,
            start_key=start_key,
            end_key=end_key,
            max_occurrences=settings.max_occurrences_per_event,
            max_events=settings.max_events,
            max_total_occurrences=settings.max_total_occurrences,
            override_map=override_map,
        )
    _echo_json(
        {
            "start": start_key,
            "end": end_key,
            "dates": [
                {
                    "date": date_key,
                    "header": format_date_group_header(date_key, start_key),
                    "events": [
                        _event_summary(entry.event, entry.start_time) for entry in entries
                    ],
                }
                for date_key, entries in result.grouped_events.items()
            ],
            "cancelled": [
                {"date": entry.date_key, **_event_summary(entry.event)}
                for entry in result.cancelled_occurrences
            ],
            "unknown": [event.id for event in result.unknown_events],
            "metrics": dataclasses.asdict(result.metrics),
        }
    )


@app.command("next")
def next_occurrence(
    events_file: str = typer.Argument(..., help="JSON event or list of events ('-' for stdin)"),
    today: str | None = typer.Option(None, "--today", help="Override today's date (YYYY-MM-DD)"),
) -> None:
    """Show the next date each event happens."""
    with _input_errors():
        events = _load_events(events_file)
        reference = today or today_key()
        results = [
            {"id": event.id, **dataclasses.asdict(compute_next_occurrence(event, today_key=reference))}
            for event in events
        ]
    _echo_json(results)


@app.command("label")
def label(
    events_file: str = typer.Argument(..., help="JSON event or list of events ('-' for stdin)"),
) -> None:
    """Describe each event's schedule in words."""
    with _input_errors():
        events = _load_events(events_file)
        results = []
        for event in events:
            descriptor = interpret_recurrence(event)
            results.append(
                {
                    "id": event.id,
                    "frequency": descriptor.frequency,
                    "label": label_from_recurrence(descriptor),
                    "is_confident": descriptor.is_confident,
                }
            )
    _echo_json(results)


@app.command("resolve-venue")
def resolve_venue_command(
    payload_file: str = typer.Argument(..., help="JSON resolver input ('-' for stdin)"),
) -> None:
    """Match draft venue hints against a venue catalog."""
    with _input_errors():
        payload = VenueResolvePayload.model_validate(_read_json(payload_file))
        result = resolve_venue(payload.to_input(settings.venue_aliases))
    _echo_json(dataclasses.asdict(result))


@app.command("digest")
def digest(
    events_file: str = typer.Argument(..., help="JSON list of events ('-' for stdin)"),
    today: str | None = typer.Option(None, "--today", help="Digest send day (YYYY-MM-DD)"),
    overrides_file: str | None = typer.Option(
        None, "--overrides", help="JSON list of occurrence overrides"
    ),
) -> None:
    """Build the weekly happenings digest data."""
    with _input_errors():
        events = _load_events(events_file)
        overrides = [payload.to_override() for payload in _load_overrides(overrides_file)]
        result = build_happenings_digest(
            events, today_key=today or today_key(), overrides=overrides
        )
    _echo_json(
        {
            "start": result.start_key,
            "end": result.end_key,
            "total_count": result.total_count,
            "venue_count": result.venue_count,
            "days": [
                {
                    "date": date_key,
                    "header": items[0].display_date,
                    "events": [
                        _event_summary(item.event, item.start_time) for item in items
                    ],
                }
                for date_key, items in result.by_date.items()
            ],
        }
    )


@app.command("ics")
def ics(
    event_file: str = typer.Argument(..., help="JSON event ('-' for stdin)"),
    start: str | None = typer.Option(None, "--start", help="Window start (default: today)"),
    end: str | None = typer.Option(None, "--end", help="Window end (inclusive)"),
    days: int = typer.Option(
        settings.default_window_days, "--days", min=0, help="Window length when --end is omitted"
    ),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write to a file"),
) -> None:
    """Export an event's occurrences as an iCalendar file."""
    with _input_errors():
        events = _load_events(event_file)
        if len(events) != 1:
            _fail("Expected exactly one event for ICS export.")
        event = events[0]
        start_key = start or today_key()
        end_key = end or add_days(start_key, days)
        body = generate_occurrences_ics(
            event,
            expand_occurrences_for_event(
                event,
                start_key=start_key,
                end_key=end_key,
                max_occurrences=settings.max_occurrences_per_event,
            ),
        )
    if output:
        output.write_text(body, encoding="utf-8", newline="")
        typer.echo(f"Wrote {output}")
    else:
        typer.echo(body, nl=False)


@app.command("seed-data")
def seed_data(
    venues: int = typer.Option(
        settings.seed_venues, "--venues", min=0, help="Number of venues to create"
    ),
    events: int = typer.Option(
        settings.seed_events, "--events", min=0, help="Number of happenings to create"
    ),
    seed: int | None = typer.Option(None, "--seed", help="Random seed for repeatable output"),
    today: str | None = typer.Option(None, "--today", help="Anchor date (YYYY-MM-DD)"),
) -> None:
    """Print a fake venue catalog and happenings as JSON."""
    with _input_errors():
        data = seed_fake_data(
            venue_count=venues,
            event_count=events,
            today_key=today or today_key(),
            seed=seed,
        )
    logger.info("Seeded %d venues and %d events", len(data["venues"]), len(data["events"]))
    _echo_json(data)


@app.command("config")
def configure(
    show: bool = typer.Option(
        False, "--show", help="Show the current effective configuration"
    ),
    default_window_days: int | None = typer.Option(
        None, "--default-window-days", min=1, help="Default expansion window in days"
    ),
    max_events: int | None = typer.Option(
        None, "--max-events", min=1, help="Maximum events expanded per grouping"
    ),
    max_total_occurrences: int | None = typer.Option(
        None, "--max-total-occurrences", min=1, help="Maximum occurrences per grouping"
    ),
    max_occurrences_per_event: int | None = typer.Option(
        None, "--max-occurrences-per-event", min=1, help="Maximum occurrences per event"
    ),
    seed_venues: int | None = typer.Option(
        None, "--seed-venues", min=0, help="Default seed-data venues"
    ),
    seed_events: int | None = typer.Option(
        None, "--seed-events", min=0, help="Default seed-data happenings"
    ),
    log_level: str | None = typer.Option(
        None, "--log-level", help="Default logging level"
    ),
    config_path: Path | None = typer.Option(
        None, "--config-path", help="Path to happenings.toml (default: ./happenings.toml)"
    ),
):
    """View or update the persistent configuration file."""

    updates = {
        "default_window_days": default_window_days,
        "max_events": max_events,
        "max_total_occurrences": max_total_occurrences,
        "max_occurrences_per_event": max_occurrences_per_event,
        "seed_venues": seed_venues,
        "seed_events": seed_events,
        "log_level": log_level.upper() if log_level else None,
    }
    clean_updates = {k: v for k, v in updates.items() if v is not None}

    target_path = config_path or settings.config_path
    if clean_updates:
        settings_ref = update_config_file(clean_updates, path=target_path)
        typer.echo(f"Updated configuration in {target_path}")
    else:
        settings_ref = load_settings(target_path)
    if show or not clean_updates:
        effective = settings_as_dict(settings_ref)
        effective["config_path"] = str(target_path)
        typer.echo(json.dumps(effective, indent=2))


@app.command("test")
def run_tests(pytest_args: list[str] = typer.Argument(None, help="Extra pytest args")):
    """Run the happenings test suite from the project root."""
    env = os.environ.copy()
    env.setdefault("PYTHONPATH", str(PROJECT_ROOT))
    cmd = [sys.executable, "-m", "pytest", str(PROJECT_ROOT / "tests")]
    if pytest_args:
        cmd.extend(pytest_args)
    typer.echo(f"Running tests: {' '.join(cmd)}")
    result = subprocess.run(cmd, env=env, cwd=PROJECT_ROOT)
    raise typer.Exit(code=result.returncode)


if __name__ == "__main__":
    app()
