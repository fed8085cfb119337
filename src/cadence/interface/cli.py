"""Cadence CLI: queue, rating, slot and analytics commands."""

import asyncio
import json
import logging
import sys
from dataclasses import asdict
from datetime import datetime, time
from pathlib import Path
from typing import Annotated, Any

import typer

from cadence.application.config import AppConfig, resolve_config
from cadence.application.factory import Services, build_services
from cadence.domain.errors import CadenceError, StaleStateError
from cadence.domain.slots.models import DAY_NAMES, ReviewSlot, SlotType

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="cadence: spaced-repetition review scheduling for homeschool learners.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Subgroups
# ---------------------------------------------------------------------------

slots_app = typer.Typer(help="Manage weekly review slots.", no_args_is_help=True)
app.add_typer(slots_app, name="slots")

config_app = typer.Typer(help="Manage cadence configuration.")
app.add_typer(config_app, name="config")

BackendOpt = Annotated[str | None, typer.Option(help="Storage backend: sqlite, memory.")]
DbPathOpt = Annotated[Path | None, typer.Option(help="SQLite database file.")]
AtOpt = Annotated[
    datetime | None, typer.Option("--at", help="Reference time (ISO 8601). Defaults to now.")
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _resolve_with_overrides(ctx: typer.Context, **overrides: Any) -> AppConfig:
    verbose = ctx.obj.get("verbose_bonus", 0) if ctx.obj else 0
    if verbose >= 2:
        logging.getLogger().setLevel(logging.DEBUG)
    elif verbose == 1:
        logging.getLogger().setLevel(logging.INFO)
    return resolve_config({**overrides, "verbose": verbose})


def _now(at: datetime | None, config: AppConfig) -> datetime:
    if at is None:
        return datetime.now(config.tz)
    if at.tzinfo is None:
        return at.replace(tzinfo=config.tz)
    return at.astimezone(config.tz)


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


def _run(coro):
    """Run a service coroutine, turning engine errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except StaleStateError as e:
        typer.echo(f"Error: {e}. Re-fetch the queue and rate again.", err=True)
        raise typer.Exit(code=1) from e
    except CadenceError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e


async def _with_services(config: AppConfig, action):
    services = await build_services(config)
    try:
        return await action(services)
    finally:
        await services.aclose()


def parse_day(value: str) -> int:
    """Accept 0-6 (Monday=0) or a day name / three-letter prefix."""
    text = value.strip().lower()
    if text.isdigit() and 0 <= int(text) <= 6:
        return int(text)
    for index, name in enumerate(DAY_NAMES):
        if len(text) >= 3 and name.startswith(text):
            return index
    raise typer.BadParameter(f"Unknown day: {value!r}")


BUTTON_RATINGS = {"1": "again", "2": "hard", "3": "good", "4": "easy"}


def parse_rating(value: str) -> str:
    """Map answer-button numbers 1-4 to rating names; names pass through."""
    text = value.strip()
    return BUTTON_RATINGS.get(text, text)


def parse_clock(value: str) -> time:
    try:
        return time.fromisoformat(value)
    except ValueError as e:
        raise typer.BadParameter(f"Expected HH:MM, got {value!r}") from e


def _slot_row(slot: ReviewSlot) -> dict:
    return {
        "slot_id": slot.slot_id,
        "day": slot.day_name,
        "start_time": slot.start_time.strftime("%H:%M"),
        "end_time": slot.end_time.strftime("%H:%M"),
        "capacity": slot.capacity,
        "slot_type": slot.slot_type.value,
        "is_active": slot.is_active,
    }


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 0,
):
    """Global settings for cadence."""
    ctx.ensure_object(dict)
    ctx.obj["verbose_bonus"] = verbose


# ---------------------------------------------------------------------------
# Review commands
# ---------------------------------------------------------------------------


@app.command()
def queue(
    ctx: typer.Context,
    learner_id: Annotated[str, typer.Argument(help="Learner (child) ID.")],
    at: AtOpt = None,
    include_new: Annotated[
        bool | None,
        typer.Option("--include-new/--no-include-new", help="Include never-reviewed cards."),
    ] = None,
    backend: BackendOpt = None,
    db_path: DbPathOpt = None,
):
    """Show the [bold green]due queue[/bold green] for the current or next review slot."""
    config = _resolve_with_overrides(ctx, backend=backend, db_path=db_path)
    now = _now(at, config)
    if include_new is None:
        include_new = config.include_new_cards

    async def _queue(services: Services):
        return await services.reviews.get_queue(learner_id, now, include_new=include_new)

    result = _run(_with_services(config, _queue))
    _echo_json(
        {
            "learner_id": learner_id,
            "presented_at": now.isoformat(),
            "capacity": result.capacity,
            "served": result.served,
            "window": (
                {"start": result.window.start.isoformat(), "end": result.window.end.isoformat()}
                if result.window
                else None
            ),
            "items": [
                {
                    "flashcard_id": item.flashcard_id,
                    "status": item.state.status.value,
                    "interval": item.state.formatted_interval,
                    "days_overdue": round(item.state.days_overdue(now), 2),
                    "expected_version": item.expected_version,
                }
                for item in result.items
            ],
            "deferred": result.deferred,
        }
    )


@app.command()
def rate(
    ctx: typer.Context,
    learner_id: Annotated[str, typer.Argument(help="Learner (child) ID.")],
    flashcard_id: Annotated[str, typer.Argument(help="Flashcard ID.")],
    rating: Annotated[str, typer.Argument(help="again, hard, good or easy (or 1-4).")],
    presented_at: Annotated[
        datetime, typer.Option(help="presented_at of the queue the card came from.")
    ],
    expected_version: Annotated[
        int | None, typer.Option(help="State version shown with the card.")
    ] = None,
    at: AtOpt = None,
    backend: BackendOpt = None,
    db_path: DbPathOpt = None,
):
    """[bold]Rate[/bold] a reviewed card and print its next due date."""
    config = _resolve_with_overrides(ctx, backend=backend, db_path=db_path)
    now = _now(at, config)
    shown = _now(presented_at, config)

    async def _rate(services: Services):
        return await services.reviews.submit_rating(
            learner_id,
            flashcard_id,
            parse_rating(rating),
            presented_at=shown,
            now=now,
            expected_version=expected_version,
        )

    outcome = _run(_with_services(config, _rate))
    state = outcome.state
    _echo_json(
        {
            "flashcard_id": flashcard_id,
            "rating": outcome.attempt.rating.value,
            "interval_before": outcome.attempt.interval_before,
            "interval_after": state.interval_days,
            "ease_factor": round(state.ease_factor, 2),
            "status": state.status.value,
            "due_at": state.due_at.isoformat() if state.due_at else None,
            "version": state.version,
        }
    )


@app.command()
def stats(
    ctx: typer.Context,
    learner_id: Annotated[str, typer.Argument(help="Learner (child) ID.")],
    at: AtOpt = None,
    window_days: Annotated[int | None, typer.Option(help="Retention window in days.")] = None,
    backend: BackendOpt = None,
    db_path: DbPathOpt = None,
):
    """Print the [bold]analytics[/bold] snapshot (retention, due today, mastered...)."""
    config = _resolve_with_overrides(ctx, backend=backend, db_path=db_path)
    now = _now(at, config)

    async def _stats(services: Services):
        return await services.analytics.get_snapshot(learner_id, now, window_days)

    snapshot = _run(_with_services(config, _stats))
    data = asdict(snapshot)
    if snapshot.retention_rate is None:
        data["retention_rate"] = "no data"
    _echo_json(data)


@app.command()
def enroll(
    ctx: typer.Context,
    learner_id: Annotated[str, typer.Argument(help="Learner (child) ID.")],
    flashcard_ids: Annotated[list[str], typer.Argument(help="Flashcard IDs to attach.")],
    db_path: DbPathOpt = None,
):
    """Attach flashcards to a learner's local curriculum (no review state is created)."""
    config = _resolve_with_overrides(ctx, backend="sqlite", db_path=db_path)

    async def _enroll(services: Services):
        for card_id in flashcard_ids:
            services.store.enroll(learner_id, card_id)
        return len(flashcard_ids)

    count = _run(_with_services(config, _enroll))
    typer.echo(f"Enrolled {count} card(s) for {learner_id}.")


# ---------------------------------------------------------------------------
# Slot commands
# ---------------------------------------------------------------------------


@slots_app.command("list")
def slots_list(
    ctx: typer.Context,
    learner_id: Annotated[str, typer.Argument(help="Learner (child) ID.")],
    db_path: DbPathOpt = None,
):
    """List a learner's weekly review slots."""
    config = _resolve_with_overrides(ctx, db_path=db_path)

    async def _list(services: Services):
        return await services.slots.list_slots(learner_id)

    _echo_json([_slot_row(s) for s in _run(_with_services(config, _list))])


@slots_app.command("add")
def slots_add(
    ctx: typer.Context,
    learner_id: Annotated[str, typer.Argument(help="Learner (child) ID.")],
    day: Annotated[str, typer.Argument(help="Day of week: 0-6 (Monday=0) or name.")],
    start: Annotated[str, typer.Argument(help="Start time, HH:MM.")],
    end: Annotated[str, typer.Argument(help="End time, HH:MM.")],
    capacity: Annotated[int | None, typer.Option(help="Max cards per occurrence.")] = None,
    slot_type: Annotated[SlotType, typer.Option("--type", help="micro or standard.")] = SlotType.MICRO,
    db_path: DbPathOpt = None,
):
    """Add a recurring weekly slot. Overlapping slots are rejected."""
    config = _resolve_with_overrides(ctx, db_path=db_path)
    day_of_week = parse_day(day)
    start_time, end_time = parse_clock(start), parse_clock(end)

    async def _add(services: Services):
        return await services.slots.create_slot(
            learner_id, day_of_week, start_time, end_time, capacity=capacity, slot_type=slot_type
        )

    _echo_json(_slot_row(_run(_with_services(config, _add))))


@slots_app.command("remove")
def slots_remove(
    ctx: typer.Context,
    learner_id: Annotated[str, typer.Argument(help="Learner (child) ID.")],
    slot_id: Annotated[str, typer.Argument(help="Slot ID.")],
    db_path: DbPathOpt = None,
):
    """Delete a slot."""
    config = _resolve_with_overrides(ctx, db_path=db_path)

    async def _remove(services: Services):
        await services.slots.delete_slot(learner_id, slot_id)

    _run(_with_services(config, _remove))
    typer.echo(f"Removed {slot_id}.")


@slots_app.command("toggle")
def slots_toggle(
    ctx: typer.Context,
    learner_id: Annotated[str, typer.Argument(help="Learner (child) ID.")],
    slot_id: Annotated[str, typer.Argument(help="Slot ID.")],
    db_path: DbPathOpt = None,
):
    """Activate or deactivate a slot."""
    config = _resolve_with_overrides(ctx, db_path=db_path)

    async def _toggle(services: Services):
        return await services.slots.toggle_slot(learner_id, slot_id)

    _echo_json(_slot_row(_run(_with_services(config, _toggle))))


@slots_app.command("defaults")
def slots_defaults(
    ctx: typer.Context,
    learner_id: Annotated[str, typer.Argument(help="Learner (child) ID.")],
    db_path: DbPathOpt = None,
):
    """Seed the default morning (08:00) and evening (19:30) micro slots."""
    config = _resolve_with_overrides(ctx, db_path=db_path)

    async def _defaults(services: Services):
        return await services.slots.create_default_slots(learner_id)

    created = _run(_with_services(config, _defaults))
    typer.echo(f"Created {len(created)} default slot(s) for {learner_id}.")


# ---------------------------------------------------------------------------
# Config / server
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show():
    """Display current resolved configuration."""
    config = resolve_config()
    typer.echo(json.dumps(config.model_dump(mode="json"), indent=2))


@app.command()
def serve(
    host: Annotated[str | None, typer.Option(help="Bind address.")] = None,
    port: Annotated[int | None, typer.Option(help="Port.")] = None,
    reload: Annotated[bool, typer.Option("--reload", help="Auto-reload on code changes.")] = False,
):
    """Start the HTTP API server."""
    import uvicorn

    config = resolve_config({"host": host, "port": port})

    config.log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(config.log_dir / "server.log")
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s:%(name)s:%(message)s")
    )
    logging.getLogger("cadence").addHandler(file_handler)
    logger.info(f"Serving on {config.host}:{config.port}, logs in {config.log_dir}")

    uvicorn.run("cadence.server:app", host=config.host, port=config.port, reload=reload)


if __name__ == "__main__":
    app()
