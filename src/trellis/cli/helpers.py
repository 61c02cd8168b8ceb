"""Shared CLI helpers, decorators, and output utilities."""

from __future__ import annotations

import json
from pathlib import Path
from typing import NoReturn

import click

from trellis.core.config import EngineConfig, parse_increment, resolve_config
from trellis.core.tasks import Task, TaskValidationError
from trellis.core.timeutil import HOUR_MS, format_instant, parse_local_date
from trellis.storage.taskfile import TaskFile, read_task_file

# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def json_envelope(ok: bool, *, data: object = None, error: object = None) -> str:
    """Build a structured JSON output envelope."""
    result: dict = {"ok": ok}
    if data is not None:
        result["data"] = data
    if error is not None:
        result["error"] = error
    return json.dumps(result, sort_keys=True, indent=2) + "\n"


def json_error_obj(code: str, message: str) -> dict:
    """Build an error object for the JSON envelope."""
    return {"code": code, "message": message}


def output_error(message: str, code: str, is_json: bool, exit_code: int = 1) -> NoReturn:
    """Print error and exit. JSON errors go to stdout; human errors to stderr."""
    if is_json:
        click.echo(json_envelope(False, error=json_error_obj(code, message)))
    else:
        click.echo(f"Error: {message}", err=True)
    raise SystemExit(exit_code)


def output_result(
    *,
    data: object,
    human_message: str,
    quiet_value: str,
    is_json: bool,
    is_quiet: bool,
) -> None:
    """Print success result in the appropriate format."""
    if is_json:
        click.echo(json_envelope(True, data=data))
    elif is_quiet:
        click.echo(quiet_value)
    else:
        click.echo(human_message)


def task_view(task: Task) -> dict:
    """Return a display dict for *task* with local ISO instants."""
    return {
        "id": task.id,
        "name": task.name,
        "start": format_instant(task.start) if task.start is not None else None,
        "end": format_instant(task.end) if task.end is not None else None,
        "pinned_start": task.pinned_start,
        "pinned_end": task.pinned_end,
        "is_group": task.is_group,
    }


# ---------------------------------------------------------------------------
# Input helpers
# ---------------------------------------------------------------------------


def load_task_file_or_exit(path: Path, is_json: bool) -> TaskFile:
    """Read the task file or exit with a structured error."""
    if not path.is_file():
        output_error(f"Task file not found: {path}", "NOT_FOUND", is_json)
    try:
        return read_task_file(path)
    except TaskValidationError as e:
        output_error(str(e), "VALIDATION_ERROR", is_json)


def parse_instant_or_exit(value: str, is_json: bool) -> int:
    """Parse a CLI instant: integer milliseconds, a local date, or an ISO datetime."""
    if value.lstrip("-").isdigit():
        return int(value)
    try:
        return parse_local_date(value)
    except ValueError:
        output_error(
            f"Invalid instant: '{value}'. Use YYYY-MM-DD, an ISO datetime, or milliseconds.",
            "VALIDATION_ERROR",
            is_json,
        )


def build_config_or_exit(
    *,
    enforce: bool,
    snap_enabled: bool,
    increment: str,
    min_duration_hours: float | None,
    is_json: bool,
) -> EngineConfig:
    """Assemble an engine config from CLI flags."""
    try:
        increment_ms = parse_increment(increment)
    except ValueError as e:
        output_error(str(e), "VALIDATION_ERROR", is_json)
    overrides: dict = {
        "enforce_constraints": enforce,
        "snap_enabled": snap_enabled,
        "snap_increment_ms": increment_ms,
    }
    if min_duration_hours is not None:
        if min_duration_hours < 0:
            output_error("--min-duration must not be negative.", "VALIDATION_ERROR", is_json)
        overrides["min_duration_ms"] = round(min_duration_hours * HOUR_MS)
    return resolve_config(overrides)


def output_options(f):  # noqa: ANN001, ANN201
    """Decorator adding ``--json`` and ``--quiet``."""
    f = click.option("--quiet", is_flag=True, help="Print only the primary value.")(f)
    f = click.option("--json", "output_json", is_flag=True, help="Output structured JSON.")(f)
    return f
