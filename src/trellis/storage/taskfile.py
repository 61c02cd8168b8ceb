"""Reading and writing the JSON task file used by the CLI.

The file holds ``{"tasks": [...]}``.  Instants may be integer
milliseconds or ISO-8601 strings (a bare ``YYYY-MM-DD`` means local
midnight).  A file written entirely with strings is saved back with
strings.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

from trellis.core.tasks import Task, TaskValidationError, load_tasks, serialize_tasks
from trellis.core.timeutil import format_instant, parse_local_date
from trellis.storage.fs import atomic_write

_INSTANT_KEYS = ("start", "end")


@dataclass
class TaskFile:
    """A loaded task file: the tasks plus how their instants were written."""

    path: Path
    tasks: list[Task]
    iso_instants: bool = False


def _normalize_instants(record: dict) -> tuple[dict, bool]:
    """Convert string instants in *record* to milliseconds.

    Returns the converted record and whether any string instant was seen.
    """
    out = dict(record)
    saw_string = False
    for key in _INSTANT_KEYS:
        value = out.get(key)
        if isinstance(value, str):
            saw_string = True
            try:
                out[key] = parse_local_date(value)
            except ValueError:
                raise TaskValidationError(
                    f"Task {out.get('id')!r}: cannot parse {key} {value!r}"
                ) from None
    return out, saw_string


def parse_task_document(raw: str) -> tuple[list[Task], bool]:
    """Parse a task-file document.  Returns ``(tasks, iso_instants)``.

    Raises:
        TaskValidationError: On malformed JSON or task records.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise TaskValidationError(f"Task file is not valid JSON: {exc}") from None
    records = data.get("tasks") if isinstance(data, dict) else data
    if not isinstance(records, list):
        raise TaskValidationError("Task file must hold a list under 'tasks'")

    normalized: list[dict] = []
    any_string = False
    any_int = False
    for record in records:
        if not isinstance(record, dict):
            raise TaskValidationError(f"Task record must be an object, got {record!r}")
        converted, saw_string = _normalize_instants(record)
        any_string = any_string or saw_string
        any_int = any_int or any(isinstance(record.get(k), int) for k in _INSTANT_KEYS)
        normalized.append(converted)
    return load_tasks(normalized), any_string and not any_int


def read_task_file(path: Path) -> TaskFile:
    """Load the task file at *path*."""
    tasks, iso = parse_task_document(path.read_text(encoding="utf-8"))
    return TaskFile(path=path, tasks=tasks, iso_instants=iso)


def render_task_document(tasks: list[Task], iso_instants: bool = False) -> str:
    """Serialize *tasks* to the task-file format."""
    if not iso_instants:
        return serialize_tasks(tasks)
    records = [t.to_dict() for t in tasks]
    for record in records:
        for key in _INSTANT_KEYS:
            if key in record:
                record[key] = format_instant(record[key])
    return json.dumps({"tasks": records}, sort_keys=True, indent=2) + "\n"


def write_task_file(task_file: TaskFile) -> None:
    """Atomically save *task_file* back to its path."""
    atomic_write(task_file.path, render_task_document(task_file.tasks, task_file.iso_instants))
