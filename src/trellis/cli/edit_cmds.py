"""Edit command: run one gesture against a task file and commit it."""

from __future__ import annotations

from pathlib import Path

import click

from trellis.cli.helpers import (
    build_config_or_exit,
    load_task_file_or_exit,
    output_error,
    output_options,
    output_result,
    parse_instant_or_exit,
    task_view,
)
from trellis.cli.main import cli
from trellis.core.session import EDGE_KINDS, SessionStateError, begin_edit
from trellis.core.timeutil import SNAP_INCREMENTS
from trellis.storage.locks import LockTimeout, task_file_lock
from trellis.storage.taskfile import write_task_file

# ---------------------------------------------------------------------------
# trellis edit
# ---------------------------------------------------------------------------


@cli.command("edit")
@click.argument("tasks_file", type=click.Path(dir_okay=False, path_type=Path))
@click.argument("task_id")
@click.option(
    "--edge",
    type=click.Choice(sorted(EDGE_KINDS)),
    default="whole",
    show_default=True,
    help="Which part of the bar moves: whole bar, start handle, or end handle.",
)
@click.option("--to", "to_value", required=True, help="Target instant (YYYY-MM-DD, ISO, or ms).")
@click.option("--enforce", is_flag=True, help="Clamp the edited task instead of shifting others.")
@click.option("--no-snap", is_flag=True, help="Disable snapping of the target instant.")
@click.option(
    "--increment",
    default="1d",
    show_default=True,
    help=f"Snap increment ({', '.join(SNAP_INCREMENTS)}) or milliseconds.",
)
@click.option("--min-duration", "min_duration", type=float, default=None, help="Minimum duration in hours.")
@click.option("--dry-run", is_flag=True, help="Show the result without saving.")
@output_options
def edit_cmd(
    tasks_file: Path,
    task_id: str,
    edge: str,
    to_value: str,
    enforce: bool,
    no_snap: bool,
    increment: str,
    min_duration: float | None,
    dry_run: bool,
    output_json: bool,
    quiet: bool,
) -> None:
    """Move TASK_ID in TASKS_FILE and propagate to dependent tasks."""
    is_json = output_json
    proposed = parse_instant_or_exit(to_value, is_json)
    config = build_config_or_exit(
        enforce=enforce,
        snap_enabled=not no_snap,
        increment=increment,
        min_duration_hours=min_duration,
        is_json=is_json,
    )

    if not tasks_file.is_file():
        output_error(f"Task file not found: {tasks_file}", "NOT_FOUND", is_json)

    try:
        with task_file_lock(tasks_file):
            task_file = load_task_file_or_exit(tasks_file, is_json)
            before = {t.id: t for t in task_file.tasks}
            try:
                session = begin_edit(task_file.tasks, task_id, config)
            except SessionStateError as e:
                output_error(str(e), "NOT_FOUND", is_json)
            session.apply(proposed, edge)
            converged = session.converged
            if dry_run:
                result = session.merged()
                session.cancel()
            else:
                result = session.commit()
                task_file.tasks = result
                write_task_file(task_file)
    except LockTimeout as e:
        output_error(str(e), "LOCKED", is_json)

    # Derived group sides are not part of the stored form, so they never count.
    changed = [t for t in result if t.to_dict() != before[t.id].to_dict()]
    if not converged:
        click.echo("Warning: propagation hit its iteration cap; check for dependency cycles.", err=True)

    verb = "Would move" if dry_run else "Moved"
    lines = [f"{verb} {len(changed)} task(s)"]
    for task in changed:
        view = task_view(task)
        lines.append(f"  {task.id}: {view['start']} -> {view['end']}")
    output_result(
        data={
            "session": session.id,
            "converged": converged,
            "dry_run": dry_run,
            "changed": [task_view(t) for t in changed],
        },
        human_message="\n".join(lines),
        quiet_value="\n".join(t.id for t in changed),
        is_json=is_json,
        is_quiet=quiet,
    )
