"""Read-only commands: spans, check."""

from __future__ import annotations

from pathlib import Path

import click

from trellis.cli.helpers import (
    json_envelope,
    load_task_file_or_exit,
    output_options,
    output_result,
    task_view,
)
from trellis.cli.main import cli
from trellis.core.constraints import find_violations
from trellis.core.groups import recompute_group_spans
from trellis.core.timeutil import HOUR_MS

# ---------------------------------------------------------------------------
# trellis spans
# ---------------------------------------------------------------------------


@cli.command("spans")
@click.argument("tasks_file", type=click.Path(dir_okay=False, path_type=Path))
@output_options
def spans_cmd(tasks_file: Path, output_json: bool, quiet: bool) -> None:
    """Show every group's span, deriving unpinned sides from its descendants."""
    is_json = output_json
    task_file = load_task_file_or_exit(tasks_file, is_json)
    groups = [t for t in recompute_group_spans(task_file.tasks) if t.is_group]

    lines = []
    for group in groups:
        view = task_view(group)
        start_mark = "" if group.pinned_start else " (derived)"
        end_mark = "" if group.pinned_end else " (derived)"
        lines.append(f"{group.id}: {view['start']}{start_mark} -> {view['end']}{end_mark}")
    output_result(
        data=[task_view(g) for g in groups],
        human_message="\n".join(lines) if lines else "No groups.",
        quiet_value="\n".join(g.id for g in groups),
        is_json=is_json,
        is_quiet=quiet,
    )


# ---------------------------------------------------------------------------
# trellis check
# ---------------------------------------------------------------------------


@cli.command("check")
@click.argument("tasks_file", type=click.Path(dir_okay=False, path_type=Path))
@output_options
def check_cmd(tasks_file: Path, output_json: bool, quiet: bool) -> None:
    """Report dependencies whose constraint does not hold.  Exits 1 if any."""
    is_json = output_json
    task_file = load_task_file_or_exit(tasks_file, is_json)
    violations = find_violations(recompute_group_spans(task_file.tasks))

    if not violations:
        output_result(
            data=[],
            human_message="All dependency constraints hold.",
            quiet_value="",
            is_json=is_json,
            is_quiet=quiet,
        )
        return

    if is_json:
        click.echo(json_envelope(False, data=violations))
    elif quiet:
        click.echo("\n".join(v["task_id"] for v in violations))
    else:
        click.echo(f"{len(violations)} violated constraint(s):")
        for v in violations:
            hours = v["delta_ms"] / HOUR_MS
            click.echo(f"  {v['task_id']} {v['type']} {v['target_id']}: off by {hours:g}h")
    raise SystemExit(1)
