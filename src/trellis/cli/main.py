"""CLI entry point and commands."""

from __future__ import annotations

import logging

import click

from trellis.cli.helpers import (
    build_config_or_exit,
    output_options,
    output_result,
    parse_instant_or_exit,
)
from trellis.core.timeutil import SNAP_INCREMENTS, format_instant, snap


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log propagation details to stderr.")
def cli(verbose: bool) -> None:
    """Trellis: constraint-propagating edits for Gantt task files."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# trellis snap
# ---------------------------------------------------------------------------


@cli.command("snap")
@click.argument("when")
@click.option(
    "--increment",
    default="1d",
    show_default=True,
    help=f"Snap increment ({', '.join(SNAP_INCREMENTS)}) or milliseconds.",
)
@output_options
def snap_cmd(when: str, increment: str, output_json: bool, quiet: bool) -> None:
    """Snap WHEN to the nearest increment past local midnight."""
    is_json = output_json
    instant = parse_instant_or_exit(when, is_json)
    config = build_config_or_exit(
        enforce=False,
        snap_enabled=True,
        increment=increment,
        min_duration_hours=None,
        is_json=is_json,
    )
    snapped = snap(instant, True, config["snap_increment_ms"])
    output_result(
        data={"input": instant, "snapped": snapped, "snapped_iso": format_instant(snapped)},
        human_message=format_instant(snapped),
        quiet_value=str(snapped),
        is_json=is_json,
        is_quiet=quiet,
    )


def main() -> None:
    """Console-script entry point."""
    cli()


# ---------------------------------------------------------------------------
# Register command modules (must be after cli group is defined)
# ---------------------------------------------------------------------------
from trellis.cli import edit_cmds as _edit_cmds  # noqa: E402, F401
from trellis.cli import query_cmds as _query_cmds  # noqa: E402, F401

if __name__ == "__main__":
    cli()
