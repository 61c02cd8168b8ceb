"""Shared test fixtures."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner


@pytest.fixture()
def cli_runner() -> CliRunner:
    """Return a Click CliRunner for invoking CLI commands."""
    return CliRunner()


@pytest.fixture()
def invoke(cli_runner: CliRunner):
    """Return a helper that invokes CLI commands.

    Usage::

        result = invoke("check", str(path), "--json")
    """
    from trellis.cli.main import cli

    def _invoke(*args: str, **kwargs):
        return cli_runner.invoke(cli, list(args), **kwargs)

    return _invoke


@pytest.fixture()
def write_tasks(tmp_path: Path):
    """Factory fixture: write task records to ``tasks.json`` and return the path.

    Usage::

        path = write_tasks([{"id": "a", "start": "2021-06-01", "end": "2021-06-03"}])
    """

    def _write(records: list[dict], name: str = "tasks.json") -> Path:
        path = tmp_path / name
        path.write_text(json.dumps({"tasks": records}, indent=2) + "\n")
        return path

    return _write
