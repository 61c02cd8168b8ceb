"""Engine configuration: defaults, validation, and serialization.

Configuration is passed explicitly into every session and propagation
call; the engine keeps no ambient settings of its own.
"""

from __future__ import annotations

import json
from typing import TypedDict

from trellis.core.timeutil import DAY_MS, HOUR_MS, SNAP_INCREMENTS


class EngineConfig(TypedDict, total=False):
    snap_enabled: bool
    snap_increment_ms: int
    enforce_constraints: bool
    min_duration_ms: int
    max_propagation_steps: int
    max_group_passes: int


DEFAULT_MIN_DURATION_MS = 4 * HOUR_MS
DEFAULT_MAX_PROPAGATION_STEPS = 10_000
DEFAULT_MAX_GROUP_PASSES = 10

_BOOL_KEYS: tuple[str, ...] = ("snap_enabled", "enforce_constraints")
_POSITIVE_INT_KEYS: tuple[str, ...] = (
    "snap_increment_ms",
    "max_propagation_steps",
    "max_group_passes",
)


def default_config() -> EngineConfig:
    """Return the default engine configuration.

    Snapping is on with a one-day increment, constraints propagate freely,
    and every non-group task keeps at least four hours of duration.
    """
    return {
        "snap_enabled": True,
        "snap_increment_ms": DAY_MS,
        "enforce_constraints": False,
        "min_duration_ms": DEFAULT_MIN_DURATION_MS,
        "max_propagation_steps": DEFAULT_MAX_PROPAGATION_STEPS,
        "max_group_passes": DEFAULT_MAX_GROUP_PASSES,
    }


def resolve_config(overrides: dict | None = None) -> EngineConfig:
    """Return the defaults with *overrides* laid over them."""
    config = default_config()
    if overrides:
        config.update(overrides)  # type: ignore[typeddict-item]
    return config


def validate_config(config: dict) -> list[str]:
    """Return a list of problems with *config* (empty when valid)."""
    problems: list[str] = []
    known = set(default_config())
    for key in sorted(set(config) - known):
        problems.append(f"Unknown config key: {key}")
    for key in _BOOL_KEYS:
        if key in config and not isinstance(config[key], bool):
            problems.append(f"{key} must be a boolean")
    for key in _POSITIVE_INT_KEYS:
        if key in config:
            value = config[key]
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                problems.append(f"{key} must be a positive integer")
    if "min_duration_ms" in config:
        value = config["min_duration_ms"]
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            problems.append("min_duration_ms must be a non-negative integer")
    return problems


def parse_increment(value: str) -> int:
    """Resolve a named increment (``1d``, ``8h``, ``1h``) or a millisecond count.

    Raises:
        ValueError: If *value* is neither a known name nor a positive integer.
    """
    if value in SNAP_INCREMENTS:
        return SNAP_INCREMENTS[value]
    try:
        ms = int(value)
    except ValueError:
        names = ", ".join(SNAP_INCREMENTS)
        raise ValueError(f"Invalid snap increment: '{value}'. Use one of {names} or milliseconds.") from None
    if ms <= 0:
        raise ValueError(f"Snap increment must be positive, got {ms}")
    return ms


def serialize_config(config: EngineConfig | dict[str, object]) -> str:
    """Serialize a config dict to the canonical JSON format."""
    return json.dumps(config, sort_keys=True, indent=2) + "\n"


def load_config(raw: str) -> EngineConfig:
    """Parse a JSON config string and merge it over the defaults.

    This is a pure function (no I/O).

    Raises:
        ValueError: If the parsed config fails validation.
    """
    data = json.loads(raw)
    problems = validate_config(data)
    if problems:
        raise ValueError("; ".join(problems))
    return resolve_config(data)
