"""Build plan interpretation: which lifecycle phases need the dependency."""

from __future__ import annotations

import tomllib
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from pnpmlayer.errors import NotRequestedError, ValidationError
from pnpmlayer.models import LayerFlags, PlanEntry
from pnpmlayer.observability import BuildLogger

PHASE_KEYS = ("build", "launch")


def find_entries(plan: Sequence[PlanEntry], name: str) -> list[PlanEntry]:
    """Return every plan entry for *name*; raise if the plan never requests it."""
    entries = [entry for entry in plan if entry.name == name]
    if not entries:
        raise NotRequestedError(
            f"Build plan does not request '{name}'.",
            hint="Ensure the detect phase adds a requirement for this dependency.",
            context={"dependency": name, "entries": ", ".join(e.name for e in plan)},
        )
    return entries


def lifecycle_flags(
    plan: Sequence[PlanEntry],
    name: str,
    *,
    logger: BuildLogger | None = None,
) -> LayerFlags:
    """Merge the ``build``/``launch`` requirements of all entries for *name*.

    Non-boolean values count as false. ``cache`` is set whenever the layer is
    used in either phase.
    """
    build = False
    launch = False
    for entry in find_entries(plan, name):
        build = build or _read_flag(entry, "build", logger=logger)
        launch = launch or _read_flag(entry, "launch", logger=logger)
    return LayerFlags(build=build, launch=launch, cache=build or launch)


def version_constraint(plan: Sequence[PlanEntry], name: str) -> str | None:
    for entry in find_entries(plan, name):
        value = entry.metadata.get("version")
        if isinstance(value, str) and value:
            return value
    return None


def _read_flag(entry: PlanEntry, key: str, *, logger: BuildLogger | None) -> bool:
    value: Any = entry.metadata.get(key)
    if value is None or isinstance(value, bool):
        return bool(value)
    # TODO: decide whether a non-boolean phase flag should fail the build instead
    if logger is not None:
        logger.debug(
            f"Ignoring non-boolean '{key}' requirement for {entry.name}",
            layer=entry.name,
            operation="plan",
            extra={"key": key, "value": repr(value)},
        )
    return False


def load_plan(path: str | Path) -> tuple[PlanEntry, ...]:
    """Read ``[[entries]]`` from a build plan TOML file."""
    plan_path = Path(path)
    try:
        payload = tomllib.loads(plan_path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ValidationError(
            "Build plan could not be read.",
            hint=str(exc),
            context={"path": str(plan_path)},
        ) from exc
    entries = payload.get("entries", [])
    if not isinstance(entries, list):
        raise ValidationError("Invalid build plan `entries` value.", context={"path": str(plan_path)})
    parsed: list[PlanEntry] = []
    for item in entries:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            raise ValidationError("Invalid build plan entry.", context={"path": str(plan_path)})
        metadata = item.get("metadata", {})
        if not isinstance(metadata, dict):
            raise ValidationError(
                "Invalid build plan entry metadata.", context={"path": str(plan_path)}
            )
        parsed.append(PlanEntry(name=item["name"], metadata=metadata))
    return tuple(parsed)
