"""Dependency catalog parsing and resolution from ``buildpack.toml``."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path
from typing import Any

from pnpmlayer.errors import ResolutionError, ValidationError
from pnpmlayer.models import BuildpackInfo, DependencyDescriptor
from pnpmlayer.observability import BuildLogger, Clock, utc_now
from pnpmlayer.version import Version, matches

DEPRECATION_WARNING_WINDOW = timedelta(days=30)


@dataclass(frozen=True, slots=True)
class DependencyConstraint:
    id: str
    constraint: str
    patches: int


@dataclass(frozen=True, slots=True)
class Catalog:
    dependencies: tuple[DependencyDescriptor, ...] = ()
    default_versions: dict[str, str] = field(default_factory=dict)
    constraints: tuple[DependencyConstraint, ...] = ()

    def versions_for(self, dependency_id: str) -> list[str]:
        return [dep.version for dep in self.dependencies if dep.id == dependency_id]


def load_catalog(path: str | Path) -> Catalog:
    catalog_path = Path(path)
    try:
        raw = catalog_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ResolutionError(
            "Dependency catalog could not be read.",
            hint="Check that buildpack.toml exists in the buildpack directory.",
            context={"path": str(catalog_path), "error": str(exc)},
        ) from exc
    return parse_catalog(raw, source=str(catalog_path))


def parse_catalog(raw: str, *, source: str = "<memory>") -> Catalog:
    try:
        payload = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        raise ValidationError(
            "Invalid dependency catalog TOML.",
            hint=str(exc),
            context={"path": source},
        ) from exc

    metadata = payload.get("metadata", {})
    if not isinstance(metadata, dict):
        raise ValidationError("Invalid catalog `metadata` table.", context={"path": source})

    entries = metadata.get("dependencies", [])
    if not isinstance(entries, list):
        raise ValidationError("Invalid catalog `dependencies` value.", context={"path": source})

    defaults = metadata.get("default-versions", {})
    if not isinstance(defaults, dict) or not all(isinstance(v, str) for v in defaults.values()):
        raise ValidationError("Invalid catalog `default-versions` table.", context={"path": source})

    constraints_raw = metadata.get("dependency-constraints", [])
    if not isinstance(constraints_raw, list):
        raise ValidationError(
            "Invalid catalog `dependency-constraints` value.", context={"path": source}
        )

    return Catalog(
        dependencies=tuple(_parse_dependency(item, source=source) for item in entries),
        default_versions=dict(defaults),
        constraints=tuple(_parse_constraint(item, source=source) for item in constraints_raw),
    )


def load_buildpack_info(path: str | Path) -> BuildpackInfo:
    """Read the ``[buildpack]`` table (name, version, sbom-formats)."""
    catalog_path = Path(path)
    try:
        payload = tomllib.loads(catalog_path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ValidationError(
            "buildpack.toml could not be read.",
            hint=str(exc),
            context={"path": str(catalog_path)},
        ) from exc
    table = payload.get("buildpack", {})
    if not isinstance(table, dict):
        raise ValidationError("Invalid `buildpack` table.", context={"path": str(catalog_path)})
    formats = table.get("sbom-formats", [])
    if not isinstance(formats, list) or not all(isinstance(item, str) for item in formats):
        raise ValidationError("Invalid `sbom-formats` value.", context={"path": str(catalog_path)})
    return BuildpackInfo(
        name=str(table.get("name", "")),
        version=str(table.get("version", "")),
        sbom_formats=tuple(formats),
    )


def resolve(
    path: str | Path,
    *,
    dependency_id: str,
    stack: str,
    version: str | None = None,
    clock: Clock = utc_now,
    logger: BuildLogger | None = None,
) -> DependencyDescriptor:
    """Return the highest catalog version of *dependency_id* usable on *stack*."""
    catalog = load_catalog(path)
    constraint = version or catalog.default_versions.get(dependency_id) or "*"

    candidates = [
        dep
        for dep in catalog.dependencies
        if dep.id == dependency_id
        and dep.supports_stack(stack)
        and matches(constraint, dep.version)
    ]
    if not candidates:
        supported = sorted(
            {dep.version for dep in catalog.dependencies if dep.id == dependency_id},
            key=Version.parse,
        )
        raise ResolutionError(
            f'failed to satisfy "{dependency_id}" dependency version constraint '
            f'"{constraint}": no compatible versions on "{stack}" stack',
            hint=f"Supported versions are: [{', '.join(supported)}]",
            context={"dependency": dependency_id, "stack": stack, "constraint": constraint},
        )

    chosen = max(candidates, key=lambda dep: Version.parse(dep.version))
    _warn_if_deprecated(chosen, now=clock(), logger=logger)
    return chosen


def _warn_if_deprecated(
    dependency: DependencyDescriptor,
    *,
    now: datetime,
    logger: BuildLogger | None,
) -> None:
    if dependency.deprecation_date is None or logger is None:
        return
    if dependency.deprecation_date <= now:
        logger.warning(
            f"Version {dependency.version} of {dependency.name} is deprecated.",
            layer=dependency.id,
            operation="resolve",
        )
        logger.warning("Migrate your application to a supported version.", layer=dependency.id)
    elif dependency.deprecation_date - DEPRECATION_WARNING_WINDOW <= now:
        deadline = dependency.deprecation_date.date().isoformat()
        logger.warning(
            f"Version {dependency.version} of {dependency.name} will be deprecated after {deadline}.",
            layer=dependency.id,
            operation="resolve",
        )
        logger.warning(
            "Migrate your application to a supported version before this date.",
            layer=dependency.id,
        )


def _parse_dependency(item: Any, *, source: str) -> DependencyDescriptor:
    if not isinstance(item, dict):
        raise ValidationError("Invalid dependency entry in catalog.", context={"path": source})
    stacks = item.get("stacks", [])
    licenses = item.get("licenses", [])
    if not isinstance(stacks, list) or not all(isinstance(s, str) for s in stacks):
        raise ValidationError("Invalid catalog `stacks` value.", context={"path": source})
    if not isinstance(licenses, list):
        raise ValidationError("Invalid catalog `licenses` value.", context={"path": source})
    strip_components = item.get("strip-components", 0)
    if not isinstance(strip_components, int):
        raise ValidationError("Invalid catalog `strip-components` value.", context={"path": source})
    checksum = item.get("checksum") or _legacy_checksum(item.get("sha256"))
    return DependencyDescriptor(
        id=_required_str(item, "id", source=source),
        name=str(item.get("name", "")),
        version=_required_str(item, "version", source=source),
        checksum=_checksum_or_fail(checksum, source=source),
        uri=_required_str(item, "uri", source=source),
        stacks=tuple(stacks),
        licenses=tuple(_license_name(entry) for entry in licenses),
        purl=str(item.get("purl", "")),
        cpe=str(item.get("cpe", "")),
        source=str(item.get("source", "")),
        source_checksum=str(item.get("source-checksum") or _legacy_checksum(item.get("source_sha256"))),
        strip_components=strip_components,
        deprecation_date=_parse_date(item.get("deprecation_date"), source=source),
    )


def _parse_constraint(item: Any, *, source: str) -> DependencyConstraint:
    if not isinstance(item, dict):
        raise ValidationError("Invalid dependency constraint entry.", context={"path": source})
    patches = item.get("patches", 1)
    if not isinstance(patches, int) or patches < 1:
        raise ValidationError("Invalid dependency constraint `patches` value.", context={"path": source})
    return DependencyConstraint(
        id=_required_str(item, "id", source=source),
        constraint=_required_str(item, "constraint", source=source),
        patches=patches,
    )


def _required_str(payload: dict[str, Any], key: str, *, source: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise ValidationError(f"Invalid catalog `{key}` value.", context={"path": source})
    return value


def _legacy_checksum(value: Any) -> str:
    if isinstance(value, str) and value:
        return f"sha256:{value}"
    return ""


def _checksum_or_fail(value: Any, *, source: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValidationError("Catalog entry is missing a checksum.", context={"path": source})
    return value


def _license_name(entry: Any) -> str:
    if isinstance(entry, dict):
        return str(entry.get("type", ""))
    return str(entry)


def _parse_date(value: Any, *, source: str) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValidationError(
                "Invalid catalog `deprecation_date` value.",
                context={"path": source, "value": value},
            ) from exc
    else:
        raise ValidationError("Invalid catalog `deprecation_date` value.", context={"path": source})
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
