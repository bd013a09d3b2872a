"""Build configuration derived from environment-style toggles."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal

from pnpmlayer.errors import InvalidToggleError

LogLevel = Literal["INFO", "DEBUG"]

DISABLE_SBOM_ENV = "BP_DISABLE_SBOM"
LOG_LEVEL_ENV = "BP_LOG_LEVEL"
GITHUB_TOKEN_ENV = "GITHUB_TOKEN"

_TRUE_VALUES = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_VALUES = frozenset({"0", "f", "F", "FALSE", "false", "False"})


@dataclass(frozen=True, slots=True)
class BuildConfig:
    disable_sbom: bool = False
    legacy_sbom: bool = True
    log_level: LogLevel = "INFO"


@dataclass(frozen=True, slots=True)
class RetrievalConfig:
    github_token: str | None = None


def parse_bool(value: str, *, name: str) -> bool:
    """Parse *value* with the same spellings Go's ``strconv.ParseBool`` accepts."""
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise InvalidToggleError(
        f"failed to parse {name}",
        hint=f"Set {name} to true or false.",
        context={"variable": name, "value": value},
    )


def config_from_env(environ: Mapping[str, str]) -> BuildConfig:
    raw_disable = environ.get(DISABLE_SBOM_ENV, "")
    disable_sbom = parse_bool(raw_disable, name=DISABLE_SBOM_ENV) if raw_disable else False
    level: LogLevel = "DEBUG" if environ.get(LOG_LEVEL_ENV, "").upper() == "DEBUG" else "INFO"
    return BuildConfig(disable_sbom=disable_sbom, log_level=level)


def retrieval_config_from_env(environ: Mapping[str, str]) -> RetrievalConfig:
    return RetrievalConfig(github_token=environ.get(GITHUB_TOKEN_ENV) or None)
