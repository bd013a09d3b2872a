"""Semantic version parsing and constraint matching for catalog entries."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from functools import total_ordering

from pnpmlayer.errors import ValidationError

VERSION_PATTERN = re.compile(
    r"^v?(?P<major>0|[1-9]\d*)(?:\.(?P<minor>\d+))?(?:\.(?P<patch>\d+))?"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?(?:\+(?P<build>[0-9A-Za-z.-]+))?$"
)
TERM_PATTERN = re.compile(r"^(?P<op>>=|<=|!=|>|<|=|~|\^)?\s*(?P<version>\S+)$")
HYPHEN_RANGE = re.compile(r"^\s*(?P<lower>[^\s,]+)\s+-\s+(?P<upper>[^\s,]+)\s*$")
_WILDCARDS = frozenset({"*", "x", "X"})

Predicate = Callable[["Version"], bool]


@total_ordering
@dataclass(frozen=True, slots=True)
class Version:
    major: int
    minor: int = 0
    patch: int = 0
    prerelease: str = ""
    build: str = ""

    @classmethod
    def parse(cls, text: str) -> Version:
        match = VERSION_PATTERN.match(text.strip())
        if match is None:
            raise ValidationError(
                f"Invalid semantic version '{text}'.",
                hint="Use MAJOR.MINOR.PATCH with an optional -prerelease suffix.",
                context={"version": text},
            )
        return cls(
            major=int(match["major"]),
            minor=int(match["minor"] or 0),
            patch=int(match["patch"] or 0),
            prerelease=match["pre"] or "",
            build=match["build"] or "",
        )

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    def core(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        if self.core() != other.core():
            return self.core() < other.core()
        if self.prerelease == other.prerelease:
            return False
        if not self.prerelease:
            return False
        if not other.prerelease:
            return True
        return _prerelease_key(self.prerelease) < _prerelease_key(other.prerelease)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.core() == other.core() and self.prerelease == other.prerelease

    def __hash__(self) -> int:
        return hash((self.core(), self.prerelease))

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += f"-{self.prerelease}"
        if self.build:
            text += f"+{self.build}"
        return text


def _prerelease_key(prerelease: str) -> tuple[tuple[int, int, str], ...]:
    key: list[tuple[int, int, str]] = []
    for part in prerelease.split("."):
        if part.isdigit():
            key.append((0, int(part), ""))
        else:
            key.append((1, 0, part))
    return tuple(key)


def matches(constraint: str, version: str | Version) -> bool:
    """Return whether *version* satisfies *constraint*.

    Supports ``*``/``x`` wildcards, exact and partial versions, comparison
    operators, ``~`` and ``^`` ranges, hyphen ranges (``8.0.0 - 9.0.0``),
    comma-separated conjunctions and ``||`` alternatives. Build metadata in a
    constraint is ignored. Prereleases only satisfy a term naming a prerelease.
    """
    candidate = version if isinstance(version, Version) else Version.parse(version)
    return any(all(term(candidate) for term in group) for group in _compile(constraint))


def _compile(constraint: str) -> list[list[Predicate]]:
    text = constraint.strip() or "*"
    groups: list[list[Predicate]] = []
    for alternative in text.split("||"):
        hyphen = HYPHEN_RANGE.match(alternative)
        if hyphen is not None:
            terms = [f">={hyphen['lower']}", f"<={hyphen['upper']}"]
        else:
            terms = [item for item in re.split(r"\s*,\s*|\s+(?=[<>=!~^])", alternative.strip()) if item]
        if not terms:
            raise _invalid(constraint)
        groups.append([_compile_term(term, constraint) for term in terms])
    return groups


def _compile_term(term: str, constraint: str) -> Predicate:
    match = TERM_PATTERN.match(term.strip())
    if match is None:
        raise _invalid(constraint)
    op = match["op"] or "="
    parts, prerelease = _parse_partial(match["version"], constraint)
    allows_pre = bool(prerelease)

    def stable(check: Predicate) -> Predicate:
        return lambda v: (allows_pre or not v.is_prerelease) and check(v)

    if not parts:
        return stable(lambda v: op in ("=", ">=", "<=", "~", "^"))

    lower = Version(*_pad(parts), prerelease=prerelease)
    upper = _bump(parts, len(parts) - 1) if len(parts) < 3 else None

    if op == "=":
        if upper is None:
            return stable(lambda v: v == lower)
        return stable(lambda v: lower <= v < upper)
    if op == "!=":
        if upper is None:
            return stable(lambda v: v != lower)
        return stable(lambda v: not (lower <= v < upper))
    if op == ">=":
        return stable(lambda v: v >= lower)
    if op == ">":
        if upper is None:
            return stable(lambda v: v > lower)
        return stable(lambda v: v >= upper)
    if op == "<":
        return stable(lambda v: v < lower)
    if op == "<=":
        if upper is None:
            return stable(lambda v: v <= lower)
        return stable(lambda v: v < upper)
    if op == "~":
        ceiling = _bump(parts, 1 if len(parts) > 1 else 0)
        return stable(lambda v: lower <= v < ceiling)
    # caret: bump the first non-zero component
    index = next((i for i, value in enumerate(parts) if value != 0), len(parts) - 1)
    ceiling = _bump(parts, index)
    return stable(lambda v: lower <= v < ceiling)


def _parse_partial(text: str, constraint: str) -> tuple[list[int], str]:
    body, _, prerelease = text.lstrip("v").partition("+")[0].partition("-")
    parts: list[int] = []
    for piece in body.split("."):
        if piece in _WILDCARDS:
            break
        if not piece.isdigit():
            raise _invalid(constraint)
        parts.append(int(piece))
    if len(parts) > 3:
        raise _invalid(constraint)
    return parts, prerelease


def _pad(parts: list[int]) -> tuple[int, int, int]:
    padded = [*parts, 0, 0, 0][:3]
    return (padded[0], padded[1], padded[2])


def _bump(parts: list[int], index: int) -> Version:
    bumped = [*parts[: index + 1]]
    bumped[index] += 1
    return Version(*_pad(bumped))


def _invalid(constraint: str) -> ValidationError:
    return ValidationError(
        f"Invalid version constraint '{constraint}'.",
        hint="Use forms like '*', '8.*', '~8.1', '^8.1.0' or '>=8.0.0, <9.0.0'.",
        context={"constraint": constraint},
    )
