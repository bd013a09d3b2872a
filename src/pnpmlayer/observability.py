"""Structured build logging and timing helpers."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, TextIO, TypeVar

from pnpmlayer.config import LogLevel

Clock = Callable[[], datetime]
T = TypeVar("T")

_INDENT = {
    "title": "",
    "process": "  ",
    "subprocess": "    ",
    "action": "      ",
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class BuildLogger:
    """Records structured log entries and echoes them as indented build output."""

    stream: TextIO | None = None
    level: LogLevel = "INFO"
    records: list[dict[str, Any]] = field(default_factory=list)

    def log(
        self,
        *,
        operation: str,
        layer: str | None,
        message: str,
        level: str = "info",
        kind: str = "process",
        extra: dict[str, Any] | None = None,
    ) -> None:
        record: dict[str, Any] = {
            "level": level,
            "operation": operation,
            "layer": layer,
            "message": message,
        }
        if extra is not None:
            record["extra"] = extra
        self.records.append(record)
        if self.stream is None:
            return
        if level == "debug" and self.level != "DEBUG":
            return
        self.stream.write(f"{_INDENT.get(kind, '')}{message}\n")

    def title(self, message: str, *, layer: str | None = None) -> None:
        self.log(operation="build", layer=layer, message=message, kind="title")

    def process(self, message: str, *, layer: str | None = None, operation: str = "build") -> None:
        self.log(operation=operation, layer=layer, message=message, kind="process")

    def subprocess(
        self, message: str, *, layer: str | None = None, operation: str = "build"
    ) -> None:
        self.log(operation=operation, layer=layer, message=message, kind="subprocess")

    def action(self, message: str, *, layer: str | None = None, operation: str = "build") -> None:
        self.log(operation=operation, layer=layer, message=message, kind="action")

    def warning(self, message: str, *, layer: str | None = None, operation: str = "build") -> None:
        self.log(operation=operation, layer=layer, message=message, level="warning")

    def debug(
        self,
        message: str,
        *,
        layer: str | None = None,
        operation: str = "build",
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.log(
            operation=operation,
            layer=layer,
            message=message,
            level="debug",
            kind="subprocess",
            extra=extra,
        )

    def break_(self) -> None:
        if self.stream is not None:
            self.stream.write("\n")

    def records_for_layer(self, layer: str) -> list[dict[str, Any]]:
        return [record for record in self.records if record.get("layer") == layer]

    def messages(self) -> list[str]:
        return [str(record["message"]) for record in self.records]

    def to_json_lines(self, path: str | Path) -> Path:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        lines = [json.dumps(record, sort_keys=True) for record in self.records]
        output_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return output_path


def measure(clock: Clock, step: Callable[[], T]) -> tuple[T, timedelta]:
    """Run *step* and return its result with the elapsed time reported by *clock*."""
    started = clock()
    result = step()
    return result, clock() - started


def format_duration(duration: timedelta) -> str:
    millis = round(duration.total_seconds() * 1000)
    if millis < 1000:
        return f"{millis}ms"
    return f"{millis / 1000:.3f}".rstrip("0").rstrip(".") + "s"
