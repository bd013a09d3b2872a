"""Typed error model with stable, machine-readable error codes."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error identifiers used across the build and retrieval surfaces."""

    VALIDATION = "E_VALIDATION"
    NOT_REQUESTED = "E_NOT_REQUESTED"
    RESOLUTION = "E_RESOLUTION"
    CORRUPT_METADATA = "E_CORRUPT_METADATA"
    UNWRITABLE_STORE = "E_UNWRITABLE_STORE"
    FETCH_FAILED = "E_FETCH_FAILED"
    NO_SOURCE_ARTIFACT = "E_NO_SOURCE_ARTIFACT"
    UNSUPPORTED_FORMAT = "E_UNSUPPORTED_FORMAT"
    INVALID_TOGGLE = "E_INVALID_TOGGLE"


class PnpmLayerError(Exception):
    """Base error class that carries code, optional hint, and context."""

    code: str
    hint: str | None
    context: Mapping[str, str]

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code.value
        self.hint = hint
        self.context = dict(context or {})

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        if self.context:
            for k, v in self.context.items():
                if v:
                    parts.append(f"  {k}: {v}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "message": str(self),
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class ValidationError(PnpmLayerError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.VALIDATION, hint=hint, context=context)


class NotRequestedError(PnpmLayerError):
    """The build plan has no entry for the dependency."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.NOT_REQUESTED, hint=hint, context=context)


class ResolutionError(PnpmLayerError):
    """No catalog entry satisfies the id, stack and version constraint."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.RESOLUTION, hint=hint, context=context)


class CorruptMetadataError(PnpmLayerError):
    """Persisted layer metadata exists but cannot be read or parsed."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.CORRUPT_METADATA, hint=hint, context=context)


class UnwritableStoreError(PnpmLayerError):
    """The layer store directory cannot be created or written."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.UNWRITABLE_STORE, hint=hint, context=context)


class FetchFailedError(PnpmLayerError):
    """Download, integrity verification, or unpacking failed."""

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode = ErrorCode.FETCH_FAILED,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=code, hint=hint, context=context)


class NoSourceArtifactError(FetchFailedError):
    """The upstream release exists but ships no asset for the requested platform."""

    version: str
    asset_name: str

    def __init__(
        self,
        message: str,
        *,
        version: str,
        asset_name: str,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        merged = {"version": version, "asset": asset_name, **dict(context or {})}
        super().__init__(
            message,
            code=ErrorCode.NO_SOURCE_ARTIFACT,
            hint=hint,
            context=merged,
        )
        self.version = version
        self.asset_name = asset_name


class UnsupportedFormatError(PnpmLayerError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.UNSUPPORTED_FORMAT, hint=hint, context=context)


class InvalidToggleError(PnpmLayerError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.INVALID_TOGGLE, hint=hint, context=context)


__all__ = [
    "CorruptMetadataError",
    "ErrorCode",
    "FetchFailedError",
    "InvalidToggleError",
    "NoSourceArtifactError",
    "NotRequestedError",
    "PnpmLayerError",
    "ResolutionError",
    "UnsupportedFormatError",
    "UnwritableStoreError",
    "ValidationError",
]
