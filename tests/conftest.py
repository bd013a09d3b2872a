"""Shared test fixtures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from pnpmlayer.dependency import bom_entry
from pnpmlayer.models import (
    BOMEntry,
    BuildContext,
    BuildpackInfo,
    DependencyDescriptor,
    PlanEntry,
)
from pnpmlayer.observability import BuildLogger
from pnpmlayer.sbom import CYCLONEDX_FORMAT, SPDX_FORMAT, ProvenanceDocument, generate_from_dependency


@dataclass(slots=True)
class FakeDependencyManager:
    """Records calls; ``deliver`` writes a stand-in executable into the layer."""

    dependency: DependencyDescriptor
    resolve_error: Exception | None = None
    deliver_error: Exception | None = None
    resolve_calls: list[dict[str, Any]] = field(default_factory=list)
    deliver_calls: list[dict[str, Any]] = field(default_factory=list)
    bom_calls: list[tuple[DependencyDescriptor, ...]] = field(default_factory=list)

    def resolve(
        self,
        path: Path,
        *,
        dependency_id: str,
        stack: str,
        version: str | None = None,
    ) -> DependencyDescriptor:
        self.resolve_calls.append(
            {"path": path, "dependency_id": dependency_id, "stack": stack, "version": version}
        )
        if self.resolve_error is not None:
            raise self.resolve_error
        return self.dependency

    def deliver(
        self,
        dependency: DependencyDescriptor,
        *,
        cnb_path: Path,
        layer_path: Path,
        platform_path: Path | None,
    ) -> None:
        self.deliver_calls.append(
            {
                "dependency": dependency,
                "cnb_path": cnb_path,
                "layer_path": layer_path,
                "platform_path": platform_path,
            }
        )
        if self.deliver_error is not None:
            (layer_path / "partial").write_text("half-written", encoding="utf-8")
            raise self.deliver_error
        executable = layer_path / "bin" / dependency.id
        executable.parent.mkdir(parents=True, exist_ok=True)
        executable.write_text(f"#!/bin/sh\necho {dependency.version}\n", encoding="utf-8")

    def generate_bill_of_materials(self, *dependencies: DependencyDescriptor) -> list[BOMEntry]:
        self.bom_calls.append(dependencies)
        return [bom_entry(item) for item in dependencies]


@dataclass(slots=True)
class FakeSBOMGenerator:
    error: Exception | None = None
    calls: list[tuple[DependencyDescriptor, Path]] = field(default_factory=list)

    def generate_from_dependency(
        self, dependency: DependencyDescriptor, path: Path
    ) -> ProvenanceDocument:
        self.calls.append((dependency, path))
        if self.error is not None:
            raise self.error
        return generate_from_dependency(dependency, path)


@dataclass(slots=True)
class FakeClock:
    current: datetime = datetime(2026, 1, 1, tzinfo=timezone.utc)
    step: timedelta = timedelta(milliseconds=250)

    def __call__(self) -> datetime:
        now = self.current
        self.current = now + self.step
        return now


@pytest.fixture
def dependency() -> DependencyDescriptor:
    return DependencyDescriptor(
        id="pnpm",
        name="pnpm-dependency-name",
        version="8.1.0",
        checksum="sha256:pnpm-dependency-sha",
        uri="https://example.invalid/pnpm-linux-x64",
        stacks=("some-stack",),
        licenses=("MIT",),
        purl="pkg:generic/pnpm@8.1.0",
    )


@pytest.fixture
def dependency_manager(dependency: DependencyDescriptor) -> FakeDependencyManager:
    return FakeDependencyManager(dependency=dependency)


@pytest.fixture
def sbom_generator() -> FakeSBOMGenerator:
    return FakeSBOMGenerator()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def logger() -> BuildLogger:
    return BuildLogger()


@pytest.fixture
def build_context(tmp_path: Path) -> BuildContext:
    layers = tmp_path / "layers"
    cnb = tmp_path / "cnb"
    layers.mkdir()
    cnb.mkdir()
    return BuildContext(
        layers_path=layers,
        cnb_path=cnb,
        stack="some-stack",
        plan=(PlanEntry(name="pnpm"),),
        buildpack_info=BuildpackInfo(
            name="Some Buildpack",
            version="some-version",
            sbom_formats=(CYCLONEDX_FORMAT, SPDX_FORMAT),
        ),
        platform_path=tmp_path / "platform",
    )
