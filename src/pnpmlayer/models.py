"""Core typed dataclasses for catalog entries, layers, and build requests/results."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

WILDCARD_STACK = "*"
DEFAULT_CHECKSUM_ALGORITHM = "sha256"


@dataclass(frozen=True, slots=True)
class DependencyDescriptor:
    """A resolved, versioned, checksummed catalog entry for one artifact."""

    id: str
    name: str
    version: str
    checksum: str
    uri: str
    stacks: tuple[str, ...] = ()
    licenses: tuple[str, ...] = ()
    purl: str = ""
    cpe: str = ""
    source: str = ""
    source_checksum: str = ""
    strip_components: int = 0
    deprecation_date: datetime | None = None

    @property
    def checksum_algorithm(self) -> str:
        algorithm, _, digest = self.checksum.partition(":")
        return algorithm if digest else DEFAULT_CHECKSUM_ALGORITHM

    @property
    def checksum_hash(self) -> str:
        algorithm, _, digest = self.checksum.partition(":")
        return digest if digest else algorithm

    def supports_stack(self, stack: str) -> bool:
        return stack in self.stacks or WILDCARD_STACK in self.stacks


@dataclass(frozen=True, slots=True)
class PlanEntry:
    name: str
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class LayerFlags:
    build: bool = False
    launch: bool = False
    cache: bool = False


@dataclass(frozen=True, slots=True)
class RenderedDocument:
    """One provenance document serialized in a single format."""

    format: str
    extension: str
    content: bytes


@dataclass(slots=True)
class ProvenanceBundle:
    documents: list[RenderedDocument] = field(default_factory=list)

    def formats(self) -> list[RenderedDocument]:
        return list(self.documents)

    def __len__(self) -> int:
        return len(self.documents)


@dataclass(slots=True)
class LayerRecord:
    """A layer directory plus its lifecycle flags, metadata, and provenance.

    ``metadata`` is persisted by the layer store across builds; its cache
    fingerprint key decides whether the directory contents can be reused.
    """

    name: str
    path: Path
    build: bool = False
    launch: bool = False
    cache: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)
    sbom: ProvenanceBundle = field(default_factory=ProvenanceBundle)

    @property
    def flags(self) -> LayerFlags:
        return LayerFlags(build=self.build, launch=self.launch, cache=self.cache)

    def apply_flags(self, flags: LayerFlags) -> None:
        self.build = flags.build
        self.launch = flags.launch
        self.cache = flags.cache


@dataclass(frozen=True, slots=True)
class BOMEntry:
    """Legacy bill-of-materials entry attached to the overall build result."""

    name: str
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "metadata": dict(self.metadata)}


@dataclass(frozen=True, slots=True)
class BuildpackInfo:
    name: str = ""
    version: str = ""
    sbom_formats: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class BuildContext:
    """Inputs of one build: plan, stack, buildpack location, and layer store root."""

    layers_path: Path
    cnb_path: Path
    stack: str
    plan: tuple[PlanEntry, ...] = ()
    buildpack_info: BuildpackInfo = field(default_factory=BuildpackInfo)
    working_dir: Path | None = None
    platform_path: Path | None = None

    @property
    def catalog_path(self) -> Path:
        return self.cnb_path / "buildpack.toml"


@dataclass(frozen=True, slots=True)
class BuildResult:
    layers: tuple[LayerRecord, ...] = ()
    build_bom: tuple[BOMEntry, ...] = ()
    launch_bom: tuple[BOMEntry, ...] = ()
