"""Dependency service: catalog resolution, delivery into layers, and legacy BOM."""

from __future__ import annotations

import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from pnpmlayer.catalog import resolve
from pnpmlayer.fetch.archive import unpack
from pnpmlayer.fetch.http import artifact_name, download
from pnpmlayer.models import BOMEntry, DependencyDescriptor
from pnpmlayer.observability import BuildLogger, Clock, utc_now

DEPENDENCY_MAPPING_BINDING = "dependency-mapping"


class DependencyManager(Protocol):
    def resolve(
        self,
        path: Path,
        *,
        dependency_id: str,
        stack: str,
        version: str | None = None,
    ) -> DependencyDescriptor:
        """Return the catalog entry to install."""

    def deliver(
        self,
        dependency: DependencyDescriptor,
        *,
        cnb_path: Path,
        layer_path: Path,
        platform_path: Path | None,
    ) -> None:
        """Download, verify, and unpack *dependency* into *layer_path*."""

    def generate_bill_of_materials(self, *dependencies: DependencyDescriptor) -> list[BOMEntry]:
        """Return legacy BOM entries for *dependencies*."""


@dataclass(slots=True)
class DependencyService:
    """Default :class:`DependencyManager` backed by ``buildpack.toml`` and HTTP."""

    clock: Clock = utc_now
    logger: BuildLogger = field(default_factory=BuildLogger)

    def resolve(
        self,
        path: Path,
        *,
        dependency_id: str,
        stack: str,
        version: str | None = None,
    ) -> DependencyDescriptor:
        return resolve(
            path,
            dependency_id=dependency_id,
            stack=stack,
            version=version,
            clock=self.clock,
            logger=self.logger,
        )

    def deliver(
        self,
        dependency: DependencyDescriptor,
        *,
        cnb_path: Path,
        layer_path: Path,
        platform_path: Path | None,
    ) -> None:
        offline = offline_artifact(dependency, cnb_path=cnb_path)
        uri = offline.as_uri() if offline is not None else dependency.uri
        mapped = mapped_uri(dependency, platform_path=platform_path)
        if mapped is not None:
            uri = mapped
        if uri != dependency.uri:
            self.logger.debug(
                f"Fetching {dependency.name} from {uri}",
                layer=dependency.id,
                operation="deliver",
            )

        staging = Path(tempfile.mkdtemp(prefix="pnpmlayer-"))
        try:
            artifact = download(uri, checksum=dependency.checksum, destination_dir=staging)
            unpack(
                artifact,
                layer_path,
                strip_components=dependency.strip_components,
                executable_name=dependency.id,
            )
        finally:
            shutil.rmtree(staging, ignore_errors=True)

    def generate_bill_of_materials(self, *dependencies: DependencyDescriptor) -> list[BOMEntry]:
        return [bom_entry(dependency) for dependency in dependencies]


def offline_artifact(dependency: DependencyDescriptor, *, cnb_path: Path) -> Path | None:
    """Return a vendored copy under ``<cnb>/dependencies/<hash>/`` if one exists."""
    candidate = cnb_path / "dependencies" / dependency.checksum_hash / artifact_name(dependency.uri)
    if candidate.is_file():
        return candidate
    return None


def mapped_uri(dependency: DependencyDescriptor, *, platform_path: Path | None) -> str | None:
    """Return a replacement URI from a ``dependency-mapping`` platform binding."""
    if platform_path is None:
        return None
    bindings = platform_path / "bindings"
    if not bindings.is_dir():
        return None
    for binding in sorted(bindings.iterdir()):
        type_file = binding / "type"
        if not type_file.is_file():
            continue
        if type_file.read_text(encoding="utf-8").strip() != DEPENDENCY_MAPPING_BINDING:
            continue
        entry = binding / dependency.checksum_hash
        if entry.is_file():
            return entry.read_text(encoding="utf-8").strip()
    return None


def bom_entry(dependency: DependencyDescriptor) -> BOMEntry:
    metadata: dict[str, Any] = {
        "checksum": {
            "algorithm": dependency.checksum_algorithm.upper().replace("SHA", "SHA-"),
            "hash": dependency.checksum_hash,
        },
        "uri": dependency.uri,
        "version": dependency.version,
    }
    if dependency.cpe:
        metadata["cpe"] = dependency.cpe
    if dependency.purl:
        metadata["purl"] = dependency.purl
    if dependency.licenses:
        metadata["licenses"] = list(dependency.licenses)
    if dependency.source:
        metadata["source"] = {"name": dependency.id, "uri": dependency.source}
        if dependency.source_checksum:
            algorithm, _, digest = dependency.source_checksum.partition(":")
            metadata["source"]["checksum"] = {
                "algorithm": algorithm.upper().replace("SHA", "SHA-") if digest else "SHA-256",
                "hash": digest or algorithm,
            }
    if dependency.deprecation_date is not None:
        metadata["deprecation-date"] = dependency.deprecation_date.isoformat()
    return BOMEntry(name=dependency.id, metadata=metadata)
