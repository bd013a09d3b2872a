"""Format-agnostic provenance document for one installed dependency."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import cbor2

from pnpmlayer.models import DependencyDescriptor


@dataclass(frozen=True, slots=True)
class InstalledFile:
    path: str
    sha256: str


@dataclass(frozen=True, slots=True)
class ProvenanceDocument:
    """What was installed: artifact identity, origin, and the resulting files."""

    id: str
    name: str
    version: str
    checksum_algorithm: str
    checksum_hash: str
    uri: str
    purl: str = ""
    cpe: str = ""
    licenses: tuple[str, ...] = ()
    source: str = ""
    files: tuple[InstalledFile, ...] = ()
    schema_version: int = 1

    @property
    def checksum(self) -> str:
        return f"{self.checksum_algorithm}:{self.checksum_hash}"

    def to_json(self, path: str | Path | None = None) -> str:
        encoded = json.dumps(self._payload(), indent=2, sort_keys=True) + "\n"
        if path is not None:
            Path(path).write_text(encoded, encoding="utf-8")
        return encoded

    def to_cbor(self, path: str | Path | None = None) -> bytes:
        encoded = cbor2.dumps(self._payload(), canonical=True)
        if path is not None:
            Path(path).write_bytes(encoded)
        return encoded

    def digest(self) -> str:
        return hashlib.sha256(self.to_cbor()).hexdigest()

    def _payload(self) -> dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "checksum": {"algorithm": self.checksum_algorithm, "hash": self.checksum_hash},
            "uri": self.uri,
            "purl": self.purl,
            "cpe": self.cpe,
            "licenses": list(self.licenses),
            "source": self.source,
            "files": [{"path": item.path, "sha256": item.sha256} for item in self.files],
        }


class SBOMGenerator(Protocol):
    def generate_from_dependency(
        self, dependency: DependencyDescriptor, path: Path
    ) -> ProvenanceDocument:
        """Describe *dependency* as installed under *path*."""


class DependencySBOMGenerator:
    def generate_from_dependency(
        self, dependency: DependencyDescriptor, path: Path
    ) -> ProvenanceDocument:
        return generate_from_dependency(dependency, path)


def generate_from_dependency(dependency: DependencyDescriptor, path: str | Path) -> ProvenanceDocument:
    return ProvenanceDocument(
        id=dependency.id,
        name=dependency.name or dependency.id,
        version=dependency.version,
        checksum_algorithm=dependency.checksum_algorithm,
        checksum_hash=dependency.checksum_hash,
        uri=dependency.uri,
        purl=dependency.purl,
        cpe=dependency.cpe,
        licenses=dependency.licenses,
        source=dependency.source,
        files=installed_files(Path(path)),
    )


def installed_files(root: Path) -> tuple[InstalledFile, ...]:
    if not root.is_dir():
        return ()
    entries: list[InstalledFile] = []
    for file_path in sorted(root.rglob("*")):
        if file_path.is_symlink() or not file_path.is_file():
            continue
        digest = hashlib.sha256(file_path.read_bytes()).hexdigest()
        entries.append(InstalledFile(path=file_path.relative_to(root).as_posix(), sha256=digest))
    return tuple(entries)
