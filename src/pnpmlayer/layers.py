"""Layer store: per-dependency directories plus persisted layer metadata."""

from __future__ import annotations

import json
import os
import shutil
from pathlib import Path
from typing import Any

from pnpmlayer.errors import CorruptMetadataError, UnwritableStoreError
from pnpmlayer.models import LayerRecord, ProvenanceBundle
from pnpmlayer.observability import BuildLogger

RECORD_SUFFIX = ".json"
SBOM_INFIX = ".sbom."


class LayerStore:
    def __init__(self, root: str | Path, *, logger: BuildLogger | None = None) -> None:
        self.root = Path(root)
        self.logger = logger

    def record_path(self, name: str) -> Path:
        return self.root / f"{name}{RECORD_SUFFIX}"

    def sbom_path(self, name: str, extension: str) -> Path:
        return self.root / f"{name}{SBOM_INFIX}{extension}"

    def get(self, name: str) -> LayerRecord:
        """Load the layer named *name*, creating its directory if needed."""
        layer_path = self.root / name
        try:
            layer_path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise UnwritableStoreError(
                "Layer store is not writable.",
                hint="Check permissions and free space of the layers directory.",
                context={"operation": "layer_get", "path": str(layer_path), "error": str(exc)},
            ) from exc

        record = LayerRecord(name=name, path=layer_path)
        record_path = self.record_path(name)
        if not record_path.exists():
            return record

        payload = self._read_record(record_path)
        types = payload.get("types", {})
        metadata = payload.get("metadata", {})
        if not isinstance(types, dict) or not isinstance(metadata, dict):
            raise CorruptMetadataError(
                "failed to parse layer content metadata",
                hint="Remove the layer metadata file to force a fresh install.",
                context={"operation": "layer_get", "path": str(record_path)},
            )
        record.build = types.get("build") is True
        record.launch = types.get("launch") is True
        record.cache = types.get("cache") is True
        record.metadata = dict(metadata)
        return record

    def reset(self, record: LayerRecord) -> LayerRecord:
        """Drop persisted state and empty the directory of *record*."""
        try:
            self.record_path(record.name).unlink(missing_ok=True)
            for sbom_file in self._sbom_files(record.name):
                sbom_file.unlink()
            if record.path.exists():
                shutil.rmtree(record.path)
            record.path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise UnwritableStoreError(
                "Layer could not be reset.",
                hint="Check permissions of the layers directory.",
                context={"operation": "layer_reset", "path": str(record.path), "error": str(exc)},
            ) from exc
        record.build = False
        record.launch = False
        record.cache = False
        record.metadata = {}
        record.sbom = ProvenanceBundle()
        return record

    def write(self, record: LayerRecord) -> Path:
        """Persist SBOM documents, then the record itself as the final step."""
        record_path = self.record_path(record.name)
        payload = {
            "types": {"build": record.build, "launch": record.launch, "cache": record.cache},
            "metadata": record.metadata,
        }
        produced = {self.sbom_path(record.name, doc.extension) for doc in record.sbom.formats()}
        try:
            for stale in self._sbom_files(record.name):
                if stale not in produced:
                    stale.unlink()
            for document in record.sbom.formats():
                self.sbom_path(record.name, document.extension).write_bytes(document.content)
            encoded = json.dumps(payload, indent=2, sort_keys=True) + "\n"
            temp_path = record_path.with_suffix(".tmp")
            temp_path.write_text(encoded, encoding="utf-8")
            os.replace(temp_path, record_path)
        except (OSError, TypeError) as exc:
            raise UnwritableStoreError(
                "Layer metadata could not be written.",
                hint="Check permissions of the layers directory.",
                context={"operation": "layer_write", "path": str(record_path), "error": str(exc)},
            ) from exc
        return record_path

    def unregister(self, record: LayerRecord) -> None:
        """Best-effort removal of the persisted record and SBOM files of *record*.

        The directory is kept; without a record the next build treats it as a miss.
        """
        try:
            self.record_path(record.name).unlink(missing_ok=True)
            for sbom_file in self._sbom_files(record.name):
                sbom_file.unlink()
        except OSError as exc:
            self._cleanup_failed(record, exc)

    def discard(self, record: LayerRecord) -> None:
        """Best-effort removal of a partially provisioned layer."""
        self.unregister(record)
        try:
            shutil.rmtree(record.path)
        except OSError as exc:
            self._cleanup_failed(record, exc)

    def _sbom_files(self, name: str) -> list[Path]:
        return sorted(self.root.glob(f"{name}{SBOM_INFIX}*"))

    def _cleanup_failed(self, record: LayerRecord, exc: OSError) -> None:
        if self.logger is not None:
            self.logger.debug(
                f"Could not clean up layer {record.name}",
                layer=record.name,
                operation="layer_discard",
                extra={"error": str(exc)},
            )

    def _read_record(self, path: Path) -> dict[str, Any]:
        try:
            parsed = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise CorruptMetadataError(
                "failed to parse layer content metadata",
                hint="Remove the layer metadata file to force a fresh install.",
                context={"operation": "layer_get", "path": str(path), "error": str(exc)},
            ) from exc
        if not isinstance(parsed, dict):
            raise CorruptMetadataError(
                "failed to parse layer content metadata",
                hint="Remove the layer metadata file to force a fresh install.",
                context={"operation": "layer_get", "path": str(path)},
            )
        return parsed
