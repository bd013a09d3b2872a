"""Provenance (SBOM) generation and rendering."""

from .document import (
    DependencySBOMGenerator,
    InstalledFile,
    ProvenanceDocument,
    SBOMGenerator,
    generate_from_dependency,
)
from .formats import (
    CYCLONEDX_FORMAT,
    FORMATS,
    SPDX_FORMAT,
    SYFT_FORMAT,
    in_formats,
    lookup_format,
    parse,
    render,
)

__all__ = [
    "CYCLONEDX_FORMAT",
    "FORMATS",
    "SPDX_FORMAT",
    "SYFT_FORMAT",
    "DependencySBOMGenerator",
    "InstalledFile",
    "ProvenanceDocument",
    "SBOMGenerator",
    "generate_from_dependency",
    "in_formats",
    "lookup_format",
    "parse",
    "render",
]
