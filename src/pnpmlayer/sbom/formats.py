"""Rendering provenance documents into CycloneDX, SPDX, and Syft JSON."""

from __future__ import annotations

import json
import re
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pnpmlayer.errors import UnsupportedFormatError, ValidationError
from pnpmlayer.models import ProvenanceBundle, RenderedDocument
from pnpmlayer.sbom.document import ProvenanceDocument

CYCLONEDX_FORMAT = "application/vnd.cyclonedx+json"
SPDX_FORMAT = "application/spdx+json"
SYFT_FORMAT = "application/vnd.syft+json"

TOOL_NAME = "pnpm-layer"
TOOL_VERSION = "0.1.0"
CREATED = "0001-01-01T00:00:00Z"
SYFT_SCHEMA_VERSION = "16.0.0"

Renderer = Callable[[ProvenanceDocument], dict[str, Any]]


@dataclass(frozen=True, slots=True)
class SBOMFormat:
    media_type: str
    extension: str
    short_name: str
    render: Renderer
    required_keys: tuple[str, ...]


def _document_uuid(document: ProvenanceDocument) -> uuid.UUID:
    return uuid.uuid5(uuid.NAMESPACE_URL, f"{TOOL_NAME}:{document.digest()}")


def _cyclonedx_algorithm(algorithm: str) -> str:
    match = re.fullmatch(r"sha(\d+)", algorithm.lower())
    return f"SHA-{match.group(1)}" if match else algorithm.upper()


def _render_cyclonedx(document: ProvenanceDocument) -> dict[str, Any]:
    component: dict[str, Any] = {
        "bom-ref": document.purl or f"{document.id}@{document.version}",
        "type": "application",
        "name": document.name,
        "version": document.version,
        "hashes": [
            {
                "alg": _cyclonedx_algorithm(document.checksum_algorithm),
                "content": document.checksum_hash,
            }
        ],
        "externalReferences": [{"type": "distribution", "url": document.uri}],
    }
    if document.licenses:
        component["licenses"] = [{"license": {"id": item}} for item in document.licenses]
    if document.purl:
        component["purl"] = document.purl
    if document.cpe:
        component["cpe"] = document.cpe
    return {
        "$schema": "http://cyclonedx.org/schema/bom-1.3.schema.json",
        "bomFormat": "CycloneDX",
        "specVersion": "1.3",
        "version": 1,
        "serialNumber": f"urn:uuid:{_document_uuid(document)}",
        "metadata": {
            "timestamp": CREATED,
            "tools": [{"vendor": "paketo", "name": TOOL_NAME, "version": TOOL_VERSION}],
        },
        "components": [component],
    }


def _spdx_id(document: ProvenanceDocument) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9.-]", "-", f"{document.id}-{document.version}")
    return f"SPDXRef-Package-{cleaned}"


def _render_spdx(document: ProvenanceDocument) -> dict[str, Any]:
    package_id = _spdx_id(document)
    external_refs: list[dict[str, str]] = []
    if document.purl:
        external_refs.append(
            {
                "referenceCategory": "PACKAGE-MANAGER",
                "referenceType": "purl",
                "referenceLocator": document.purl,
            }
        )
    if document.cpe:
        external_refs.append(
            {
                "referenceCategory": "SECURITY",
                "referenceType": "cpe23Type",
                "referenceLocator": document.cpe,
            }
        )
    package: dict[str, Any] = {
        "SPDXID": package_id,
        "name": document.name,
        "versionInfo": document.version,
        "downloadLocation": document.uri or "NOASSERTION",
        "filesAnalyzed": False,
        "checksums": [
            {
                "algorithm": document.checksum_algorithm.upper(),
                "checksumValue": document.checksum_hash,
            }
        ],
        "licenseConcluded": "NOASSERTION",
        "licenseDeclared": " AND ".join(document.licenses) or "NOASSERTION",
        "copyrightText": "NOASSERTION",
        "supplier": "NOASSERTION",
    }
    if external_refs:
        package["externalRefs"] = external_refs
    return {
        "spdxVersion": "SPDX-2.2",
        "dataLicense": "CC0-1.0",
        "SPDXID": "SPDXRef-DOCUMENT",
        "name": f"{document.id}-{document.version}",
        "documentNamespace": f"https://paketo.io/{TOOL_NAME}/{document.id}-{_document_uuid(document)}",
        "creationInfo": {
            "created": CREATED,
            "creators": [f"Tool: {TOOL_NAME}-{TOOL_VERSION}"],
            "licenseListVersion": "3.25",
        },
        "packages": [package],
        "relationships": [
            {
                "spdxElementId": "SPDXRef-DOCUMENT",
                "relationshipType": "DESCRIBES",
                "relatedSpdxElement": package_id,
            }
        ],
    }


def _render_syft(document: ProvenanceDocument) -> dict[str, Any]:
    artifact_id = uuid.uuid5(_document_uuid(document), "artifact")
    return {
        "artifacts": [
            {
                "id": str(artifact_id),
                "name": document.name,
                "version": document.version,
                "type": "binary",
                "foundBy": TOOL_NAME,
                "locations": [{"path": "/"}],
                "licenses": list(document.licenses),
                "language": "",
                "cpes": [document.cpe] if document.cpe else [],
                "purl": document.purl,
                "metadataType": "",
                "metadata": {
                    "checksum": document.checksum,
                    "uri": document.uri,
                    "source": document.source,
                },
            }
        ],
        "artifactRelationships": [],
        "files": [
            {
                "id": str(uuid.uuid5(artifact_id, item.path)),
                "location": {"path": item.path},
                "digests": [{"algorithm": "sha256", "value": item.sha256}],
            }
            for item in document.files
        ],
        "source": {"id": str(_document_uuid(document)), "type": "directory", "target": "/"},
        "distro": {},
        "descriptor": {"name": TOOL_NAME, "version": TOOL_VERSION},
        "schema": {
            "version": SYFT_SCHEMA_VERSION,
            "url": (
                "https://raw.githubusercontent.com/anchore/syft/main/schema/json/"
                f"schema-{SYFT_SCHEMA_VERSION}.json"
            ),
        },
    }


FORMATS: tuple[SBOMFormat, ...] = (
    SBOMFormat(
        media_type=CYCLONEDX_FORMAT,
        extension="cdx.json",
        short_name="cdx",
        render=_render_cyclonedx,
        required_keys=("bomFormat", "specVersion", "components"),
    ),
    SBOMFormat(
        media_type=SPDX_FORMAT,
        extension="spdx.json",
        short_name="spdx",
        render=_render_spdx,
        required_keys=("spdxVersion", "SPDXID", "packages", "relationships"),
    ),
    SBOMFormat(
        media_type=SYFT_FORMAT,
        extension="syft.json",
        short_name="syft",
        render=_render_syft,
        required_keys=("artifacts", "source", "descriptor", "schema"),
    ),
)


def lookup_format(name: str) -> SBOMFormat:
    for candidate in FORMATS:
        if name in (candidate.media_type, candidate.short_name):
            return candidate
    raise UnsupportedFormatError(
        f"Unsupported SBOM format '{name}'.",
        hint="Use one of: " + ", ".join(item.media_type for item in FORMATS),
        context={"format": name},
    )


def render(document: ProvenanceDocument, format_name: str) -> bytes:
    sbom_format = lookup_format(format_name)
    payload = sbom_format.render(document)
    return (json.dumps(payload, indent=2, sort_keys=True) + "\n").encode("utf-8")


def in_formats(document: ProvenanceDocument, *format_names: str) -> ProvenanceBundle:
    """Render *document* once per requested format; all formats are validated first."""
    resolved = [lookup_format(name) for name in format_names]
    return ProvenanceBundle(
        documents=[
            RenderedDocument(
                format=item.media_type,
                extension=item.extension,
                content=render(document, item.media_type),
            )
            for item in resolved
        ]
    )


def parse(format_name: str, content: bytes) -> dict[str, Any]:
    """Parse a rendered document back and check the schema's required keys."""
    sbom_format = lookup_format(format_name)
    try:
        payload = json.loads(content)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValidationError(
            "SBOM document is not valid JSON.",
            context={"format": sbom_format.media_type},
        ) from exc
    if not isinstance(payload, dict):
        raise ValidationError("SBOM document has invalid structure.")
    missing = [key for key in sbom_format.required_keys if key not in payload]
    if missing:
        raise ValidationError(
            "SBOM document is missing required keys.",
            context={"format": sbom_format.media_type, "missing": ", ".join(missing)},
        )
    return payload
