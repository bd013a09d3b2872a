import json
from pathlib import Path

import cbor2
import pytest

from pnpmlayer.errors import ErrorCode, UnsupportedFormatError, ValidationError
from pnpmlayer.models import DependencyDescriptor
from pnpmlayer.sbom import (
    CYCLONEDX_FORMAT,
    SPDX_FORMAT,
    SYFT_FORMAT,
    generate_from_dependency,
    in_formats,
    lookup_format,
    parse,
)


def _layer(tmp_path: Path) -> Path:
    layer = tmp_path / "pnpm"
    (layer / "bin").mkdir(parents=True)
    (layer / "bin" / "pnpm").write_bytes(b"#!/bin/sh\n")
    (layer / "bin" / "pnpx").symlink_to("pnpm")
    return layer


def _dependency() -> DependencyDescriptor:
    return DependencyDescriptor(
        id="pnpm",
        name="Pnpm",
        version="8.1.0",
        checksum="sha256:abc123",
        uri="https://example.invalid/pnpm-linux-x64",
        licenses=("MIT",),
        purl="pkg:generic/pnpm@8.1.0?checksum=abc123",
        cpe="cpe:2.3:a:pnpm:pnpm:8.1.0:*:*:*:*:*:*:*",
    )


def test_generate_from_dependency_lists_installed_files(tmp_path: Path) -> None:
    document = generate_from_dependency(_dependency(), _layer(tmp_path))

    assert document.checksum == "sha256:abc123"
    assert [item.path for item in document.files] == ["bin/pnpm"]


def test_generate_from_missing_path_has_no_files(tmp_path: Path) -> None:
    assert generate_from_dependency(_dependency(), tmp_path / "missing").files == ()


def test_document_encodings_are_deterministic(tmp_path: Path) -> None:
    first = generate_from_dependency(_dependency(), _layer(tmp_path / "a"))
    second = generate_from_dependency(_dependency(), _layer(tmp_path / "b"))

    assert first.to_cbor() == second.to_cbor()
    assert first.digest() == second.digest()
    assert cbor2.loads(first.to_cbor())["version"] == "8.1.0"
    assert json.loads(first.to_json(tmp_path / "doc.json"))["checksum"] == {
        "algorithm": "sha256",
        "hash": "abc123",
    }
    assert (tmp_path / "doc.json").exists()


def test_in_formats_renders_each_requested_format(tmp_path: Path) -> None:
    document = generate_from_dependency(_dependency(), _layer(tmp_path))

    bundle = in_formats(document, CYCLONEDX_FORMAT, SPDX_FORMAT, SYFT_FORMAT)

    assert [item.extension for item in bundle.formats()] == ["cdx.json", "spdx.json", "syft.json"]
    cdx, spdx, syft = (parse(item.format, item.content) for item in bundle.formats())
    assert cdx["components"][0]["hashes"] == [{"alg": "SHA-256", "content": "abc123"}]
    assert cdx["components"][0]["licenses"] == [{"license": {"id": "MIT"}}]
    assert cdx["metadata"]["timestamp"] == "0001-01-01T00:00:00Z"
    assert spdx["packages"][0]["versionInfo"] == "8.1.0"
    assert spdx["packages"][0]["licenseDeclared"] == "MIT"
    assert spdx["relationships"][0]["relatedSpdxElement"] == spdx["packages"][0]["SPDXID"]
    assert syft["artifacts"][0]["metadata"]["checksum"] == "sha256:abc123"
    assert [item["location"]["path"] for item in syft["files"]] == ["bin/pnpm"]


def test_rendering_is_reproducible(tmp_path: Path) -> None:
    document = generate_from_dependency(_dependency(), _layer(tmp_path))

    first = in_formats(document, CYCLONEDX_FORMAT, SPDX_FORMAT)
    second = in_formats(document, CYCLONEDX_FORMAT, SPDX_FORMAT)

    assert first == second


def test_lookup_accepts_short_names() -> None:
    assert lookup_format("cdx").media_type == CYCLONEDX_FORMAT
    assert lookup_format("syft").extension == "syft.json"


def test_in_formats_fails_closed_on_unknown_format(tmp_path: Path) -> None:
    document = generate_from_dependency(_dependency(), tmp_path)

    with pytest.raises(UnsupportedFormatError) as excinfo:
        in_formats(document, CYCLONEDX_FORMAT, "random-format")

    assert excinfo.value.code == ErrorCode.UNSUPPORTED_FORMAT
    assert excinfo.value.context == {"format": "random-format"}


def test_parse_rejects_incomplete_documents() -> None:
    with pytest.raises(ValidationError, match="missing required keys"):
        parse(SPDX_FORMAT, b'{"spdxVersion": "SPDX-2.2"}')
    with pytest.raises(ValidationError, match="not valid JSON"):
        parse(CYCLONEDX_FORMAT, b"<xml/>")
