import json
from pathlib import Path

import pytest

from pnpmlayer.errors import ErrorCode, NoSourceArtifactError, PnpmLayerError, ValidationError
from pnpmlayer.models import (
    BOMEntry,
    BuildContext,
    DependencyDescriptor,
    LayerFlags,
    LayerRecord,
)


def _descriptor(checksum: str, stacks: tuple[str, ...] = ("some-stack",)) -> DependencyDescriptor:
    return DependencyDescriptor(
        id="pnpm", name="pnpm", version="8.1.0", checksum=checksum, uri="https://x", stacks=stacks
    )


@pytest.mark.parametrize(
    ("checksum", "algorithm", "digest"),
    [("sha256:abc", "sha256", "abc"), ("sha512:def", "sha512", "def"), ("abc", "sha256", "abc")],
)
def test_checksum_parts(checksum: str, algorithm: str, digest: str) -> None:
    descriptor = _descriptor(checksum)

    assert descriptor.checksum_algorithm == algorithm
    assert descriptor.checksum_hash == digest


def test_stack_support_with_wildcard() -> None:
    assert _descriptor("abc").supports_stack("some-stack")
    assert not _descriptor("abc").supports_stack("other-stack")
    assert _descriptor("abc", stacks=("*",)).supports_stack("other-stack")


def test_layer_record_flags() -> None:
    record = LayerRecord(name="pnpm", path=Path("/layers/pnpm"))

    record.apply_flags(LayerFlags(build=True, cache=True))

    assert record.flags == LayerFlags(build=True, launch=False, cache=True)


def test_build_context_catalog_path(tmp_path: Path) -> None:
    context = BuildContext(layers_path=tmp_path / "layers", cnb_path=tmp_path / "cnb", stack="s")

    assert context.catalog_path == tmp_path / "cnb" / "buildpack.toml"


def test_bom_entry_to_dict_copies_metadata() -> None:
    entry = BOMEntry(name="pnpm", metadata={"version": "8.1.0"})

    payload = entry.to_dict()
    payload["metadata"]["version"] = "changed"

    assert entry.metadata["version"] == "8.1.0"


def test_error_string_includes_hint_and_context() -> None:
    error = ValidationError("Bad input.", hint="Fix it.", context={"path": "/tmp/x", "empty": ""})

    assert str(error) == "Bad input.\nHint: Fix it.\n  path: /tmp/x"
    assert error.to_dict() == {
        "code": "E_VALIDATION",
        "message": "Bad input.\nHint: Fix it.\n  path: /tmp/x",
        "context": {"path": "/tmp/x", "empty": ""},
        "hint": "Fix it.",
    }
    json.dumps(error.to_dict())


def test_no_source_artifact_merges_context() -> None:
    error = NoSourceArtifactError(
        "missing", version="8.1.0", asset_name="pnpm-linux-x64", context={"repo": "pnpm/pnpm"}
    )

    assert isinstance(error, PnpmLayerError)
    assert error.code == ErrorCode.NO_SOURCE_ARTIFACT
    assert error.context == {"version": "8.1.0", "asset": "pnpm-linux-x64", "repo": "pnpm/pnpm"}
