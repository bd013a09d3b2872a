"""Integrity-enforced HTTP/file download."""

from __future__ import annotations

import hashlib
import os
from http.client import HTTPException
from pathlib import Path
from urllib.error import URLError
from urllib.parse import unquote, urlparse
from urllib.request import urlopen

from pnpmlayer.errors import FetchFailedError

CHUNK_SIZE = 1024 * 1024


def download(uri: str, *, checksum: str, destination_dir: str | Path) -> Path:
    """Download *uri* into *destination_dir* and verify it against *checksum*.

    *checksum* uses the ``algorithm:hex`` form; a bare hex digest means sha256.
    """
    algorithm, expected = split_checksum(checksum)
    if not expected:
        raise FetchFailedError(
            "download() requires a checksum.",
            context={"operation": "download", "uri": uri},
        )
    try:
        hasher = hashlib.new(algorithm)
    except ValueError as exc:
        raise FetchFailedError(
            f"Unsupported checksum algorithm '{algorithm}'.",
            context={"operation": "download", "uri": uri, "checksum": checksum},
        ) from exc

    target_dir = Path(destination_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    artifact_path = target_dir / (artifact_name(uri) or expected)
    temp_path = artifact_path.with_name(artifact_path.name + ".tmp")

    try:
        with urlopen(uri) as response, temp_path.open("wb") as handle:  # noqa: S310
            while chunk := response.read(CHUNK_SIZE):
                hasher.update(chunk)
                handle.write(chunk)
    except (URLError, HTTPException, OSError, ValueError) as exc:
        temp_path.unlink(missing_ok=True)
        raise FetchFailedError(
            "Dependency download failed.",
            hint="Check network access and the dependency URI.",
            context={"operation": "download", "uri": uri, "error": str(exc)},
        ) from exc

    actual = hasher.hexdigest()
    if actual != expected:
        temp_path.unlink(missing_ok=True)
        raise FetchFailedError(
            "Fetched content hash mismatch.",
            hint="Update the catalog checksum or source URI to a trusted immutable artifact.",
            context={
                "operation": "download",
                "uri": uri,
                "expected": f"{algorithm}:{expected}",
                "actual": f"{algorithm}:{actual}",
            },
        )

    os.replace(temp_path, artifact_path)
    return artifact_path


def split_checksum(checksum: str) -> tuple[str, str]:
    algorithm, _, digest = checksum.partition(":")
    if not digest:
        return "sha256", algorithm
    return algorithm.lower(), digest.lower()


def artifact_name(uri: str) -> str:
    return Path(unquote(urlparse(uri).path)).name
