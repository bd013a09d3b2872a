"""Artifact unpacking into layer directories."""

from __future__ import annotations

import shutil
import tarfile
import zipfile
from pathlib import Path, PurePosixPath

from pnpmlayer.errors import FetchFailedError

EXECUTABLE_MODE = 0o755


def unpack(
    artifact: Path,
    destination: Path,
    *,
    strip_components: int = 0,
    executable_name: str,
) -> list[Path]:
    """Install *artifact* under *destination* and return the written paths.

    Tar and zip archives are extracted with *strip_components* leading path
    segments removed; any other payload is installed as ``bin/<executable_name>``.
    """
    destination.mkdir(parents=True, exist_ok=True)
    try:
        if tarfile.is_tarfile(artifact):
            return _unpack_tar(artifact, destination, strip_components=strip_components)
        if zipfile.is_zipfile(artifact):
            return _unpack_zip(artifact, destination, strip_components=strip_components)
        return [_install_executable(artifact, destination, executable_name=executable_name)]
    except (OSError, tarfile.TarError, zipfile.BadZipFile) as exc:
        raise FetchFailedError(
            "Dependency artifact could not be unpacked.",
            hint="Verify the artifact format matches the catalog entry.",
            context={"operation": "unpack", "artifact": str(artifact), "error": str(exc)},
        ) from exc


def _unpack_tar(artifact: Path, destination: Path, *, strip_components: int) -> list[Path]:
    written: list[Path] = []
    with tarfile.open(artifact, mode="r:*") as archive:
        for member in archive.getmembers():
            relative = _stripped(member.name, strip_components)
            if relative is None:
                continue
            target = _safe_target(destination, relative, artifact=artifact)
            if member.isdir():
                target.mkdir(parents=True, exist_ok=True)
            elif member.issym():
                _reject_escaping_link(destination, target, member.linkname, artifact=artifact)
                target.parent.mkdir(parents=True, exist_ok=True)
                target.unlink(missing_ok=True)
                target.symlink_to(member.linkname)
                written.append(target)
            elif member.islnk():
                source_path = _hardlink_source(destination, member, strip_components, artifact=artifact)
                target.parent.mkdir(parents=True, exist_ok=True)
                target.unlink(missing_ok=True)
                shutil.copy2(source_path, target)
                written.append(target)
            elif member.isfile():
                source = archive.extractfile(member)
                if source is None:
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with source, target.open("wb") as handle:
                    shutil.copyfileobj(source, handle)
                target.chmod(member.mode & 0o777)
                written.append(target)
    return written


def _unpack_zip(artifact: Path, destination: Path, *, strip_components: int) -> list[Path]:
    written: list[Path] = []
    with zipfile.ZipFile(artifact) as archive:
        for info in archive.infolist():
            relative = _stripped(info.filename, strip_components)
            if relative is None:
                continue
            target = _safe_target(destination, relative, artifact=artifact)
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(info) as source, target.open("wb") as handle:
                shutil.copyfileobj(source, handle)
            mode = (info.external_attr >> 16) & 0o777
            if mode:
                target.chmod(mode)
            written.append(target)
    return written


def _install_executable(artifact: Path, destination: Path, *, executable_name: str) -> Path:
    target = destination / "bin" / executable_name
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(artifact, target)
    target.chmod(EXECUTABLE_MODE)
    return target


def _stripped(name: str, strip_components: int) -> PurePosixPath | None:
    parts = [part for part in PurePosixPath(name).parts if part not in ("", ".")]
    if len(parts) <= strip_components:
        return None
    return PurePosixPath(*parts[strip_components:])


def _safe_target(destination: Path, relative: PurePosixPath, *, artifact: Path) -> Path:
    target = (destination / relative).resolve()
    if not target.is_relative_to(destination.resolve()):
        raise FetchFailedError(
            "Archive member escapes the layer directory.",
            context={"operation": "unpack", "artifact": str(artifact), "member": str(relative)},
        )
    return destination / relative


def _reject_escaping_link(destination: Path, target: Path, linkname: str, *, artifact: Path) -> None:
    resolved = (target.parent / linkname).resolve()
    if not resolved.is_relative_to(destination.resolve()):
        raise FetchFailedError(
            "Archive symlink escapes the layer directory.",
            context={"operation": "unpack", "artifact": str(artifact), "link": linkname},
        )


def _hardlink_source(
    destination: Path,
    member: tarfile.TarInfo,
    strip_components: int,
    *,
    artifact: Path,
) -> Path:
    """Return the already extracted file a hard-link *member* points at."""
    relative = _stripped(member.linkname, strip_components)
    source = _safe_target(destination, relative, artifact=artifact) if relative is not None else None
    if source is None or not source.is_file():
        raise FetchFailedError(
            "Archive hard link points at a missing member.",
            context={"operation": "unpack", "artifact": str(artifact), "link": member.linkname},
        )
    return source
