"""Catalog entry generation from upstream GitHub releases.

One strategy covers both single-asset dependencies and ones that ship an
asset per OS/architecture: each :class:`PlatformAsset` yields one entry.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import quote

from pnpmlayer.catalog import Catalog
from pnpmlayer.errors import NoSourceArtifactError, ValidationError
from pnpmlayer.observability import BuildLogger
from pnpmlayer.retrieval.github import GitHubClient
from pnpmlayer.version import VERSION_PATTERN, Version, matches

DEFAULT_STACKS = ("io.buildpacks.stacks.bionic", "io.buildpacks.stacks.jammy")


@dataclass(frozen=True, slots=True)
class PlatformAsset:
    name: str
    os: str = "linux"
    arch: str = "x64"
    stacks: tuple[str, ...] = DEFAULT_STACKS


@dataclass(frozen=True, slots=True)
class RetrievalStrategy:
    dependency_id: str
    owner: str
    repo: str
    assets: tuple[PlatformAsset, ...]
    minimum_version: str = "0.0.0"
    tag_prefix: str = "v"
    strip_components: int = 1

    @property
    def per_platform(self) -> bool:
        return len(self.assets) > 1

    def tag_for(self, version: Version) -> str:
        return f"{self.tag_prefix}{version}"


PNPM_STRATEGY = RetrievalStrategy(
    dependency_id="pnpm",
    owner="pnpm",
    repo="pnpm",
    assets=(PlatformAsset(name="pnpm-linux-x64"),),
    minimum_version="5.18.10",
)


def get_all_versions(client: GitHubClient, strategy: RetrievalStrategy) -> list[Version]:
    """Return published stable versions at or above the strategy minimum, newest first."""
    minimum = Version.parse(strategy.minimum_version)
    versions: list[Version] = []
    for release in client.list_releases(strategy.owner, strategy.repo):
        if release.draft:
            continue
        tag = release.tag_name.removeprefix(strategy.tag_prefix)
        if VERSION_PATTERN.match(tag) is None:
            continue
        version = Version.parse(tag)
        # older releases ship no prebuilt assets
        if version < minimum or version.is_prerelease:
            continue
        versions.append(version)
    return sorted(set(versions), reverse=True)


def generate_metadata(
    client: GitHubClient,
    strategy: RetrievalStrategy,
    version: Version,
) -> list[dict[str, Any]]:
    """Build one catalog entry per platform asset of *version*."""
    tag = strategy.tag_for(version)
    licenses = client.get_license(strategy.owner, strategy.repo)
    entries: list[dict[str, Any]] = []
    for platform in strategy.assets:
        asset = client.find_release_asset(
            strategy.owner, strategy.repo, tag=tag, asset_name=platform.name
        )
        if not asset.digest:
            asset = client.get_asset(asset.url)
        checksum = asset.digest or f"sha256:{client.download_sha256(asset.browser_download_url)}"
        entry: dict[str, Any] = {
            "checksum": checksum,
            "cpe": f"cpe:2.3:a:{strategy.owner}:{strategy.dependency_id}:{version}:*:*:*:*:*:*:*",
            "id": strategy.dependency_id,
            "licenses": list(licenses),
            "name": strategy.dependency_id,
            "purl": generate_purl(
                strategy.dependency_id, str(version), checksum, asset.browser_download_url
            ),
            "source": asset.browser_download_url,
            "source-checksum": checksum,
            "stacks": list(platform.stacks),
            "strip-components": strategy.strip_components,
            "uri": asset.browser_download_url,
            "version": str(version),
        }
        if strategy.per_platform:
            entry["os"] = platform.os
            entry["arch"] = platform.arch
        entries.append(entry)
    return entries


def generate_purl(name: str, version: str, checksum: str, download_url: str) -> str:
    digest = checksum.partition(":")[2] or checksum
    return (
        f"pkg:generic/{name}@{version}"
        f"?checksum={digest}&download_url={quote(download_url, safe=':/')}"
    )


def select_new_versions(
    versions: list[Version],
    catalog: Catalog,
    dependency_id: str,
) -> list[Version]:
    """Drop known versions and keep the newest ``patches`` per catalog constraint."""
    known = {Version.parse(item) for item in catalog.versions_for(dependency_id)}
    constraints = [item for item in catalog.constraints if item.id == dependency_id]
    ordered = sorted(versions, reverse=True)
    if constraints:
        wanted: set[Version] = set()
        for constraint in constraints:
            matching = [v for v in ordered if matches(constraint.constraint, v)]
            wanted.update(matching[: constraint.patches])
        ordered = [v for v in ordered if v in wanted]
    return [v for v in ordered if v not in known]


def retrieve(
    client: GitHubClient,
    strategy: RetrievalStrategy,
    *,
    catalog: Catalog,
    logger: BuildLogger,
) -> list[dict[str, Any]]:
    versions = select_new_versions(
        get_all_versions(client, strategy), catalog, strategy.dependency_id
    )
    logger.process(
        f"Found {len(versions)} new {strategy.dependency_id} version(s)",
        operation="retrieve",
    )
    entries: list[dict[str, Any]] = []
    for version in versions:
        logger.subprocess(f"Generating metadata for {version}", operation="retrieve")
        try:
            entries.extend(generate_metadata(client, strategy, version))
        except NoSourceArtifactError as exc:
            logger.warning(
                f"Skipping {strategy.dependency_id} {exc.version}: no asset named '{exc.asset_name}'",
                operation="retrieve",
            )
    return entries


def write_metadata(entries: list[dict[str, Any]], path: str | Path) -> Path:
    output_path = Path(path)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json.dumps(entries, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    except OSError as exc:
        raise ValidationError(
            "Metadata output could not be written.",
            context={"path": str(output_path), "error": str(exc)},
        ) from exc
    return output_path
