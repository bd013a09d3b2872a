"""Catalog generation from upstream releases."""

from .github import GitHubClient, Release, ReleaseAsset
from .metadata import (
    PNPM_STRATEGY,
    PlatformAsset,
    RetrievalStrategy,
    generate_metadata,
    generate_purl,
    get_all_versions,
    retrieve,
    select_new_versions,
    write_metadata,
)

__all__ = [
    "PNPM_STRATEGY",
    "GitHubClient",
    "PlatformAsset",
    "Release",
    "ReleaseAsset",
    "RetrievalStrategy",
    "generate_metadata",
    "generate_purl",
    "get_all_versions",
    "retrieve",
    "select_new_versions",
    "write_metadata",
]
