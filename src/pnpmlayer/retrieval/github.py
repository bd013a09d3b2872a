"""Synchronous GitHub REST client for release and asset discovery."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import Any

import httpx

from pnpmlayer.errors import FetchFailedError, NoSourceArtifactError

API_URL = "https://api.github.com"

_NEXT_LINK_RE = re.compile(r'<([^>]+)>;\s*rel="next"')


@dataclass(frozen=True, slots=True)
class ReleaseAsset:
    name: str
    url: str
    browser_download_url: str
    digest: str = ""


@dataclass(frozen=True, slots=True)
class Release:
    tag_name: str
    prerelease: bool = False
    draft: bool = False
    assets: tuple[ReleaseAsset, ...] = ()


class GitHubClient:
    """Thin wrapper around the GitHub REST API.

    The token is passed in explicitly; nothing here reads the environment.
    """

    def __init__(
        self,
        token: str | None = None,
        *,
        base_url: str = API_URL,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers: dict[str, str] = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=httpx.Timeout(300.0, connect=10.0),
            follow_redirects=True,
            transport=transport,
        )

    # ── lifecycle ──────────────────────────────────────────────────────────

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> GitHubClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ── public ─────────────────────────────────────────────────────────────

    def list_releases(self, owner: str, repo: str, *, max_pages: int = 20) -> list[Release]:
        """Return releases, following ``Link: <...>; rel="next"`` pagination."""
        releases: list[Release] = []
        url: str | None = f"/repos/{owner}/{repo}/releases"
        params: dict[str, Any] | None = {"per_page": 100}
        page = 0
        while url and page < max_pages:
            response = self._get(url, params=params)
            data = response.json()
            if not isinstance(data, list):
                raise FetchFailedError(
                    "Unexpected GitHub releases payload.",
                    context={"operation": "list_releases", "url": url},
                )
            releases.extend(_parse_release(item) for item in data)
            url = _parse_next_link(response.headers.get("Link", ""))
            params = None
            page += 1
        return releases

    def find_release_asset(self, owner: str, repo: str, *, tag: str, asset_name: str) -> ReleaseAsset:
        response = self._get(f"/repos/{owner}/{repo}/releases/tags/{tag}")
        release = _parse_release(response.json())
        for asset in release.assets:
            if asset.name == asset_name:
                return asset
        raise NoSourceArtifactError(
            f"Release {tag} has no asset named '{asset_name}'.",
            version=tag.removeprefix("v"),
            asset_name=asset_name,
            context={"operation": "find_release_asset", "repo": f"{owner}/{repo}"},
        )

    def get_asset(self, url: str) -> ReleaseAsset:
        return _parse_asset(self._get(url).json())

    def get_license(self, owner: str, repo: str) -> list[str]:
        try:
            response = self._get(f"/repos/{owner}/{repo}/license")
        except FetchFailedError as exc:
            if exc.context.get("status") == "404":
                return []
            raise
        license_info = response.json().get("license") or {}
        spdx_id = license_info.get("spdx_id")
        if not spdx_id or spdx_id == "NOASSERTION":
            return []
        return [str(spdx_id)]

    def download_sha256(self, url: str) -> str:
        """Stream *url* and return its sha256 hex digest."""
        hasher = hashlib.sha256()
        try:
            with self._client.stream("GET", url, headers={"Accept": "application/octet-stream"}) as response:
                response.raise_for_status()
                for chunk in response.iter_bytes():
                    hasher.update(chunk)
        except httpx.HTTPError as exc:
            raise FetchFailedError(
                "Release asset download failed.",
                context={"operation": "download_sha256", "url": url, "error": str(exc)},
            ) from exc
        return hasher.hexdigest()

    # ── internal ───────────────────────────────────────────────────────────

    def _get(self, url: str, params: dict[str, Any] | None = None) -> httpx.Response:
        try:
            response = self._client.get(url, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FetchFailedError(
                "GitHub API request was unsuccessful.",
                context={
                    "operation": "github_get",
                    "url": url,
                    "status": str(exc.response.status_code),
                    "body": exc.response.text[:500],
                },
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchFailedError(
                "GitHub API request failed.",
                hint="Check network access or set GITHUB_TOKEN to avoid rate limits.",
                context={"operation": "github_get", "url": url, "error": str(exc)},
            ) from exc
        return response


def _parse_next_link(header: str) -> str | None:
    match = _NEXT_LINK_RE.search(header)
    return match.group(1) if match else None


def _parse_release(item: Any) -> Release:
    if not isinstance(item, dict) or not isinstance(item.get("tag_name"), str):
        raise FetchFailedError("Unexpected GitHub release payload.")
    return Release(
        tag_name=item["tag_name"],
        prerelease=bool(item.get("prerelease", False)),
        draft=bool(item.get("draft", False)),
        assets=tuple(_parse_asset(asset) for asset in item.get("assets") or []),
    )


def _parse_asset(item: Any) -> ReleaseAsset:
    if not isinstance(item, dict):
        raise FetchFailedError("Unexpected GitHub asset payload.")
    return ReleaseAsset(
        name=str(item.get("name", "")),
        url=str(item.get("url", "")),
        browser_download_url=str(item.get("browser_download_url", "")),
        digest=str(item.get("digest") or ""),
    )
