import hashlib
import json
from pathlib import Path

import httpx
import pytest

from pnpmlayer.catalog import parse_catalog
from pnpmlayer.errors import ErrorCode, FetchFailedError, NoSourceArtifactError
from pnpmlayer.observability import BuildLogger
from pnpmlayer.retrieval import (
    PNPM_STRATEGY,
    GitHubClient,
    generate_metadata,
    generate_purl,
    get_all_versions,
    retrieve,
    select_new_versions,
    write_metadata,
)
from pnpmlayer.version import Version

DOWNLOAD_ROOT = "https://github.com/pnpm/pnpm/releases/download"
BINARY = b"pnpm standalone binary"


def _asset(tag: str, *, digest: str = "", asset_id: int = 1, name: str = "pnpm-linux-x64") -> dict:
    return {
        "name": name,
        "url": f"https://api.github.com/repos/pnpm/pnpm/releases/assets/{asset_id}",
        "browser_download_url": f"{DOWNLOAD_ROOT}/{tag}/{name}",
        "digest": digest or None,
    }


RELEASES_PAGE_1 = [
    {"tag_name": "v9.0.0-rc.1", "prerelease": True, "assets": []},
    {"tag_name": "v8.6.0", "assets": [_asset("v8.6.0", digest="sha256:aaa")]},
    {"tag_name": "v8.7.0", "draft": True, "assets": []},
    {"tag_name": "v8.1.0", "assets": [_asset("v8.1.0", asset_id=2)]},
    {"tag_name": "nightly", "assets": []},
]
RELEASES_PAGE_2 = [
    {"tag_name": "v7.33.0", "assets": [_asset("v7.33.0", digest="sha256:ccc", asset_id=3)]},
    {"tag_name": "v5.18.9", "assets": []},
]


def _handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if request.url.host == "github.com":
        return httpx.Response(200, content=BINARY)
    if path == "/repos/pnpm/pnpm/releases":
        if request.url.params.get("page") == "2":
            return httpx.Response(200, json=RELEASES_PAGE_2)
        assert request.url.params.get("per_page") == "100"
        return httpx.Response(
            200,
            json=RELEASES_PAGE_1,
            headers={"Link": '<https://api.github.com/repos/pnpm/pnpm/releases?page=2>; rel="next"'},
        )
    if path == "/repos/pnpm/pnpm/license":
        return httpx.Response(200, json={"license": {"spdx_id": "MIT"}})
    if path.startswith("/repos/pnpm/pnpm/releases/tags/"):
        tag = path.rsplit("/", 1)[1]
        for release in RELEASES_PAGE_1 + RELEASES_PAGE_2:
            if release["tag_name"] == tag:
                return httpx.Response(200, json=release)
        return httpx.Response(404, json={"message": "Not Found"})
    if path == "/repos/pnpm/pnpm/releases/assets/2":
        return httpx.Response(200, json=_asset("v8.1.0", asset_id=2))
    return httpx.Response(404, json={"message": "Not Found"})


def _client(handler=_handler, token: str | None = None) -> GitHubClient:
    return GitHubClient(token, transport=httpx.MockTransport(handler))


def test_list_releases_follows_pagination() -> None:
    with _client() as client:
        releases = client.list_releases("pnpm", "pnpm")

    assert [release.tag_name for release in releases] == [
        "v9.0.0-rc.1",
        "v8.6.0",
        "v8.7.0",
        "v8.1.0",
        "nightly",
        "v7.33.0",
        "v5.18.9",
    ]


def test_get_all_versions_filters_and_sorts() -> None:
    with _client() as client:
        versions = get_all_versions(client, PNPM_STRATEGY)

    assert [str(v) for v in versions] == ["8.6.0", "8.1.0", "7.33.0"]


def test_generate_metadata_uses_asset_digest() -> None:
    with _client() as client:
        (entry,) = generate_metadata(client, PNPM_STRATEGY, Version.parse("8.6.0"))

    uri = f"{DOWNLOAD_ROOT}/v8.6.0/pnpm-linux-x64"
    assert entry == {
        "checksum": "sha256:aaa",
        "cpe": "cpe:2.3:a:pnpm:pnpm:8.6.0:*:*:*:*:*:*:*",
        "id": "pnpm",
        "licenses": ["MIT"],
        "name": "pnpm",
        "purl": generate_purl("pnpm", "8.6.0", "sha256:aaa", uri),
        "source": uri,
        "source-checksum": "sha256:aaa",
        "stacks": ["io.buildpacks.stacks.bionic", "io.buildpacks.stacks.jammy"],
        "strip-components": 1,
        "uri": uri,
        "version": "8.6.0",
    }


def test_generate_metadata_hashes_asset_without_digest() -> None:
    with _client() as client:
        (entry,) = generate_metadata(client, PNPM_STRATEGY, Version.parse("8.1.0"))

    assert entry["checksum"] == f"sha256:{hashlib.sha256(BINARY).hexdigest()}"


def test_missing_asset_raises_no_source_artifact() -> None:
    with _client() as client:
        with pytest.raises(NoSourceArtifactError) as excinfo:
            client.find_release_asset("pnpm", "pnpm", tag="v9.0.0-rc.1", asset_name="pnpm-linux-x64")

    error = excinfo.value
    assert error.code == ErrorCode.NO_SOURCE_ARTIFACT
    assert error.version == "9.0.0-rc.1"
    assert error.asset_name == "pnpm-linux-x64"
    assert isinstance(error, FetchFailedError)


def test_license_lookup_tolerates_missing_license() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "Not Found"})

    with _client(handler) as client:
        assert client.get_license("pnpm", "pnpm") == []


def test_server_errors_carry_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    with _client(handler) as client:
        with pytest.raises(FetchFailedError) as excinfo:
            client.get_license("pnpm", "pnpm")

    assert excinfo.value.context["status"] == "500"
    assert excinfo.value.context["body"] == "boom"


def test_token_is_sent_as_bearer() -> None:
    seen: list[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers.get("Authorization"))
        return httpx.Response(200, json={"license": None})

    with _client(handler, token="secret") as client:
        assert client.get_license("pnpm", "pnpm") == []

    assert seen == ["Bearer secret"]


def test_select_new_versions_applies_constraints_and_drops_known() -> None:
    catalog = parse_catalog(
        """
[[metadata.dependencies]]
id = "pnpm"
version = "8.6.0"
checksum = "sha256:aaa"
uri = "https://example.invalid/pnpm"

[[metadata.dependency-constraints]]
id = "pnpm"
constraint = "8.*"
patches = 2

[[metadata.dependency-constraints]]
id = "pnpm"
constraint = "7.*"
patches = 1
"""
    )
    versions = [Version.parse(v) for v in ["7.32.0", "8.1.0", "8.6.0", "7.33.0", "8.0.0", "6.0.0"]]

    selected = select_new_versions(versions, catalog, "pnpm")

    assert [str(v) for v in selected] == ["8.1.0", "7.33.0"]


def test_retrieve_and_write_metadata(tmp_path: Path) -> None:
    catalog = parse_catalog(
        '[[metadata.dependencies]]\nid = "pnpm"\nversion = "8.6.0"\n'
        'checksum = "sha256:aaa"\nuri = "https://example.invalid/pnpm"\n'
    )
    logger = BuildLogger()

    with _client() as client:
        entries = retrieve(client, PNPM_STRATEGY, catalog=catalog, logger=logger)
    output = write_metadata(entries, tmp_path / "out" / "metadata.json")

    assert [entry["version"] for entry in entries] == ["8.1.0", "7.33.0"]
    assert "Found 2 new pnpm version(s)" in logger.messages()
    assert json.loads(output.read_text(encoding="utf-8")) == entries


def test_retrieve_skips_versions_without_source_artifact() -> None:
    releases = [
        {"tag_name": "v8.1.0", "assets": [_asset("v8.1.0", name="pnpm-macos-arm64", digest="sha256:bbb")]},
        {"tag_name": "v8.0.0", "assets": [_asset("v8.0.0", digest="sha256:ddd")]},
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/repos/pnpm/pnpm/releases":
            return httpx.Response(200, json=releases)
        if path == "/repos/pnpm/pnpm/license":
            return httpx.Response(200, json={"license": {"spdx_id": "MIT"}})
        tag = path.rsplit("/", 1)[1]
        return httpx.Response(200, json=next(item for item in releases if item["tag_name"] == tag))

    logger = BuildLogger()
    with _client(handler) as client:
        entries = retrieve(client, PNPM_STRATEGY, catalog=parse_catalog(""), logger=logger)

    assert [entry["version"] for entry in entries] == ["8.0.0"]
    warnings = [record["message"] for record in logger.records if record["level"] == "warning"]
    assert warnings == ["Skipping pnpm 8.1.0: no asset named 'pnpm-linux-x64'"]


def test_retrieve_propagates_other_fetch_failures() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/repos/pnpm/pnpm/releases":
            return httpx.Response(200, json=[{"tag_name": "v8.0.0", "assets": []}])
        return httpx.Response(503, text="unavailable")

    with _client(handler) as client:
        with pytest.raises(FetchFailedError) as excinfo:
            retrieve(client, PNPM_STRATEGY, catalog=parse_catalog(""), logger=BuildLogger())

    assert not isinstance(excinfo.value, NoSourceArtifactError)
    assert excinfo.value.context["status"] == "503"
