"""GitHub release lookups and asset downloads.

Only the latest release of each target is considered. A deployable release
carries exactly two assets, ``<repo>-<version>.tar.gz`` and
``<repo>-<version>.minisig``, both served from github.com.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

import httpx

from release_deployer.constants import (
    ALLOWED_ASSET_HOST,
    ASSET_VERSION_PATTERN,
    GITHUB_API_URL,
    HTTP_TIMEOUT_SECONDS,
    SIGNATURE_SUFFIX,
    TARBALL_SUFFIX,
)
from release_deployer.errors import AssetValidationError, RemoteError
from release_deployer.logging import get_logger

log = get_logger("release_deployer.github")


@dataclass(frozen=True)
class ReleaseAsset:
    """A downloadable file attached to a release."""

    name: str
    browser_download_url: str


@dataclass
class Release:
    """The parts of a GitHub release the deployer needs."""

    id: str
    tag: str
    assets: list[ReleaseAsset] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Release:
        """Build a Release from a GitHub API payload.

        Raises:
            RemoteError: if the payload lacks a release id.
        """
        release_id = data.get("id")
        if release_id is None or release_id == "":
            raise RemoteError("release payload has no id")
        assets = [
            ReleaseAsset(
                name=str(asset.get("name", "")),
                browser_download_url=str(asset.get("browser_download_url", "")),
            )
            for asset in data.get("assets") or []
        ]
        return cls(id=str(release_id), tag=str(data.get("tag_name", "")), assets=assets)


def validate_asset_url(url: str) -> None:
    """Reject asset URLs that are not https URLs on github.com."""
    parts = urlsplit(url)
    if parts.scheme != "https" or parts.hostname != ALLOWED_ASSET_HOST:
        raise AssetValidationError(f"asset has non-GitHub URL ({url})")


def select_assets(release: Release, repo: str) -> tuple[ReleaseAsset, ReleaseAsset]:
    """Return the ``(tarball, signature)`` assets of a release.

    Raises:
        AssetValidationError: unless the release has exactly one tarball and
            one signature for the same version, and nothing else.
    """
    if len(release.assets) != 2:
        raise AssetValidationError(
            f"release needs exactly 2 assets (have {len(release.assets)})"
        )

    prefix = rf"^{re.escape(repo)}-(?P<version>{ASSET_VERSION_PATTERN})"
    tarball_re = re.compile(prefix + re.escape(TARBALL_SUFFIX) + "$")
    sig_re = re.compile(prefix + re.escape(SIGNATURE_SUFFIX) + "$")

    tarball = signature = None
    tarball_version = sig_version = None
    for asset in release.assets:
        if m := tarball_re.match(asset.name):
            tarball, tarball_version = asset, m.group("version")
        elif m := sig_re.match(asset.name):
            signature, sig_version = asset, m.group("version")

    if tarball is None:
        names = ", ".join(asset.name for asset in release.assets)
        raise AssetValidationError(f"no asset named {repo}-<version>{TARBALL_SUFFIX} ({names})")
    if signature is None:
        names = ", ".join(asset.name for asset in release.assets)
        raise AssetValidationError(f"no asset named {repo}-<version>{SIGNATURE_SUFFIX} ({names})")
    if tarball_version != sig_version:
        raise AssetValidationError(
            f"tarball version {tarball_version} does not match signature version {sig_version}"
        )
    return tarball, signature


class GitHubReleaseClient:
    """Async client for the GitHub releases API."""

    def __init__(
        self,
        token: str | None = None,
        base_url: str = GITHUB_API_URL,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ) -> None:
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> GitHubReleaseClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _api_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def get_latest_release(self, owner: str, repo: str) -> Release:
        """Fetch the latest published release of ``owner/repo``.

        Raises:
            RemoteError: on transport errors or non-200 responses.
        """
        url = f"{self._base_url}/repos/{owner}/{repo}/releases/latest"
        client = await self._get_client()
        try:
            resp = await client.get(url, headers=self._api_headers())
        except httpx.HTTPError as exc:
            raise RemoteError(f"release lookup for {owner}/{repo} failed: {exc}") from exc

        if resp.status_code == 404:
            raise RemoteError(f"{owner}/{repo} has no published releases")
        if resp.status_code != 200:
            raise RemoteError(
                f"release lookup for {owner}/{repo} returned HTTP {resp.status_code}"
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise RemoteError(f"release lookup for {owner}/{repo} returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise RemoteError(f"release lookup for {owner}/{repo} returned unexpected payload")

        release = Release.from_api(data)
        log.debug("github_latest_release", repo=f"{owner}/{repo}", release_id=release.id)
        return release

    async def download_asset(self, url: str) -> bytes:
        """Download an asset after checking that it is served from github.com.

        Raises:
            AssetValidationError: if the URL is not a github.com URL.
            RemoteError: on transport errors or non-200 responses.
        """
        validate_asset_url(url)
        client = await self._get_client()
        headers = {"Accept": "application/octet-stream"}
        try:
            resp = await client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            raise RemoteError(f"download of {url} failed: {exc}") from exc

        if resp.status_code != 200:
            raise RemoteError(f"download of {url} returned HTTP {resp.status_code}")
        return resp.content

    async def fetch_release_assets(self, release: Release, repo: str) -> tuple[bytes, bytes]:
        """Select, validate and download the tarball and signature of a release."""
        tarball, signature = select_assets(release, repo)
        # Check both URLs before fetching either
        validate_asset_url(tarball.browser_download_url)
        validate_asset_url(signature.browser_download_url)

        tarball_bytes = await self.download_asset(tarball.browser_download_url)
        signature_bytes = await self.download_asset(signature.browser_download_url)
        return tarball_bytes, signature_bytes
