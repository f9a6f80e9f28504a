"""Tests for release_deployer.github: release lookup, asset selection and download."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from release_deployer.errors import AssetValidationError, RemoteError
from release_deployer.github import (
    GitHubReleaseClient,
    Release,
    ReleaseAsset,
    select_assets,
    validate_asset_url,
)

DL = "https://github.com/acme/myapp/releases/download/v1.2.0"


def _asset(name: str, url: str | None = None) -> ReleaseAsset:
    return ReleaseAsset(name=name, browser_download_url=url or f"{DL}/{name}")


def _release(*assets: ReleaseAsset) -> Release:
    return Release(id="1001", tag="v1.2.0", assets=list(assets))


@pytest.fixture
def client():
    """Create a GitHubReleaseClient instance."""
    return GitHubReleaseClient(token="test-token")


@pytest.fixture
def mock_response():
    """Create a mock httpx.Response."""

    def _create(status_code: int, json_data: object = None, content: bytes = b""):
        response = MagicMock(spec=httpx.Response)
        response.status_code = status_code
        response.content = content
        if json_data is not None:
            response.json.return_value = json_data
        else:
            response.json.side_effect = ValueError("no json")
        return response

    return _create


# ---------------------------------------------------------------------------
# Release payload parsing
# ---------------------------------------------------------------------------


class TestReleaseFromApi:
    """Tests for Release.from_api()."""

    def test_parses_payload(self) -> None:
        release = Release.from_api(
            {
                "id": 123456,
                "tag_name": "v1.2.0",
                "assets": [
                    {"name": "myapp-1.2.0.tar.gz", "browser_download_url": f"{DL}/a"},
                    {"name": "myapp-1.2.0.minisig", "browser_download_url": f"{DL}/b"},
                ],
            }
        )
        assert release.id == "123456"
        assert release.tag == "v1.2.0"
        assert [a.name for a in release.assets] == ["myapp-1.2.0.tar.gz", "myapp-1.2.0.minisig"]

    def test_missing_assets(self) -> None:
        assert Release.from_api({"id": 1, "assets": None}).assets == []

    def test_missing_id(self) -> None:
        with pytest.raises(RemoteError):
            Release.from_api({"tag_name": "v1"})


# ---------------------------------------------------------------------------
# Asset selection and URL validation
# ---------------------------------------------------------------------------


class TestSelectAssets:
    """Tests for select_assets()."""

    def test_selects_in_order(self) -> None:
        tarball, sig = select_assets(
            _release(_asset("myapp-1.2.0.tar.gz"), _asset("myapp-1.2.0.minisig")), "myapp"
        )
        assert tarball.name == "myapp-1.2.0.tar.gz"
        assert sig.name == "myapp-1.2.0.minisig"

    def test_selects_reversed_order(self) -> None:
        tarball, sig = select_assets(
            _release(_asset("myapp-1.2.0.minisig"), _asset("myapp-1.2.0.tar.gz")), "myapp"
        )
        assert tarball.name == "myapp-1.2.0.tar.gz"
        assert sig.name == "myapp-1.2.0.minisig"

    @pytest.mark.parametrize(
        "names",
        [
            [],
            ["myapp-1.2.0.tar.gz"],
            ["myapp-1.2.0.tar.gz", "myapp-1.2.0.minisig", "checksums.txt"],
        ],
    )
    def test_wrong_asset_count(self, names: list[str]) -> None:
        with pytest.raises(AssetValidationError, match="exactly 2"):
            select_assets(_release(*(_asset(n) for n in names)), "myapp")

    @pytest.mark.parametrize(
        "names",
        [
            ["other-1.2.0.tar.gz", "myapp-1.2.0.minisig"],
            ["myapp-1.2.0.tar.gz", "myapp-1.2.0.sig"],
            ["myapp-1.2.0.tar.gz", "myapp-1.2.0.tar.gz"],
            ["myapp-1.2.0.zip", "myapp-1.2.0.minisig"],
        ],
    )
    def test_wrong_asset_names(self, names: list[str]) -> None:
        with pytest.raises(AssetValidationError, match="no asset named"):
            select_assets(_release(*(_asset(n) for n in names)), "myapp")

    def test_version_mismatch(self) -> None:
        with pytest.raises(AssetValidationError, match="does not match"):
            select_assets(
                _release(_asset("myapp-1.2.0.tar.gz"), _asset("myapp-1.1.0.minisig")), "myapp"
            )

    def test_repo_name_is_literal(self) -> None:
        with pytest.raises(AssetValidationError):
            select_assets(_release(_asset("myXpp-1.tar.gz"), _asset("myXpp-1.minisig")), "my.pp")


class TestValidateAssetUrl:
    """Tests for validate_asset_url()."""

    def test_accepts_github(self) -> None:
        validate_asset_url(f"{DL}/myapp-1.2.0.tar.gz")

    @pytest.mark.parametrize(
        "url",
        [
            "https://evil.example.com/myapp-1.2.0.tar.gz",
            "https://github.com.evil.example/myapp.tar.gz",
            "http://github.com/acme/myapp/releases/download/v1/myapp-1.tar.gz",
            "https://objects.githubusercontent.com/x",
            "not a url",
        ],
    )
    def test_rejects_other_hosts(self, url: str) -> None:
        with pytest.raises(AssetValidationError):
            validate_asset_url(url)


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


class TestGitHubReleaseClient:
    """Tests for GitHubReleaseClient."""

    @pytest.mark.asyncio
    async def test_close(self, client):
        await client._get_client()
        assert client._client is not None

        await client.close()
        assert client._client is None

    @pytest.mark.asyncio
    async def test_get_latest_release(self, client, mock_response):
        payload = {"id": 77, "tag_name": "v2.0.0", "assets": []}
        with patch.object(client, "_get_client") as mock_get:
            mock_client = AsyncMock()
            mock_client.get.return_value = mock_response(200, payload)
            mock_get.return_value = mock_client

            release = await client.get_latest_release("acme", "myapp")

        assert release.id == "77"
        url = mock_client.get.call_args.args[0]
        headers = mock_client.get.call_args.kwargs["headers"]
        assert url == "https://api.github.com/repos/acme/myapp/releases/latest"
        assert headers["Authorization"] == "Bearer test-token"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [404, 500, 403])
    async def test_get_latest_release_http_error(self, client, mock_response, status):
        with patch.object(client, "_get_client") as mock_get:
            mock_client = AsyncMock()
            mock_client.get.return_value = mock_response(status, {})
            mock_get.return_value = mock_client

            with pytest.raises(RemoteError):
                await client.get_latest_release("acme", "myapp")

    @pytest.mark.asyncio
    async def test_get_latest_release_transport_error(self, client):
        with patch.object(client, "_get_client") as mock_get:
            mock_client = AsyncMock()
            mock_client.get.side_effect = httpx.ConnectError("boom")
            mock_get.return_value = mock_client

            with pytest.raises(RemoteError, match="boom"):
                await client.get_latest_release("acme", "myapp")

    @pytest.mark.asyncio
    async def test_get_latest_release_invalid_json(self, client, mock_response):
        with patch.object(client, "_get_client") as mock_get:
            mock_client = AsyncMock()
            mock_client.get.return_value = mock_response(200)
            mock_get.return_value = mock_client

            with pytest.raises(RemoteError, match="invalid JSON"):
                await client.get_latest_release("acme", "myapp")

    @pytest.mark.asyncio
    async def test_download_asset(self, client, mock_response):
        with patch.object(client, "_get_client") as mock_get:
            mock_client = AsyncMock()
            mock_client.get.return_value = mock_response(200, content=b"bytes")
            mock_get.return_value = mock_client

            data = await client.download_asset(f"{DL}/myapp-1.2.0.tar.gz")

        assert data == b"bytes"
        assert "Authorization" not in mock_client.get.call_args.kwargs["headers"]

    @pytest.mark.asyncio
    async def test_download_rejects_foreign_host_before_fetch(self, client):
        with patch.object(client, "_get_client") as mock_get:
            with pytest.raises(AssetValidationError):
                await client.download_asset("https://evil.example.com/myapp-1.tar.gz")

        mock_get.assert_not_called()

    @pytest.mark.asyncio
    async def test_download_http_error(self, client, mock_response):
        with patch.object(client, "_get_client") as mock_get:
            mock_client = AsyncMock()
            mock_client.get.return_value = mock_response(502)
            mock_get.return_value = mock_client

            with pytest.raises(RemoteError, match="502"):
                await client.download_asset(f"{DL}/myapp-1.2.0.tar.gz")

    @pytest.mark.asyncio
    async def test_fetch_release_assets_checks_all_urls_first(self, client):
        release = _release(
            _asset("myapp-1.2.0.tar.gz"),
            _asset("myapp-1.2.0.minisig", "https://evil.example.com/myapp-1.2.0.minisig"),
        )
        with patch.object(client, "download_asset", new_callable=AsyncMock) as mock_download:
            with pytest.raises(AssetValidationError):
                await client.fetch_release_assets(release, "myapp")

        mock_download.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fetch_release_assets(self, client):
        release = _release(_asset("myapp-1.2.0.minisig"), _asset("myapp-1.2.0.tar.gz"))
        with patch.object(
            client, "download_asset", new_callable=AsyncMock, side_effect=[b"tgz", b"sig"]
        ) as mock_download:
            tarball, signature = await client.fetch_release_assets(release, "myapp")

        assert (tarball, signature) == (b"tgz", b"sig")
        assert mock_download.await_args_list[0].args[0].endswith(".tar.gz")
