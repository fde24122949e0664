"""Tests for the GitHub release listing."""

import httpx
import pytest

from deskflow_api.errors import NoReleasesError, OnlyContinuousError, UpstreamError
from deskflow_api.releases import Release, ReleaseResolver, latest_version


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestLatestVersion:
    def test_skips_continuous(self):
        assert latest_version([Release("continuous"), Release("v2.0.0")]) == "2.0.0"

    def test_first_release_wins(self):
        assert latest_version([Release("v2.0.0"), Release("v1.9.0")]) == "2.0.0"

    def test_only_continuous(self):
        with pytest.raises(OnlyContinuousError) as exc:
            latest_version([Release("continuous")])
        assert exc.value.message == "No releases found (except continuous)"

    def test_no_releases(self):
        with pytest.raises(NoReleasesError) as exc:
            latest_version([])
        assert exc.value.message == "No releases found"


class TestReleaseResolver:
    async def test_lists_tags(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = request.url
            seen["accept"] = request.headers["accept"]
            return httpx.Response(200, json=[{"tag_name": "continuous"}, {"tag_name": "v1.18.0"}])

        async with mock_client(handler) as client:
            resolver = ReleaseResolver("deskflow", "deskflow", per_page=10, client=client)
            releases = await resolver.list_recent_releases()

        assert releases == [Release("continuous"), Release("v1.18.0")]
        assert seen["url"].path == "/repos/deskflow/deskflow/releases"
        assert seen["url"].params["per_page"] == "10"
        assert seen["accept"] == "application/vnd.github+json"

    async def test_skips_entries_without_tag(self):
        def handler(request):
            return httpx.Response(200, json=[{"name": "draft"}, {"tag_name": "v1.0.0"}])

        async with mock_client(handler) as client:
            releases = await ReleaseResolver(client=client).list_recent_releases()
        assert releases == [Release("v1.0.0")]

    async def test_http_error(self):
        def handler(request):
            return httpx.Response(403, json={"message": "API rate limit exceeded"})

        async with mock_client(handler) as client:
            with pytest.raises(UpstreamError):
                await ReleaseResolver(client=client).list_recent_releases()

    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("boom", request=request)

        async with mock_client(handler) as client:
            with pytest.raises(UpstreamError):
                await ReleaseResolver(client=client).list_recent_releases()

    async def test_unexpected_payload(self):
        def handler(request):
            return httpx.Response(200, json={"message": "Not Found"})

        async with mock_client(handler) as client:
            with pytest.raises(UpstreamError):
                await ReleaseResolver(client=client).list_recent_releases()
