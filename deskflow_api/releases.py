"""GitHub release listing used to find the latest Deskflow version."""

from dataclasses import dataclass

import httpx
from loguru import logger

from deskflow_api.errors import NoReleasesError, OnlyContinuousError, UpstreamError
from deskflow_api.settings import CONTINUOUS_TAG, GITHUB_OWNER, GITHUB_REPO, RELEASES_PER_PAGE
from deskflow_api.version_cache import normalize_version

GITHUB_API_URL = "https://api.github.com"
API_TIMEOUT = 10
USER_AGENT = "deskflow-api"


@dataclass(frozen=True)
class Release:
    tag: str


class ReleaseResolver:
    """
    Unauthenticated GitHub client (60 requests per hour), which is why callers
    cache the result.
    """

    def __init__(self, owner: str = GITHUB_OWNER, repo: str = GITHUB_REPO,
                 per_page: int = RELEASES_PER_PAGE, client: httpx.AsyncClient | None = None):
        self.owner = owner
        self.repo = repo
        self.per_page = per_page
        self._client = client

    @property
    def url(self) -> str:
        return f"{GITHUB_API_URL}/repos/{self.owner}/{self.repo}/releases"

    async def _get(self, client: httpx.AsyncClient) -> list:
        resp = await client.get(
            self.url,
            params={"per_page": self.per_page},
            headers={"Accept": "application/vnd.github+json", "User-Agent": USER_AGENT},
        )
        resp.raise_for_status()
        return resp.json()

    async def list_recent_releases(self) -> list[Release]:
        """Newest first, one page of `per_page` releases."""
        try:
            if self._client is not None:
                data = await self._get(self._client)
            else:
                async with httpx.AsyncClient(timeout=API_TIMEOUT) as client:
                    data = await self._get(client)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Listing releases for {self.owner}/{self.repo} failed: {e}") from e
        except ValueError as e:
            raise UpstreamError(f"Release listing is not JSON: {e}") from e

        if not isinstance(data, list):
            raise UpstreamError("Release listing is not a list")

        releases = []
        for item in data:
            tag = item.get("tag_name") if isinstance(item, dict) else None
            if isinstance(tag, str) and tag:
                releases.append(Release(tag))
        return releases


def latest_version(releases: list[Release]) -> str:
    if not releases:
        raise NoReleasesError()

    filtered = [release for release in releases if release.tag != CONTINUOUS_TAG]
    logger.debug("Found {} releases, excluding '{}'", len(filtered), CONTINUOUS_TAG)
    if not filtered:
        raise OnlyContinuousError()

    return normalize_version(filtered[0].tag)
