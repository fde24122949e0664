"""
Request routing for the Deskflow API worker.

The worker entrypoint converts runtime requests into `ApiRequest` and the
returned `ApiResponse` back into a runtime response; nothing in here depends
on the Workers runtime.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable
from urllib.parse import parse_qs, urlparse

import httpx
from loguru import logger

from deskflow_api.clock import utc_now
from deskflow_api.contest import detach, guarded, update_popularity_contest
from deskflow_api.errors import NotFoundError
from deskflow_api.releases import ReleaseResolver, latest_version
from deskflow_api.settings import REQUEST_ID_HEADER, Settings
from deskflow_api.stats import StatsAggregator, month_key, previous_month_key
from deskflow_api.storage import KeyValueStore, MetadataStore
from deskflow_api.version_cache import FallbackTier, PrimaryTier, VersionCache
from deskflow_api.votes import VoteLedger


@dataclass
class ApiRequest:
    url: str
    method: str = "GET"
    headers: object = field(default_factory=httpx.Headers)


@dataclass
class ApiResponse:
    body: str
    status: int = 200
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class Services:
    settings: Settings
    version_cache: VersionCache
    resolver: ReleaseResolver
    ledger: VoteLedger
    aggregator: StatsAggregator
    schedule: Callable | None = None
    clock: Callable[[], datetime] = utc_now

    @classmethod
    def create(cls, settings: Settings, primary: MetadataStore, slow: KeyValueStore,
               votes: KeyValueStore, schedule: Callable | None = None,
               client: httpx.AsyncClient | None = None,
               clock: Callable[[], datetime] = utc_now) -> "Services":
        """
        Wire the stores: `primary` is the KV namespace, `slow` holds monthly
        stats and the fallback version, `votes` holds the vote ledger.
        """
        version_cache = VersionCache([
            PrimaryTier(primary, settings.cache_age_seconds),
            FallbackTier(slow, settings.fallback_ttl_seconds),
        ])
        resolver = ReleaseResolver(
            owner=settings.github_owner,
            repo=settings.github_repo,
            per_page=settings.releases_per_page,
            client=client,
        )
        return cls(
            settings=settings,
            version_cache=version_cache,
            resolver=resolver,
            ledger=VoteLedger(votes, settings.vote_retention_seconds),
            aggregator=StatsAggregator(slow),
            schedule=schedule,
            clock=clock,
        )


def _text_response(body: str, status: int = 200) -> ApiResponse:
    return ApiResponse(body, status=status, headers={"content-type": "text/plain; charset=utf-8"})


def _json_response(payload: dict, status: int = 200) -> ApiResponse:
    body = json.dumps(payload, indent=2)
    return ApiResponse(body, status=status, headers={"content-type": "application/json; charset=utf-8"})


def _extract_query_first(url: str, key: str) -> str:
    parsed = urlparse(url)
    query = parse_qs(parsed.query, keep_blank_values=True)
    return query.get(key, [""])[0]


def _has_query_param(url: str, key: str) -> bool:
    return key in parse_qs(urlparse(url).query, keep_blank_values=True)


def _handle_index(request: ApiRequest, settings: Settings) -> ApiResponse:
    if _has_query_param(request.url, "testError"):
        raise RuntimeError("Test error")

    repo_url = settings.repo_url
    html_rows = [
        "<style>",
        "  body { font-family: sans-serif; }",
        "  @media (prefers-color-scheme: dark) {",
        "    body { background: #111; color: #eee; }",
        "    a { color: #4ea1f3; }",
        "  }",
        "</style>",
        "<h1>Deskflow API</h1>",
        f'<p>Source code: <a href="{repo_url}">{repo_url}</a></p>',
        '<p>Latest version: <a href="/version">/version</a></p>',
        '<p>Popularity contest: <a href="/stats">/stats</a> (JSON)</p>',
    ]
    return ApiResponse("\n".join(html_rows), headers={"content-type": "text/html; charset=utf-8"})


async def _handle_version(request: ApiRequest, services: Services, now: datetime) -> ApiResponse:
    fake = _extract_query_first(request.url, "fake")
    if fake:
        return _text_response(fake)

    cached = await services.version_cache.get_current(now)
    if cached:
        return _text_response(cached)

    logger.debug("Cache miss for version, fetching from GitHub")
    releases = await services.resolver.list_recent_releases()
    try:
        version = latest_version(releases)
    except NotFoundError as e:
        return _text_response(e.message, status=404)

    logger.debug("Latest version is {}, storing in cache", version)
    await services.version_cache.refresh(version, now)
    return _text_response(version)


async def _handle_stats(services: Services, now: datetime) -> ApiResponse:
    this_month_key = month_key(now)
    last_month_key = previous_month_key(now)
    logger.debug("Fetching stats for {} and {}", this_month_key, last_month_key)

    this_month = await services.aggregator.read_sorted(this_month_key)
    last_month = await services.aggregator.read_sorted(last_month_key)
    return _json_response({
        "thisMonth": this_month.to_json(this_month_key),
        "lastMonth": last_month.to_json(last_month_key),
    })


async def _route(request: ApiRequest, services: Services) -> ApiResponse:
    now = services.clock()

    contest = update_popularity_contest(request.headers, services.ledger, services.aggregator, now)
    if services.settings.await_contest:
        await guarded(contest)
    else:
        detach(contest, services.schedule)

    path = urlparse(request.url).path
    method = request.method.upper()

    if path == "/" and method == "GET":
        return _handle_index(request, services.settings)

    if path.startswith("/version") and method == "GET":
        return await _handle_version(request, services, now)

    if path.startswith("/stats") and method == "GET":
        return await _handle_stats(services, now)

    return _text_response("Not found", status=404)


async def handle_request(request: ApiRequest, services: Services) -> ApiResponse:
    try:
        return await _route(request, services)
    except Exception:
        request_id = request.headers.get(REQUEST_ID_HEADER) or "unknown"
        logger.exception("Server error, request ID {}", request_id)
        message = (
            f"Server error. Please report this issue with the request ID {request_id} "
            f"at {services.settings.repo_url}/issues"
        )
        return _text_response(message, status=500)
