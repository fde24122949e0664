"""
Tiered cache for the latest Deskflow version.

Reads try each tier in order and the first hit wins. Writes go to the first
tier and cascade to the next one when a store rejects the write, so a KV
namespace that ran out of daily writes degrades to the slower Durable Object
store instead of failing the request.

Workers KV is global, unlike the Cache API which is per point of presence, so
a single cached value is enough to keep us under the GitHub rate limit.
"""

import json
from datetime import datetime
from typing import Protocol

from loguru import logger

from deskflow_api.clock import format_timestamp, parse_timestamp
from deskflow_api.errors import MetadataError
from deskflow_api.settings import CACHE_AGE_SECONDS, VERSION_KV_KEY, VERSION_SLOW_KEY
from deskflow_api.storage import KeyValueStore, MetadataStore

FETCHED_AT_FIELD = "fetchedAt"


def normalize_version(tag: str) -> str:
    # The GUI does not expect a 'v' prefix.
    return tag[1:] if tag.startswith("v") else tag


class CacheTier(Protocol):
    name: str

    async def try_read(self, now: datetime) -> str | None: ...

    async def try_write(self, value: str, now: datetime) -> None: ...


class PrimaryTier:
    """KV record with a fetchedAt timestamp in its metadata."""

    name = "kv"

    def __init__(self, store: MetadataStore, ttl_seconds: int = CACHE_AGE_SECONDS,
                 key: str = VERSION_KV_KEY):
        self._store = store
        self._ttl = ttl_seconds
        self._key = key

    async def try_read(self, now: datetime) -> str | None:
        value, metadata = await self._store.get_with_metadata(self._key)
        if not value:
            return None

        raw_fetched_at = (metadata or {}).get(FETCHED_AT_FIELD)
        if not raw_fetched_at:
            raise MetadataError(f"Metadata missing field: {FETCHED_AT_FIELD}")
        fetched_at = parse_timestamp(raw_fetched_at)
        if fetched_at is None:
            raise MetadataError(f"Metadata field {FETCHED_AT_FIELD} is not a timestamp: {raw_fetched_at!r}")

        age = (now - fetched_at).total_seconds()
        logger.debug("KV version {} found, age is {} seconds", value, round(age))
        if age < self._ttl:
            return value
        return None

    async def try_write(self, value: str, now: datetime) -> None:
        await self._store.put(self._key, value, metadata={FETCHED_AT_FIELD: format_timestamp(now)})


class FallbackTier:
    """
    Last-resort copy in the slow store, written only when the primary tier
    rejects a write. Served without an age check unless a TTL is configured.
    """

    name = "slow_kv"

    def __init__(self, store: KeyValueStore, ttl_seconds: int | None = None,
                 key: str = VERSION_SLOW_KEY):
        self._store = store
        self._ttl = ttl_seconds
        self._key = key

    async def try_read(self, now: datetime) -> str | None:
        raw = await self._store.get(self._key)
        if not raw:
            return None

        value, fetched_at = raw, None
        try:
            data = json.loads(raw)
        except ValueError:
            data = None
        if isinstance(data, dict) and isinstance(data.get("value"), str):
            value = data["value"]
            fetched_at = parse_timestamp(data.get(FETCHED_AT_FIELD))

        if self._ttl is not None and fetched_at is not None:
            if (now - fetched_at).total_seconds() >= self._ttl:
                logger.debug("Slow KV version {} is older than {} seconds", value, self._ttl)
                return None

        logger.debug("Using slow KV version: {}", value)
        return value or None

    async def try_write(self, value: str, now: datetime) -> None:
        await self._store.put(self._key, json.dumps({"value": value, FETCHED_AT_FIELD: format_timestamp(now)}))


class VersionCache:
    def __init__(self, tiers: list[CacheTier]):
        self._tiers = list(tiers)

    async def get_current(self, now: datetime) -> str | None:
        """Return the cached version, or None on a miss in every tier."""
        for tier in self._tiers:
            value = await tier.try_read(now)
            if value:
                logger.debug("Version cache hit in {} tier", tier.name)
                return value
        logger.debug("Version cache miss")
        return None

    async def refresh(self, value: str, now: datetime) -> None:
        last_error: Exception | None = None
        for tier in self._tiers:
            try:
                await tier.try_write(value, now)
            except Exception as e:
                logger.warning("Error storing version in {} tier: {}", tier.name, e)
                last_error = e
                continue
            logger.info("Stored version {} in {} tier", value, tier.name)
            return
        if last_error is not None:
            raise last_error
