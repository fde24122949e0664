"""Monthly popularity contest counters."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from loguru import logger

from deskflow_api.storage import KeyValueStore, read_json, write_json
from deskflow_api.user_agent import IdentityInfo

# Stored JSON field name -> IdentityInfo attribute.
CATEGORIES = (
    ("osFamily", "os_family"),
    ("os", "os"),
    ("language", "language"),
    ("version", "version"),
)


def month_key(now: datetime) -> str:
    return now.astimezone(timezone.utc).strftime("%Y-%m")


def previous_month_key(now: datetime) -> str:
    first_of_month = now.astimezone(timezone.utc).replace(day=1)
    return month_key(first_of_month - timedelta(days=1))


def sort_by_count_desc(counts: dict[str, int]) -> dict[str, int]:
    return dict(sorted(counts.items(), key=lambda item: item[1], reverse=True))


def _clean_counts(value) -> dict[str, int]:
    if not isinstance(value, dict):
        return {}
    return {
        str(name): count
        for name, count in value.items()
        if isinstance(count, int) and not isinstance(count, bool) and count >= 0
    }


@dataclass
class MonthlyStats:
    vote_count: int = 0
    os: dict[str, int] = field(default_factory=dict)
    os_family: dict[str, int] = field(default_factory=dict)
    language: dict[str, int] = field(default_factory=dict)
    version: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data) -> "MonthlyStats":
        if not isinstance(data, dict):
            return cls()
        vote_count = data.get("voteCount")
        if not isinstance(vote_count, int) or isinstance(vote_count, bool) or vote_count < 0:
            vote_count = 0
        stats = cls(vote_count=vote_count)
        for name, attr in CATEGORIES:
            setattr(stats, attr, _clean_counts(data.get(name)))
        return stats

    def to_json(self, date: str | None = None) -> dict:
        payload: dict = {}
        if date is not None:
            payload["date"] = date
        payload["voteCount"] = self.vote_count
        for name, attr in CATEGORIES:
            payload[name] = dict(getattr(self, attr))
        return payload

    def add(self, info: IdentityInfo) -> None:
        self.vote_count += 1
        for _, attr in CATEGORIES:
            value = getattr(info, attr)
            if value:
                counts = getattr(self, attr)
                counts[value] = counts.get(value, 0) + 1

    def sorted(self) -> "MonthlyStats":
        return MonthlyStats(
            vote_count=self.vote_count,
            os=sort_by_count_desc(self.os),
            os_family=sort_by_count_desc(self.os_family),
            language=sort_by_count_desc(self.language),
            version=sort_by_count_desc(self.version),
        )


class StatsAggregator:
    def __init__(self, store: KeyValueStore):
        self._store = store

    async def load(self, month: str) -> MonthlyStats:
        return MonthlyStats.from_json(await read_json(self._store, month, default={}))

    async def increment(self, month: str, info: IdentityInfo) -> None:
        # Read-modify-write without a lock; concurrent increments can be lost.
        stats = await self.load(month)
        stats.add(info)
        logger.debug("Updating stats for {}", month)
        await write_json(self._store, month, stats.to_json())

    async def read_sorted(self, month: str) -> MonthlyStats:
        return (await self.load(month)).sorted()
