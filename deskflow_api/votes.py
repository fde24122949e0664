"""
Per-requester vote ledger.

One vote is counted per device per day: the dedup key is the requester key
(the caller's IP address) together with the verbatim identity string, so two
machines behind the same address still count separately.

The ledger is read and written without compare-and-swap. Two concurrent
votes from the same requester can both see "not yet voted" and both be
counted; a per-key single writer or a conditional write would close that gap.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from loguru import logger

from deskflow_api.clock import format_timestamp, parse_timestamp, utc_date
from deskflow_api.errors import ConfigurationError
from deskflow_api.settings import REQUESTER_HEADER, VOTE_RETENTION_SECONDS
from deskflow_api.storage import KeyValueStore, read_json, write_json


@dataclass(frozen=True)
class VoteEntry:
    requester_key: str
    timestamp: str
    identity: str

    @property
    def date(self) -> str:
        return self.timestamp[:10]

    def to_json(self) -> dict:
        return {
            "requesterKey": self.requester_key,
            "timestampUtc": self.timestamp,
            "identityString": self.identity,
        }

    @classmethod
    def from_json(cls, data) -> "VoteEntry | None":
        if not isinstance(data, dict):
            return None
        requester_key = data.get("requesterKey")
        timestamp = data.get("timestampUtc")
        identity = data.get("identityString")
        if not all(isinstance(v, str) for v in (requester_key, timestamp, identity)):
            return None
        return cls(requester_key, timestamp, identity)


def requester_key_from(headers) -> str:
    key = headers.get(REQUESTER_HEADER) if headers is not None else None
    if not key or not key.strip():
        raise ConfigurationError(f"Missing header: {REQUESTER_HEADER}")
    return key.strip()


class VoteLedger:
    def __init__(self, store: KeyValueStore, retention_seconds: int = VOTE_RETENTION_SECONDS):
        self._store = store
        self._retention = timedelta(seconds=retention_seconds)

    async def entries(self, requester_key: str) -> list[VoteEntry]:
        data = await read_json(self._store, requester_key, default=[])
        if not isinstance(data, list):
            logger.warning("Vote list for {} is not a list, ignoring it", requester_key)
            return []
        entries = []
        for item in data:
            entry = VoteEntry.from_json(item)
            if entry is not None:
                entries.append(entry)
        return entries

    async def has_voted_today(self, requester_key: str, identity: str, now: datetime) -> bool:
        today = utc_date(now)
        for entry in await self.entries(requester_key):
            if entry.identity == identity and entry.date == today:
                return True
        return False

    async def record_vote(self, requester_key: str, identity: str, now: datetime) -> None:
        """Append a vote and drop entries that fell out of the retention window."""
        now = now.astimezone(timezone.utc)
        cutoff = now - self._retention

        kept = []
        for entry in await self.entries(requester_key):
            recorded_at = parse_timestamp(entry.timestamp)
            if recorded_at is not None and recorded_at >= cutoff:
                kept.append(entry)

        kept.append(VoteEntry(requester_key, format_timestamp(now), identity))
        logger.debug("Recording vote for {} ({} entries kept)", requester_key, len(kept))
        await write_json(self._store, requester_key, [entry.to_json() for entry in kept])
