"""Tests for the popularity contest dedup-and-increment protocol."""

import asyncio
import json
from datetime import timedelta

import httpx
import pytest

from deskflow_api.contest import detach, guarded, update_popularity_contest
from deskflow_api.errors import ConfigurationError, StoreWriteError
from deskflow_api.stats import StatsAggregator
from deskflow_api.storage import MemoryStore
from deskflow_api.votes import VoteLedger

UA = "Deskflow/1.18.0 (Ubuntu 24.04; linux; 1.18.0; en)"


class InterleavingStore(MemoryStore):
    """Yields to the event loop on every read, like a remote store would."""

    async def get(self, key):
        value = self.data.get(key)
        await asyncio.sleep(0)
        return value


def headers(**extra):
    values = {"User-Agent": UA, "CF-Connecting-IP": "203.0.113.7"}
    values.update(extra)
    return httpx.Headers(values)


@pytest.fixture
def ledger():
    return VoteLedger(MemoryStore())


@pytest.fixture
def aggregator(store):
    return StatsAggregator(store)


class TestUpdate:
    async def test_counts_vote(self, ledger, aggregator, store, now):
        assert await update_popularity_contest(headers(), ledger, aggregator, now)
        stats = json.loads(store.data["2024-04"])
        assert stats["voteCount"] == 1
        assert stats["osFamily"] == {"Linux": 1}
        assert stats["language"] == {"en": 1}

    async def test_same_device_counted_once_per_day(self, ledger, aggregator, now):
        assert await update_popularity_contest(headers(), ledger, aggregator, now)
        assert not await update_popularity_contest(headers(), ledger, aggregator, now + timedelta(hours=1))
        assert (await aggregator.load("2024-04")).vote_count == 1

    async def test_counted_again_next_day(self, ledger, aggregator, now):
        await update_popularity_contest(headers(), ledger, aggregator, now)
        await update_popularity_contest(headers(), ledger, aggregator, now)
        await update_popularity_contest(headers(), ledger, aggregator, now + timedelta(days=1))
        assert (await aggregator.load("2024-04")).vote_count == 2

    async def test_two_devices_behind_one_address(self, ledger, aggregator, now):
        other = "Deskflow/1.18.0 (Windows 11; windows; 1.18.0; en)"
        await update_popularity_contest(headers(), ledger, aggregator, now)
        await update_popularity_contest(headers(**{"User-Agent": other}), ledger, aggregator, now)
        assert (await aggregator.load("2024-04")).vote_count == 2

    async def test_legacy_client_headers(self, ledger, aggregator, now):
        legacy = headers(**{
            "User-Agent": "Deskflow 1.17.0 on Windows 10",
            "X-Deskflow-Language": "de",
            "X-Deskflow-Version": "1.17.0",
        })
        await update_popularity_contest(legacy, ledger, aggregator, now)
        stats = await aggregator.load("2024-04")
        assert stats.os == {"Windows 10": 1}
        assert stats.language == {"de": 1}
        assert stats.version == {"1.17.0": 1}

    async def test_other_clients_skipped(self, ledger, aggregator, store, now):
        browser = headers(**{"User-Agent": "Mozilla/5.0"})
        assert not await update_popularity_contest(browser, ledger, aggregator, now)
        assert store.data == {}

    async def test_empty_info_skipped(self, ledger, aggregator, store, now):
        assert not await update_popularity_contest(headers(**{"User-Agent": "Deskflow"}), ledger, aggregator, now)
        assert store.data == {}

    async def test_missing_address(self, ledger, aggregator, now):
        with pytest.raises(ConfigurationError):
            await update_popularity_contest(httpx.Headers({"User-Agent": UA}), ledger, aggregator, now)

    async def test_concurrent_duplicates_both_counted(self, now):
        # Known gap: the ledger has no compare-and-swap, so both votes see "not yet voted".
        ledger = VoteLedger(InterleavingStore())
        aggregator = StatsAggregator(InterleavingStore())
        results = await asyncio.gather(
            update_popularity_contest(headers(), ledger, aggregator, now),
            update_popularity_contest(headers(), ledger, aggregator, now),
        )
        assert results == [True, True]


class TestDetach:
    async def test_guarded_logs_aggregation_errors(self, ledger, aggregator, now, log_messages):
        result = await guarded(update_popularity_contest(httpx.Headers({"User-Agent": UA}), ledger, aggregator, now))
        assert result is None
        assert log_messages == ["Error updating popularity contest: Missing header: cf-connecting-ip"]

    async def test_guarded_logs_store_errors(self, now, log_messages):
        failing = VoteLedger(MemoryStore(fail_writes=True))
        await guarded(update_popularity_contest(headers(), failing, StatsAggregator(MemoryStore()), now))
        assert len(log_messages) == 1

    async def test_guarded_passes_result(self, ledger, aggregator, now):
        assert await guarded(update_popularity_contest(headers(), ledger, aggregator, now)) is True

    async def test_schedule_receives_guarded_coroutine(self, ledger, aggregator, store, now):
        scheduled = []
        detach(update_popularity_contest(headers(), ledger, aggregator, now), scheduled.append)
        assert len(scheduled) == 1
        assert await scheduled[0] is True
        assert "2024-04" in store.data

    async def test_default_schedule_runs_on_loop(self, now, log_messages):
        failing = VoteLedger(MemoryStore(fail_writes=True))
        task = detach(update_popularity_contest(headers(), failing, StatsAggregator(MemoryStore()), now))
        assert await task is None
        assert any("popularity contest" in message for message in log_messages)

    async def test_store_error_type(self, now):
        failing = VoteLedger(MemoryStore(fail_writes=True))
        with pytest.raises(StoreWriteError):
            await update_popularity_contest(headers(), failing, StatsAggregator(MemoryStore()), now)
