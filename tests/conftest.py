from datetime import datetime, timezone

import pytest
from loguru import logger

from deskflow_api.releases import Release
from deskflow_api.storage import MemoryStore


class FakeResolver:
    def __init__(self, tags: list[str] | None = None, error: Exception | None = None):
        self.tags = tags if tags is not None else ["v1.0.0"]
        self.error = error
        self.calls = 0

    async def list_recent_releases(self) -> list[Release]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return [Release(tag) for tag in self.tags]


@pytest.fixture
def now():
    return datetime(2024, 4, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def log_messages():
    messages: list[str] = []
    sink_id = logger.add(lambda message: messages.append(message.record["message"]), level="WARNING")
    yield messages
    logger.remove(sink_id)


@pytest.fixture
def fake_resolver():
    return FakeResolver()
