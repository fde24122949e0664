"""
Key-value stores behind the version cache, vote ledger and monthly stats.

Every store is an async per-key read/write map. Nothing here offers
multi-key transactions or compare-and-swap: callers that read, modify and
write the same key can lose updates under concurrent invocations.
"""

import json
from typing import Any, Protocol

from loguru import logger

from deskflow_api.errors import StoreWriteError


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def put(self, key: str, value: str) -> None: ...


class MetadataStore(Protocol):
    async def get_with_metadata(self, key: str) -> tuple[str | None, dict | None]: ...

    async def put(self, key: str, value: str, metadata: dict | None = None) -> None: ...


async def maybe_await(value):
    return await value if hasattr(value, "__await__") else value


def _field(obj, name: str):
    """Read a field from a dict-like or attribute-style (JS proxy) object."""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _to_py(obj):
    to_py = getattr(obj, "to_py", None)
    if callable(to_py):
        return to_py()
    return obj


class MemoryStore:
    """In-process store used by tests and the local CLI."""

    def __init__(self, fail_writes: bool = False):
        self.data: dict[str, str] = {}
        self.metadata: dict[str, dict | None] = {}
        self.fail_writes = fail_writes
        self.writes = 0

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def get_with_metadata(self, key: str) -> tuple[str | None, dict | None]:
        return self.data.get(key), self.metadata.get(key)

    async def put(self, key: str, value: str, metadata: dict | None = None) -> None:
        if self.fail_writes:
            raise StoreWriteError(f"Write rejected for key {key!r}")
        self.data[key] = value
        self.metadata[key] = dict(metadata) if metadata is not None else None
        self.writes += 1


class WorkersKVStore:
    """
    Workers KV namespace binding.

    `to_js` converts the put options into a JS object; the entrypoint passes
    pyodide's converter, tests leave it unset.
    """

    def __init__(self, binding, to_js=None):
        self._binding = binding
        self._to_js = to_js

    async def get(self, key: str) -> str | None:
        value = await maybe_await(self._binding.get(key))
        return value if isinstance(value, str) else None

    async def get_with_metadata(self, key: str) -> tuple[str | None, dict | None]:
        result = await maybe_await(self._binding.getWithMetadata(key))
        value = _field(result, "value")
        metadata = _to_py(_field(result, "metadata"))
        if not isinstance(value, str):
            value = None
        if not isinstance(metadata, dict):
            metadata = None if metadata is None else {
                "fetchedAt": _field(metadata, "fetchedAt"),
            }
        return value, metadata

    async def put(self, key: str, value: str, metadata: dict | None = None) -> None:
        try:
            if metadata is None:
                await maybe_await(self._binding.put(key, value))
                return
            options: Any = {"metadata": metadata}
            if self._to_js is not None:
                options = self._to_js(options)
            await maybe_await(self._binding.put(key, value, options))
        except Exception as e:
            raise StoreWriteError(f"KV put failed for key {key!r}: {e}") from e


class DurableObjectStore:
    """Stub of a SlowKV Durable Object: slower than KV but without daily limits."""

    def __init__(self, stub):
        self._stub = stub

    async def get(self, key: str) -> str | None:
        value = await maybe_await(self._stub.get_string(key))
        return value if isinstance(value, str) else None

    async def put(self, key: str, value: str) -> None:
        try:
            await maybe_await(self._stub.set(key, value))
        except Exception as e:
            raise StoreWriteError(f"Durable Object write failed for key {key!r}: {e}") from e


async def read_json(store: KeyValueStore, key: str, default=None):
    raw = await store.get(key)
    if not raw:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("Ignoring unreadable JSON stored under {}", key)
        return default


async def write_json(store: KeyValueStore, key: str, payload) -> None:
    await store.put(key, json.dumps(payload))
