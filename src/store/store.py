"""Store abstraction for API keys and rate limit windows + local implementations."""

import asyncio
import dataclasses
import hmac
import json
import os
from abc import ABC, abstractmethod
from datetime import datetime

from src.keys.models import ApiKey, WindowRecord, WindowType, window_id


class StoreError(Exception):
    """Any failure talking to the backing store."""


class UniqueViolation(StoreError):
    """A row with the same identity already exists (window triple, or key id/hash)."""


class KeyStore(ABC):
    """Issued keys: lookup, the last_used_at refresh, and insertion by issuers."""

    @abstractmethod
    async def find_by_hash(self, key_hash: str, key_prefix: str) -> ApiKey | None:
        """Look up a key by hash and prefix. Returns None if not found."""
        ...

    @abstractmethod
    async def touch_last_used(self, key_id: str, at: datetime) -> None:
        ...

    @abstractmethod
    async def insert_key(self, key: ApiKey) -> None:
        """Persist a newly issued key. Raises UniqueViolation on a duplicate id or hash."""
        ...


class WindowStore(ABC):
    """Row operations on rate limit window counters."""

    @abstractmethod
    async def get_window(
        self, key_id: str, window_start: datetime, window_type: WindowType
    ) -> WindowRecord | None:
        ...

    @abstractmethod
    async def insert_window(
        self, key_id: str, window_start: datetime, window_type: WindowType
    ) -> WindowRecord:
        """Create a row with request_count=1. Raises UniqueViolation if it exists."""
        ...

    @abstractmethod
    async def increment_window(self, record: WindowRecord) -> int:
        """Add one to an existing row and return the stored count."""
        ...

    @abstractmethod
    async def delete_windows_before(self, cutoff: datetime) -> int:
        """Delete rows whose window_start is older than cutoff. Returns rows deleted."""
        ...


class GatewayStore(KeyStore, WindowStore, ABC):
    """Both relations the gateway owns, behind one injected handle."""

    @abstractmethod
    async def ping(self) -> None:
        """Cheap round-trip to the backend. Raises StoreError if unreachable."""
        ...


class InMemoryStore(GatewayStore):
    """Dict-backed store. Every operation yields to the event loop once,
    the way a network round-trip would, so concurrent requests interleave."""

    def __init__(self, keys: list[ApiKey] | None = None):
        self._keys: dict[str, ApiKey] = {key.id: key for key in keys or []}
        self._windows: dict[str, WindowRecord] = {}

    async def ping(self) -> None:
        await asyncio.sleep(0)

    async def insert_key(self, key: ApiKey) -> None:
        await asyncio.sleep(0)
        for existing in self._keys.values():
            if existing.id == key.id or existing.key_hash == key.key_hash:
                raise UniqueViolation(key.id)
        self._keys[key.id] = key

    async def find_by_hash(self, key_hash: str, key_prefix: str) -> ApiKey | None:
        await asyncio.sleep(0)

        match: ApiKey | None = None
        for key in self._keys.values():
            # Always iterate all keys to maintain constant-time behavior
            if hmac.compare_digest(key_hash, key.key_hash) and key.key_prefix == key_prefix:
                match = key
        return match

    async def touch_last_used(self, key_id: str, at: datetime) -> None:
        await asyncio.sleep(0)
        key = self._keys.get(key_id)
        if key is not None:
            key.last_used_at = at

    async def get_window(
        self, key_id: str, window_start: datetime, window_type: WindowType
    ) -> WindowRecord | None:
        await asyncio.sleep(0)
        record = self._windows.get(window_id(key_id, window_start, window_type))
        return dataclasses.replace(record) if record is not None else None

    async def insert_window(
        self, key_id: str, window_start: datetime, window_type: WindowType
    ) -> WindowRecord:
        await asyncio.sleep(0)
        wid = window_id(key_id, window_start, window_type)
        if wid in self._windows:
            raise UniqueViolation(wid)
        record = WindowRecord(api_key_id=key_id, window_start=window_start, window_type=window_type)
        self._windows[wid] = record
        return dataclasses.replace(record)

    async def increment_window(self, record: WindowRecord) -> int:
        await asyncio.sleep(0)
        stored = self._windows.get(window_id(record.api_key_id, record.window_start, record.window_type))
        if stored is None:
            raise StoreError("window row disappeared before increment")
        stored.request_count += 1
        return stored.request_count

    async def delete_windows_before(self, cutoff: datetime) -> int:
        await asyncio.sleep(0)
        stale = [wid for wid, record in self._windows.items() if record.window_start < cutoff]
        for wid in stale:
            del self._windows[wid]
        return len(stale)


class JSONKeyStore(InMemoryStore):
    """Keys loaded from a JSON file (reloaded on mtime change), windows in memory."""

    def __init__(self, path: str):
        super().__init__()
        self._path = path
        self._last_mtime: float = 0.0
        self._load()

    def _load(self) -> None:
        """Load key records from the JSON file."""
        try:
            mtime = os.path.getmtime(self._path)
        except OSError:
            self._keys = {}
            return

        if mtime == self._last_mtime and self._keys:
            return

        with open(self._path, encoding="utf-8") as f:
            data = json.load(f)

        keys = [ApiKey.from_record(entry) for entry in data.get("api_keys", [])]
        self._keys = {key.id: key for key in keys}
        self._last_mtime = mtime

    async def find_by_hash(self, key_hash: str, key_prefix: str) -> ApiKey | None:
        self._load()  # reload if file changed
        return await super().find_by_hash(key_hash, key_prefix)

    async def insert_key(self, key: ApiKey) -> None:
        self._load()
        await super().insert_key(key)
        self._save()

    async def ping(self) -> None:
        try:
            self._load()
        except (OSError, ValueError) as e:
            raise StoreError(f"cannot read {self._path}: {e}") from e

    def _save(self) -> None:
        """Write all key records back, replacing the file in one step."""
        data = {"api_keys": [key.to_record() for key in self._keys.values()]}
        tmp_path = f"{self._path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self._path)
        self._last_mtime = os.path.getmtime(self._path)
