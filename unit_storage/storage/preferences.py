"""
Key/value preference stores backing the session and local tiers.

Both stores keep entries with an optional expiry, track their keys in a
``KeyRegistry`` and can hold values encrypted for a recipient public key.
The session store lives in process memory; the local store keeps one JSON
file per key so entries survive restarts.
"""

import asyncio
import json
import logging
import os
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiofiles

from unit_storage import crypto
from unit_storage.models.entry import Entry, Err
from unit_storage.models.settings import DEFAULT_REGISTRY_PRUNE_INTERVAL_MS
from unit_storage.utils.paths import storage_filename
from unit_storage.utils.prune_timer import PruneTimer

from .cache import epoch_ms
from .registry import KeyRegistry

log = logging.getLogger(__name__)


@dataclass
class StoredRecord:
    """An entry as persisted by a preference store."""

    key: str
    entry: Entry
    secure: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, **self.entry.to_dict(), "secure": self.secure}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StoredRecord":
        return cls(
            key=data["key"],
            entry=Entry.from_dict(data),
            secure=bool(data.get("secure", False)),
        )


class PreferenceStore(ABC):
    """
    Shared behaviour of the session and local stores.

    Subclasses only provide raw record IO; expiry, registry bookkeeping and
    encryption live here.
    """

    #: Label used in log messages.
    label = "preference"

    def __init__(
        self,
        prune_interval_ms: int = DEFAULT_REGISTRY_PRUNE_INTERVAL_MS,
        clock: Callable[[], int] = epoch_ms,
    ):
        self.registry = KeyRegistry()
        self.prune_interval_ms = prune_interval_ms
        self._clock = clock
        self._timer = PruneTimer(self.prune, name=f"{self.label} prune")

    @abstractmethod
    async def _read_record(self, key: str) -> StoredRecord | None: ...

    @abstractmethod
    async def _write_record(self, record: StoredRecord) -> None: ...

    @abstractmethod
    async def _remove_record(self, key: str) -> bool: ...

    @abstractmethod
    async def _clear_records(self) -> None: ...

    async def _live_record(self, key: str) -> StoredRecord | None:
        record = await self._read_record(key)
        if record is None:
            return None
        if record.entry.is_expired(self._clock()):
            log.debug(f"{self.label}: evicting expired key '{key}'")
            await self._remove_record(key)
            self.registry.unregister(key)
            return None
        return record

    async def set_preference(
        self, key: str, value: Any, ttl_ms: int | None = None, secure: bool = False
    ) -> None:
        """
        Stores ``value`` under ``key``.

        ``secure`` marks a value that is already ciphertext, for example one
        copied from a slower tier during backfill.
        """
        entry = Entry.create(value, ttl_ms, self._clock())
        await self._write_record(StoredRecord(key=key, entry=entry, secure=secure))
        self.registry.register_entry(key, entry, secure=secure)

    async def set_secure_preference(
        self, key: str, value: Any, public_key: Any, ttl_ms: int | None = None
    ) -> None:
        """Encrypts ``value`` for ``public_key`` and stores the ciphertext."""
        token = crypto.encrypt(public_key, value)
        await self.set_preference(key, token, ttl_ms=ttl_ms, secure=True)

    async def get_preference(self, key: str, private_key: Any = None) -> Any:
        """
        Returns the stored value or None if absent or expired.

        A secure value is decrypted when ``private_key`` is given; if that
        fails the stored ciphertext is returned unchanged.
        """
        record = await self._live_record(key)
        if record is None:
            return None
        value = record.entry.value
        if private_key is not None and record.secure:
            result = crypto.try_decrypt(private_key, value)
            if isinstance(result, Err):
                log.debug(
                    f"{self.label}: could not decrypt '{key}', returning stored "
                    f"value ({result.error})"
                )
                return value
            return result.value
        return value

    async def get_record(self, key: str) -> StoredRecord | None:
        """Returns the live record including its secure flag."""
        return await self._live_record(key)

    async def has_preference(self, key: str) -> bool:
        return await self._live_record(key) is not None

    async def delete_preference(self, key: str) -> bool:
        self.registry.unregister(key)
        return await self._remove_record(key)

    async def clear(self) -> None:
        await self._clear_records()
        self.registry.clear()

    def get_all_keys(self) -> list[str]:
        return self.registry.keys()

    def get_all_secure_keys(self) -> list[str]:
        return self.registry.secure_keys()

    def register_key(
        self, key: str, expires_at_ms: int | None = None, secure: bool = False
    ) -> None:
        self.registry.register(key, expires_at_ms, secure)

    async def prune(self) -> int:
        """Removes every registered key that has expired."""
        expired = self.registry.prune(self._clock())
        for key in expired:
            await self._remove_record(key)
        if expired:
            log.debug(f"{self.label} prune: removed {len(expired)} expired keys.")
        return len(expired)

    def start_prune_timer(self, interval_ms: int | None = None) -> None:
        if interval_ms is not None:
            self.prune_interval_ms = interval_ms
        self._timer.start(self.prune_interval_ms)

    def pause_prune_timer(self) -> None:
        self._timer.pause()

    def resume_prune_timer(self) -> None:
        self._timer.resume()

    def stop_prune_timer(self) -> None:
        self._timer.stop()


class SessionStore(PreferenceStore):
    """Preferences kept for the lifetime of the process."""

    label = "session"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._records: dict[str, StoredRecord] = {}

    async def _read_record(self, key: str) -> StoredRecord | None:
        return self._records.get(key)

    async def _write_record(self, record: StoredRecord) -> None:
        self._records[record.key] = record

    async def _remove_record(self, key: str) -> bool:
        return self._records.pop(key, None) is not None

    async def _clear_records(self) -> None:
        self._records.clear()


class LocalStore(PreferenceStore):
    """Preferences persisted as one JSON file per key in a directory."""

    label = "local"

    def __init__(self, directory: Path | str, **kwargs):
        super().__init__(**kwargs)
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        return self.directory / storage_filename(key)

    async def _read_record(self, key: str) -> StoredRecord | None:
        path = self._path_for(key)
        if not await asyncio.to_thread(path.is_file):
            return None
        record = await self._load_file(path)
        if record is None or record.key != key:
            return None
        return record

    async def _load_file(self, path: Path) -> StoredRecord | None:
        try:
            async with aiofiles.open(path, encoding="utf-8") as f:
                data = json.loads(await f.read())
            return StoredRecord.from_dict(data)
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            log.warning(f"Discarding unreadable local entry {path.name}: {e}")
            await asyncio.to_thread(path.unlink, True)
            return None

    async def _write_record(self, record: StoredRecord) -> None:
        path = self._path_for(record.key)
        # One temp file per write; concurrent writes of a key race only on replace.
        tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(record.to_dict()))
        await asyncio.to_thread(os.replace, tmp_path, path)

    async def _remove_record(self, key: str) -> bool:
        path = self._path_for(key)
        try:
            await asyncio.to_thread(path.unlink)
            return True
        except FileNotFoundError:
            return False

    async def _clear_records(self) -> None:
        for path in await asyncio.to_thread(lambda: list(self.directory.glob("*.json"))):
            await asyncio.to_thread(path.unlink, True)

    async def load_registry(self) -> int:
        """
        Rebuilds the key registry from the files on disk, dropping expired ones.

        Returns:
            The number of keys registered.
        """
        now = self._clock()
        self.registry.clear()
        paths = await asyncio.to_thread(lambda: sorted(self.directory.glob("*.json")))
        for path in paths:
            record = await self._load_file(path)
            if record is None:
                continue
            if record.entry.is_expired(now):
                await asyncio.to_thread(path.unlink, True)
                continue
            self.registry.register_entry(record.key, record.entry, secure=record.secure)
        log.debug(f"Loaded {len(self.registry)} local keys from {self.directory}")
        return len(self.registry)
