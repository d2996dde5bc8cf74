"""
Documents loaded through the storage orchestrator.

Each document is one JSON file published in the data repository. The
document fixes the storage key, the repository file name and how long each
fast tier may keep a copy; what the data means is up to the consumer.
"""

import asyncio
import logging
import time
from typing import Any

from unit_storage.exceptions import ConfigurationError, StorageTimeoutError
from unit_storage.models.tier_config import TierConfig
from unit_storage.storage.orchestrator import StorageOrchestrator, WriteReport

log = logging.getLogger(__name__)

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS


class StoredDocument:
    """
    Base class for a JSON document served by the storage tiers.

    Subclasses set ``filename`` and the per-tier TTLs. A TTL of None keeps
    the document out of that tier.
    """

    filename: str = ""
    storage_key: str | None = None
    cache_ttl_ms: int | None = None
    session_ttl_ms: int | None = None
    local_ttl_ms: int | None = None

    def __init__(
        self,
        storage: StorageOrchestrator | None,
        init_timeout_s: float | None = None,
        google_id: str | None = None,
    ):
        if not self.filename:
            raise ConfigurationError(f"{type(self).__name__} has no filename.")
        self.storage = storage
        self.init_timeout_s = init_timeout_s
        self.google_id = google_id
        self.data: Any = None
        self.last_fetched_ms: int | None = None
        self._load_task: asyncio.Task | None = None

    @property
    def key(self) -> str:
        return self.storage_key or self.filename

    @property
    def is_fetched(self) -> bool:
        return self.data is not None

    def _require_storage(self) -> StorageOrchestrator:
        if self.storage is None:
            raise ConfigurationError("Storage is not available.")
        return self.storage

    def storage_config(self, **overrides: Any) -> TierConfig:
        """Tier configuration used for every read and write of this document."""
        values = {
            "cache_ttl_ms": self.cache_ttl_ms,
            "session_ttl_ms": self.session_ttl_ms,
            "local_ttl_ms": self.local_ttl_ms,
            "google_id": self.google_id,
            "github_filename": self.filename,
        }
        values.update(overrides)
        return TierConfig(**values)

    async def fetch(self) -> Any:
        """Loads the document; leaves ``data`` as None when no tier has it."""
        storage = self._require_storage()
        self.data = await storage.get(self.key, self.storage_config())
        self.last_fetched_ms = int(time.time() * 1000)
        if self.data is None:
            log.warning(f"[yellow]{self.filename} was not found in any tier.[/yellow]")
        return self.data

    async def save(self, data: Any) -> WriteReport:
        """Writes the document to the fast tiers (and the cloud file, if any)."""
        storage = self._require_storage()
        report = await storage.set(self.key, data, self.storage_config())
        self.data = data
        return report

    async def ready(self) -> "StoredDocument":
        """
        Waits for the first load to finish.

        Raises:
            ConfigurationError: If no storage was supplied.
            StorageTimeoutError: If ``init_timeout_s`` elapsed first.
        """
        self._require_storage()
        if self._load_task is None:
            self._load_task = asyncio.create_task(self.fetch())
        try:
            if self.init_timeout_s is None:
                await asyncio.shield(self._load_task)
            else:
                await asyncio.wait_for(
                    asyncio.shield(self._load_task), timeout=self.init_timeout_s
                )
        except asyncio.TimeoutError:
            raise StorageTimeoutError(
                f"Loading {self.filename} timed out after {self.init_timeout_s}s."
            ) from None
        return self

    def is_stale(self, max_age_ms: int) -> bool:
        if self.last_fetched_ms is None:
            return True
        return int(time.time() * 1000) >= self.last_fetched_ms + max_age_ms


class ConfigurationDocument(StoredDocument):
    filename = "configuration.json"
    storage_key = "configuration"
    cache_ttl_ms = DAY_MS


class CallingsDocument(StoredDocument):
    filename = "callings.json"
    cache_ttl_ms = 30 * MINUTE_MS
    session_ttl_ms = HOUR_MS
    local_ttl_ms = 2 * HOUR_MS


class MembersDocument(StoredDocument):
    filename = "members.json"
    cache_ttl_ms = 30 * MINUTE_MS
    session_ttl_ms = HOUR_MS
    local_ttl_ms = 2 * HOUR_MS


class OrganizationsDocument(StoredDocument):
    filename = "organizations.json"
    cache_ttl_ms = 30 * MINUTE_MS
    session_ttl_ms = HOUR_MS
    local_ttl_ms = 2 * HOUR_MS


DOCUMENT_TYPES: dict[str, type[StoredDocument]] = {
    cls.filename: cls
    for cls in (
        ConfigurationDocument,
        CallingsDocument,
        MembersDocument,
        OrganizationsDocument,
    )
}
