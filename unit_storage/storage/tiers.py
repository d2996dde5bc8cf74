"""
Uniform adapters over the individual stores so the orchestrator can treat
every tier the same way.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

from unit_storage.api.cloud import CloudDrive
from unit_storage.api.remote import RemoteRepository
from unit_storage.exceptions import (
    MalformedDataError,
    RemoteFileNotFoundError,
    TierWriteError,
)
from unit_storage.models.entry import TierName
from unit_storage.models.tier_config import TierConfig

from .cache import ExpiringCache
from .preferences import LocalStore, PreferenceStore, SessionStore

log = logging.getLogger(__name__)


class Tier(ABC):
    """One storage tier as seen by the orchestrator."""

    name: TierName
    #: Whether values can be written to this tier.
    writable: bool = True
    #: Whether write failures only produce a warning.
    advisory: bool = False

    def enabled(self, config: TierConfig) -> bool:
        return config.is_enabled(self.name)

    @abstractmethod
    async def has(self, key: str, config: TierConfig) -> bool: ...

    @abstractmethod
    async def get(self, key: str, config: TierConfig) -> Any:
        """Returns the stored value (ciphertext for secure values) or None."""

    @abstractmethod
    async def set(
        self, key: str, value: Any, config: TierConfig, secure: bool = False
    ) -> Any: ...

    async def delete(self, key: str, config: TierConfig | None = None) -> bool:
        return False

    def is_secure(self, key: str, config: TierConfig) -> bool:
        """Whether the value stored for ``key`` is ciphertext."""
        return False

    async def start(self) -> None:
        """Starts background work such as prune timers."""

    async def close(self) -> None:
        """Stops background work and releases connections."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name.value}>"


class CacheTier(Tier):
    name = TierName.CACHE

    def __init__(self, cache: ExpiringCache | None = None):
        self.cache = cache if cache is not None else ExpiringCache()
        self._secure: set[str] = set()

    async def has(self, key: str, config: TierConfig) -> bool:
        return self.cache.has(key)

    async def get(self, key: str, config: TierConfig) -> Any:
        entry = self.cache.get(key)
        return entry.value if entry is not None else None

    async def set(
        self, key: str, value: Any, config: TierConfig, secure: bool = False
    ) -> None:
        self.cache.set(key, value, config.ttl_for(self.name))
        if secure:
            self._secure.add(key)
        else:
            self._secure.discard(key)

    async def delete(self, key: str, config: TierConfig | None = None) -> bool:
        return self.discard(key)

    def discard(self, key: str) -> bool:
        self._secure.discard(key)
        return self.cache.delete(key)

    def is_secure(self, key: str, config: TierConfig) -> bool:
        return key in self._secure

    def clear(self) -> None:
        self.cache.clear()
        self._secure.clear()

    async def start(self) -> None:
        if self.cache.prune_interval_ms > 0:
            self.cache.start_prune_timer()

    async def close(self) -> None:
        self.cache.stop_prune_timer()


class _PreferenceTier(Tier):
    def __init__(self, store: PreferenceStore):
        self.store = store

    async def has(self, key: str, config: TierConfig) -> bool:
        return await self.store.has_preference(key)

    async def get(self, key: str, config: TierConfig) -> Any:
        # Decryption is decided by the orchestrator, so no private key here.
        return await self.store.get_preference(key)

    async def set(
        self, key: str, value: Any, config: TierConfig, secure: bool = False
    ) -> None:
        await self.store.set_preference(
            key, value, ttl_ms=config.ttl_for(self.name), secure=secure
        )

    async def delete(self, key: str, config: TierConfig | None = None) -> bool:
        return await self.store.delete_preference(key)

    def is_secure(self, key: str, config: TierConfig) -> bool:
        return self.store.registry.is_secure(key)

    async def start(self) -> None:
        if self.store.prune_interval_ms > 0:
            self.store.start_prune_timer()

    async def close(self) -> None:
        self.store.stop_prune_timer()


class SessionTier(_PreferenceTier):
    name = TierName.SESSION

    def __init__(self, store: SessionStore | None = None):
        super().__init__(store if store is not None else SessionStore())


class LocalTier(_PreferenceTier):
    name = TierName.LOCAL

    def __init__(self, store: LocalStore):
        super().__init__(store)

    async def start(self) -> None:
        await self.store.load_registry()
        await super().start()


class CloudTier(Tier):
    """
    The cloud drive file named by ``config.google_id``.

    The key is not part of the cloud address; one call maps to one file.
    Writes are advisory.
    """

    name = TierName.CLOUD
    advisory = True

    def __init__(self, drive: CloudDrive):
        self.drive = drive

    async def has(self, key: str, config: TierConfig) -> bool:
        return await self.drive.exists(config.google_id)

    async def get(self, key: str, config: TierConfig) -> Any:
        try:
            text = await self.drive.download_raw(config.google_id)
        except RemoteFileNotFoundError:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedDataError(
                f"Cloud file {config.google_id} for '{key}' is not valid JSON: {e}"
            ) from e

    async def set(
        self, key: str, value: Any, config: TierConfig, secure: bool = False
    ) -> str:
        """
        Overwrites the file ``google_id``, or creates a file named after it
        when there is none yet.

        Returns:
            The id of the written file; a new id when the file was created.
        """
        content = json.dumps(value)
        if await self.drive.exists(config.google_id):
            result = await self.drive.update_raw(
                config.google_id, content, "application/json"
            )
        else:
            result = await self.drive.upload_raw(
                config.google_id, content, "application/json"
            )
            log.info(
                f"Created cloud file '{config.google_id}' for '{key}' as {result.get('id')}"
            )
        file_id = result.get("id", config.google_id)
        self.drive.secure_files.register(file_id, secure=secure)
        return file_id

    def is_secure(self, key: str, config: TierConfig) -> bool:
        return self.drive.secure_files.is_secure(config.google_id)

    async def close(self) -> None:
        await self.drive.close()


class RemoteTier(Tier):
    """The read-only repository file named by ``config.github_filename``."""

    name = TierName.REMOTE
    writable = False

    def __init__(self, repository: RemoteRepository):
        self.repository = repository

    async def has(self, key: str, config: TierConfig) -> bool:
        return await self.repository.has(config.github_filename)

    async def get(self, key: str, config: TierConfig) -> Any:
        try:
            return await self.repository.get(config.github_filename, "json")
        except RemoteFileNotFoundError:
            return None

    async def set(
        self, key: str, value: Any, config: TierConfig, secure: bool = False
    ) -> None:
        raise TierWriteError("The remote repository tier is read-only.")

    async def close(self) -> None:
        await self.repository.close()
