"""
Coordinates reads and writes across the storage tiers.

Reads probe the enabled tiers fastest first and copy a hit into the faster
tiers that missed it (backfill). Writes fan out to every enabled writable
tier; the fast tiers must succeed while cloud writes are advisory.
"""

import asyncio
import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import aiohttp

from unit_storage import crypto
from unit_storage.api.remote import RemoteRepository
from unit_storage.exceptions import (
    AuthenticationError,
    ConfigurationError,
    DecryptionError,
    MalformedDataError,
    RemoteFetchError,
    TierUnavailableError,
    TierWriteError,
    TransientNetworkError,
)
from unit_storage.models.entry import Err, ErrorKind, Miss, Ok, TierName, TierResult
from unit_storage.models.settings import StorageSettings
from unit_storage.models.stats import StorageStats
from unit_storage.models.tier_config import TierConfig
from unit_storage.utils.circuit_breaker import CircuitBreakerError
from unit_storage.utils.structured_logger import (
    StructuredLogger,
    TierEventLogger,
    create_structured_logger,
)

from .cache import ExpiringCache
from .preferences import LocalStore, SessionStore
from .tiers import CacheTier, CloudTier, LocalTier, RemoteTier, SessionTier, Tier

log = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (
    TransientNetworkError,
    RemoteFetchError,
    CircuitBreakerError,
    aiohttp.ClientError,
    asyncio.TimeoutError,
    OSError,
)


def classify_error(error: Exception) -> ErrorKind:
    """Maps an exception raised by a tier to the kind the read policy uses."""
    if isinstance(error, AuthenticationError):
        return ErrorKind.AUTH
    if isinstance(error, MalformedDataError):
        return ErrorKind.MALFORMED
    if isinstance(error, DecryptionError):
        return ErrorKind.DECRYPTION
    if isinstance(error, ConfigurationError):
        return ErrorKind.CONFIGURATION
    if isinstance(error, _TRANSIENT_ERRORS):
        return ErrorKind.TRANSIENT
    return ErrorKind.UNKNOWN


@dataclass
class Lookup:
    """Outcome of a read: the value (None if not found) and where it came from."""

    value: Any = None
    source: TierName | None = None
    backfilled: list[TierName] = field(default_factory=list)
    #: Id of a cloud file created while backfilling, to be kept as ``googleId``.
    cloud_file_id: str | None = None

    @property
    def found(self) -> bool:
        return self.source is not None


@dataclass
class WriteReport:
    """Which tiers a write reached and which advisory tiers failed."""

    written: list[TierName] = field(default_factory=list)
    failed: dict[TierName, str] = field(default_factory=dict)
    cloud_file_id: str | None = None


class StorageOrchestrator:
    """
    Multi-tier key/value storage with ordered probing and backfill.
    """

    def __init__(
        self,
        tiers: Iterable[Tier],
        background_backfill: bool = False,
        event_logger: TierEventLogger | None = None,
    ):
        """
        Args:
            tiers: The available tiers; at most one per tier name.
            background_backfill: Schedule backfill writes as tasks instead of
                awaiting them before the read returns.
            event_logger: Structured logger for tier events.
        """
        self._tiers: dict[TierName, Tier] = {}
        for tier in tiers:
            if tier.name in self._tiers:
                raise ConfigurationError(f"Duplicate tier: {tier.name.value}")
            self._tiers[tier.name] = tier
        self.background_backfill = background_backfill
        self.stats = StorageStats()
        if event_logger is None:
            _, event_logger = create_structured_logger()
        self.events = event_logger
        self._pending: set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls,
        settings: StorageSettings,
        cloud: Any = None,
        remote: Any = None,
    ) -> "StorageOrchestrator":
        """
        Builds the default tier stack from validated settings.

        ``cloud`` (a ``CloudDrive``) is optional because it needs a signed-in
        user; ``remote`` overrides the repository client built from settings.
        """
        tiers: list[Tier] = [
            CacheTier(ExpiringCache(prune_interval_ms=settings.cache_prune_interval_ms)),
            SessionTier(SessionStore(prune_interval_ms=settings.session_prune_interval_ms)),
            LocalTier(
                LocalStore(
                    settings.local_storage_dir,
                    prune_interval_ms=settings.local_prune_interval_ms,
                )
            ),
        ]
        if cloud is not None:
            tiers.append(CloudTier(cloud))
        if remote is None:
            remote = RemoteRepository(
                settings.repo_owner,
                settings.repo_name,
                settings.data_path,
                settings.branch,
                default_token=settings.github_token or None,
                max_retries=settings.remote_retries,
                backoff_ms=settings.remote_backoff_ms,
            )
        tiers.append(RemoteTier(remote))

        event_logger = None
        if settings.log_dir:
            base = StructuredLogger(
                "unit_storage.events", log_dir=Path(settings.log_dir), enable_json=True
            )
            event_logger = TierEventLogger(base)
        return cls(
            tiers,
            background_backfill=settings.background_backfill,
            event_logger=event_logger,
        )

    # Tier access

    @property
    def tiers(self) -> list[Tier]:
        """Available tiers in probe order."""
        return sorted(self._tiers.values(), key=lambda t: t.name.rank)

    def has_tier(self, name: TierName) -> bool:
        return name in self._tiers

    def tier(self, name: TierName) -> Tier:
        try:
            return self._tiers[name]
        except KeyError:
            raise ConfigurationError(
                f"Storage is not available: no {name.value} tier configured."
            ) from None

    def _enabled_tiers(self, config: TierConfig) -> list[Tier]:
        enabled = []
        for name in config.enabled_tiers():
            tier = self._tiers.get(name)
            if tier is None:
                log.debug(f"Tier '{name.value}' is enabled for this call but not configured.")
                continue
            enabled.append(tier)
        return enabled

    # Lifecycle

    async def start(self) -> None:
        """Starts prune timers and loads persisted key registries."""
        for tier in self.tiers:
            await tier.start()

    async def close(self) -> None:
        await self.drain()
        for tier in self.tiers:
            await tier.close()
        self.events.logger.close()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    async def drain(self) -> None:
        """Waits for background backfill tasks to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # Reads

    async def _probe(self, tier: Tier, key: str, config: TierConfig) -> TierResult:
        try:
            if not await tier.has(key, config):
                return Miss()
            value = await tier.get(key, config)
        except Exception as e:  # classified below; unknown kinds are re-raised
            return Err(classify_error(e), e)
        if value is None:
            # Removed between the probe and the fetch.
            return Miss("vanished")
        return Ok(value)

    async def lookup(
        self, key: str, config: TierConfig | dict | None = None
    ) -> Lookup:
        """
        Finds ``key`` in the enabled tiers, fastest first.

        Raises:
            MalformedDataError: If a tier holds data that cannot be parsed.
            TierUnavailableError: If the last enabled tier failed with a
                network error and no tier had the key.
            DecryptionError: If ``config.secure`` is set with a private key
                and the value cannot be decrypted.
        """
        config = TierConfig.coerce(config)
        enabled = self._enabled_tiers(config)
        self.stats.lookups += 1

        missed: list[Tier] = []
        last_error: tuple[Tier, Exception] | None = None
        for index, tier in enumerate(enabled):
            started = time.monotonic()
            result = await self._probe(tier, key, config)

            if isinstance(result, Ok):
                self.stats.record_hit(tier.name)
                self.events.hit(key, tier.name.value, (time.monotonic() - started) * 1000)
                secure_source = tier.is_secure(key, config)
                backfilled, cloud_file_id = await self._backfill(
                    key, result.value, config, missed, tier, secure_source
                )
                value = self._reveal(key, result.value, config, secure_source)
                return Lookup(
                    value=value,
                    source=tier.name,
                    backfilled=backfilled,
                    cloud_file_id=cloud_file_id,
                )

            if isinstance(result, Miss):
                if tier.writable:
                    missed.append(tier)
                continue

            if result.kind in (ErrorKind.AUTH, ErrorKind.TRANSIENT):
                self.stats.record_tier_error(tier.name)
                self.events.tier_error(
                    key, tier.name.value, result.kind.value, str(result.error)
                )
                last_error = (tier, result.error)
                is_last = index == len(enabled) - 1
                if result.kind is ErrorKind.TRANSIENT and is_last:
                    raise TierUnavailableError(tier.name.value, result.error) from result.error
                continue

            raise result.error

        self.stats.not_found += 1
        self.events.not_found(key, [t.name.value for t in enabled])
        if last_error is not None:
            log.debug(
                f"'{key}' not found; {last_error[0].name.value} failed: {last_error[1]}"
            )
        return Lookup()

    async def get(self, key: str, config: TierConfig | dict | None = None) -> Any:
        """Returns the value for ``key`` or None if no enabled tier has it."""
        return (await self.lookup(key, config)).value

    def _reveal(self, key: str, value: Any, config: TierConfig, secure_source: bool) -> Any:
        if config.private_key is None:
            return value
        if config.secure:
            result = crypto.try_decrypt(config.private_key, value)
            if isinstance(result, Err):
                raise result.error
            return result.value
        if secure_source:
            result = crypto.try_decrypt(config.private_key, value)
            if isinstance(result, Ok):
                return result.value
            log.debug(f"Returning stored value of '{key}': {result.error}")
        return value

    async def _backfill(
        self,
        key: str,
        value: Any,
        config: TierConfig,
        missed: list[Tier],
        source: Tier,
        secure: bool,
    ) -> tuple[list[TierName], str | None]:
        """Returns the tiers written and, for the cloud tier, the written file id."""
        if not missed:
            return [], None
        secure = secure or config.secure
        targets = [t.name for t in missed]
        if self.background_backfill:
            task = asyncio.create_task(
                self._backfill_all(key, value, config, missed, source, secure)
            )
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            return targets, None
        results = await self._backfill_all(key, value, config, missed, source, secure)
        written = [name for name, stored in zip(targets, results) if stored is not None]
        cloud_file_id = next(
            (
                stored.value
                for name, stored in zip(targets, results)
                if name is TierName.CLOUD and stored is not None
            ),
            None,
        )
        return written, cloud_file_id

    async def _backfill_all(
        self,
        key: str,
        value: Any,
        config: TierConfig,
        missed: list[Tier],
        source: Tier,
        secure: bool,
    ) -> list[Ok | None]:
        return await asyncio.gather(
            *(self._backfill_one(t, key, value, config, source, secure) for t in missed)
        )

    async def _backfill_one(
        self,
        tier: Tier,
        key: str,
        value: Any,
        config: TierConfig,
        source: Tier,
        secure: bool,
    ) -> Ok | None:
        try:
            if await tier.has(key, config):
                return None
            stored = await tier.set(key, value, config, secure=secure)
        except Exception as e:  # a failed cache warm must never fail the read
            self.stats.record_backfill(tier.name, ok=False)
            self.events.backfill_failed(key, tier.name.value, str(e))
            return None
        self.stats.record_backfill(tier.name, ok=True)
        self.events.backfill_completed(key, tier.name.value, source.name.value)
        return Ok(stored)

    # Writes

    async def set(
        self, key: str, value: Any, config: TierConfig | dict | None = None
    ) -> WriteReport:
        """
        Writes ``value`` to every enabled writable tier concurrently.

        Raises:
            ConfigurationError: If ``secure`` is requested without a public key.
            TierWriteError: If a non-advisory tier failed; the other tiers
                were still written.
        """
        config = TierConfig.coerce(config)
        if config.secure and config.public_key is None:
            raise ConfigurationError("A public key is required for secure writes.")

        targets = [t for t in self._enabled_tiers(config) if t.writable]
        self.stats.writes += 1

        async def write(tier: Tier) -> Any:
            stored = crypto.encrypt(config.public_key, value) if config.secure else value
            return await tier.set(key, stored, config, secure=config.secure)

        results = await asyncio.gather(*(write(t) for t in targets), return_exceptions=True)

        report = WriteReport()
        required_failures: list[str] = []
        for tier, result in zip(targets, results):
            if isinstance(result, Exception):
                self.stats.record_write_failure(tier.name)
                self.events.write_failed(key, tier.name.value, str(result), tier.advisory)
                report.failed[tier.name] = str(result)
                if not tier.advisory:
                    required_failures.append(f"{tier.name.value}: {result}")
                continue
            report.written.append(tier.name)
            if tier.name is TierName.CLOUD:
                report.cloud_file_id = result

        if required_failures:
            raise TierWriteError(
                f"Failed to write '{key}' to " + "; ".join(required_failures)
            )
        self.events.write_completed(key, [t.value for t in report.written])
        return report

    async def delete(self, key: str, config: TierConfig | dict | None = None) -> list[TierName]:
        """Removes ``key`` from the cache, session and local tiers."""
        config = TierConfig.coerce(config) if config is not None else None
        removed = []
        for name in (TierName.CACHE, TierName.SESSION, TierName.LOCAL):
            tier = self._tiers.get(name)
            if tier is not None and await tier.delete(key, config):
                removed.append(name)
        return removed

    def clear_cache(self) -> None:
        self.tier(TierName.CACHE).clear()

    def delete_cache_key(self, key: str) -> bool:
        return self.tier(TierName.CACHE).discard(key)

    async def keys(self) -> dict[str, list[str]]:
        """Known keys per fast tier."""
        result: dict[str, list[str]] = {}
        for tier in self.tiers:
            if isinstance(tier, CacheTier):
                result[tier.name.value] = tier.cache.keys()
            elif isinstance(tier, (SessionTier, LocalTier)):
                result[tier.name.value] = tier.store.get_all_keys()
        return result

