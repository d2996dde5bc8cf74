"""Tests for entities.py: documents loaded through the orchestrator."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from unit_storage.entities import (
    DAY_MS,
    DOCUMENT_TYPES,
    HOUR_MS,
    ConfigurationDocument,
    MembersDocument,
    StoredDocument,
)
from unit_storage.exceptions import ConfigurationError, StorageTimeoutError
from unit_storage.models.entry import TierName
from unit_storage.storage.orchestrator import WriteReport

MEMBERS = {"members": [{"foo": "bar"}]}


@pytest.fixture
def storage():
    s = MagicMock()
    s.get = AsyncMock(return_value=MEMBERS)
    s.set = AsyncMock(return_value=WriteReport(written=[TierName.CACHE]))
    return s


class TestStorageConfig:

    def test_members_config(self, storage):
        config = MembersDocument(storage).storage_config()
        assert config.github_filename == "members.json"
        assert config.session_ttl_ms == HOUR_MS
        assert config.enabled_tiers() == [
            TierName.CACHE,
            TierName.SESSION,
            TierName.LOCAL,
            TierName.REMOTE,
        ]

    def test_configuration_uses_cache_only(self, storage):
        doc = ConfigurationDocument(storage)
        config = doc.storage_config()
        assert doc.key == "configuration"
        assert config.cache_ttl_ms == DAY_MS
        assert config.enabled_tiers() == [TierName.CACHE, TierName.REMOTE]

    def test_google_id_enables_cloud(self, storage):
        config = MembersDocument(storage, google_id="file-1").storage_config()
        assert config.is_enabled(TierName.CLOUD)

    def test_overrides(self, storage):
        config = MembersDocument(storage).storage_config(cache_ttl_ms=5)
        assert config.cache_ttl_ms == 5

    def test_filename_required(self, storage):
        class Nameless(StoredDocument):
            pass

        with pytest.raises(ConfigurationError):
            Nameless(storage)

    def test_registry_of_document_types(self):
        assert DOCUMENT_TYPES["members.json"] is MembersDocument
        assert len(DOCUMENT_TYPES) == 4


class TestLoading:

    async def test_fetch(self, storage):
        doc = MembersDocument(storage)
        assert await doc.fetch() == MEMBERS
        assert doc.is_fetched
        assert not doc.is_stale(HOUR_MS)
        key, config = storage.get.call_args[0]
        assert key == "members.json"
        assert config.github_filename == "members.json"

    async def test_fetch_not_found(self, storage):
        storage.get.return_value = None
        doc = MembersDocument(storage)
        assert await doc.fetch() is None
        assert not doc.is_fetched

    async def test_ready_loads_once(self, storage):
        doc = MembersDocument(storage)
        await asyncio.gather(doc.ready(), doc.ready())
        await doc.ready()
        storage.get.assert_awaited_once()
        assert doc.data == MEMBERS

    async def test_ready_times_out(self, storage):
        async def slow(*args):
            await asyncio.sleep(1)

        storage.get.side_effect = slow
        doc = MembersDocument(storage, init_timeout_s=0.01)
        with pytest.raises(StorageTimeoutError):
            await doc.ready()
        doc._load_task.cancel()

    async def test_missing_storage(self):
        doc = MembersDocument(None)
        with pytest.raises(ConfigurationError, match="Storage is not available"):
            await doc.ready()
        with pytest.raises(ConfigurationError):
            await doc.fetch()

    async def test_save(self, storage):
        doc = MembersDocument(storage)
        report = await doc.save(MEMBERS)
        assert report.written == [TierName.CACHE]
        assert doc.data == MEMBERS
        key, value, config = storage.set.call_args[0]
        assert (key, value) == ("members.json", MEMBERS)
        assert config.local_ttl_ms == 2 * HOUR_MS

    def test_never_fetched_is_stale(self, storage):
        assert MembersDocument(storage).is_stale(1)
