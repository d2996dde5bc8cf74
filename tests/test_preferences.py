"""Tests for storage/preferences.py: session and local preference stores."""

import asyncio
import json

import pytest

from unit_storage import crypto
from unit_storage.storage.preferences import LocalStore, SessionStore
from unit_storage.utils.paths import storage_filename


@pytest.fixture(params=["session", "local"])
def store(request, tmp_path, clock):
    if request.param == "session":
        return SessionStore(clock=clock)
    return LocalStore(tmp_path / "prefs", clock=clock)


class TestPreferenceStore:
    """Behaviour shared by both stores."""

    async def test_set_and_get(self, store):
        await store.set_preference("members", {"members": [{"foo": "bar"}]}, ttl_ms=1000)
        assert await store.get_preference("members") == {"members": [{"foo": "bar"}]}
        assert await store.has_preference("members")
        assert store.get_all_keys() == ["members"]

    async def test_expired_value_is_evicted_and_unregistered(self, store, clock):
        await store.set_preference("k", "v", ttl_ms=10)
        clock.advance(20)
        assert await store.get_preference("k") is None
        assert store.get_all_keys() == []

    async def test_zero_ttl_never_expires(self, store, clock):
        await store.set_preference("k", "v", ttl_ms=0)
        clock.advance(10**10)
        assert await store.get_preference("k") == "v"

    async def test_secure_value_round_trip(self, store, key_pair):
        await store.set_secure_preference("token", {"pin": 1234}, key_pair.public_key)
        stored = await store.get_preference("token")
        assert isinstance(stored, str)
        assert await store.get_preference("token", key_pair.private_key) == {"pin": 1234}
        assert store.get_all_secure_keys() == ["token"]

    async def test_wrong_key_returns_stored_ciphertext(self, store, key_pair):
        other = crypto.generate_key_pair()
        await store.set_secure_preference("token", "secret", key_pair.public_key)
        stored = await store.get_preference("token")
        assert await store.get_preference("token", other.private_key) == stored

    async def test_private_key_ignored_for_plain_values(self, store, key_pair):
        await store.set_preference("plain", "hello")
        assert await store.get_preference("plain", key_pair.private_key) == "hello"

    async def test_get_record_exposes_secure_flag(self, store):
        await store.set_preference("k", "cipher", secure=True)
        record = await store.get_record("k")
        assert record.secure is True
        assert record.entry.value == "cipher"

    async def test_delete(self, store):
        await store.set_preference("k", "v")
        assert await store.delete_preference("k") is True
        assert await store.delete_preference("k") is False
        assert store.get_all_keys() == []

    async def test_prune_is_idempotent(self, store, clock):
        await store.set_preference("old", 1, ttl_ms=10)
        await store.set_preference("new", 2, ttl_ms=10_000)
        clock.advance(100)
        assert await store.prune() == 1
        assert await store.prune() == 0
        assert store.get_all_keys() == ["new"]
        assert await store.get_preference("old") is None

    async def test_clear(self, store):
        await store.set_preference("a", 1, secure=True)
        await store.set_preference("b", 2)
        await store.clear()
        assert store.get_all_keys() == []
        assert await store.get_preference("b") is None

    def test_register_key(self, store):
        store.register_key("external", expires_at_ms=5, secure=True)
        assert store.get_all_keys() == ["external"]
        assert store.get_all_secure_keys() == ["external"]


class TestLocalStore:

    async def test_entries_survive_restart(self, tmp_path, clock):
        first = LocalStore(tmp_path, clock=clock)
        await first.set_preference("keep", "v", ttl_ms=1000)
        await first.set_preference("secret", "cipher", secure=True)
        await first.set_preference("stale", "v", ttl_ms=10)
        clock.advance(50)

        second = LocalStore(tmp_path, clock=clock)
        assert await second.load_registry() == 2
        assert sorted(second.get_all_keys()) == ["keep", "secret"]
        assert second.get_all_secure_keys() == ["secret"]
        assert not (tmp_path / storage_filename("stale")).exists()

    async def test_file_layout(self, tmp_path, clock):
        store = LocalStore(tmp_path, clock=clock)
        await store.set_preference("a/b", [1, 2], ttl_ms=100)
        data = json.loads((tmp_path / storage_filename("a/b")).read_text())
        assert data == {
            "key": "a/b",
            "value": [1, 2],
            "expiresAtEpochMs": clock.now + 100,
            "secure": False,
        }
        assert list(tmp_path.glob("*.tmp")) == []

    async def test_unreadable_file_is_discarded(self, tmp_path, clock):
        store = LocalStore(tmp_path, clock=clock)
        path = tmp_path / storage_filename("broken")
        path.write_text("{not json")
        assert await store.get_preference("broken") is None
        assert not path.exists()

    def test_similar_keys_get_distinct_files(self):
        assert storage_filename("a/b") != storage_filename("a_b")
        assert storage_filename("a/b").endswith(".json")

    async def test_concurrent_writes_of_one_key(self, tmp_path, clock):
        store = LocalStore(tmp_path, clock=clock)
        results = await asyncio.gather(
            *(store.set_preference("members", {"n": i}, ttl_ms=0) for i in range(20)),
            return_exceptions=True,
        )
        assert [r for r in results if isinstance(r, Exception)] == []
        assert (await store.get_preference("members"))["n"] in range(20)
        assert list(tmp_path.glob("*.tmp")) == []
        assert store.get_all_keys() == ["members"]
