"""Tests for storage/registry.py: KeyRegistry bookkeeping."""

from unit_storage.models.entry import Entry
from unit_storage.storage.registry import KeyRegistry


class TestKeyRegistry:

    def test_register_and_enumerate(self):
        registry = KeyRegistry()
        registry.register("a", 100)
        registry.register("b", None, secure=True)
        assert registry.keys() == ["a", "b"]
        assert registry.secure_keys() == ["b"]
        assert "a" in registry
        assert len(registry) == 2
        assert registry.expires_at("a") == 100

    def test_re_register_without_secure_clears_flag(self):
        registry = KeyRegistry()
        registry.register("k", secure=True)
        registry.register("k")
        assert not registry.is_secure("k")
        assert registry.is_registered("k")

    def test_unregister_removes_from_both_sets(self):
        registry = KeyRegistry()
        registry.register("k", secure=True)
        registry.unregister("k")
        assert not registry.is_registered("k")
        assert registry.secure_keys() == []

    def test_register_entry_uses_entry_expiry(self):
        registry = KeyRegistry()
        registry.register_entry("k", Entry.create("v", 50, now_ms=1000))
        assert registry.expires_at("k") == 1050

    def test_expired_keys_is_strict(self):
        registry = KeyRegistry()
        registry.register("a", 100)
        registry.register("b", 200)
        registry.register("c", None)
        assert registry.expired_keys(100) == []
        assert registry.expired_keys(101) == ["a"]

    def test_prune_unregisters_and_returns_expired(self):
        registry = KeyRegistry()
        registry.register("a", 100, secure=True)
        registry.register("b", None)
        assert registry.prune(500) == ["a"]
        assert registry.keys() == ["b"]
        assert registry.secure_keys() == []
        assert registry.prune(500) == []

    def test_clear(self):
        registry = KeyRegistry()
        registry.register("a", secure=True)
        registry.clear()
        assert len(registry) == 0
        assert not registry.is_secure("a")
