"""
Per-store registry of known keys, their expiry and which of them hold
encrypted values.
"""

from unit_storage.models.entry import Entry


class KeyRegistry:
    """
    Tracks keys written to a preference store.

    The registry is used for enumeration and pruning only; the store itself
    stays authoritative for whether a key exists.
    """

    def __init__(self):
        self._expiry: dict[str, int | None] = {}
        self._secure: set[str] = set()

    def __len__(self) -> int:
        return len(self._expiry)

    def __contains__(self, key: str) -> bool:
        return key in self._expiry

    def register(
        self, key: str, expires_at_ms: int | None = None, secure: bool = False
    ) -> None:
        self._expiry[key] = expires_at_ms
        if secure:
            self._secure.add(key)
        else:
            self._secure.discard(key)

    def register_entry(self, key: str, entry: Entry, secure: bool = False) -> None:
        self.register(key, entry.expires_at_ms, secure)

    def unregister(self, key: str) -> None:
        """Removes ``key`` from both the key set and the secure set."""
        self._expiry.pop(key, None)
        self._secure.discard(key)

    def is_registered(self, key: str) -> bool:
        return key in self._expiry

    def is_secure(self, key: str) -> bool:
        return key in self._secure

    def expires_at(self, key: str) -> int | None:
        return self._expiry.get(key)

    def keys(self) -> list[str]:
        return list(self._expiry)

    def secure_keys(self) -> list[str]:
        return [key for key in self._expiry if key in self._secure]

    def clear(self) -> None:
        self._expiry.clear()
        self._secure.clear()

    def expired_keys(self, now_ms: int) -> list[str]:
        return [
            key
            for key, expires in self._expiry.items()
            if expires is not None and now_ms > expires
        ]

    def prune(self, now_ms: int) -> list[str]:
        """Unregisters expired keys and returns them so the store can drop them."""
        expired = self.expired_keys(now_ms)
        for key in expired:
            self.unregister(key)
        return expired
