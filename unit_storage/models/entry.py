"""
Core value types shared by every tier: stored entries, tier names and
tagged read results.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class TierName(Enum):
    """Storage tiers, declared fastest first."""

    CACHE = "cache"
    SESSION = "session"
    LOCAL = "local"
    CLOUD = "cloud"
    REMOTE = "remote"

    @property
    def rank(self) -> int:
        """Position in the probe order (0 is probed first)."""
        return list(TierName).index(self)


@dataclass
class Entry:
    """A stored value with an optional absolute expiry in epoch milliseconds."""

    value: Any
    expires_at_ms: int | None = None

    @classmethod
    def create(cls, value: Any, ttl_ms: int | None, now_ms: int) -> "Entry":
        """Builds an entry; a missing or non-positive TTL never expires."""
        expires = now_ms + ttl_ms if ttl_ms is not None and ttl_ms > 0 else None
        return cls(value=value, expires_at_ms=expires)

    def is_expired(self, now_ms: int) -> bool:
        return self.expires_at_ms is not None and now_ms > self.expires_at_ms

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "expiresAtEpochMs": self.expires_at_ms}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Entry":
        return cls(value=data.get("value"), expires_at_ms=data.get("expiresAtEpochMs"))


class ErrorKind(Enum):
    """Classification of tier failures, used to decide what gets absorbed."""

    AUTH = "auth"
    TRANSIENT = "transient"
    MALFORMED = "malformed"
    DECRYPTION = "decryption"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Ok:
    value: Any


@dataclass(frozen=True)
class Miss:
    reason: str = "absent"


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    error: Exception


TierResult = Ok | Miss | Err
