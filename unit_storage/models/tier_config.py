"""
Pydantic model for the per-call tier configuration.
"""

from typing import Any

from pydantic import BaseModel, Field

from .entry import TierName


class TierConfig(BaseModel):
    """
    Selects which tiers a single get/set call may use and with which TTLs.

    A fast tier is enabled only when its TTL is present (0 or less means the
    value never expires). The cloud tier is enabled by ``google_id`` and the
    remote tier by ``github_filename``. The camelCase names used by the web
    front end are accepted as aliases.
    """

    cache_ttl_ms: int | None = Field(default=None, alias="cacheTtlMs")
    session_ttl_ms: int | None = Field(default=None, alias="sessionTtlMs")
    local_ttl_ms: int | None = Field(default=None, alias="localTtlMs")
    google_id: str | None = Field(default=None, alias="googleId")
    github_filename: str | None = Field(default=None, alias="githubFilename")
    public_key: Any = Field(default=None, alias="publicKey", repr=False)
    private_key: Any = Field(default=None, alias="privateKey", repr=False)
    secure: bool = False

    class Config:
        """Pydantic model configuration."""

        populate_by_name = True
        arbitrary_types_allowed = True

    @classmethod
    def coerce(cls, config: "TierConfig | dict[str, Any] | None") -> "TierConfig":
        """Accepts a model, a plain mapping (either naming style) or None."""
        if config is None:
            return cls()
        if isinstance(config, cls):
            return config
        return cls.model_validate(config)

    def ttl_for(self, tier: TierName) -> int | None:
        """Returns the configured TTL of a fast tier, None for the others."""
        return {
            TierName.CACHE: self.cache_ttl_ms,
            TierName.SESSION: self.session_ttl_ms,
            TierName.LOCAL: self.local_ttl_ms,
        }.get(tier)

    def is_enabled(self, tier: TierName) -> bool:
        if tier is TierName.CLOUD:
            return bool(self.google_id)
        if tier is TierName.REMOTE:
            return bool(self.github_filename)
        return self.ttl_for(tier) is not None

    def enabled_tiers(self) -> list[TierName]:
        return [tier for tier in TierName if self.is_enabled(tier)]
