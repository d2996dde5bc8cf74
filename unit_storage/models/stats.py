"""
Counters describing how lookups and writes were served across tiers.
"""

from collections import Counter
from dataclasses import dataclass, field

from .entry import TierName


@dataclass
class StorageStats:
    """Tracks tier hits, backfills and absorbed failures for one orchestrator."""

    lookups: int = 0
    not_found: int = 0
    writes: int = 0
    hits: Counter = field(default_factory=Counter)
    backfills: Counter = field(default_factory=Counter)
    backfill_failures: Counter = field(default_factory=Counter)
    write_failures: Counter = field(default_factory=Counter)
    tier_errors: Counter = field(default_factory=Counter)

    def record_hit(self, tier: TierName) -> None:
        self.hits[tier.value] += 1

    def record_backfill(self, tier: TierName, ok: bool) -> None:
        if ok:
            self.backfills[tier.value] += 1
        else:
            self.backfill_failures[tier.value] += 1

    def record_write_failure(self, tier: TierName) -> None:
        self.write_failures[tier.value] += 1

    def record_tier_error(self, tier: TierName) -> None:
        self.tier_errors[tier.value] += 1

    @property
    def hit_rate(self) -> float:
        """Share of lookups that were served by any tier."""
        if not self.lookups:
            return 0.0
        return (self.lookups - self.not_found) / self.lookups

    def as_dict(self) -> dict[str, object]:
        return {
            "lookups": self.lookups,
            "not_found": self.not_found,
            "writes": self.writes,
            "hit_rate": round(self.hit_rate, 3),
            "hits": dict(self.hits),
            "backfills": dict(self.backfills),
            "backfill_failures": dict(self.backfill_failures),
            "write_failures": dict(self.write_failures),
            "tier_errors": dict(self.tier_errors),
        }
