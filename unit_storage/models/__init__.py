"""
Data Models Layer.

This package contains the value types and Pydantic models shared by the
storage tiers: entries, per-call tier configuration, settings and statistics.
"""

from .entry import Entry, Err, ErrorKind, Miss, Ok, TierName, TierResult
from .settings import StorageSettings
from .stats import StorageStats
from .tier_config import TierConfig

__all__ = [
    "Entry",
    "Err",
    "ErrorKind",
    "Miss",
    "Ok",
    "StorageSettings",
    "StorageStats",
    "TierConfig",
    "TierName",
    "TierResult",
]
