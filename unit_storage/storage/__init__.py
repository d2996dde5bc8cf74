"""
Storage Layer.

This package holds the fast tiers (in-memory cache, session and local
preference stores), the tier adapters, the orchestrator that coordinates
them, and the INI configuration file manager.
"""

from .cache import ExpiringCache
from .config_manager import ConfigManager
from .preferences import LocalStore, SessionStore
from .registry import KeyRegistry

__all__ = ["ConfigManager", "ExpiringCache", "KeyRegistry", "LocalStore", "SessionStore"]
