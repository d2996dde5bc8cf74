"""
Network API Layer.

This package handles all communication with the slow tiers: the read-only
GitHub data repository and the Google Drive cloud store.
"""

from .auth import CloudAuthenticator
from .cloud import CloudDrive
from .remote import RemoteRepository

__all__ = ["CloudAuthenticator", "CloudDrive", "RemoteRepository"]
