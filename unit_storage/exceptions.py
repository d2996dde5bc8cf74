"""
Defines custom exceptions for the storage layer to allow for more specific error handling.
"""


class UnitStorageError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(UnitStorageError):
    """Raised for missing tiers, bad settings, or an unusable configuration file."""


class AuthenticationError(UnitStorageError):
    """Raised when a cloud call is made without a valid access token."""


class TransientNetworkError(UnitStorageError):
    """Raised when a network call keeps failing after all retry attempts."""


class RemoteFetchError(UnitStorageError):
    """Raised when the remote repository or cloud drive answers with an error status."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class RemoteFileNotFoundError(RemoteFetchError):
    """Raised when a requested remote or cloud file does not exist (HTTP 404)."""


class MalformedDataError(UnitStorageError):
    """Raised when a fetched file cannot be parsed as JSON."""


class DecryptionError(UnitStorageError):
    """Raised when a secure value cannot be decrypted with the supplied key."""


class TierUnavailableError(UnitStorageError):
    """
    Raised when the last enabled tier of a lookup failed and nothing was found.
    """

    def __init__(self, tier: str, cause: Exception):
        super().__init__(f"Tier '{tier}' is unavailable: {cause}")
        self.tier = tier
        self.cause = cause


class TierWriteError(UnitStorageError):
    """Raised when a write to a required (non-advisory) tier fails."""


class StorageTimeoutError(UnitStorageError):
    """Raised when waiting on the first load of a stored document timed out."""
