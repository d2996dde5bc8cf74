"""
Pydantic model for application settings.
Provides robust validation for everything loaded from the INI file.
"""

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_REPO_OWNER = "trrmann"
DEFAULT_REPO_NAME = "UnitManagementTools"

# Sweep periods for the fast tiers.
DEFAULT_CACHE_PRUNE_INTERVAL_MS = 60_000
DEFAULT_REGISTRY_PRUNE_INTERVAL_MS = 900_000


class StorageSettings(BaseModel):
    """A validated configuration model for the storage stack."""

    # Remote (read-only) repository
    repo_owner: str = DEFAULT_REPO_OWNER
    repo_name: str = DEFAULT_REPO_NAME
    data_path: str = "data"
    branch: str = "main"
    github_token: str = ""
    remote_retries: int = 3
    remote_backoff_ms: int = 300

    # Cloud drive
    cloud_client_id: str = ""
    cloud_scopes: list[str] = Field(
        default_factory=lambda: ["https://www.googleapis.com/auth/drive.file"]
    )

    # Fast tiers
    cache_prune_interval_ms: int = DEFAULT_CACHE_PRUNE_INTERVAL_MS
    session_prune_interval_ms: int = DEFAULT_REGISTRY_PRUNE_INTERVAL_MS
    local_prune_interval_ms: int = DEFAULT_REGISTRY_PRUNE_INTERVAL_MS
    local_storage_dir: str = Field(..., repr=False)

    # Behaviour
    background_backfill: bool = False
    log_dir: str = ""

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("repo_owner", "repo_name", "branch")
    @classmethod
    def validate_required_text(cls, v: str) -> str:
        if not v:
            raise ValueError("Repository owner, name and branch cannot be empty.")
        if "/" in v:
            raise ValueError(f"'{v}' must not contain '/'.")
        return v

    @field_validator("remote_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        """Keeps the retry budget within a sane range."""
        if v < 0 or v > 10:
            raise ValueError("Remote retries must be between 0 and 10.")
        return v

    @field_validator(
        "remote_backoff_ms",
        "cache_prune_interval_ms",
        "session_prune_interval_ms",
        "local_prune_interval_ms",
    )
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Intervals and backoff delays cannot be negative.")
        return v

    @model_validator(mode="after")
    def validate_storage_dir(self) -> "StorageSettings":
        if not self.local_storage_dir:
            raise ValueError("A local storage directory is required.")
        return self

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        return set(cls.model_fields)
