"""
Read-only client for data files published in a GitHub repository.

File content is read from the repository's GitHub Pages host; existence checks
and directory listings use the GitHub contents API. Nothing is cached here:
every call is a fresh request, and caching is left to the storage tiers.
"""

import json
import logging
from typing import Any

import aiohttp

from unit_storage.exceptions import (
    MalformedDataError,
    RemoteFetchError,
    RemoteFileNotFoundError,
)
from unit_storage.utils.circuit_breaker import CircuitBreaker
from unit_storage.utils.paths import join_url, normalize_path
from unit_storage.utils.retry import retry_with_backoff

log = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"


def _require_text(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Parameter '{name}' must be a non-empty string.")
    return value


class RemoteRepository:
    """
    Async client for one repository, branch and data directory.

    Features:
    - Retry with exponential backoff for network failures
    - Circuit breaker so a dead host fails fast
    - Optional default token for the contents API
    """

    def __init__(
        self,
        repo_owner: str,
        repo_name: str,
        data_path: str = "data",
        branch: str = "main",
        default_token: str | None = None,
        max_retries: int = 3,
        backoff_ms: int = 300,
        pages_base_url: str | None = None,
        api_base_url: str | None = None,
    ):
        """
        Args:
            repo_owner: Account that owns the repository.
            repo_name: Repository (and Pages project) name.
            data_path: Directory inside the repository holding the data files.
            branch: Branch queried through the contents API.
            default_token: Token used when a call does not pass its own.
            max_retries: Extra attempts after a network failure.
            backoff_ms: Base delay of the exponential backoff.
            pages_base_url: Overrides ``https://<owner>.github.io``.
            api_base_url: Overrides ``https://api.github.com``.
        """
        self.repo_owner = _require_text(repo_owner, "repo_owner")
        self.repo_name = _require_text(repo_name, "repo_name")
        self.data_path = normalize_path(_require_text(data_path, "data_path")).strip("/")
        self.branch = _require_text(branch, "branch")
        self.default_token = default_token or None
        self.max_retries = max_retries
        self.backoff_ms = backoff_ms
        self.pages_base_url = (
            pages_base_url or f"https://{self.repo_owner}.github.io"
        ).rstrip("/")
        self.api_base_url = (api_base_url or GITHUB_API_URL).rstrip("/")

        self._session: aiohttp.ClientSession | None = None
        self._circuit_breaker = CircuitBreaker(
            "remote", failure_threshold=5, recovery_timeout=60
        )

    # Serialisation

    def to_dict(self) -> dict[str, Any]:
        return {
            "repoOwner": self.repo_owner,
            "repoName": self.repo_name,
            "dataPath": self.data_path,
            "branch": self.branch,
            "defaultToken": self.default_token,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], **kwargs: Any) -> "RemoteRepository":
        if not isinstance(data, dict):
            raise ValueError("Remote repository data must be a mapping.")
        return cls(
            data.get("repoOwner"),
            data.get("repoName"),
            data.get("dataPath", "data"),
            data.get("branch", "main"),
            data.get("defaultToken"),
            **kwargs,
        )

    # Session management

    async def _initialize_session(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": "unit-storage"},
                timeout=aiohttp.ClientTimeout(total=30, connect=10),
            )

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def _request(
        self, url: str, headers: dict[str, str] | None = None, params=None
    ) -> tuple[int, str]:
        """Performs a GET with retry and returns (status, body text)."""
        await self._initialize_session()

        async def attempt() -> tuple[int, str]:
            async with self._session.get(url, headers=headers, params=params) as r:
                return r.status, await r.text()

        async with self._circuit_breaker:
            return await retry_with_backoff(
                attempt,
                retries=self.max_retries,
                backoff_ms=self.backoff_ms,
                description=f"GET {url}",
            )

    def _auth_headers(self, token: str | None) -> dict[str, str]:
        use_token = token if token is not None else self.default_token
        headers = {"Accept": "application/vnd.github+json"}
        if use_token:
            headers["Authorization"] = f"token {use_token}"
        return headers

    def _contents_url(self, path: str) -> str:
        return join_url(
            self.api_base_url,
            "repos",
            self.repo_owner,
            self.repo_name,
            "contents",
            self.data_path,
            path,
        )

    # Public API

    def file_url(self, filename: str) -> str:
        """Public URL of ``filename`` on the Pages host."""
        norm_file = normalize_path(_require_text(filename, "filename"))
        return join_url(self.pages_base_url, self.repo_name, self.data_path, norm_file)

    async def get(self, filename: str, type: str = "raw") -> Any:
        """
        Fetches a file as text (``"raw"``) or parsed JSON (``"json"``).

        Raises:
            ValueError: For an empty filename or an unknown type.
            RemoteFileNotFoundError: If the file does not exist.
            RemoteFetchError: For any other unsuccessful HTTP status.
            MalformedDataError: If a JSON file cannot be parsed.
            TransientNetworkError: If every network attempt failed.
        """
        norm_file = normalize_path(_require_text(filename, "filename"))
        if type not in ("raw", "json"):
            raise ValueError("type must be 'raw' or 'json'.")

        url = self.file_url(norm_file)
        status, text = await self._request(url)
        if status == 404:
            raise RemoteFileNotFoundError(
                f"Remote file '{norm_file}' was not found (HTTP 404)", status=404
            )
        if status >= 400:
            raise RemoteFetchError(
                f"Failed to fetch remote file '{norm_file}' (HTTP {status})",
                status=status,
            )
        log.debug(f"Fetched remote file '{norm_file}' ({len(text)} chars)")

        if type == "raw":
            return text
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedDataError(
                f"Failed to parse JSON in remote file '{norm_file}': {e}"
            ) from e

    async def has(self, filename: str, token: str | None = None) -> bool:
        """
        Checks whether ``filename`` exists using file metadata only.

        A 404 means the file does not exist; any other error status raises
        ``RemoteFetchError`` so callers can tell failures from absence.
        """
        norm_file = normalize_path(_require_text(filename, "filename"))
        status, _ = await self._request(
            self._contents_url(norm_file),
            headers=self._auth_headers(token),
            params={"ref": self.branch},
        )
        if status == 404:
            log.debug(f"Remote file '{norm_file}' does not exist")
            return False
        if status >= 400:
            raise RemoteFetchError(
                f"Failed to fetch metadata for remote file '{norm_file}' "
                f"(HTTP {status})",
                status=status,
            )
        return True

    async def list_directory(
        self, dir_path: str = "", token: str | None = None
    ) -> list[dict[str, Any]]:
        """Lists files and directories below the data path."""
        if not isinstance(dir_path, str):
            raise ValueError("dir_path must be a string.")
        norm_dir = normalize_path(dir_path)
        status, text = await self._request(
            self._contents_url(norm_dir),
            headers=self._auth_headers(token),
            params={"ref": self.branch},
        )
        if status >= 400:
            raise RemoteFetchError(
                f"Failed to list remote directory '{norm_dir}' (HTTP {status})",
                status=status,
            )
        try:
            listing = json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedDataError(
                f"Directory listing for '{norm_dir}' is not JSON: {e}"
            ) from e
        return listing if isinstance(listing, list) else [listing]

    async def batch_exists(
        self, filenames: list[str], dir_path: str = "", token: str | None = None
    ) -> dict[str, bool]:
        """Checks many files of one directory with a single listing call."""
        if not isinstance(filenames, (list, tuple)):
            raise ValueError("filenames must be a list.")
        listing = await self.list_directory(dir_path or "", token)
        names = {item.get("name") for item in listing if isinstance(item, dict)}
        return {
            normalize_path(name): normalize_path(name) in names for name in filenames
        }
