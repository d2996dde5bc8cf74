"""
Async client for the Google Drive v3 REST API, used as the cloud tier.
"""

import json
import logging
from typing import Any

import aiohttp

from unit_storage import crypto
from unit_storage.exceptions import (
    AuthenticationError,
    MalformedDataError,
    RemoteFetchError,
    RemoteFileNotFoundError,
)
from unit_storage.models.entry import Err
from unit_storage.storage.registry import KeyRegistry
from unit_storage.utils.circuit_breaker import CircuitBreaker
from unit_storage.utils.retry import retry_with_backoff

from .auth import CloudAuthenticator

log = logging.getLogger(__name__)

GOOGLE_API_URL = "https://www.googleapis.com"
FILE_FIELDS = "id,name,mimeType,modifiedTime"


class CloudDrive:
    """
    Reads and writes files in the signed-in user's drive.

    Every call needs an access token; a 401 answer signs the client out so the
    caller has to obtain a fresh token.
    """

    def __init__(
        self,
        authenticator: CloudAuthenticator | None = None,
        base_url: str | None = None,
        max_retries: int = 3,
        backoff_ms: int = 300,
    ):
        self.auth = authenticator if authenticator is not None else CloudAuthenticator()
        self.base_url = (base_url or GOOGLE_API_URL).rstrip("/")
        self.max_retries = max_retries
        self.backoff_ms = backoff_ms
        self.secure_files = KeyRegistry()

        self._session: aiohttp.ClientSession | None = None
        self._circuit_breaker = CircuitBreaker(
            "cloud", failure_threshold=5, recovery_timeout=60
        )

    async def _initialize_session(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=60, connect=15),
            )

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def _call(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        data: Any = None,
        headers: dict[str, str] | None = None,
        what: str = "request",
    ) -> tuple[int, bytes]:
        """
        Sends an authorised request and returns (status, body).

        Raises:
            AuthenticationError: Without a token, or when the token was
                rejected (the token is cleared first).
            RemoteFileNotFoundError: On HTTP 404.
            RemoteFetchError: On any other error status.
        """
        token = self.auth.require_token()
        await self._initialize_session()
        url = f"{self.base_url}/{path.lstrip('/')}"
        request_headers = {"Authorization": f"Bearer {token}", **(headers or {})}

        async def attempt() -> tuple[int, bytes]:
            payload = data() if callable(data) else data
            async with self._session.request(
                method, url, params=params, data=payload, headers=request_headers
            ) as r:
                return r.status, await r.read()

        async with self._circuit_breaker:
            status, body = await retry_with_backoff(
                attempt,
                retries=self.max_retries,
                backoff_ms=self.backoff_ms,
                description=f"cloud {what}",
            )

        if status == 401:
            self.auth.sign_out()
            raise AuthenticationError(
                f"Cloud drive rejected the access token during {what}."
            )
        if status == 404:
            raise RemoteFileNotFoundError(
                f"Cloud file not found during {what} (HTTP 404)", status=404
            )
        if status >= 400:
            raise RemoteFetchError(
                f"Cloud {what} failed (HTTP {status})", status=status
            )
        return status, body

    @staticmethod
    def _multipart(metadata: dict[str, Any], content: str, mime_type: str):
        writer = aiohttp.MultipartWriter("related")
        writer.append_json(metadata)
        writer.append(content, {"Content-Type": mime_type})
        return writer

    @staticmethod
    def _parse_json(body: bytes, what: str) -> Any:
        try:
            return json.loads(body.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedDataError(f"Cloud {what} returned invalid JSON: {e}") from e

    # Raw files

    async def upload_raw(
        self, name: str, content: str, mime_type: str = "text/plain"
    ) -> dict[str, Any]:
        """Creates a new file and returns ``{"id": ...}``."""
        _, body = await self._call(
            "POST",
            "upload/drive/v3/files",
            params={"uploadType": "multipart", "fields": "id"},
            data=lambda: self._multipart(
                {"name": name, "mimeType": mime_type}, content, mime_type
            ),
            what=f"upload of '{name}'",
        )
        result = self._parse_json(body, "upload")
        log.debug(f"Uploaded '{name}' to cloud as {result.get('id')}")
        return result

    async def update_raw(
        self, file_id: str, content: str, mime_type: str = "text/plain"
    ) -> dict[str, Any]:
        """Replaces the content of an existing file."""
        _, body = await self._call(
            "PATCH",
            f"upload/drive/v3/files/{file_id}",
            params={"uploadType": "media", "fields": "id"},
            data=content.encode("utf-8"),
            headers={"Content-Type": mime_type},
            what=f"update of {file_id}",
        )
        return self._parse_json(body, "update")

    async def download_raw(self, file_id: str) -> str:
        _, body = await self._call(
            "GET",
            f"drive/v3/files/{file_id}",
            params={"alt": "media"},
            what=f"download of {file_id}",
        )
        return body.decode("utf-8")

    # JSON files

    async def upload_json(self, name: str, obj: Any) -> dict[str, Any]:
        return await self.upload_raw(name, json.dumps(obj), "application/json")

    async def download_json(self, file_id: str) -> Any:
        text = await self.download_raw(file_id)
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedDataError(
                f"Cloud file {file_id} does not contain valid JSON: {e}"
            ) from e

    # Metadata

    async def list_files(self, query: str = "", page_size: int = 10) -> list[dict]:
        params = {"pageSize": str(page_size), "fields": f"files({FILE_FIELDS})"}
        if query:
            params["q"] = query
        _, body = await self._call(
            "GET", "drive/v3/files", params=params, what="file listing"
        )
        return self._parse_json(body, "file listing").get("files", [])

    async def get_metadata(self, file_id: str) -> dict[str, Any]:
        _, body = await self._call(
            "GET",
            f"drive/v3/files/{file_id}",
            params={"fields": FILE_FIELDS},
            what=f"metadata of {file_id}",
        )
        return self._parse_json(body, "metadata")

    async def exists(self, file_id: str) -> bool:
        try:
            await self.get_metadata(file_id)
            return True
        except RemoteFileNotFoundError:
            return False

    async def delete_file(self, file_id: str) -> bool:
        await self._call("DELETE", f"drive/v3/files/{file_id}", what=f"delete of {file_id}")
        self.secure_files.unregister(file_id)
        return True

    # Encrypted files

    async def secure_upload(self, name: str, content: Any, public_key: Any) -> dict[str, Any]:
        """Encrypts ``content`` for ``public_key`` and uploads the ciphertext."""
        if public_key is None:
            raise ValueError("public_key is required for secure upload.")
        token = crypto.encrypt(public_key, content)
        result = await self.upload_raw(name, token, "text/plain")
        self.secure_files.register(result["id"], secure=True)
        return result

    async def secure_download(self, file_id: str, private_key: Any) -> Any:
        """
        Downloads a file and decrypts it when it was uploaded securely.
        Returns the raw content when decryption fails.
        """
        content = await self.download_raw(file_id)
        if private_key is None or not self.secure_files.is_secure(file_id):
            return content
        result = crypto.try_decrypt(private_key, content)
        if isinstance(result, Err):
            log.debug(f"Could not decrypt cloud file {file_id}: {result.error}")
            return content
        return result.value
