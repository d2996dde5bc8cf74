"""
Holds the access token used by the cloud drive client.

Obtaining the token (an OAuth consent flow, a service account, a token file)
is left to an external provider; this module only stores and validates it.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from unit_storage.exceptions import AuthenticationError

log = logging.getLogger(__name__)

TokenProvider = Callable[[bool], Awaitable[Any] | Any]


class CloudAuthenticator:
    """
    Manages the signed-in state of the cloud drive client.
    """

    def __init__(self, client_id: str = "", scopes: list[str] | None = None):
        """
        Args:
            client_id: OAuth client id passed along to token providers.
            scopes: Scopes requested by the provider.
        """
        self.client_id = client_id
        self.scopes = scopes or ["https://www.googleapis.com/auth/drive.file"]
        self._access_token: str | None = None

    @property
    def is_signed_in(self) -> bool:
        return bool(self._access_token)

    @property
    def access_token(self) -> str | None:
        return self._access_token

    def set_token(self, token: str | None) -> None:
        self._access_token = token or None

    async def sign_in(self, token_provider: TokenProvider, silent: bool = False) -> str:
        """
        Obtains an access token from ``token_provider`` and stores it.

        Args:
            token_provider: Called with ``silent``; returns (or resolves to) a
                token string or a mapping with an ``access_token`` entry.
            silent: Asks the provider not to prompt the user.

        Returns:
            The access token.
        """
        result = token_provider(silent)
        if inspect.isawaitable(result):
            result = await result
        token = result.get("access_token") if isinstance(result, dict) else result
        if not token or not isinstance(token, str):
            raise AuthenticationError("Cloud sign-in did not return an access token.")
        self._access_token = token
        log.info("[green]Signed in to cloud drive.[/green]")
        return token

    def sign_out(self) -> None:
        if self._access_token:
            log.info("Signed out of cloud drive.")
        self._access_token = None

    def require_token(self) -> str:
        """Returns the current token or raises ``AuthenticationError``."""
        if not self._access_token:
            raise AuthenticationError("Not signed in to the cloud drive.")
        return self._access_token
