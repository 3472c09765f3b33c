"""
Credential Validator for dockbot.

Checks a submitted bot token against the Telegram Bot API (getMe).
Fail-closed: any transport, timeout or authority-side problem makes
the token invalid.
"""

from __future__ import annotations

import logging
import re

import httpx

from .errors import mask_credential

logger = logging.getLogger(__name__)

# <numeric bot id>:<secret of url-safe characters>
TOKEN_PATTERN = re.compile(r"^\d{3,}:[A-Za-z0-9_-]{20,}$")


def is_well_formed(credential: str) -> bool:
    """Cheap syntactic check before contacting the API."""
    return bool(TOKEN_PATTERN.match(credential.strip()))


class CredentialValidator:
    """
    Validates bot tokens with a single getMe call.

    No retry is performed. A transient network failure is reported the
    same way as a rejected token.

    Example:
        validator = CredentialValidator(api_base="https://api.telegram.org")
        if await validator.validate(token):
            ...
    """

    def __init__(
        self,
        api_base: str = "https://api.telegram.org",
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout_seconds
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def validate(self, credential: str) -> bool:
        """
        Return True only if the authority confirms the token is live.
        """
        credential = credential.strip()
        masked = mask_credential(credential)

        if not is_well_formed(credential):
            logger.info(f"Rejected malformed token {masked}")
            return False

        try:
            client = await self._get_client()
            response = await client.get(
                f"{self._api_base}/bot{credential}/getMe",
                timeout=self._timeout,
            )
        except httpx.TimeoutException:
            logger.warning(f"Token verification timed out for {masked}")
            return False
        except httpx.HTTPError as e:
            logger.warning(f"Token verification API error for {masked}: {type(e).__name__}")
            return False

        if response.status_code != 200:
            logger.info(f"Token {masked} rejected: HTTP {response.status_code}")
            return False

        try:
            body = response.json()
        except ValueError:
            logger.warning(f"Token verification returned non-JSON body for {masked}")
            return False

        ok = isinstance(body, dict) and body.get("ok") is True
        if ok:
            username = (body.get("result") or {}).get("username", "")
            logger.info(f"Token {masked} is valid (bot @{username})")
        else:
            logger.info(f"Token {masked} rejected by API")
        return ok

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
