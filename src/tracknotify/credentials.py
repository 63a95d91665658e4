"""Tracker credentials shared by all project cycles.

Supports a permanent token or the OAuth2 client-credentials grant. The OAuth
token is requested once, cached until shortly before it expires, and reused
by every project; this cache is the only state projects share.

Example:
    provider = TokenProvider(config.tracker)
    headers = await provider.auth_headers(client)
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

import httpx

from tracknotify.exceptions import TransportError
from tracknotify.logging import get_logger

if TYPE_CHECKING:
    from tracknotify.models import TrackerConfig

logger = get_logger(__name__)

# Refresh this many seconds before the server-side expiry.
EXPIRY_MARGIN_SECONDS = 30.0


class AccessToken:
    """A bearer credential with an optional expiry.

    Attributes:
        token_type: Authorization scheme (e.g., 'Bearer').
        value: The token itself.
        expires_at: Monotonic time after which the token is stale, or None.
    """

    __slots__ = ("expires_at", "token_type", "value")

    def __init__(self, token_type: str, value: str, ttl: float | None = None) -> None:
        self.token_type = token_type
        self.value = value
        self.expires_at = None if ttl is None else time.monotonic() + ttl

    def is_expired(self) -> bool:
        """Check if this token should be refreshed."""
        return self.expires_at is not None and time.monotonic() > self.expires_at

    @property
    def header(self) -> str:
        """Value of the Authorization header."""
        return f"{self.token_type} {self.value}"


class TokenProvider:
    """Resolves the Authorization header for tracker requests."""

    def __init__(self, config: TrackerConfig) -> None:
        self._config = config
        self._token: AccessToken | None = None
        self._lock = asyncio.Lock()

        if config.token:
            self._token = AccessToken("Bearer", config.token)

    async def auth_headers(self, client: httpx.AsyncClient) -> dict[str, str]:
        """Return headers authenticating a request, fetching a token if needed.

        Args:
            client: HTTP client used for the token request.

        Returns:
            A dict with an Authorization header, or empty if no auth is configured.

        Raises:
            TransportError: If the token endpoint rejects the client credentials.
        """
        token = await self.get_token(client)
        if token is None:
            return {}
        return {"Authorization": token.header}

    async def get_token(self, client: httpx.AsyncClient) -> AccessToken | None:
        """Return a valid token, requesting a new one when the cached one is stale."""
        if self._config.oauth is None:
            return self._token

        if self._token is not None and not self._token.is_expired():
            return self._token

        async with self._lock:
            # Another task may have refreshed while we waited.
            if self._token is None or self._token.is_expired():
                self._token = await self._request_token(client)

        return self._token

    def invalidate(self) -> None:
        """Drop a cached OAuth token so the next request fetches a new one."""
        if self._config.oauth is not None:
            self._token = None

    async def _request_token(self, client: httpx.AsyncClient) -> AccessToken:
        oauth = self._config.oauth
        if oauth is None:
            raise TransportError("No OAuth client configured for token request")

        try:
            response = await client.post(
                oauth.url,
                auth=(oauth.client_id, oauth.client_secret),
                headers={"Accept": "application/json"},
                data={"grant_type": "client_credentials", "scope": oauth.scope},
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise TransportError(
                "OAuth token request rejected",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise TransportError(
                "Network error requesting OAuth token",
                details={"error": str(e)},
            ) from e
        except ValueError as e:
            raise TransportError("OAuth token response is not JSON") from e

        value = payload.get("access_token") if isinstance(payload, dict) else None
        if not value:
            raise TransportError("OAuth token response has no access_token")

        expires_in = payload.get("expires_in")
        ttl = None
        if isinstance(expires_in, (int, float)):
            ttl = max(float(expires_in) - EXPIRY_MARGIN_SECONDS, 0.0)

        logger.info("Obtained tracker access token", extra={"expires_in": expires_in})

        return AccessToken(payload.get("token_type", "Bearer"), value, ttl)
