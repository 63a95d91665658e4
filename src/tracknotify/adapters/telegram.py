"""Telegram messenger for delivering notifications.

Sends messages through the Bot API `sendMessage` method with HTML parse
mode. The bot token is part of the URL path, so one HTTP client serves
every project, each with its own token.

Example:
    messenger = TelegramMessenger(default_token="123:abc")
    await messenger.send("-1001234567890", "<b>alice</b> created ...")
    await messenger.close()
"""

from __future__ import annotations

import time
from typing import Any

import httpx

from tracknotify.adapters.base import Messenger
from tracknotify.constants import (
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    MESSAGE_FORMAT_HTML,
    TELEGRAM_API_BASE_URL,
    TELEGRAM_PARSE_MODE,
)
from tracknotify.exceptions import DeliveryError
from tracknotify.logging import get_logger

logger = get_logger(__name__)


class TelegramMessenger(Messenger):
    """Messenger backed by the Telegram Bot API."""

    def __init__(
        self,
        default_token: str = "",
        api_base_url: str = TELEGRAM_API_BASE_URL,
    ) -> None:
        """Initialize the messenger.

        Args:
            default_token: Bot token used when send() gets none.
            api_base_url: Bot API endpoint, overridable for local Bot API servers.
        """
        self._default_token = default_token
        self._api_base_url = api_base_url.rstrip("/")
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._api_base_url,
                headers={"Content-Type": "application/json"},
                timeout=DEFAULT_HTTP_TIMEOUT_SECONDS,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _call(self, token: str, method: str, payload: dict[str, Any] | None = None) -> Any:
        """Call a Bot API method and return its `result`.

        Raises:
            DeliveryError: On network errors, HTTP errors or `ok: false`.
        """
        client = self._get_client()

        try:
            response = await client.post(f"/bot{token}/{method}", json=payload or {})
        except httpx.RequestError as e:
            raise DeliveryError(
                "Network error calling Telegram",
                details={"method": method, "error": str(e)},
            ) from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.is_error or not body.get("ok", False):
            raise DeliveryError(
                body.get("description") or f"Telegram {method} failed",
                status_code=response.status_code,
                details={"method": method},
            )

        return body.get("result")

    async def send(
        self,
        target: str,
        text: str,
        *,
        token: str | None = None,
        format: str = MESSAGE_FORMAT_HTML,
    ) -> None:
        """Send one message to a chat.

        Args:
            target: Chat id.
            text: Message text.
            token: Bot token; defaults to the messenger's default token.
            format: "html-subset" for HTML parse mode, anything else for plain text.

        Raises:
            DeliveryError: If Telegram did not accept the message.
        """
        bot_token = token or self._default_token
        if not bot_token:
            raise DeliveryError("No Telegram bot token configured", details={"chat_id": target})

        payload: dict[str, Any] = {
            "chat_id": target,
            "text": text,
            "disable_web_page_preview": True,
        }
        if format == MESSAGE_FORMAT_HTML:
            payload["parse_mode"] = TELEGRAM_PARSE_MODE

        start_time = time.monotonic()
        await self._call(bot_token, "sendMessage", payload)
        duration_ms = int((time.monotonic() - start_time) * 1000)

        logger.debug(
            "Delivered Telegram message",
            extra={"chat_id": target, "chars": len(text), "duration_ms": duration_ms},
        )

    async def health_check(self, token: str | None = None) -> bool:
        """Check that the bot token is valid.

        Returns:
            True if `getMe` succeeds, False otherwise.
        """
        bot_token = token or self._default_token
        if not bot_token:
            logger.warning("Telegram messenger missing bot token")
            return False

        try:
            me = await self._call(bot_token, "getMe")
        except DeliveryError as e:
            logger.warning("Telegram health check failed", extra={"error": str(e)})
            return False

        logger.info(
            "Telegram health check passed",
            extra={"bot": (me or {}).get("username")},
        )
        return True
