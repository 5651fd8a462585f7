"""Telegram Bot API transport."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"
FORBIDDEN_ERROR_CODE = 403
RATE_LIMITED_ERROR_CODE = 429

DEFAULT_TIMEOUT = 10.0
DEFAULT_POLL_TIMEOUT = 30


class TelegramError(Exception):
    """Raised when a Bot API call fails."""

    def __init__(self, message: str, *, error_code: int | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code


class RecipientUnreachableError(TelegramError):
    """Raised when Telegram reports the chat as forbidden (bot blocked or kicked)."""


class TelegramTransport:
    """Minimal Telegram Bot API client for sending alerts and reading commands.

    ``send_message`` raises instead of returning a flag so the dispatcher can
    tell a permanently unreachable recipient (HTTP 403) apart from any other
    delivery failure. Telegram's own 429 responses are honoured here by
    sleeping for ``retry_after`` before trying again.
    """

    def __init__(
        self,
        bot_token: str,
        *,
        api_base: str = TELEGRAM_API_BASE,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            bot_token: Telegram bot token.
            api_base: Bot API base URL.
            max_retries: Attempts per call on rate limiting or timeouts.
            retry_delay: Base delay between timeout retries (exponential backoff).
            timeout: HTTP request timeout in seconds.
            client: Optional shared HTTP client.
        """
        self.bot_token = bot_token
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.name = "telegram"

        self._api_url = f"{api_base.rstrip('/')}/bot{bot_token}"
        self._client = client

    async def _post(self, url: str, payload: dict[str, Any], timeout: float) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(url, json=payload, timeout=timeout)
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await client.post(url, json=payload)

    async def _call(
        self,
        method: str,
        payload: dict[str, Any],
        *,
        timeout: float | None = None,
    ) -> Any:
        """Invoke a Bot API method and return its ``result`` field.

        Raises:
            RecipientUnreachableError: On error code 403.
            TelegramError: On any other API or transport failure.
        """
        url = f"{self._api_url}/{method}"
        request_timeout = timeout or self.timeout

        for attempt in range(self.max_retries):
            try:
                response = await self._post(url, payload, request_timeout)
                result = response.json()
            except httpx.TimeoutException:
                logger.warning("Telegram %s timeout (attempt %d)", method, attempt + 1)
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.retry_delay * (2**attempt))
                continue
            except (httpx.HTTPError, ValueError) as e:
                raise TelegramError(f"{method} failed: {e}") from e

            if result.get("ok"):
                return result.get("result")

            error_code = result.get("error_code", 0)
            description = result.get("description", "Unknown error")

            if error_code == RATE_LIMITED_ERROR_CODE:
                retry_after = result.get("parameters", {}).get("retry_after", 1)
                logger.warning("Telegram rate limited, retry after %ss", retry_after)
                await asyncio.sleep(retry_after)
                continue

            if error_code == FORBIDDEN_ERROR_CODE:
                raise RecipientUnreachableError(description, error_code=error_code)

            raise TelegramError(f"{error_code} - {description}", error_code=error_code)

        raise TelegramError(f"{method} failed after {self.max_retries} attempts")

    async def send_message(
        self,
        chat_id: int | str,
        text: str,
        *,
        parse_mode: str | None = "MarkdownV2",
        disable_web_page_preview: bool = True,
    ) -> None:
        """Send a text message to a chat.

        Raises:
            RecipientUnreachableError: If the chat blocked or removed the bot.
            TelegramError: On any other failure.
        """
        payload: dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "disable_web_page_preview": disable_web_page_preview,
        }
        if parse_mode:
            payload["parse_mode"] = parse_mode
        await self._call("sendMessage", payload)

    async def get_updates(
        self,
        offset: int | None = None,
        *,
        poll_timeout: int = DEFAULT_POLL_TIMEOUT,
    ) -> list[dict[str, Any]]:
        """Long-poll for new updates.

        Args:
            offset: Identifier of the first update to return.
            poll_timeout: Seconds Telegram may hold the request open.

        Returns:
            Update objects, possibly empty.
        """
        payload: dict[str, Any] = {"timeout": poll_timeout, "allowed_updates": ["message"]}
        if offset is not None:
            payload["offset"] = offset
        result = await self._call("getUpdates", payload, timeout=poll_timeout + self.timeout)
        return list(result or [])
