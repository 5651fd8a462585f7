"""Bot command handling over Telegram long polling.

Supported commands:
    /start   - subscribe the chat to alerts
    /stop    - unsubscribe the chat
    /status  - subscriber, wallet and cache counters
    /wallets - list of watched wallets
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from decimal import Decimal
from typing import Any

from solana_whale_tracker.alerter.channels.telegram import TelegramError, TelegramTransport
from solana_whale_tracker.alerter.formatter import escape_markdown, truncate_address
from solana_whale_tracker.alerter.subscribers import SubscriberRegistry

logger = logging.getLogger(__name__)

ERROR_BACKOFF_SECONDS = 5.0


class CommandHandler:
    """Answers bot commands and maintains the subscriber set."""

    def __init__(
        self,
        transport: TelegramTransport,
        subscribers: SubscriberRegistry,
        wallets: Sequence[str],
        *,
        interval_seconds: float,
        min_alert_amount: Decimal,
        cache_size: Callable[[], int] = lambda: 0,
        poll_timeout: int = 30,
    ) -> None:
        """Initialize the handler.

        Args:
            transport: Telegram transport for updates and replies.
            subscribers: Registry mutated by /start and /stop.
            wallets: Watched wallet addresses.
            interval_seconds: Polling interval, shown to users.
            min_alert_amount: Alpha alert threshold, shown by /status.
            cache_size: Callable returning the current dedup cache size.
            poll_timeout: Long-poll timeout for getUpdates.
        """
        self.transport = transport
        self.subscribers = subscribers
        self.wallets = list(wallets)
        self.interval_seconds = interval_seconds
        self.min_alert_amount = min_alert_amount
        self.poll_timeout = poll_timeout

        self._cache_size = cache_size
        self._offset: int | None = None
        self._handlers: dict[str, Callable[[int], str]] = {
            "/start": self._start,
            "/stop": self._stop,
            "/status": self._status,
            "/wallets": self._wallets,
        }

    @staticmethod
    def parse_command(text: str) -> str | None:
        """Extract ``/command`` from message text, dropping any ``@botname``."""
        if not text.startswith("/"):
            return None
        word = text.split()[0]
        return word.split("@", 1)[0].lower()

    def _start(self, chat_id: int) -> str:
        self.subscribers.add(chat_id)
        interval = escape_markdown(f"{self.interval_seconds:g}")
        return (
            "🎉 *Welcome to Solana Whale Tracker* 🎉\n\n"
            f"You will receive transaction updates every {interval} seconds\\!\n\n"
            "Available commands:\n"
            "/stop \\- Stop receiving alerts\n"
            "/status \\- Check bot status\n"
            "/wallets \\- View tracked wallets\n\n"
            "Happy tracking\\! 🐋"
        )

    def _stop(self, chat_id: int) -> str:
        if self.subscribers.remove(chat_id):
            return "✅ You have unsubscribed from alerts\\."
        return "❌ You are not subscribed to alerts\\."

    def _status(self, chat_id: int) -> str:
        lines = [
            "📊 *Bot Status*",
            f"Active Subscribers: {len(self.subscribers)}",
            f"Tracked Wallets: {len(self.wallets)}",
            f"Cached Transactions: {self._cache_size()}",
            f"Update Interval: {escape_markdown(f'{self.interval_seconds:g}')}s",
            f"Minimum Alert Amount: {escape_markdown(str(self.min_alert_amount))} SOL",
        ]
        return "\n".join(lines)

    def _wallets(self, chat_id: int) -> str:
        lines = ["🔍 *Tracked Wallets*", ""]
        for index, wallet in enumerate(self.wallets, start=1):
            lines.append(f"{index}\\. `{truncate_address(wallet)}`")
        return "\n".join(lines)

    async def handle_update(self, update: dict[str, Any]) -> str | None:
        """Handle one update, replying if it carries a known command.

        Returns:
            The reply text, or None when the update was ignored.
        """
        message = update.get("message") or {}
        text = message.get("text") or ""
        chat_id = (message.get("chat") or {}).get("id")
        command = self.parse_command(text)
        if chat_id is None or command not in self._handlers:
            return None

        reply = self._handlers[command](chat_id)
        try:
            await self.transport.send_message(chat_id, reply)
        except TelegramError as e:
            logger.warning("Failed to answer %s in chat %s: %s", command, chat_id, e)
        return reply

    async def poll_once(self) -> int:
        """Fetch and handle one batch of updates; returns the number handled."""
        updates = await self.transport.get_updates(self._offset, poll_timeout=self.poll_timeout)
        for update in updates:
            update_id = update.get("update_id")
            if isinstance(update_id, int):
                self._offset = update_id + 1
            await self.handle_update(update)
        return len(updates)

    async def run(self, stop_event: asyncio.Event) -> None:
        """Poll for commands until the stop event is set."""
        logger.info("Command polling started")
        while not stop_event.is_set():
            try:
                await self.poll_once()
            except TelegramError as e:
                logger.warning("getUpdates failed: %s", e)
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=ERROR_BACKOFF_SECONDS)
                except TimeoutError:
                    pass
        logger.info("Command polling stopped")
