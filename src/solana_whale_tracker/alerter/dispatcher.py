"""Fan-out dispatcher delivering one alert to every subscriber."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

from solana_whale_tracker.alerter.channels.telegram import RecipientUnreachableError

if TYPE_CHECKING:
    from solana_whale_tracker.alerter.models import FormattedAlert
    from solana_whale_tracker.alerter.subscribers import SubscriberRegistry

logger = logging.getLogger(__name__)


class MessageTransport(Protocol):
    """Protocol for the outbound message transport."""

    async def send_message(
        self,
        chat_id: int | str,
        text: str,
        *,
        parse_mode: str | None = "MarkdownV2",
        disable_web_page_preview: bool = True,
    ) -> None:
        """Send a message, raising on failure."""
        ...


@dataclass(frozen=True)
class DeliveryFailure:
    """A recipient the alert could not be delivered to."""

    chat_id: int
    error: str
    removed: bool = False


@dataclass
class DispatchResult:
    """Outcome of dispatching an alert to all subscribers."""

    delivered: list[int] = field(default_factory=list)
    failures: list[DeliveryFailure] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def success_count(self) -> int:
        return len(self.delivered)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def removed(self) -> list[int]:
        """Chat ids dropped from the subscriber set during this dispatch."""
        return [f.chat_id for f in self.failures if f.removed]

    @property
    def all_succeeded(self) -> bool:
        """Return True if every subscriber received the alert."""
        return self.failure_count == 0 and self.success_count > 0


class FanOutDispatcher:
    """Sends an alert to every subscriber concurrently.

    Each recipient is isolated: one failing send never prevents delivery to the
    others. Recipients the transport reports as unreachable are removed from
    the registry. Nothing is retried at this layer.
    """

    def __init__(
        self,
        transport: MessageTransport,
        subscribers: SubscriberRegistry,
        *,
        dry_run: bool = False,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            transport: Transport used for delivery.
            subscribers: Registry of chats to deliver to.
            dry_run: Log alerts instead of sending them.
        """
        self.transport = transport
        self.subscribers = subscribers
        self.dry_run = dry_run

    async def _send_to(self, chat_id: int, alert: FormattedAlert) -> DeliveryFailure | None:
        """Send every message of the alert to one recipient; stops at the first failure."""
        try:
            for text in alert.messages:
                await self.transport.send_message(chat_id, text)
        except RecipientUnreachableError as e:
            removed = self.subscribers.discard_unreachable(chat_id)
            return DeliveryFailure(chat_id=chat_id, error=str(e), removed=removed)
        except Exception as e:
            logger.error("Error sending alert to %s: %s", chat_id, e)
            return DeliveryFailure(chat_id=chat_id, error=str(e))
        return None

    async def dispatch(self, alert: FormattedAlert) -> DispatchResult:
        """Dispatch alert to all current subscribers.

        Args:
            alert: Formatted alert to send.

        Returns:
            DispatchResult listing delivered chats and failures.
        """
        if self.dry_run:
            logger.info("[DRY RUN] Alert:\n%s", alert.plain_text)
            return DispatchResult()

        recipients = sorted(self.subscribers.snapshot())
        if not recipients:
            logger.warning("No subscribers to dispatch to")
            return DispatchResult()

        outcomes = await asyncio.gather(
            *(self._send_to(chat_id, alert) for chat_id in recipients)
        )

        result = DispatchResult()
        for chat_id, failure in zip(recipients, outcomes, strict=True):
            if failure is None:
                result.delivered.append(chat_id)
            else:
                result.failures.append(failure)

        logger.info(
            "Dispatch complete: %d/%d delivered, %d removed",
            result.success_count,
            len(recipients),
            len(result.removed),
        )
        return result
