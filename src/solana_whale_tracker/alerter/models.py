"""Data models for the alerter module."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class AlertLevel(str, Enum):
    """Severity class of a single transaction in an alert."""

    ALPHA = "alpha"
    NORMAL = "normal"

    @property
    def label(self) -> str:
        """Display label with its marker emoji."""
        return "🔴 Alpha Alert" if self is AlertLevel.ALPHA else "🟢 Normal Alert"


@dataclass(frozen=True)
class FormattedAlert:
    """A formatted alert payload ready for delivery.

    Attributes:
        title: Short alert headline.
        telegram_markdown: Telegram MarkdownV2 message body.
        plain_text: Plain text rendering, used for logs and dry runs.
        links: Explorer links keyed by transaction signature.
        severities: Severity per transaction, in input order; None where the
            transaction has no amount.
        chunks: ``telegram_markdown`` split into messages that each fit
            Telegram's length limit; empty means it is sent as is.
    """

    title: str
    telegram_markdown: str
    plain_text: str
    links: dict[str, str] = field(default_factory=dict)
    severities: tuple[AlertLevel | None, ...] = ()
    chunks: tuple[str, ...] = ()

    @property
    def transaction_count(self) -> int:
        """Number of transactions summarized by this alert."""
        return len(self.severities)

    @property
    def messages(self) -> tuple[str, ...]:
        """MarkdownV2 messages to send, in order."""
        return self.chunks or (self.telegram_markdown,)
