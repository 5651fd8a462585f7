"""Alert message formatter.

Turns a batch of canonical transactions into Telegram MarkdownV2 text (plus a
plain text twin), split into messages that fit Telegram's length limit.
Optional fields that are missing are left out of the message rather than
failing the whole alert.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from solana_whale_tracker.alerter.models import AlertLevel, FormattedAlert
from solana_whale_tracker.ingestor.models import CanonicalTransaction

SOLSCAN_TX_URL = "https://solscan.io/tx/{signature}"
SOLSCAN_TOKEN_URL = "https://solscan.io/token/{mint}"

DEFAULT_MIN_ALERT_AMOUNT = Decimal(1000)

ALERT_TITLE = "🚨 Wallet Transaction Update 🚨"
ALERT_HEADER_MARKDOWN = "🚨 *Wallet Transaction Update* 🚨"
NO_ACTIVITY_TEXT = "🔍 No new transactions detected."
SEPARATOR = "➖➖➖➖➖➖➖➖➖➖"

# Bot API limit for sendMessage text
TELEGRAM_MAX_MESSAGE_CHARS = 4096

# Characters reserved by Telegram MarkdownV2 outside of code and links
MARKDOWN_V2_SPECIAL = "_*[]()~`>#+-=|{}.!\\"


def truncate_address(address: str, head: int = 6, tail: int = 4) -> str:
    """Shorten an address to ``ABCDEF...WXYZ`` form."""
    if len(address) <= head + tail + 3:
        return address
    return f"{address[:head]}...{address[-tail:]}"


def escape_markdown(text: str) -> str:
    """Escape text for Telegram MarkdownV2."""
    return "".join(f"\\{char}" if char in MARKDOWN_V2_SPECIAL else char for char in text)


def format_amount(amount: Decimal) -> str:
    """Two decimals for whole amounts, more precision for dust."""
    if abs(amount) >= 1 or amount == 0:
        return f"{amount:,.2f}"
    return f"{amount:.6f}"


def get_alert_level(amount: Decimal | None, threshold: Decimal) -> AlertLevel | None:
    """Severity for a transaction amount; None when the amount is unknown."""
    if amount is None:
        return None
    return AlertLevel.ALPHA if amount > threshold else AlertLevel.NORMAL


def amount_unit(tx: CanonicalTransaction) -> str:
    """Unit the transaction amount is expressed in."""
    return "tokens" if tx.counterparties.mint else "SOL"


def message_length(text: str) -> int:
    """Length as Telegram counts it, in UTF-16 code units."""
    return len(text.encode("utf-16-le")) // 2


def _clip(text: str, limit: int) -> str:
    clipped = text[:limit]
    while message_length(clipped) > limit:
        clipped = clipped[:-1]
    # A dangling escape would make the MarkdownV2 unparsable
    return clipped.rstrip("\\")


def split_message(
    header: str,
    blocks: Sequence[str],
    limit: int = TELEGRAM_MAX_MESSAGE_CHARS,
) -> tuple[str, ...]:
    """Pack transaction blocks into messages of at most ``limit`` characters.

    Every message starts with ``header`` and blocks are never split across
    messages. A block that cannot fit even on its own is clipped.

    Args:
        header: Text opening every message.
        blocks: Rendered transaction blocks, in display order.
        limit: Maximum message length.

    Returns:
        Messages in display order.
    """
    messages: list[str] = []
    current = header
    for block in blocks:
        candidate = f"{current}\n{block}"
        if message_length(candidate) <= limit:
            current = candidate
            continue
        if current != header:
            messages.append(current)
        current = f"{header}\n{block}"
        if message_length(current) > limit:
            current = _clip(current, limit)
    messages.append(current)
    return tuple(messages)


class AlertFormatter:
    """Formats transaction batches into alert payloads."""

    def __init__(self, min_alert_amount: Decimal = DEFAULT_MIN_ALERT_AMOUNT) -> None:
        """Initialize the formatter.

        Args:
            min_alert_amount: Amounts strictly above this are Alpha alerts.
        """
        self.min_alert_amount = min_alert_amount

    def format(self, transactions: Sequence[CanonicalTransaction]) -> FormattedAlert:
        """Format transactions into a single alert.

        Args:
            transactions: Transactions in display order; may be empty.

        Returns:
            FormattedAlert summarizing every transaction, or a "no new
            activity" payload for an empty batch.
        """
        if not transactions:
            return FormattedAlert(
                title=NO_ACTIVITY_TEXT,
                telegram_markdown=escape_markdown(NO_ACTIVITY_TEXT),
                plain_text=NO_ACTIVITY_TEXT,
            )

        severities = tuple(
            get_alert_level(tx.amount, self.min_alert_amount) for tx in transactions
        )

        header = f"{ALERT_HEADER_MARKDOWN}\n"
        blocks: list[str] = []
        plain = [ALERT_TITLE, ""]
        links: dict[str, str] = {}

        for tx, level in zip(transactions, severities, strict=True):
            links[tx.signature] = SOLSCAN_TX_URL.format(signature=tx.signature)
            blocks.append("\n".join(self._markdown_block(tx, level)))
            plain.extend(self._plain_block(tx, level))

        return FormattedAlert(
            title=ALERT_TITLE,
            telegram_markdown="\n".join([header, *blocks]),
            plain_text="\n".join(plain),
            links=links,
            severities=severities,
            chunks=split_message(header, blocks),
        )

    def _markdown_block(self, tx: CanonicalTransaction, level: AlertLevel | None) -> list[str]:
        kind = escape_markdown(tx.kind.label)
        if tx.source_tag:
            kind += f" \\({escape_markdown(tx.source_tag)}\\)"

        lines = [
            f"*Wallet:* `{truncate_address(tx.wallet)}`",
            f"*Type:* {kind}",
            f"*Time:* {escape_markdown(tx.timestamp)}",
            f"*Status:* {escape_markdown(tx.status)}",
        ]

        if level is not None and tx.amount is not None:
            lines.append(level.label)
            amount = escape_markdown(format_amount(tx.amount))
            lines.append(f"💰 *Amount:* {amount} {amount_unit(tx)}")

        parties = tx.counterparties
        if parties.sender:
            lines.append(f"From: `{truncate_address(parties.sender)}`")
        if parties.receiver:
            lines.append(f"To: `{truncate_address(parties.receiver)}`")
        if parties.mint:
            lines.append(f"Token: `{truncate_address(parties.mint)}`")

        lines.append(f"[View Transaction]({SOLSCAN_TX_URL.format(signature=tx.signature)})")
        if parties.mint:
            lines.append(f"[View Token]({SOLSCAN_TOKEN_URL.format(mint=parties.mint)})")
        lines.append(SEPARATOR)
        return lines

    def _plain_block(self, tx: CanonicalTransaction, level: AlertLevel | None) -> list[str]:
        kind = tx.kind.label
        if tx.source_tag:
            kind += f" ({tx.source_tag})"

        lines = [
            f"Wallet: {truncate_address(tx.wallet)}",
            f"Type: {kind}",
            f"Time: {tx.timestamp}",
            f"Status: {tx.status}",
        ]
        if level is not None and tx.amount is not None:
            lines.append(level.label)
            lines.append(f"Amount: {format_amount(tx.amount)} {amount_unit(tx)}")

        parties = tx.counterparties
        if parties.sender:
            lines.append(f"From: {parties.sender}")
        if parties.receiver:
            lines.append(f"To: {parties.receiver}")
        if parties.mint:
            lines.append(f"Token: {parties.mint}")
            lines.append(f"Token link: {SOLSCAN_TOKEN_URL.format(mint=parties.mint)}")

        lines.append(f"Transaction: {SOLSCAN_TX_URL.format(signature=tx.signature)}")
        lines.append(SEPARATOR)
        return lines
