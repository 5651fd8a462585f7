"""Canonical transaction model shared by every provider."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

LAMPORTS_PER_SOL = Decimal(1_000_000_000)


class TransactionKind(str, Enum):
    """Category of an observed transaction."""

    SOL_TRANSFER = "SOL_TRANSFER"
    TOKEN_TRANSFER = "TOKEN_TRANSFER"
    SWAP = "SWAP"
    TOKEN_PURCHASE = "TOKEN_PURCHASE"
    UNKNOWN = "UNKNOWN"

    @property
    def label(self) -> str:
        """Human-readable label, e.g. ``Sol Transfer``."""
        return self.value.replace("_", " ").title()


@dataclass(frozen=True)
class Counterparties:
    """Addresses involved in a transaction besides the watched wallet.

    Attributes:
        sender: Source account, when the provider reports one.
        receiver: Destination account, when the provider reports one.
        mint: Token mint, for token transfers and purchases.
    """

    sender: str | None = None
    receiver: str | None = None
    mint: str | None = None

    @property
    def is_empty(self) -> bool:
        """True when no counterparty is known."""
        return not (self.sender or self.receiver or self.mint)


@dataclass(frozen=True)
class CanonicalTransaction:
    """Provider-agnostic record of one on-chain event for a watched wallet.

    Two records with the same ``signature`` describe the same chain event,
    whichever provider or wallet produced them, so equality and hashing use
    the signature alone.

    Attributes:
        wallet: Watched address that triggered the observation.
        signature: Chain transaction signature (dedup key).
        kind: Transaction category.
        timestamp: Event time formatted with TIMESTAMP_FORMAT (UTC).
        status: Confirmation state as reported by the provider.
        amount: Decimal-adjusted magnitude, or None if not derivable.
        counterparties: Sender, receiver and/or mint.
        source_tag: Provider or DEX that produced the record.
        observed_at: Local capture time.
    """

    wallet: str = field(compare=False)
    signature: str
    kind: TransactionKind = field(compare=False)
    timestamp: str = field(compare=False)
    status: str = field(compare=False)
    amount: Decimal | None = field(default=None, compare=False)
    counterparties: Counterparties = field(default_factory=Counterparties, compare=False)
    source_tag: str = field(default="", compare=False)
    observed_at: datetime = field(default_factory=lambda: datetime.now(UTC), compare=False)

    def __post_init__(self) -> None:
        if not self.signature:
            raise ValueError("signature must not be empty")


def format_timestamp(moment: datetime) -> str:
    """Render a datetime in the canonical UTC text format."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).strftime(TIMESTAMP_FORMAT)


def timestamp_from_unix(seconds: Any, fallback: datetime) -> str:
    """Format a unix timestamp in seconds, falling back when it is missing."""
    if seconds is None:
        return format_timestamp(fallback)
    try:
        return format_timestamp(datetime.fromtimestamp(float(seconds), tz=UTC))
    except (TypeError, ValueError, OverflowError, OSError):
        return format_timestamp(fallback)


def timestamp_from_iso(value: Any, fallback: datetime) -> str:
    """Format an ISO-8601 timestamp, falling back when it is missing or invalid."""
    if not isinstance(value, str) or not value:
        return format_timestamp(fallback)
    try:
        return format_timestamp(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return format_timestamp(fallback)


def to_decimal(value: Any) -> Decimal | None:
    """Parse a numeric field into Decimal, returning None when absent or invalid."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


def lamports_to_sol(lamports: Any) -> Decimal | None:
    """Convert a lamport count to SOL."""
    value = to_decimal(lamports)
    if value is None:
        return None
    return value / LAMPORTS_PER_SOL
