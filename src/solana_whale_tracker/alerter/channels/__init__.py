"""Delivery transports for alert payloads."""

from solana_whale_tracker.alerter.channels.telegram import (
    RecipientUnreachableError,
    TelegramError,
    TelegramTransport,
)

__all__ = [
    "RecipientUnreachableError",
    "TelegramError",
    "TelegramTransport",
]
