"""Alerting layer - formatting, subscribers and Telegram delivery."""

from solana_whale_tracker.alerter.channels.telegram import (
    RecipientUnreachableError,
    TelegramError,
    TelegramTransport,
)
from solana_whale_tracker.alerter.commands import CommandHandler
from solana_whale_tracker.alerter.dispatcher import (
    DeliveryFailure,
    DispatchResult,
    FanOutDispatcher,
    MessageTransport,
)
from solana_whale_tracker.alerter.formatter import AlertFormatter
from solana_whale_tracker.alerter.models import AlertLevel, FormattedAlert
from solana_whale_tracker.alerter.subscribers import SubscriberRegistry

__all__ = [
    "AlertFormatter",
    "AlertLevel",
    "CommandHandler",
    "DeliveryFailure",
    "DispatchResult",
    "FanOutDispatcher",
    "FormattedAlert",
    "MessageTransport",
    "RecipientUnreachableError",
    "SubscriberRegistry",
    "TelegramError",
    "TelegramTransport",
]
