"""Solana Whale Tracker - wallet activity alerts for Telegram."""

__version__ = "0.1.0"
