"""Fallback-chain fetching of wallet activity across providers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from solana_whale_tracker.ingestor.cache import DedupCache
from solana_whale_tracker.ingestor.models import CanonicalTransaction
from solana_whale_tracker.ingestor.normalizers import rpc_signature
from solana_whale_tracker.ingestor.providers import TransactionProvider

if TYPE_CHECKING:
    from solana_whale_tracker.health import HealthMonitor

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 5
DEFAULT_CONCURRENCY = 5
DEFAULT_BATCH_PAUSE_SECONDS = 1.0


class WalletFetcher:
    """Queries providers in priority order and returns unseen transactions.

    For each wallet the first provider that yields at least one usable record
    wins and lower-priority providers are not consulted. A provider that
    raises, or returns nothing usable, hands over to the next one. When every
    provider fails the wallet simply contributes no transactions this cycle.

    Wallets are processed in sequential batches with bounded concurrency
    inside a batch and a fixed pause between batches.
    """

    def __init__(
        self,
        providers: Sequence[TransactionProvider],
        cache: DedupCache[Any],
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        concurrency: int = DEFAULT_CONCURRENCY,
        batch_pause: float = DEFAULT_BATCH_PAUSE_SECONDS,
        health: HealthMonitor | None = None,
        rejected: DedupCache[Any] | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            providers: Providers in priority order.
            cache: Cache of already-alerted signatures.
            batch_size: Wallets per batch.
            concurrency: Wallets fetched at once within a batch.
            batch_pause: Seconds to wait between batches.
            health: Optional monitor receiving provider outcomes.
            rejected: Optional cache of RPC signatures whose transaction was
                loaded but did not normalize, so they are not loaded again.
        """
        if not providers:
            raise ValueError("at least one provider is required")
        if batch_size < 1 or concurrency < 1:
            raise ValueError("batch_size and concurrency must be at least 1")
        self.providers = list(providers)
        self._cache = cache
        self.batch_size = batch_size
        self.concurrency = concurrency
        self.batch_pause = batch_pause
        self._health = health
        self._rejected = rejected

    def _normalize(
        self,
        provider: TransactionProvider,
        records: list[dict[str, Any]],
        wallet: str,
    ) -> list[CanonicalTransaction]:
        observed_at = datetime.now(UTC)
        transactions: list[CanonicalTransaction] = []
        for record in records:
            try:
                tx = provider.normalizer.normalize(record, wallet, observed_at)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed %s record for %s: %s", provider.name, wallet, e)
                continue
            if tx is not None:
                transactions.append(tx)
            elif self._rejected is not None:
                signature = rpc_signature(record)
                if signature:
                    self._rejected.set(signature, None)
        return transactions

    async def fetch_wallet(self, wallet: str) -> list[CanonicalTransaction]:
        """Fetch unseen transactions for one wallet.

        Returns:
            Normalized transactions whose signature is not cached; empty when
            every provider failed or had nothing.
        """
        errors: list[str] = []

        for provider in self.providers:
            try:
                records = await provider.fetch(wallet)
            except Exception as e:
                errors.append(f"{provider.name}: {e}")
                if self._health:
                    self._health.record_provider_failure(provider.name, str(e))
                logger.warning("%s failed for %s: %s", provider.name, wallet, e)
                continue

            if self._health:
                self._health.record_provider_success(provider.name)

            transactions = self._normalize(provider, records, wallet)
            if transactions:
                fresh = [tx for tx in transactions if tx.signature not in self._cache]
                logger.debug(
                    "%s returned %d transactions for %s (%d new)",
                    provider.name,
                    len(transactions),
                    wallet,
                    len(fresh),
                )
                return fresh

        if len(errors) == len(self.providers):
            logger.error("All providers failed for %s: %s", wallet, ", ".join(errors))
        return []

    async def fetch_all(self, wallets: Sequence[str]) -> list[CanonicalTransaction]:
        """Fetch unseen transactions for every wallet.

        A signature reported for more than one wallet in the same call is
        returned once, for the first wallet in ``wallets`` order.
        """
        if self._rejected is not None:
            self._rejected.sweep()
        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(wallet: str) -> list[CanonicalTransaction]:
            async with semaphore:
                return await self.fetch_wallet(wallet)

        results: list[CanonicalTransaction] = []
        seen: set[str] = set()
        batches = [wallets[i : i + self.batch_size] for i in range(0, len(wallets), self.batch_size)]

        for index, batch in enumerate(batches):
            if index > 0 and self.batch_pause > 0:
                await asyncio.sleep(self.batch_pause)

            outcomes = await asyncio.gather(
                *(bounded(wallet) for wallet in batch),
                return_exceptions=True,
            )
            for wallet, outcome in zip(batch, outcomes, strict=True):
                if isinstance(outcome, BaseException):
                    logger.error("Unexpected error fetching %s: %s", wallet, outcome)
                    continue
                for tx in outcome:
                    if tx.signature not in seen:
                        seen.add(tx.signature)
                        results.append(tx)

        return results
