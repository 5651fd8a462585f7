"""Polling scheduler driving fetch, format and dispatch cycles."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from solana_whale_tracker.alerter.dispatcher import DispatchResult, FanOutDispatcher
from solana_whale_tracker.alerter.formatter import AlertFormatter
from solana_whale_tracker.ingestor.cache import DedupCache
from solana_whale_tracker.ingestor.fetcher import WalletFetcher

if TYPE_CHECKING:
    from solana_whale_tracker.health import HealthMonitor

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 30.0


class SchedulerState(Enum):
    """Scheduler lifecycle states."""

    IDLE = "idle"
    RUNNING = "running"
    ABORTED = "aborted"


class SchedulerAbortedError(Exception):
    """Raised when the scheduler cannot run at all."""


@dataclass
class CycleResult:
    """Outcome of one polling cycle."""

    swept: int = 0
    new_transactions: int = 0
    dispatch: DispatchResult | None = None
    duration_seconds: float = 0.0

    @property
    def alerted(self) -> bool:
        return self.dispatch is not None


class PollingScheduler:
    """Runs one cycle per interval: sweep, fetch, format, remember, dispatch.

    New transactions are written to the cache before dispatch, so a
    transaction is never alerted twice even when delivery fails. A failing
    cycle is logged and the next one runs as scheduled.
    """

    def __init__(
        self,
        fetcher: WalletFetcher,
        formatter: AlertFormatter,
        dispatcher: FanOutDispatcher,
        cache: DedupCache[Any],
        wallets: Sequence[str],
        *,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        health: HealthMonitor | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            fetcher: Wallet fetcher.
            formatter: Alert formatter.
            dispatcher: Fan-out dispatcher.
            cache: Deduplication cache shared with the fetcher.
            wallets: Watched wallet addresses.
            interval_seconds: Seconds to wait between cycles.
            health: Optional monitor receiving cycle outcomes.
        """
        self.fetcher = fetcher
        self.formatter = formatter
        self.dispatcher = dispatcher
        self.cache = cache
        self.wallets = list(wallets)
        self.interval_seconds = interval_seconds
        self._health = health
        self._state = SchedulerState.IDLE

    @property
    def state(self) -> SchedulerState:
        return self._state

    def _ensure_runnable(self) -> None:
        if self._state is SchedulerState.ABORTED:
            raise SchedulerAbortedError("scheduler was aborted")
        if not self.wallets:
            self._state = SchedulerState.ABORTED
            logger.error("No wallets configured, scheduler aborted")
            raise SchedulerAbortedError("no wallets configured")

    async def run_cycle(self) -> CycleResult:
        """Run a single polling cycle.

        Raises:
            SchedulerAbortedError: If there are no wallets to watch.
        """
        self._ensure_runnable()
        self._state = SchedulerState.RUNNING
        started = time.monotonic()
        try:
            result = CycleResult(swept=self.cache.sweep())
            transactions = await self.fetcher.fetch_all(self.wallets)
            result.new_transactions = len(transactions)

            if transactions:
                alert = self.formatter.format(transactions)
                for tx in transactions:
                    self.cache.set(tx.signature, tx)
                result.dispatch = await self.dispatcher.dispatch(alert)
                logger.info("Alerted %d new transactions", len(transactions))
            else:
                logger.debug("No new transactions this cycle")

            result.duration_seconds = time.monotonic() - started
            if self._health:
                self._health.record_cycle(
                    success=True,
                    duration=result.duration_seconds,
                    alerted=result.new_transactions,
                )
                self._health.set_cache_size(self.cache.size())
                self._health.set_subscribers(len(self.dispatcher.subscribers))
            return result
        finally:
            self._state = SchedulerState.IDLE

    async def _run_guarded(self) -> CycleResult | None:
        """Run a cycle, logging any error instead of propagating it."""
        started = time.monotonic()
        try:
            return await self.run_cycle()
        except SchedulerAbortedError:
            raise
        except Exception as e:
            logger.exception("Polling cycle failed: %s", e)
            if self._health:
                self._health.record_cycle(success=False, duration=time.monotonic() - started)
            return None

    async def run(self, stop_event: asyncio.Event) -> None:
        """Run cycles on a fixed interval until the stop event is set.

        Raises:
            SchedulerAbortedError: If there are no wallets to watch.
        """
        self._ensure_runnable()
        logger.info(
            "Polling %d wallets every %ss",
            len(self.wallets),
            self.interval_seconds,
        )
        while not stop_event.is_set():
            await self._run_guarded()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
            except TimeoutError:
                pass
        logger.info("Polling scheduler stopped")
