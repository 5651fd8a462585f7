"""Main pipeline orchestrator for the Solana Whale Tracker.

This module provides the Pipeline class that wires the ingestion and
alerting components together and owns their shared state.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import httpx

from solana_whale_tracker.alerter.channels.telegram import TelegramTransport
from solana_whale_tracker.alerter.commands import CommandHandler
from solana_whale_tracker.alerter.dispatcher import FanOutDispatcher
from solana_whale_tracker.alerter.formatter import AlertFormatter
from solana_whale_tracker.alerter.subscribers import SubscriberRegistry
from solana_whale_tracker.config import Settings, get_settings
from solana_whale_tracker.health import HealthMonitor
from solana_whale_tracker.ingestor.cache import DedupCache
from solana_whale_tracker.ingestor.fetcher import WalletFetcher
from solana_whale_tracker.ingestor.providers import (
    HeliusProvider,
    SolanaFMProvider,
    SolanaRpcProvider,
    SolscanProvider,
    TransactionProvider,
)
from solana_whale_tracker.ingestor.rate_limiter import RateLimiter
from solana_whale_tracker.ingestor.retry import RetryController
from solana_whale_tracker.ingestor.swaps import SwapNormalizer
from solana_whale_tracker.scheduler import CycleResult, PollingScheduler, SchedulerAbortedError

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    """Pipeline lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class PipelineStats:
    """Statistics for the pipeline."""

    started_at: datetime | None = None
    last_error: str | None = None


def build_providers(
    settings: Settings,
    client: httpx.AsyncClient,
    rate_limiter: RateLimiter,
    cache: DedupCache[Any],
    rejected: DedupCache[Any] | None = None,
) -> list[TransactionProvider]:
    """Build the provider chain for the configured fetch mode.

    Every provider gets its own RetryController; all of them share
    ``rate_limiter``. The RPC provider skips signatures held in ``cache``
    or ``rejected``.
    """
    tracker = settings.tracker
    providers_cfg = settings.providers

    def retry(name: str, endpoints: list[str] | None = None) -> RetryController:
        return RetryController(
            rate_limiter,
            endpoints=endpoints or (),
            max_retries=tracker.max_retries,
            backoff_base=tracker.backoff_base,
            backoff_cap=tracker.backoff_cap,
            name=name,
        )

    def is_known(signature: str) -> bool:
        return signature in cache or (rejected is not None and signature in rejected)

    if tracker.mode in ("rpc", "swaps"):
        normalizer = None
        if tracker.mode == "swaps":
            normalizer = SwapNormalizer(
                tracker.swap_programs,
                min_increase=tracker.min_swap_increase,
            )
        return [
            SolanaRpcProvider(
                client,
                retry("Solana RPC", settings.rpc.urls),
                normalizer=normalizer,
                signature_limit=settings.rpc.signature_limit,
                is_known=is_known,
            )
        ]

    providers: list[TransactionProvider] = []
    if providers_cfg.helius_api_key is not None:
        providers.append(
            HeliusProvider(
                client,
                retry("Helius"),
                providers_cfg.helius_api_key.get_secret_value(),
                base_url=providers_cfg.helius_url,
                limit=providers_cfg.page_limit,
            )
        )
    else:
        logger.info("HELIUS_API_KEY not set, skipping Helius")
    providers.append(
        SolscanProvider(
            client,
            retry("Solscan"),
            base_url=providers_cfg.solscan_url,
            limit=providers_cfg.page_limit,
        )
    )
    providers.append(
        SolanaFMProvider(
            client,
            retry("SolanaFM"),
            base_url=providers_cfg.solanafm_url,
            limit=providers_cfg.page_limit,
        )
    )
    return providers


class Pipeline:
    """Main pipeline orchestrator for the Solana Whale Tracker.

    Pipeline flow:
        Scheduler → Fetcher (providers) → Formatter → Dispatcher → Telegram

    Example:
        ```python
        from solana_whale_tracker.config import get_settings
        from solana_whale_tracker.pipeline import Pipeline

        settings = get_settings()
        pipeline = Pipeline(settings)
        await pipeline.start()

        # Pipeline runs until stop() is called
        await pipeline.stop()
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        dry_run: bool | None = None,
        health_port: int | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            dry_run: If True, log alerts instead of sending them. Overrides
                settings.dry_run.
            health_port: Overrides settings.health_port; 0 disables the
                health server.
        """
        self._settings = settings or get_settings()
        self._dry_run = dry_run if dry_run is not None else self._settings.dry_run
        self._health_port = (
            health_port if health_port is not None else self._settings.health_port
        )
        self._state = PipelineState.STOPPED
        self._stats = PipelineStats()

        # Components (initialized in start())
        self._http_client: httpx.AsyncClient | None = None
        self._telegram_client: httpx.AsyncClient | None = None
        self._cache: DedupCache[Any] | None = None
        self._subscribers = SubscriberRegistry()
        self._health: HealthMonitor | None = None
        self._scheduler: PollingScheduler | None = None
        self._commands: CommandHandler | None = None

        # Synchronization
        self._stop_event: asyncio.Event | None = None
        self._scheduler_task: asyncio.Task[None] | None = None
        self._commands_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> PipelineState:
        """Current pipeline state."""
        return self._state

    @property
    def stats(self) -> PipelineStats:
        """Current pipeline statistics."""
        return self._stats

    @property
    def is_running(self) -> bool:
        """Check if pipeline is running."""
        return self._state == PipelineState.RUNNING

    @property
    def subscribers(self) -> SubscriberRegistry:
        return self._subscribers

    async def start(self) -> None:
        """Start the pipeline.

        Raises:
            RuntimeError: If pipeline is already running.
            Exception: If any component fails to initialize.
        """
        if self._state != PipelineState.STOPPED:
            raise RuntimeError(f"Cannot start pipeline in state {self._state}")

        self._state = PipelineState.STARTING
        self._stop_event = asyncio.Event()
        logger.info("Starting pipeline...")

        try:
            self._initialize_components()
            await self._start_background_services()
            self._stats.started_at = datetime.now(UTC)
            self._state = PipelineState.RUNNING
            logger.info("Pipeline started successfully")
        except Exception as e:
            self._state = PipelineState.ERROR
            self._stats.last_error = str(e)
            logger.error("Failed to start pipeline: %s", e)
            await self._cleanup()
            raise

    async def stop(self) -> None:
        """Stop the pipeline gracefully."""
        if self._state == PipelineState.STOPPED:
            return

        self._state = PipelineState.STOPPING
        logger.info("Stopping pipeline...")

        if self._stop_event:
            self._stop_event.set()

        await self._stop_background_services()
        await self._cleanup()

        self._state = PipelineState.STOPPED
        logger.info("Pipeline stopped")

    async def run_once(self) -> CycleResult:
        """Run a single polling cycle without background services.

        Raises:
            RuntimeError: If pipeline is already running.
        """
        if self._state != PipelineState.STOPPED:
            raise RuntimeError(f"Cannot run a cycle in state {self._state}")

        scheduler = self._initialize_components()
        try:
            return await scheduler.run_cycle()
        finally:
            await self._cleanup()

    def _initialize_components(self) -> PollingScheduler:
        """Initialize all pipeline components.

        Returns:
            The polling scheduler driving the cycles.
        """
        settings = self._settings
        tracker = settings.tracker

        logger.debug("Initializing HTTP clients...")
        self._http_client = httpx.AsyncClient(timeout=settings.providers.timeout)
        self._telegram_client = httpx.AsyncClient()

        self._cache = DedupCache(tracker.cache_expiry)
        rejected: DedupCache[Any] = DedupCache(tracker.cache_expiry)
        rate_limiter = RateLimiter(tracker.rate_limit_capacity, tracker.rate_limit_window)
        self._health = HealthMonitor(stale_after_seconds=max(tracker.poll_interval * 10, 300))

        providers = build_providers(
            settings, self._http_client, rate_limiter, self._cache, rejected
        )
        logger.info("Providers: %s", ", ".join(p.name for p in providers))

        fetcher = WalletFetcher(
            providers,
            self._cache,
            batch_size=tracker.batch_size,
            concurrency=tracker.batch_concurrency,
            batch_pause=tracker.batch_pause,
            health=self._health,
            rejected=rejected,
        )

        transport = TelegramTransport(
            settings.telegram.bot_token.get_secret_value(),
            api_base=settings.telegram.api_url,
            client=self._telegram_client,
        )
        dispatcher = FanOutDispatcher(transport, self._subscribers, dry_run=self._dry_run)

        scheduler = PollingScheduler(
            fetcher,
            AlertFormatter(tracker.min_alert_amount),
            dispatcher,
            self._cache,
            tracker.wallets,
            interval_seconds=tracker.poll_interval,
            health=self._health,
        )
        self._scheduler = scheduler
        self._commands = CommandHandler(
            transport,
            self._subscribers,
            tracker.wallets,
            interval_seconds=tracker.poll_interval,
            min_alert_amount=tracker.min_alert_amount,
            cache_size=self._cache.size,
            poll_timeout=settings.telegram.poll_timeout,
        )
        return scheduler

    async def _start_background_services(self) -> None:
        """Start background services."""
        if self._health:
            self._health.start()
            if self._health_port:
                logger.debug("Starting health server...")
                await self._health.start_http_server(self._health_port)

        if self._commands and not self._dry_run:
            logger.debug("Starting command polling...")
            self._commands_task = asyncio.create_task(self._run_commands())

        if self._scheduler:
            logger.debug("Starting polling scheduler...")
            self._scheduler_task = asyncio.create_task(self._run_scheduler())

    async def _run_scheduler(self) -> None:
        if not self._scheduler or not self._stop_event:
            return
        try:
            await self._scheduler.run(self._stop_event)
        except SchedulerAbortedError as e:
            self._state = PipelineState.ERROR
            self._stats.last_error = str(e)
            logger.error("Polling scheduler aborted: %s", e)

    async def _run_commands(self) -> None:
        if not self._commands or not self._stop_event:
            return
        await self._commands.run(self._stop_event)

    async def _stop_background_services(self) -> None:
        """Stop background services."""
        for task in (self._commands_task, self._scheduler_task):
            if task:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._commands_task = None
        self._scheduler_task = None

        if self._health:
            await self._health.stop_http_server()

    async def _cleanup(self) -> None:
        """Clean up resources."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

        if self._telegram_client:
            await self._telegram_client.aclose()
            self._telegram_client = None

        logger.debug("Resources cleaned up")
