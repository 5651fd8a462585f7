"""Graceful shutdown handling for the Solana Whale Tracker.

Usage:
    ```python
    async def main():
        async with GracefulShutdown() as shutdown:
            pipeline = Pipeline(settings)
            shutdown.register_cleanup(pipeline.stop)
            await pipeline.start()

            # Returns on SIGTERM, SIGINT or request_shutdown()
            await shutdown.wait()
    ```
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from collections.abc import Callable
from contextlib import suppress
from types import FrameType
from typing import Any

logger = logging.getLogger(__name__)

# Default time allowed for cleanup callbacks, in seconds
DEFAULT_SHUTDOWN_TIMEOUT = 30.0

# Signals to trap for graceful shutdown
SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class ShutdownTimeoutError(Exception):
    """Raised when cleanup callbacks exceed the shutdown timeout."""


class GracefulShutdown:
    """Signal-driven shutdown coordinator.

    The first SIGTERM/SIGINT sets the shutdown event; a second one exits the
    process immediately. Cleanup callbacks (sync or async) run in
    registration order on context exit, bounded by ``timeout``.
    """

    def __init__(self, timeout: float = DEFAULT_SHUTDOWN_TIMEOUT) -> None:
        """Initialize the shutdown handler.

        Args:
            timeout: Maximum seconds allowed for all cleanup callbacks.
        """
        self._timeout = timeout
        self._event = asyncio.Event()
        self._signal_count = 0
        self._loop: asyncio.AbstractEventLoop | None = None
        self._fallback_handlers: dict[signal.Signals, Any] = {}
        self._cleanup_callbacks: list[Callable[[], Any]] = []

    @property
    def timeout(self) -> float:
        """Cleanup timeout in seconds."""
        return self._timeout

    @property
    def is_shutdown_requested(self) -> bool:
        return self._event.is_set()

    @property
    def event(self) -> asyncio.Event:
        """Event set once shutdown is requested."""
        return self._event

    def register_cleanup(self, callback: Callable[[], Any]) -> None:
        """Register a sync or async callable to run during shutdown."""
        self._cleanup_callbacks.append(callback)

    def request_shutdown(self) -> None:
        """Request shutdown from application code."""
        if not self._event.is_set():
            logger.info("Shutdown requested")
            self._event.set()

    async def wait(self) -> None:
        """Block until shutdown is requested."""
        await self._event.wait()

    def _handle_signal(self, sig: signal.Signals) -> None:
        self._signal_count += 1
        if self._signal_count > 1:
            logger.warning("Received %s again - forcing exit!", sig.name)
            sys.exit(128 + sig.value)
        logger.info("Received %s - initiating graceful shutdown...", sig.name)
        self._event.set()

    def _handle_signal_sync(self, sig: int, _frame: FrameType | None) -> None:
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._handle_signal, signal.Signals(sig))
        else:
            self._handle_signal(signal.Signals(sig))

    def install_signal_handlers(self) -> None:
        """Trap SIGTERM and SIGINT on the running loop.

        Falls back to ``signal.signal`` where the loop cannot register
        handlers (Windows).
        """
        self._loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            try:
                self._loop.add_signal_handler(sig, self._handle_signal, sig)
            except NotImplementedError:
                with suppress(ValueError, OSError):
                    self._fallback_handlers[sig] = signal.signal(sig, self._handle_signal_sync)
            except (ValueError, OSError) as e:
                logger.warning("Could not install handler for %s: %s", sig.name, e)
        logger.debug("Signal handlers installed")

    def remove_signal_handlers(self) -> None:
        """Remove installed handlers and restore any replaced ones."""
        if self._loop is not None:
            for sig in SHUTDOWN_SIGNALS:
                with suppress(ValueError, OSError, NotImplementedError):
                    self._loop.remove_signal_handler(sig)
        for sig, original in self._fallback_handlers.items():
            with suppress(ValueError, OSError):
                signal.signal(sig, original)
        self._fallback_handlers.clear()
        logger.debug("Signal handlers removed")

    async def _run_callbacks(self) -> None:
        for callback in self._cleanup_callbacks:
            try:
                result = callback()
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error("Cleanup callback failed: %s", e)

    async def run_cleanup_callbacks(self) -> None:
        """Run registered cleanup callbacks within the timeout.

        Raises:
            ShutdownTimeoutError: If the callbacks did not finish in time.
        """
        try:
            await asyncio.wait_for(self._run_callbacks(), timeout=self._timeout)
        except TimeoutError as e:
            raise ShutdownTimeoutError(
                f"cleanup did not finish within {self._timeout}s"
            ) from e

    async def __aenter__(self) -> GracefulShutdown:
        self.install_signal_handlers()
        return self

    async def __aexit__(self, *_args: Any) -> None:
        self.remove_signal_handlers()
        await self.run_cleanup_callbacks()
