"""Tracker health monitor with metrics and HTTP endpoints.

Tracks per-provider outcomes, polling cycle outcomes and staleness, and
exposes them as Prometheus metrics and a JSON health document.
"""

import copy
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from aiohttp import web
from prometheus_client import Counter, Gauge, Histogram, generate_latest

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_STALE_AFTER_SECONDS = 300  # No successful cycle for 5 min = unhealthy
DEFAULT_HTTP_PORT = 8080


class HealthStatus(Enum):
    """Overall health status."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ProviderStatus(Enum):
    """Status of an individual data provider."""

    UNKNOWN = "unknown"
    ACTIVE = "active"
    FAILING = "failing"


@dataclass
class ProviderHealth:
    """Health status for an individual provider."""

    name: str
    status: ProviderStatus = ProviderStatus.UNKNOWN
    successes: int = 0
    failures: int = 0
    last_success_time: float | None = None
    last_error: str | None = None


@dataclass
class HealthReport:
    """Health report for the tracker."""

    status: HealthStatus
    providers: dict[str, ProviderHealth] = field(default_factory=dict)
    cycles_completed: int = 0
    cycles_failed: int = 0
    last_cycle_time: float | None = None
    seconds_since_last_cycle: float | None = None
    cache_size: int = 0
    subscribers: int = 0
    uptime_seconds: float = 0.0
    timestamp: float = field(default_factory=time.time)


# Prometheus metrics
PROVIDER_REQUESTS = Counter(
    "solana_tracker_provider_requests_total",
    "Provider fetches by outcome",
    ["provider", "outcome"],
)

PROVIDER_STATUS = Gauge(
    "solana_tracker_provider_status",
    "Provider status (1=active, 0=failing)",
    ["provider"],
)

CYCLES_TOTAL = Counter(
    "solana_tracker_cycles_total",
    "Polling cycles by outcome",
    ["outcome"],
)

CYCLE_DURATION = Histogram(
    "solana_tracker_cycle_duration_seconds",
    "Polling cycle duration in seconds",
    buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
)

ALERTED_TRANSACTIONS = Counter(
    "solana_tracker_alerted_transactions_total",
    "Transactions included in dispatched alerts",
)

CACHE_SIZE = Gauge(
    "solana_tracker_cache_entries",
    "Entries in the deduplication cache",
)

SUBSCRIBERS = Gauge(
    "solana_tracker_subscribers",
    "Active alert subscribers",
)

HEALTH_STATUS = Gauge(
    "solana_tracker_health_status",
    "Overall health status (1=healthy, 0.5=degraded, 0=unhealthy)",
)


class HealthMonitor:
    """Monitor tracker health and expose metrics.

    Example:
        ```python
        monitor = HealthMonitor(stale_after_seconds=300)
        monitor.start()

        monitor.record_provider_success("Helius")
        monitor.record_cycle(success=True, duration=1.2, alerted=3)

        report = monitor.get_health_report()

        # HTTP endpoints: /health, /metrics, /ready and /live
        await monitor.start_http_server(port=8080)
        ```
    """

    def __init__(
        self,
        *,
        stale_after_seconds: float = DEFAULT_STALE_AFTER_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the health monitor.

        Args:
            stale_after_seconds: Seconds without a successful cycle before the
                tracker is reported unhealthy.
            clock: Wall clock, injectable for tests.
        """
        self._stale_after = stale_after_seconds
        self._clock = clock

        self._providers: dict[str, ProviderHealth] = {}
        self._start_time: float | None = None
        self._cycles_completed = 0
        self._cycles_failed = 0
        self._last_cycle_time: float | None = None
        self._cache_size = 0
        self._subscribers = 0

        # HTTP server
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None

    def start(self) -> None:
        """Start the uptime and staleness clocks."""
        if self._start_time is None:
            self._start_time = self._clock()

    def _provider(self, name: str) -> ProviderHealth:
        if name not in self._providers:
            self._providers[name] = ProviderHealth(name=name)
        return self._providers[name]

    def record_provider_success(self, name: str) -> None:
        """Record a provider fetch that completed."""
        provider = self._provider(name)
        provider.status = ProviderStatus.ACTIVE
        provider.successes += 1
        provider.last_success_time = self._clock()
        provider.last_error = None
        PROVIDER_REQUESTS.labels(provider=name, outcome="success").inc()
        PROVIDER_STATUS.labels(provider=name).set(1.0)

    def record_provider_failure(self, name: str, error: str | None = None) -> None:
        """Record a provider fetch that raised."""
        provider = self._provider(name)
        provider.status = ProviderStatus.FAILING
        provider.failures += 1
        provider.last_error = error
        PROVIDER_REQUESTS.labels(provider=name, outcome="failure").inc()
        PROVIDER_STATUS.labels(provider=name).set(0.0)
        logger.debug("Provider failure recorded: %s (error: %s)", name, error)

    def record_cycle(self, *, success: bool, duration: float, alerted: int = 0) -> None:
        """Record the outcome of one polling cycle."""
        CYCLE_DURATION.observe(duration)
        if success:
            self._cycles_completed += 1
            self._last_cycle_time = self._clock()
            CYCLES_TOTAL.labels(outcome="success").inc()
            if alerted:
                ALERTED_TRANSACTIONS.inc(alerted)
        else:
            self._cycles_failed += 1
            CYCLES_TOTAL.labels(outcome="failure").inc()

    def set_cache_size(self, size: int) -> None:
        self._cache_size = size
        CACHE_SIZE.set(size)

    def set_subscribers(self, count: int) -> None:
        self._subscribers = count
        SUBSCRIBERS.set(count)

    def _determine_overall_status(self, now: float) -> HealthStatus:
        """Determine overall health status from cycle freshness and providers."""
        reference = self._last_cycle_time or self._start_time
        if reference is not None and now - reference > self._stale_after:
            return HealthStatus.UNHEALTHY

        if any(p.status == ProviderStatus.FAILING for p in self._providers.values()):
            return HealthStatus.DEGRADED

        return HealthStatus.HEALTHY

    def get_health_report(self) -> HealthReport:
        """Generate a health report.

        Returns:
            HealthReport with the current status of the tracker.
        """
        now = self._clock()
        overall_status = self._determine_overall_status(now)
        HEALTH_STATUS.set(
            1.0 if overall_status == HealthStatus.HEALTHY
            else 0.5 if overall_status == HealthStatus.DEGRADED
            else 0.0
        )

        since_cycle = None
        if self._last_cycle_time is not None:
            since_cycle = now - self._last_cycle_time

        uptime = 0.0
        if self._start_time:
            uptime = now - self._start_time

        providers_copy = {name: copy.copy(p) for name, p in self._providers.items()}

        return HealthReport(
            status=overall_status,
            providers=providers_copy,
            cycles_completed=self._cycles_completed,
            cycles_failed=self._cycles_failed,
            last_cycle_time=self._last_cycle_time,
            seconds_since_last_cycle=since_cycle,
            cache_size=self._cache_size,
            subscribers=self._subscribers,
            uptime_seconds=uptime,
            timestamp=now,
        )

    # HTTP Server methods

    async def _handle_health(self, _request: web.Request) -> web.Response:
        """Handle /health endpoint."""
        report = self.get_health_report()

        status_code = 503 if report.status == HealthStatus.UNHEALTHY else 200

        body: dict[str, Any] = {
            "status": report.status.value,
            "uptime_seconds": report.uptime_seconds,
            "cycles_completed": report.cycles_completed,
            "cycles_failed": report.cycles_failed,
            "seconds_since_last_cycle": report.seconds_since_last_cycle,
            "cache_size": report.cache_size,
            "subscribers": report.subscribers,
            "providers": {},
        }

        for name, provider in report.providers.items():
            body["providers"][name] = {
                "status": provider.status.value,
                "successes": provider.successes,
                "failures": provider.failures,
                "last_success_time": provider.last_success_time,
                "last_error": provider.last_error,
            }

        return web.json_response(body, status=status_code)

    async def _handle_metrics(self, _request: web.Request) -> web.Response:
        """Handle /metrics endpoint (Prometheus format)."""
        self.get_health_report()

        metrics = generate_latest()
        return web.Response(
            body=metrics,
            content_type="text/plain",
            charset="utf-8",
        )

    async def _handle_ready(self, _request: web.Request) -> web.Response:
        """Handle /ready endpoint for k8s readiness checks."""
        report = self.get_health_report()

        if report.status == HealthStatus.UNHEALTHY:
            return web.json_response(
                {"ready": False, "reason": "unhealthy"},
                status=503,
            )

        return web.json_response({"ready": True}, status=200)

    async def _handle_live(self, _request: web.Request) -> web.Response:
        """Handle /live endpoint for k8s liveness checks."""
        return web.json_response({"live": True}, status=200)

    def create_app(self) -> web.Application:
        """Create the aiohttp application."""
        app = web.Application()
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/metrics", self._handle_metrics)
        app.router.add_get("/ready", self._handle_ready)
        app.router.add_get("/live", self._handle_live)
        return app

    async def start_http_server(self, port: int = DEFAULT_HTTP_PORT) -> None:
        """Start the HTTP server for health and metrics endpoints.

        Args:
            port: Port to listen on.
        """
        if self._runner:
            logger.warning("HTTP server already running")
            return

        self._app = self.create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        site = web.TCPSite(self._runner, "0.0.0.0", port)
        await site.start()

        logger.info("Health HTTP server started on port %d", port)

    async def stop_http_server(self) -> None:
        """Stop the HTTP server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._app = None
            logger.info("Health HTTP server stopped")
