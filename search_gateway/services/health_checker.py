# search_gateway/services/health_checker.py

"""Connectivity health checks for the gateway's backing services."""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from search_gateway.config.settings import Settings
from search_gateway.services.circuit_breaker import CircuitBreaker
from search_gateway.storage.cache_store import CacheStore

logger = logging.getLogger("search_gateway.health")

_PROBE_KEY = "health:probe"


@dataclass
class HealthResult:
    """Result of a single component health check."""

    component: str
    status: str  # "ok", "slow", "down"
    latency_ms: float
    message: str


@dataclass
class HealthReport:
    """Overall verdict plus the individual probe results."""

    status: str  # "healthy", "degraded", "unhealthy"
    checks: list[HealthResult] = field(
        default_factory=lambda: list[HealthResult]()
    )
    breaker_state: str = "closed"

    @property
    def unhealthy_count(self) -> int:
        return sum(1 for c in self.checks if c.status == "down")


def overall_status(checks: list[HealthResult]) -> str:
    """healthy with no down component, degraded with one, else unhealthy."""
    down = sum(1 for c in checks if c.status == "down")
    if down == 0:
        return "healthy"
    if down == 1:
        return "degraded"
    return "unhealthy"


def cache_roundtrip(store: CacheStore) -> bool:
    """Write a short-lived marker and read it back.

    The marker is a one-element string tuple, a shape every backend
    codec can store.
    """
    marker = (str(time.time()),)
    store.set(_PROBE_KEY, marker, 5.0)
    return tuple(store.get(_PROBE_KEY) or ()) == marker


def probe_component(
    component: str,
    probe: Callable[[], bool],
    slow_ms: float | None = None,
) -> HealthResult:
    """Time one probe and classify it as ok, slow or down."""
    threshold = slow_ms if slow_ms is not None else Settings.HEALTH_SLOW_MS
    start = time.monotonic()
    try:
        alive = probe()
    except Exception as exc:
        elapsed_ms = (time.monotonic() - start) * 1000
        return HealthResult(
            component=component,
            status="down",
            latency_ms=elapsed_ms,
            message=str(exc)[:80],
        )
    elapsed_ms = (time.monotonic() - start) * 1000

    if not alive:
        return HealthResult(
            component=component,
            status="down",
            latency_ms=elapsed_ms,
            message="Probe reported unavailable",
        )

    if elapsed_ms > threshold:
        return HealthResult(
            component=component,
            status="slow",
            latency_ms=elapsed_ms,
            message="High latency",
        )

    return HealthResult(
        component=component,
        status="ok",
        latency_ms=elapsed_ms,
        message="",
    )


class HealthChecker:
    """Runs concurrent health probes against every registered component."""

    def __init__(
        self,
        probes: dict[str, Callable[[], bool]],
        breaker: CircuitBreaker | None = None,
        slow_ms: float | None = None,
    ) -> None:
        self.probes = probes
        self.breaker = breaker
        self.slow_ms = slow_ms

    async def check_all(self) -> HealthReport:
        """Probe every component concurrently and summarise."""
        tasks = [
            asyncio.to_thread(probe_component, name, probe, self.slow_ms)
            for name, probe in self.probes.items()
        ]
        results: list[HealthResult] = list(
            await asyncio.gather(*tasks)
        )
        for r in results:
            logger.info(
                "Health check %s: %s (%.0fms) %s",
                r.component,
                r.status,
                r.latency_ms,
                r.message,
            )

        report = HealthReport(status=overall_status(results), checks=results)
        if self.breaker is not None:
            report.breaker_state = self.breaker.state.value
        if report.status != "healthy":
            logger.warning(
                "Gateway %s: %d component(s) down",
                report.status,
                report.unhealthy_count,
            )
        return report
