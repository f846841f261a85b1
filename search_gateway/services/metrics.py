# search_gateway/services/metrics.py

"""Running counters and a bounded latency buffer for the gateway.

p95 is estimated by sorting the most recent samples (1,000 by
default). This is a bounded-buffer approximation for observability,
not an exact streaming percentile.
"""

import asyncio
import logging
import math
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import asdict, dataclass

from search_gateway.config.settings import Settings

logger = logging.getLogger("search_gateway.metrics")


@dataclass(frozen=True)
class MetricsSnapshot:
    """Flat numeric record suitable for a metrics endpoint or agent."""

    total_queries: int
    cache_hits: int
    cache_misses: int
    primary_calls: int
    fallback_calls: int
    average_latency_ms: float
    p95_latency_ms: float
    error_count: int
    since_timestamp: float

    @property
    def cache_hit_ratio(self) -> float:
        """Share of queries served from cache, 0.0 to 1.0."""
        if self.total_queries == 0:
            return 0.0
        return self.cache_hits / self.total_queries

    def to_dict(self) -> dict[str, float]:
        data: dict[str, float] = asdict(self)
        data["cache_hit_ratio"] = round(self.cache_hit_ratio, 4)
        return data


class MetricsCollector:
    """Thread-safe counters plus a FIFO ring of recent latencies."""

    def __init__(
        self,
        buffer_size: int | None = None,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self._lock = threading.Lock()
        self._wall_clock = wall_clock
        self._buffer_size = buffer_size or Settings.LATENCY_BUFFER_SIZE
        self._latencies: deque[float] = deque(maxlen=self._buffer_size)
        self._reset_counters()

    def _reset_counters(self) -> None:
        self._total_queries = 0
        self._cache_hits = 0
        self._cache_misses = 0
        self._primary_calls = 0
        self._fallback_calls = 0
        self._error_count = 0
        self._average_latency = 0.0
        self._latencies.clear()
        self._since = self._wall_clock()

    # ── Recording ────────────────────────────────────────

    def record_query(self, latency_ms: float, cache_hit: bool) -> None:
        """Count a served query and sample its latency."""
        with self._lock:
            self._total_queries += 1
            if cache_hit:
                self._cache_hits += 1
            else:
                self._cache_misses += 1
            n = self._total_queries
            self._average_latency += (
                latency_ms - self._average_latency
            ) / n
            self._latencies.append(latency_ms)

    def record_primary_call(self) -> None:
        with self._lock:
            self._primary_calls += 1

    def record_fallback_call(self) -> None:
        with self._lock:
            self._fallback_calls += 1

    def record_error(self) -> None:
        with self._lock:
            self._error_count += 1

    # ── Reading ──────────────────────────────────────────

    def snapshot(self) -> MetricsSnapshot:
        """Derive a snapshot from the counters and the sample buffer."""
        with self._lock:
            samples = sorted(self._latencies)
            p95 = 0.0
            if samples:
                index = min(
                    math.floor(len(samples) * 0.95), len(samples) - 1
                )
                p95 = samples[index]
            return MetricsSnapshot(
                total_queries=self._total_queries,
                cache_hits=self._cache_hits,
                cache_misses=self._cache_misses,
                primary_calls=self._primary_calls,
                fallback_calls=self._fallback_calls,
                average_latency_ms=self._average_latency,
                p95_latency_ms=p95,
                error_count=self._error_count,
                since_timestamp=self._since,
            )

    def reset(self) -> None:
        """Zero every counter and empty the latency buffer."""
        with self._lock:
            self._reset_counters()
        logger.info("Metrics reset")


def log_snapshot(snapshot: MetricsSnapshot) -> None:
    """Write a snapshot to the metrics logger in a readable block."""
    logger.info(
        "Search metrics: queries=%d hit_ratio=%.2f%% primary=%d "
        "fallback=%d avg=%.2fms p95=%.2fms errors=%d",
        snapshot.total_queries,
        snapshot.cache_hit_ratio * 100,
        snapshot.primary_calls,
        snapshot.fallback_calls,
        snapshot.average_latency_ms,
        snapshot.p95_latency_ms,
        snapshot.error_count,
    )


class MetricsReporter:
    """Periodically pushes snapshots to the log and an optional sink."""

    def __init__(
        self,
        collector: MetricsCollector,
        interval: float | None = None,
        sink: Callable[[MetricsSnapshot], None] | None = None,
    ) -> None:
        self.collector = collector
        self.interval = interval or Settings.METRICS_REPORT_INTERVAL
        self.sink = sink
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def report(self) -> MetricsSnapshot:
        """Take one snapshot and push it out now."""
        snapshot = self.collector.snapshot()
        log_snapshot(snapshot)
        if self.sink is not None:
            try:
                self.sink(snapshot)
            except Exception:
                logger.error("Metrics sink failed", exc_info=True)
        return snapshot

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.report()

    def start(self) -> None:
        """Begin reporting on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.debug("Metrics reporter started (every %.0fs)", self.interval)

    async def stop(self) -> None:
        """Cancel the reporting task and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            logger.debug("Metrics reporter stopped")
        self._task = None
