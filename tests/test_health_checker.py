# tests/test_health_checker.py

"""Tests for the backend health checker service."""

import unittest
from unittest.mock import patch

from gateway_fakes import FakeRedisClient

from search_gateway.services.circuit_breaker import CircuitBreaker
from search_gateway.services.health_checker import (
    HealthChecker,
    HealthResult,
    cache_roundtrip,
    overall_status,
    probe_component,
)
from search_gateway.storage.cache_store import InMemoryCacheStore
from search_gateway.storage.redis_cache_store import RedisCacheStore


def _result(status: str) -> HealthResult:
    """Build a HealthResult with the given status."""
    return HealthResult(
        component="x", status=status, latency_ms=1.0, message="",
    )


class TestProbeComponent(unittest.TestCase):
    """Tests for the per-component probe function."""

    def test_ok_status(self) -> None:
        """A fast successful probe is 'ok'."""
        result = probe_component("primary", lambda: True)
        self.assertEqual(result.status, "ok")
        self.assertEqual(result.component, "primary")
        self.assertEqual(result.message, "")

    def test_down_on_false(self) -> None:
        """A probe answering False is 'down'."""
        result = probe_component("primary", lambda: False)
        self.assertEqual(result.status, "down")

    def test_down_on_exception(self) -> None:
        """A raising probe is 'down' with the error as message."""

        def broken() -> bool:
            raise ConnectionError("Connection refused")

        result = probe_component("cache", broken)
        self.assertEqual(result.status, "down")
        self.assertIn("Connection refused", result.message)

    @patch("search_gateway.services.health_checker.time.monotonic")
    def test_slow_status(self, mock_monotonic: object) -> None:
        """A probe over the slow threshold is 'slow'."""
        mock_monotonic.side_effect = [0.0, 6.0]  # type: ignore[attr-defined]
        result = probe_component("fallback", lambda: True)
        self.assertEqual(result.status, "slow")
        self.assertAlmostEqual(result.latency_ms, 6000.0)

    def test_custom_slow_threshold(self) -> None:
        """slow_ms overrides the configured threshold."""
        result = probe_component("fallback", lambda: True, slow_ms=-1)
        self.assertEqual(result.status, "slow")


class TestOverallStatus(unittest.TestCase):
    """Aggregation of probe results into one verdict."""

    def test_healthy(self) -> None:
        """No down components is healthy, slow ones included."""
        self.assertEqual(
            overall_status([_result("ok"), _result("slow")]), "healthy",
        )

    def test_degraded(self) -> None:
        """Exactly one down component is degraded."""
        self.assertEqual(
            overall_status([_result("down"), _result("ok")]), "degraded",
        )

    def test_unhealthy(self) -> None:
        """Two or more down components is unhealthy."""
        self.assertEqual(
            overall_status([_result("down")] * 2 + [_result("ok")]),
            "unhealthy",
        )


class TestHealthChecker(unittest.IsolatedAsyncioTestCase):
    """Tests for the async HealthChecker runner."""

    async def test_check_all_reports_every_probe(self) -> None:
        """check_all returns one result per registered probe."""
        checker = HealthChecker({
            "primary": lambda: True,
            "fallback": lambda: False,
        })
        report = await checker.check_all()
        self.assertEqual(len(report.checks), 2)
        self.assertEqual(report.status, "degraded")
        self.assertEqual(report.unhealthy_count, 1)

    async def test_breaker_state_included(self) -> None:
        """The breaker state is copied into the report."""
        breaker = CircuitBreaker()
        breaker.force_open()
        checker = HealthChecker({"primary": lambda: True}, breaker=breaker)
        report = await checker.check_all()
        self.assertEqual(report.breaker_state, "open")

    def test_cache_roundtrip(self) -> None:
        """A working cache echoes the probe marker."""
        self.assertTrue(cache_roundtrip(InMemoryCacheStore()))

    def test_cache_roundtrip_through_redis_codec(self) -> None:
        """The marker survives JSON encoding in the Redis store."""
        store = RedisCacheStore(client=FakeRedisClient())
        result = probe_component("cache", lambda: cache_roundtrip(store))
        self.assertEqual(result.status, "ok")
        self.assertEqual(result.message, "")


if __name__ == "__main__":
    unittest.main()
