# tests/test_circuit_breaker.py

"""Tests for the three-state circuit breaker."""

import threading
import unittest

from gateway_fakes import FakeClock

from search_gateway.services.circuit_breaker import (
    BreakerState,
    CircuitBreaker,
)


class TestCircuitBreaker(unittest.TestCase):
    """CircuitBreaker state machine with an injected clock."""

    def setUp(self) -> None:
        self.clock = FakeClock()
        self.breaker = CircuitBreaker(
            threshold=5, cooldown=60.0, clock=self.clock,
        )

    def _trip(self) -> None:
        for _ in range(5):
            self.breaker.record_failure()

    # ── Closed ───────────────────────────────────────────

    def test_starts_closed(self) -> None:
        """A new breaker allows calls."""
        self.assertEqual(self.breaker.state, BreakerState.CLOSED)
        self.assertTrue(self.breaker.allow())

    def test_stays_closed_below_threshold(self) -> None:
        """Four failures are not enough to trip."""
        for _ in range(4):
            self.breaker.record_failure()
        self.assertEqual(self.breaker.state, BreakerState.CLOSED)
        self.assertEqual(self.breaker.consecutive_failures, 4)
        self.assertTrue(self.breaker.allow())

    def test_success_resets_count(self) -> None:
        """A success between failures restarts the count."""
        for _ in range(4):
            self.breaker.record_failure()
        self.breaker.record_success()
        for _ in range(4):
            self.breaker.record_failure()
        self.assertEqual(self.breaker.state, BreakerState.CLOSED)

    # ── Open ─────────────────────────────────────────────

    def test_opens_at_threshold(self) -> None:
        """The fifth consecutive failure opens the breaker."""
        self._trip()
        self.assertEqual(self.breaker.state, BreakerState.OPEN)
        self.assertFalse(self.breaker.allow())

    def test_stays_open_during_cooldown(self) -> None:
        """Just before 60 s the breaker is still open."""
        self._trip()
        self.clock.advance(59.9)
        self.assertEqual(self.breaker.state, BreakerState.OPEN)
        self.assertFalse(self.breaker.allow())

    def test_snapshot_records_open_time(self) -> None:
        """snapshot() exposes when the breaker opened."""
        self._trip()
        snap = self.breaker.snapshot()
        self.assertEqual(snap.state, BreakerState.OPEN)
        self.assertEqual(snap.opened_at, self.clock.now)
        self.assertEqual(snap.consecutive_failures, 5)

    def test_success_while_open_closes(self) -> None:
        """An explicit success closes an open breaker."""
        self._trip()
        self.breaker.record_success()
        self.assertEqual(self.breaker.state, BreakerState.CLOSED)
        self.assertEqual(self.breaker.consecutive_failures, 0)

    # ── Half-open ────────────────────────────────────────

    def test_half_open_after_cooldown(self) -> None:
        """After the cool-down the breaker leaves Open without traffic."""
        self._trip()
        self.clock.advance(60)
        self.assertEqual(self.breaker.state, BreakerState.HALF_OPEN)

    def test_single_probe_allowed(self) -> None:
        """Only one caller gets through while half-open."""
        self._trip()
        self.clock.advance(60)
        self.assertTrue(self.breaker.allow())
        self.assertFalse(self.breaker.allow())
        self.assertFalse(self.breaker.allow())

    def test_probe_success_closes(self) -> None:
        """A successful probe closes the breaker."""
        self._trip()
        self.clock.advance(60)
        self.breaker.allow()
        self.breaker.record_success()
        self.assertEqual(self.breaker.state, BreakerState.CLOSED)
        self.assertTrue(self.breaker.allow())

    def test_probe_failure_reopens(self) -> None:
        """A failed probe re-opens for a full cool-down."""
        self._trip()
        self.clock.advance(60)
        self.breaker.allow()
        self.breaker.record_failure()
        self.assertEqual(self.breaker.state, BreakerState.OPEN)
        self.clock.advance(59)
        self.assertFalse(self.breaker.allow())
        self.clock.advance(1)
        self.assertTrue(self.breaker.allow())

    def test_unreported_probe_is_replaced(self) -> None:
        """A probe that never reports does not wedge the breaker."""
        self._trip()
        self.clock.advance(60)
        self.assertTrue(self.breaker.allow())
        self.clock.advance(60)
        self.assertTrue(self.breaker.allow())

    # ── Timer-only mode ──────────────────────────────────

    def test_timer_only_resets_to_closed(self) -> None:
        """half_open=False goes straight back to Closed."""
        breaker = CircuitBreaker(
            threshold=5, cooldown=60.0, half_open=False, clock=self.clock,
        )
        for _ in range(5):
            breaker.record_failure()
        self.clock.advance(60)
        self.assertEqual(breaker.state, BreakerState.CLOSED)
        self.assertEqual(breaker.consecutive_failures, 0)
        self.assertTrue(breaker.allow())
        self.assertTrue(breaker.allow())

    # ── Operator actions ─────────────────────────────────

    def test_force_open_and_reset(self) -> None:
        """force_open trips immediately; reset closes."""
        self.breaker.force_open()
        self.assertFalse(self.breaker.allow())
        self.breaker.reset()
        self.assertTrue(self.breaker.allow())
        self.assertEqual(self.breaker.consecutive_failures, 0)

    def test_defaults_from_settings(self) -> None:
        """Unconfigured breakers use 5 failures and 60 s."""
        breaker = CircuitBreaker()
        self.assertEqual(breaker.threshold, 5)
        self.assertEqual(breaker.cooldown, 60.0)
        self.assertTrue(breaker.half_open)

    # ── Concurrency ──────────────────────────────────────

    def test_concurrent_failures_not_lost(self) -> None:
        """Counter updates from many threads are never lost."""
        breaker = CircuitBreaker(threshold=10_000, clock=self.clock)

        def hammer() -> None:
            for _ in range(250):
                breaker.record_failure()

        threads = [threading.Thread(target=hammer) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(breaker.consecutive_failures, 2000)


if __name__ == "__main__":
    unittest.main()
