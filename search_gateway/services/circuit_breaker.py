# search_gateway/services/circuit_breaker.py

"""Three-state circuit breaker guarding the primary executor.

Closed -> Open after ``threshold`` consecutive failures. Once the
cool-down has elapsed the breaker leaves Open by itself. The cool-down
is measured against an injectable clock and evaluated on every read,
so the reset happens without further traffic and without a timer
thread. By default it goes to Half-Open and lets a single probe call
through: success closes the breaker, failure re-opens it for another
cool-down. With ``half_open=False`` it goes straight back to Closed.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from search_gateway.config.settings import Settings

logger = logging.getLogger("search_gateway.breaker")


class BreakerState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of a breaker."""

    state: BreakerState
    consecutive_failures: int
    opened_at: float | None


class CircuitBreaker:
    """Failure governor for one backend dependency.

    All methods are safe to call from any thread.
    """

    def __init__(
        self,
        name: str = "primary",
        threshold: int | None = None,
        cooldown: float | None = None,
        half_open: bool | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.threshold = threshold or Settings.CIRCUIT_BREAKER_THRESHOLD
        self.cooldown = (
            cooldown
            if cooldown is not None
            else Settings.CIRCUIT_BREAKER_COOLDOWN
        )
        self.half_open = (
            half_open
            if half_open is not None
            else Settings.CIRCUIT_BREAKER_HALF_OPEN
        )
        self._clock = clock
        self._lock = threading.Lock()
        self._state = BreakerState.CLOSED
        self._failures = 0
        self._opened_at: float | None = None
        self._probe_started_at: float | None = None

    # ── Internal transitions (lock held) ─────────────────

    def _advance(self, now: float) -> None:
        """Apply the cool-down expiry if it is due."""
        if self._state is not BreakerState.OPEN or self._opened_at is None:
            return
        if now - self._opened_at < self.cooldown:
            return
        if self.half_open:
            self._state = BreakerState.HALF_OPEN
            self._probe_started_at = None
            logger.info(
                "[%s] Circuit breaker half-open after %.0fs",
                self.name,
                now - self._opened_at,
            )
        else:
            self._close()
            logger.info("[%s] Circuit breaker reset", self.name)

    def _trip(self, now: float) -> None:
        self._state = BreakerState.OPEN
        self._opened_at = now
        self._probe_started_at = None
        logger.error(
            "[%s] Circuit breaker opened after %d consecutive failures",
            self.name,
            self._failures,
        )

    def _close(self) -> None:
        self._state = BreakerState.CLOSED
        self._failures = 0
        self._opened_at = None
        self._probe_started_at = None

    # ── Public API ───────────────────────────────────────

    @property
    def state(self) -> BreakerState:
        """Current state, with any due cool-down expiry applied."""
        with self._lock:
            self._advance(self._clock())
            return self._state

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            return self._failures

    def snapshot(self) -> BreakerSnapshot:
        """Return state, failure count and open timestamp together."""
        with self._lock:
            self._advance(self._clock())
            return BreakerSnapshot(
                state=self._state,
                consecutive_failures=self._failures,
                opened_at=self._opened_at,
            )

    def allow(self) -> bool:
        """Whether a call to the protected dependency may proceed.

        In Half-Open exactly one caller gets True until that probe
        reports back. A probe that never reports is given up on after
        one more cool-down so the breaker cannot wedge.
        """
        with self._lock:
            now = self._clock()
            self._advance(now)
            if self._state is BreakerState.CLOSED:
                return True
            if self._state is BreakerState.OPEN:
                return False
            if (
                self._probe_started_at is not None
                and now - self._probe_started_at < self.cooldown
            ):
                return False
            self._probe_started_at = now
            logger.debug("[%s] Half-open probe granted", self.name)
            return True

    def record_success(self) -> None:
        """Reset the failure count and close the breaker if needed."""
        with self._lock:
            self._advance(self._clock())
            previous = self._state
            self._close()
        if previous is not BreakerState.CLOSED:
            logger.info(
                "[%s] Circuit breaker closed after successful call "
                "(was %s)",
                self.name,
                previous.value,
            )

    def record_failure(self) -> None:
        """Count a failure; trip at the threshold or on a failed probe."""
        with self._lock:
            now = self._clock()
            self._advance(now)
            self._failures += 1
            if self._state is BreakerState.HALF_OPEN:
                self._trip(now)
            elif (
                self._state is BreakerState.CLOSED
                and self._failures >= self.threshold
            ):
                self._trip(now)

    def force_open(self) -> None:
        """Open the breaker immediately (operator action or tests)."""
        with self._lock:
            self._failures = max(self._failures, self.threshold)
            self._trip(self._clock())

    def reset(self) -> None:
        """Close the breaker and clear the failure count."""
        with self._lock:
            self._close()
        logger.info("[%s] Circuit breaker manually reset", self.name)
