"""
Circuit breaker guarding the network-backed tiers.
"""

import asyncio
import logging
import time
from enum import Enum

log = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerError(Exception):
    """Raised when a tier call is refused because its circuit is open."""


class CircuitBreaker:
    """
    Lets a tier fail fast once its endpoint keeps erroring.

    Only exceptions escaping the ``async with`` block are failures; a miss
    the caller reports as ``None`` or ``False`` counts as a healthy call.

    Args:
        name: Tier label used in log output.
        failure_threshold: Consecutive failures that trip the circuit.
        recovery_timeout: Seconds the circuit stays open before a probe.
        success_threshold: Probe successes required to close it again.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30,
        success_threshold: int = 1,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._probe_successes = 0
        self._tripped_at = 0.0
        self._guard = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._consecutive_failures

    def reset(self) -> None:
        """Closes the circuit and forgets every recorded outcome."""
        self._move_to(CircuitState.CLOSED)
        self._consecutive_failures = 0

    def _move_to(self, state: CircuitState) -> None:
        self._state = state
        self._probe_successes = 0
        if state is CircuitState.OPEN:
            self._tripped_at = time.monotonic()

    def _cooldown_left(self) -> float:
        return self.recovery_timeout - (time.monotonic() - self._tripped_at)

    async def _record(self, failed: bool) -> None:
        async with self._guard:
            if not failed:
                self._consecutive_failures = 0
                if self._state is not CircuitState.HALF_OPEN:
                    return
                self._probe_successes += 1
                if self._probe_successes >= self.success_threshold:
                    log.info(f"[green]{self.name} tier reachable again[/green]")
                    self.reset()
                return

            self._consecutive_failures += 1
            if self._state is CircuitState.HALF_OPEN:
                log.warning(f"[yellow]{self.name} tier still failing[/yellow]")
                self._move_to(CircuitState.OPEN)
            elif self._consecutive_failures >= self.failure_threshold:
                log.error(
                    f"[red]{self.name} tier failed {self._consecutive_failures} "
                    f"times in a row; pausing calls for {self.recovery_timeout}s"
                    "[/red]"
                )
                self._move_to(CircuitState.OPEN)

    async def __aenter__(self):
        async with self._guard:
            if self._state is CircuitState.OPEN:
                remaining = self._cooldown_left()
                if remaining > 0:
                    raise CircuitBreakerError(
                        f"{self.name} tier unavailable for another "
                        f"{remaining:.0f}s"
                    )
                log.info(f"[yellow]Probing {self.name} tier[/yellow]")
                self._move_to(CircuitState.HALF_OPEN)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self._record(failed=exc_type is not None)
        return False
