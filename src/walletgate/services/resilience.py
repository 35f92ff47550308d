"""Circuit breaker shared by the outbound HTTP collaborators.

The DAS oracle and the identity provider each get one breaker per
application. After ``failure_threshold`` consecutive failures the upstream is
skipped entirely; once ``recovery_timeout`` has passed, trial calls are let
through and ``success_threshold`` successes in a row close the circuit again.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """Failure counter guarding one upstream service."""

    name: str = "upstream"
    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    success_threshold: int = 2
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _consecutive_failures: int = field(default=0, init=False)
    _trial_successes: int = field(default=0, init=False)
    _opened_at: float = field(default=0.0, init=False)

    @property
    def state(self) -> CircuitState:
        return self._state

    def _transition(self, state: CircuitState) -> None:
        if state is not self._state:
            logger.info("Circuit %s: %s -> %s", self.name, self._state.value, state.value)
            self._state = state

    def allow_request(self) -> bool:
        """Return False while the circuit is open and still cooling down."""
        if self._state is CircuitState.OPEN:
            if self.clock() - self._opened_at < self.recovery_timeout:
                return False
            self._trial_successes = 0
            self._transition(CircuitState.HALF_OPEN)
        return True

    def record_success(self) -> None:
        self._consecutive_failures = 0
        if self._state is CircuitState.HALF_OPEN:
            self._trial_successes += 1
            if self._trial_successes >= self.success_threshold:
                self._transition(CircuitState.CLOSED)

    def record_failure(self) -> None:
        self._consecutive_failures += 1
        # A failed trial call reopens immediately.
        if (
            self._state is CircuitState.HALF_OPEN
            or self._consecutive_failures >= self.failure_threshold
        ):
            self._opened_at = self.clock()
            self._transition(CircuitState.OPEN)
