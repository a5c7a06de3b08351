"""
Circuit breaker for supplier calls.

- Opens after 3 consecutive failures
- Skips the supplier for 30 seconds while open
- After cooldown, lets one call through (half-open)
- A successful call closes the circuit
"""

import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitOpenError(Exception):
    """Raised instead of calling a supplier whose circuit is open."""

    def __init__(self, supplier_id: str, remaining: float):
        self.supplier_id = supplier_id
        self.remaining = remaining
        super().__init__(f"{supplier_id}: circuit open, {remaining:.1f}s cooldown remaining")


class CircuitBreaker:
    """
    Per-supplier breaker. Uses a monotonic clock, replaceable in tests.
    """

    def __init__(
        self,
        supplier_id: str,
        failure_threshold: int = 3,
        cooldown_seconds: float = 30,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.supplier_id = supplier_id
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at: Optional[float] = None

    def _cooldown_remaining(self) -> float:
        if self.opened_at is None:
            return 0.0
        return max(0.0, self.cooldown_seconds - (self._clock() - self.opened_at))

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Run `func` under the breaker.

        Raises:
            CircuitOpenError: The circuit is open and cooling down
            Exception: Whatever `func` raised (after counting the failure)
        """
        if self.state == CircuitState.OPEN and self._cooldown_remaining() == 0:
            logger.info(f"{self.supplier_id}: circuit entering HALF_OPEN state (cooldown elapsed)")
            self.state = CircuitState.HALF_OPEN

        if self.state == CircuitState.OPEN:
            raise CircuitOpenError(self.supplier_id, self._cooldown_remaining())

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            self._record_failure(e)
            raise

        if self.state == CircuitState.HALF_OPEN:
            logger.info(f"{self.supplier_id}: circuit CLOSED (successful call in HALF_OPEN state)")
        self.reset()
        return result

    def _record_failure(self, error: Exception) -> None:
        self.failure_count += 1
        logger.warning(
            f"{self.supplier_id}: call failed ({self.failure_count}/{self.failure_threshold}): {str(error)}"
        )
        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            self.state = CircuitState.OPEN
            self.opened_at = self._clock()
            logger.error(
                f"{self.supplier_id}: circuit OPENED after {self.failure_count} consecutive failures, "
                f"retry after {self.cooldown_seconds}s"
            )

    def get_state(self) -> dict:
        return {
            "supplier": self.supplier_id,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "failure_threshold": self.failure_threshold,
            "cooldown_remaining": round(self._cooldown_remaining(), 1),
        }

    def reset(self) -> None:
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at = None
