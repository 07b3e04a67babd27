"""Cost guard interface consulted before every model call.

Budget accounting itself belongs to the host application. The engine only
asks ``allow()`` before a call and reports usage with ``record()``; a
rejection is handled exactly like the model being unavailable.
"""

import logging
import threading
from datetime import UTC, datetime
from typing import Protocol

logger = logging.getLogger(__name__)

# USD per 1K tokens (input, output).
DEFAULT_PRICE_PER_1K: dict[str, tuple[float, float]] = {
    "claude-haiku-4-5": (0.001, 0.005),
    "claude-sonnet-4-5": (0.003, 0.015),
}


class CostGuard(Protocol):
    """Gate for model spend."""

    def allow(self, operation: str) -> bool:
        """Return False to skip the model call for this operation."""
        ...

    def record(self, model: str, input_tokens: int, output_tokens: int) -> None:
        """Report token usage of a completed call."""
        ...


class AllowAllCostGuard:
    """Cost guard that never rejects."""

    def allow(self, operation: str) -> bool:
        return True

    def record(self, model: str, input_tokens: int, output_tokens: int) -> None:
        return None


class DailyBudgetCostGuard:
    """Process-local daily USD cap.

    Spend resets at UTC midnight. Unknown models are priced at the most
    expensive known rate.

    Attributes:
        daily_cap_usd: Maximum spend per UTC day.
    """

    def __init__(
        self,
        daily_cap_usd: float,
        prices: dict[str, tuple[float, float]] | None = None,
    ) -> None:
        self.daily_cap_usd = daily_cap_usd
        self._prices = prices or DEFAULT_PRICE_PER_1K
        self._day = datetime.now(UTC).date()
        self._spent = 0.0
        self._lock = threading.Lock()

    def _roll_day(self) -> None:
        today = datetime.now(UTC).date()
        if today != self._day:
            self._day = today
            self._spent = 0.0

    @property
    def spent_usd(self) -> float:
        with self._lock:
            self._roll_day()
            return self._spent

    def estimate_usd(self, model: str, input_tokens: int, output_tokens: int) -> float:
        fallback = max(self._prices.values(), key=lambda p: p[1])
        in_rate, out_rate = self._prices.get(model, fallback)
        return (input_tokens / 1000.0) * in_rate + (output_tokens / 1000.0) * out_rate

    def allow(self, operation: str) -> bool:
        with self._lock:
            self._roll_day()
            if self._spent >= self.daily_cap_usd:
                logger.warning(
                    "Daily model budget exhausted (%.4f USD), skipping %s",
                    self._spent,
                    operation,
                )
                return False
            return True

    def record(self, model: str, input_tokens: int, output_tokens: int) -> None:
        cost = self.estimate_usd(model, input_tokens, output_tokens)
        with self._lock:
            self._roll_day()
            self._spent += cost
