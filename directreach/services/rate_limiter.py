"""
AI generation rate limiter and cost accounting.

Keeps a rolling one-hour window of generations for the request/token/cost
ceilings, plus per-day totals for usage reporting.
"""
import logging
import threading
import time
from collections import deque
from datetime import date, datetime, timedelta
from typing import Callable, Deque, Dict, Optional, Tuple

from directreach.config import settings
from directreach.core.exceptions import RateLimitExceeded

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 3600

PERIOD_DAYS = {"today": 1, "week": 7, "month": 30}


def calculate_cost(
    prompt_tokens: int,
    completion_tokens: int,
    input_rate: float = None,
    output_rate: float = None,
) -> float:
    """USD cost of a generation; rates are per 1K tokens. Rounded to 6 places."""
    if input_rate is None:
        input_rate = settings.AI_INPUT_RATE_PER_1K
    if output_rate is None:
        output_rate = settings.AI_OUTPUT_RATE_PER_1K
    cost = (prompt_tokens / 1000) * input_rate + (completion_tokens / 1000) * output_rate
    return round(cost, 6)


class AIRateLimiter:
    """
    In-memory limiter for AI email generation.

    `check_limit` never changes state, so a rejected request consumes no
    budget. Only `record` adds usage.
    """

    def __init__(
        self,
        limit_per_hour: Optional[int] = 100,
        token_budget: Optional[int] = None,
        cost_budget: Optional[float] = None,
        enabled: bool = True,
        retention_days: int = 30,
        clock: Callable[[], float] = time.time,
    ):
        self.limit_per_hour = limit_per_hour
        self.token_budget = token_budget
        self.cost_budget = cost_budget
        self.enabled = enabled
        self.retention_days = retention_days
        self._clock = clock
        self._lock = threading.Lock()
        # (timestamp, tokens, cost) for the last hour
        self._window: Deque[Tuple[float, int, float]] = deque()
        self._daily: Dict[date, Dict[str, float]] = {}

    def _prune(self, now: float) -> None:
        while self._window and self._window[0][0] <= now - WINDOW_SECONDS:
            self._window.popleft()

    def _retry_after(self, now: float) -> float:
        if not self._window:
            return 0.0
        return max(0.0, self._window[0][0] + WINDOW_SECONDS - now)

    def check_limit(self, required_tokens: int = 0, required_cost: float = 0.0) -> None:
        """Raise RateLimitExceeded if the request would exceed any ceiling."""
        if not self.enabled:
            return

        now = self._clock()
        with self._lock:
            self._prune(now)
            count = len(self._window)
            used_tokens = sum(t for _, t, _ in self._window)
            used_cost = sum(c for _, _, c in self._window)
            retry_after = self._retry_after(now)

        if self.limit_per_hour is not None and count >= self.limit_per_hour:
            logger.warning(f"AI rate limit reached: {count}/{self.limit_per_hour} per hour")
            raise RateLimitExceeded(
                f"AI generation rate limit exceeded ({count}/{self.limit_per_hour} per hour). "
                "Please try again later.",
                retry_after=retry_after,
            )
        # A spent budget rejects even a request that declares no usage
        if self.token_budget is not None and (
            used_tokens >= self.token_budget or used_tokens + required_tokens > self.token_budget
        ):
            logger.warning(f"AI token budget reached: {used_tokens}+{required_tokens} > {self.token_budget}")
            raise RateLimitExceeded(
                f"AI token budget exceeded ({used_tokens}/{self.token_budget} tokens per hour). "
                "Please try again later.",
                retry_after=retry_after,
            )
        if self.cost_budget is not None and (
            round(used_cost, 6) >= self.cost_budget or round(used_cost + required_cost, 6) > self.cost_budget
        ):
            logger.warning(f"AI cost budget reached: ${used_cost:.6f}+${required_cost:.6f} > ${self.cost_budget}")
            raise RateLimitExceeded(
                f"AI cost budget exceeded (${used_cost:.6f}/${self.cost_budget} per hour). "
                "Please try again later.",
                retry_after=retry_after,
            )

    def record(self, tokens: int, cost: float) -> None:
        """Add one generation's usage to the hourly window and the daily totals."""
        now = self._clock()
        today = datetime.utcfromtimestamp(now).date()
        with self._lock:
            self._prune(now)
            self._window.append((now, tokens, cost))

            day = self._daily.setdefault(today, {"count": 0, "total_tokens": 0, "total_cost": 0.0})
            day["count"] += 1
            day["total_tokens"] += tokens
            day["total_cost"] = round(day["total_cost"] + cost, 6)

            cutoff = today - timedelta(days=self.retention_days)
            for old in [d for d in self._daily if d < cutoff]:
                del self._daily[old]

    def usage_stats(self, period: str = "today") -> Dict[str, float]:
        """Totals for today, the last 7 days or the last 30 days."""
        days = PERIOD_DAYS.get(period, 1)
        today = datetime.utcfromtimestamp(self._clock()).date()
        start = today - timedelta(days=days - 1)

        stats = {"count": 0, "total_tokens": 0, "total_cost": 0.0}
        with self._lock:
            for day, totals in self._daily.items():
                if start <= day <= today:
                    stats["count"] += totals["count"]
                    stats["total_tokens"] += totals["total_tokens"]
                    stats["total_cost"] += totals["total_cost"]
        stats["total_cost"] = round(stats["total_cost"], 6)
        return stats

    def average_cost(self, period: str = "month") -> float:
        stats = self.usage_stats(period)
        if not stats["count"]:
            return 0.0
        return round(stats["total_cost"] / stats["count"], 6)

    def remaining(self) -> Optional[int]:
        """Generations left in the current hour; None when uncapped."""
        if not self.enabled or self.limit_per_hour is None:
            return None
        now = self._clock()
        with self._lock:
            self._prune(now)
            return max(0, self.limit_per_hour - len(self._window))

    def reset(self) -> None:
        """Clear the hourly window. Daily totals are kept for reporting."""
        with self._lock:
            self._window.clear()
        logger.info("AI rate limit window reset")


# Singleton instance
_rate_limiter = AIRateLimiter(
    limit_per_hour=settings.AI_RATE_LIMIT_PER_HOUR,
    token_budget=settings.AI_TOKEN_BUDGET_PER_HOUR,
    cost_budget=settings.AI_COST_BUDGET_PER_HOUR,
    enabled=settings.AI_RATE_LIMIT_ENABLED,
    retention_days=settings.AI_STATS_RETENTION_DAYS,
)


def get_ai_rate_limiter() -> AIRateLimiter:
    """Get the singleton rate limiter instance."""
    return _rate_limiter
