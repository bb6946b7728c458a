# =============================================================================
# pos_core/offline/retry.py
# Retry Policy with pluggable backoff
# =============================================================================

from __future__ import annotations
import time
from dataclasses import dataclass, field
from typing import Callable, List, Tuple, Type, TypeVar

from pos_core.errors import ServerUnavailable
from pos_core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def linear_backoff(step: float = 2.0) -> Callable[[int], float]:
    """Delay of `attempt * step` seconds after the given (1-based) attempt."""
    def backoff(attempt: int) -> float:
        return attempt * step
    return backoff


def exponential_backoff(
    base: float = 1.0,
    factor: float = 2.0,
    cap: float = 60.0,
) -> Callable[[int], float]:
    """Delay of `base * factor ** (attempt - 1)` seconds, capped at `cap`."""
    def backoff(attempt: int) -> float:
        return min(cap, base * factor ** (attempt - 1))
    return backoff


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry with a backoff function.

    Usage:
        policy = RetryPolicy(max_attempts=3, backoff=linear_backoff(2.0))
        report = policy.run(directory.health_check)
    """
    max_attempts: int = 3
    backoff: Callable[[int], float] = field(default_factory=linear_backoff)
    retry_on: Tuple[Type[BaseException], ...] = (ServerUnavailable,)
    sleep: Callable[[float], None] = time.sleep

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def with_attempts(self, max_attempts: int) -> RetryPolicy:
        """Copy of this policy with a different attempt budget."""
        return RetryPolicy(
            max_attempts=max_attempts,
            backoff=self.backoff,
            retry_on=self.retry_on,
            sleep=self.sleep,
        )

    def delays(self) -> List[float]:
        """Delays slept between attempts if every attempt fails."""
        return [self.backoff(attempt) for attempt in range(1, self.max_attempts)]

    def run(self, func: Callable[..., T], *args, description: str = "operation", **kwargs) -> T:
        """
        Call `func` until it succeeds or the attempt budget is spent.

        Errors not listed in `retry_on` propagate immediately. After the last
        attempt the final retryable error is re-raised.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return func(*args, **kwargs)
            except self.retry_on as e:
                if attempt == self.max_attempts:
                    logger.error(f"{description} failed after {attempt} attempts: {e}")
                    raise
                delay = self.backoff(attempt)
                logger.warning(
                    f"{description} attempt {attempt}/{self.max_attempts} failed: {e}. "
                    f"Retrying in {delay:.1f}s"
                )
                self.sleep(delay)

        raise AssertionError("unreachable")
