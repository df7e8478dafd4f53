"""Bounded retry loop for idempotent operations.

An ``AttemptStrategy`` guarantees a minimum number of attempts and then keeps
going only while the total time budget allows another spaced attempt.

Example:
    from osskit.retry import AttemptStrategy

    strategy = AttemptStrategy(min=5, total=5.0, delay=0.2)
    listing = strategy.run(lambda: bucket_listing_call())
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field

from loguru import logger
from tenacity import RetryCallState, Retrying, retry_if_exception, wait_fixed
from tenacity.stop import stop_base

from osskit.errors import should_retry

type RetryPredicate = Callable[[BaseException], bool]


class _stop_when_budget_spent(stop_base):
    """Stop once the minimum is reached and the next attempt would overrun the budget."""

    def __init__(self, strategy: AttemptStrategy) -> None:
        self._strategy = strategy
        self._started = strategy.clock()

    def __call__(self, retry_state: RetryCallState) -> bool:
        s = self._strategy
        if retry_state.attempt_number < s.min:
            return False
        elapsed = s.clock() - self._started
        return elapsed + s.delay >= s.total


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.bind(component="retry").warning(
        "Retry {attempt} after {error}: {message}",
        attempt=retry_state.attempt_number,
        error=type(exc).__name__,
        message=exc,
    )


@dataclass(frozen=True, slots=True)
class AttemptStrategy:
    """Retry envelope for a single logical operation.

    Args:
        min: Attempts always made before the time budget is considered.
        total: Total wall-clock budget in seconds.
        delay: Fixed pause between attempts in seconds.
        clock: Monotonic clock used to measure the budget.
        sleep: Function used to pause between attempts.
    """

    min: int = 5
    total: float = 5.0
    delay: float = 0.2
    clock: Callable[[], float] = field(default=time.monotonic, compare=False)
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False)

    def retrying(self, retry_if: RetryPredicate = should_retry) -> Retrying:
        return Retrying(
            stop=_stop_when_budget_spent(self),
            wait=wait_fixed(self.delay),
            retry=retry_if_exception(retry_if),
            sleep=self.sleep,
            before_sleep=_log_retry,
            reraise=True,
        )

    def run[T](self, fn: Callable[[], T], retry_if: RetryPredicate = should_retry) -> T:
        """Call ``fn`` until it succeeds, a non-retryable error occurs or the budget is spent.

        The last error is re-raised unchanged.
        """
        return self.retrying(retry_if)(fn)


DEFAULT_ATTEMPTS = AttemptStrategy()

__all__ = ["DEFAULT_ATTEMPTS", "AttemptStrategy", "RetryPredicate"]
