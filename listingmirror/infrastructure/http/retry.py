"""Exponential backoff shared by every upstream call."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from .errors import CycleCancelled, RateLimited, TransientUpstreamError

T = TypeVar("T")


def default_is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, (TransientUpstreamError, RateLimited))


@dataclass(frozen=True)
class RetryPolicy:
    """Run a callable up to ``max_attempts`` times with exponential backoff.

    The wait before attempt ``n + 1`` is ``2**n * base_delay`` seconds, doubled
    again for rate-limit responses. An upstream ``Retry-After`` lengthens the
    wait, and every wait is capped at ``max_delay``.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    rate_limit_multiplier: float = 2.0
    is_retryable: Callable[[BaseException], bool] = field(default=default_is_retryable)

    def delay_for(self, attempt: int, exc: BaseException | None = None) -> float:
        delay = (2 ** attempt) * self.base_delay
        if isinstance(exc, RateLimited):
            delay *= self.rate_limit_multiplier
        delay = min(delay, self.max_delay)
        retry_after = getattr(exc, "retry_after", None)
        if retry_after is not None:
            delay = min(max(delay, float(retry_after)), self.max_delay)
        return max(0.0, delay)

    def call(
        self,
        fn: Callable[[], T],
        *,
        sleep: Callable[[float], None] = time.sleep,
        cancel_event: threading.Event | None = None,
        on_retry: Callable[[int, BaseException, float], None] | None = None,
    ) -> T:
        attempts = max(1, self.max_attempts)
        for attempt in range(attempts):
            if cancel_event is not None and cancel_event.is_set():
                raise CycleCancelled("cancelled before upstream request")
            try:
                return fn()
            except Exception as exc:
                if not self.is_retryable(exc) or attempt >= attempts - 1:
                    raise
                delay = self.delay_for(attempt, exc)
                if on_retry is not None:
                    on_retry(attempt + 1, exc, delay)
                sleep(delay)
        raise AssertionError("unreachable")
