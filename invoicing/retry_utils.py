from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from invoicing.config import Settings

T = TypeVar("T")

RetryHook = Callable[[int, Exception, float], None]


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff for store/auth calls. One attempt unless configured otherwise."""

    max_attempts: int = 1
    base_delay_seconds: float = 0.25
    max_delay_seconds: float = 4.0
    jitter_ratio: float = 0.25

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(max_attempts=settings.store_max_attempts)

    def delay_for_attempt(self, attempt: int) -> float:
        capped = min(self.base_delay_seconds * 2 ** (attempt - 1), self.max_delay_seconds)
        return capped * (1 + self.jitter_ratio * random.random())


class RetryExhaustedError(RuntimeError):
    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


def run_with_retry(
    operation: Callable[[], T],
    should_retry: Callable[[Exception], bool],
    policy: RetryPolicy | None = None,
    sleep_fn: Callable[[float], None] = time.sleep,
    on_retry: RetryHook | None = None,
) -> T:
    """Run ``operation``; the last failure is chained onto ``RetryExhaustedError``.

    ``on_retry(attempt, error, delay)`` is called before each sleep.
    """
    active = policy or RetryPolicy()
    attempt = 0
    while True:
        attempt += 1
        try:
            return operation()
        except Exception as exc:  # noqa: BLE001
            if attempt >= active.max_attempts or not should_retry(exc):
                raise RetryExhaustedError(
                    f"Operation failed after {attempt} attempt(s)", attempts=attempt
                ) from exc
            delay = active.delay_for_attempt(attempt)
            if on_retry is not None:
                on_retry(attempt, exc, delay)
            sleep_fn(delay)
