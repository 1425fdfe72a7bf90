from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from invoicing.errors import ExternalServiceError, InvoicingError
from invoicing.logger import log_invoice_event
from invoicing.retry_utils import RetryExhaustedError, RetryPolicy, run_with_retry

T = TypeVar("T")

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    pass


class TransientStoreError(StoreError):
    pass


def _is_transient(exc: Exception) -> bool:
    return isinstance(exc, TransientStoreError)


class ExternalCall:
    """Runs storage/auth collaborator calls.

    Transient store failures are retried according to ``policy``; any other
    collaborator failure surfaces as ``ExternalServiceError``. Domain errors
    raised by a collaborator (for example ``NotFoundError``) pass through.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        sleep_fn: Callable[[float], None] = time.sleep,
    ) -> None:
        self._policy = policy or RetryPolicy()
        self._sleep_fn = sleep_fn

    def __call__(self, operation: Callable[[], T], *, name: str) -> T:
        started = time.monotonic()

        def _log_retry(attempt: int, error: Exception, delay: float) -> None:
            log_invoice_event(
                logger,
                logging.INFO,
                f"{name} attempt {attempt} failed ({error}); retrying in {delay:.2f}s",
                operation=name,
                outcome="retrying",
            )

        try:
            result = run_with_retry(
                operation=operation,
                should_retry=_is_transient,
                policy=self._policy,
                sleep_fn=self._sleep_fn,
                on_retry=_log_retry,
            )
        except RetryExhaustedError as exc:
            cause = exc.__cause__
            if isinstance(cause, InvoicingError):
                raise cause from None
            log_invoice_event(
                logger,
                logging.WARNING,
                f"{name} failed after {exc.attempts} attempt(s): {cause}",
                operation=name,
                latency_ms=int((time.monotonic() - started) * 1000),
                outcome="failed",
            )
            raise ExternalServiceError(f"{name} failed: {cause}") from cause
        log_invoice_event(
            logger,
            logging.DEBUG,
            f"{name} completed",
            operation=name,
            latency_ms=int((time.monotonic() - started) * 1000),
            outcome="success",
        )
        return result
