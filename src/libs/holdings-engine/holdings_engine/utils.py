# src/libs/holdings-engine/holdings_engine/utils.py
import time
import functools
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Any

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential, before_sleep_log

from .config import HOLDINGS_PRESENTATION_PLACES, HOLDINGS_RECONCILE_RETRY_ATTEMPTS
from .exceptions import ConcurrencyError
from .monitoring import DB_OPERATION_LATENCY_SECONDS

logger = logging.getLogger(__name__)


def async_timed(repository: str, method: str) -> Callable:
    """
    A decorator that times an async function and records the latency
    in the DB_OPERATION_LATENCY_SECONDS Prometheus histogram.

    Args:
        repository: The name of the repository class (e.g., 'SqlLedgerRepository').
        method: The name of the method being timed (e.g., 'list_transactions').
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            start_time = time.monotonic()
            try:
                return await func(*args, **kwargs)
            finally:
                duration = time.monotonic() - start_time
                DB_OPERATION_LATENCY_SECONDS.labels(
                    repository=repository,
                    method=method
                ).observe(duration)
        return wrapper
    return decorator


def quantize_amount(value: Decimal, places: int = HOLDINGS_PRESENTATION_PLACES) -> Decimal:
    """Rounds a monetary value for presentation or comparison (half-up)."""
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


async def retry_on_concurrency_error(
    operation: Callable[[], Any],
    attempts: int = HOLDINGS_RECONCILE_RETRY_ATTEMPTS,
    max_wait: float = 2.0,
) -> Any:
    """
    Runs an async operation, retrying it when it raises ConcurrencyError.
    The last ConcurrencyError is re-raised once the attempts are exhausted.

    Usage:
        result = await retry_on_concurrency_error(
            lambda: controller.reconcile("ACC-1", "AAPL")
        )
    """
    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(ConcurrencyError),
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.05, max=max_wait),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            return await operation()
