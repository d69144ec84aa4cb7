"""Backoff helpers shared by the status updaters and the work queue."""
import functools
import time
from typing import Iterator, Optional, Tuple, Type

from strata.core.logger import get_logger

logger = get_logger(__name__)


def backoff_delays(
    delay: float, backoff: float = 2.0, max_delay: Optional[float] = None
) -> Iterator[float]:
    """Yield delay, delay*backoff, delay*backoff**2, ... capped at max_delay."""
    current = delay
    while True:
        yield current if max_delay is None else min(current, max_delay)
        current *= backoff


def retry(
    max_attempts: int = 3,
    delay: float = 2.0,
    backoff: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
):
    """Re-invoke the wrapped call when it raises one of ``exceptions``.

    The last failure is re-raised once ``max_attempts`` calls have failed.

    Example:
        @retry(max_attempts=3, delay=0.5, backoff=1.0, exceptions=(ConflictError,))
        def update_status(store, instance):
            ...
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            waits = backoff_delays(delay, backoff)
            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_attempts:
                        logger.error(f"{func.__name__}: giving up after {attempt} attempts: {e}")
                        raise
                    wait = next(waits)
                    logger.warning(
                        f"{func.__name__}: attempt {attempt}/{max_attempts} failed ({e}), "
                        f"retrying in {wait:.1f}s"
                    )
                    time.sleep(wait)
                    attempt += 1

        return wrapper

    return decorator
