from __future__ import annotations

import logging
import time
from functools import wraps
from typing import Callable, ParamSpec, TypeVar

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def retry(
    max_attempts: int = 3,
    backoff_seconds: float = 1.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator for retrying failed operations with exponential backoff.

    Args:
        max_attempts: Total number of attempts, the first call included
        backoff_seconds: Wait before the second attempt, doubled after each failure
        retry_on: Exception types that trigger another attempt; anything else propagates at once
        sleep: Wait function, replaceable in tests

    Returns:
        Decorated function that re-raises the last exception once attempts run out
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        name = getattr(func, "__name__", repr(func))

        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except retry_on as e:
                    if attempt >= max_attempts:
                        logger.error(
                            f"All {max_attempts} attempts failed for {name}: {e}",
                            extra={"attempt": attempt, "error": str(e)},
                        )
                        raise
                    wait_time = backoff_seconds * (2 ** (attempt - 1))
                    logger.warning(
                        f"Attempt {attempt}/{max_attempts} failed for {name}: {e}. Retrying in {wait_time}s...",
                        extra={"attempt": attempt, "error": str(e)},
                    )
                    sleep(wait_time)
            raise RuntimeError("Retry failed without capturing exception")

        return wrapper

    return decorator
