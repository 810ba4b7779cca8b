"""
Retry utilities with exponential backoff and jitter.
"""
import logging
import random
import time
from functools import wraps
from typing import Callable, TypeVar, Any

T = TypeVar('T')

logger = logging.getLogger(__name__)


def retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    exceptions: tuple = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Decorator for retrying functions with exponential backoff and jitter.

    Args:
        max_retries: Maximum number of retry attempts
        initial_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exponential_base: Base for exponential backoff
        jitter: Whether to add random jitter to delay
        exceptions: Tuple of exceptions to catch and retry
        sleep: Function used to wait between attempts
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            delay = initial_delay

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_retries:
                        raise

                    # Up to 25% random jitter on top of the base delay
                    if jitter:
                        actual_delay = delay + delay * 0.25 * random.random()
                    else:
                        actual_delay = delay
                    actual_delay = min(actual_delay, max_delay)

                    logger.warning(
                        "retrying_after_error",
                        extra={
                            "operation": func.__qualname__,
                            "attempt": attempt + 1,
                            "error": str(e),
                        },
                    )
                    sleep(actual_delay)
                    delay *= exponential_base

            raise AssertionError("unreachable")

        return wrapper
    return decorator
