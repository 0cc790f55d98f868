import functools
import logging
import time
from contextlib import asynccontextmanager
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@asynccontextmanager
async def timed(operation: str, slow_after: Optional[float] = None):
    """
    Log how long the wrapped block took.

    Failures are logged at warning level and re-raised. With slow_after set,
    a block that succeeds but runs longer than that many seconds is also
    logged as a warning.
    """
    start = time.monotonic()
    try:
        yield
    except Exception as e:
        logger.warning(f"Performance: {operation} failed after {time.monotonic() - start:.2f}s - {e}")
        raise

    duration = time.monotonic() - start
    if slow_after is not None and duration > slow_after:
        logger.warning(f"Performance: {operation} slow, took {duration:.2f}s (limit {slow_after:.2f}s)")
    else:
        logger.info(f"Performance: {operation} completed in {duration:.2f}s")


def measure_performance(operation: str, slow_after: Optional[float] = None) -> Callable:
    """Decorator form of timed() for coroutine functions"""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            async with timed(f"{func.__name__} [{operation}]", slow_after):
                return await func(*args, **kwargs)
        return wrapper
    return decorator
