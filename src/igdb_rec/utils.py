"""Utility functions and decorators for igdb_rec."""

import time
import logging
from functools import wraps
from typing import Any, Callable, Iterable, Iterator, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


def comma_sep(values: Iterable[Any]) -> str:
    """Join values for an Apicalypse list literal, e.g. ``(1, 2, 3)``; sorted for stable queries."""
    return ", ".join(str(v) for v in sorted(values))


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size < 1:
        raise ValueError(f"Chunk size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield items[start:start + size]


def escape_search_term(term: str) -> str:
    """Escape a string for use inside a double-quoted Apicalypse literal."""
    return term.replace("\\", "\\\\").replace('"', '\\"').strip()


def retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: tuple = (Exception,)
):
    """
    Decorator that retries a function with exponential backoff on failure.

    Only the listed exception types are retried; anything else propagates
    immediately. After the final attempt the last exception is re-raised.

    Example:
        @retry_with_backoff(max_retries=3, exceptions=(httpx.TransportError,))
        def post(...):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            delay = initial_delay
            for attempt in range(1, max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_retries:
                        logger.error(f"{func.__name__} failed after {max_retries} attempts: {e}")
                        raise
                    logger.warning(
                        f"{func.__name__} failed (attempt {attempt}/{max_retries}): {e}. "
                        f"Retrying in {delay:.1f}s..."
                    )
                    time.sleep(delay)
                    delay *= backoff_factor
            raise RuntimeError("unreachable")  # pragma: no cover

        return wrapper
    return decorator
