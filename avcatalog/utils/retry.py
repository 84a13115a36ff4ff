"""Exponential backoff retries."""

import asyncio
import random
from typing import Any, Awaitable, Callable, Optional

from loguru import logger


async def with_retry(
    func: Callable[[], Awaitable[Any]],
    max_retries: int = 3,
    initial_delay: float = 0.1,
    max_delay: float = 5.0,
    exponential_backoff: bool = True,
    should_retry: Optional[Callable[[Exception, int], bool]] = None,
    on_retry: Optional[Callable[[Exception, int, float], None]] = None,
) -> Any:
    """Retry an async function with exponential backoff.

    Args:
        func: Zero-argument coroutine function
        max_retries: Retries after the first attempt
        initial_delay: Delay before the first retry, in seconds
        max_delay: Delay cap, in seconds
        exponential_backoff: Double the delay on every attempt
        should_retry: Optional predicate(error, attempt); False stops retrying
        on_retry: Optional callback(error, attempt_number, delay) before sleeping

    Returns:
        Result of func()

    Raises:
        The last exception once retries are exhausted or refused
    """
    for attempt in range(max_retries + 1):
        try:
            return await func()
        except Exception as e:
            if attempt >= max_retries:
                logger.error(f"All {max_retries} retries exhausted: {e}")
                raise
            if should_retry is not None and not should_retry(e, attempt):
                raise

            delay = initial_delay * (2**attempt) if exponential_backoff else initial_delay
            delay *= 1 + random.uniform(-0.1, 0.1)
            delay = min(delay, max_delay)

            if on_retry is not None:
                on_retry(e, attempt + 1, delay)
            else:
                logger.warning(
                    f"Attempt {attempt + 1}/{max_retries + 1} failed: {e}. "
                    f"Retrying in {delay:.2f}s..."
                )

            await asyncio.sleep(delay)
