"""
Rate-limit retry with exponential backoff.

Only provider throttling (HTTP 429) is retried here. Every other error
propagates on the first occurrence. There is no overall deadline: ten
retries doubling from 60s add up to more than 17 hours, so callers that
need one must impose their own timeout.
"""

import time
from typing import Callable, TypeVar

import openai
import structlog

logger = structlog.get_logger(__name__)

DEFAULT_RETRIES = 10
DEFAULT_DELAY_MS = 60000
RATE_LIMIT_STATUS = 429

T = TypeVar("T")


def is_rate_limit_error(error: BaseException) -> bool:
    """Check whether error is the provider signalling throttling."""
    if isinstance(error, openai.RateLimitError):
        return True
    if getattr(error, "status_code", None) == RATE_LIMIT_STATUS:
        return True
    response = getattr(error, "response", None)
    if response is None:
        return False
    status = getattr(response, "status_code", None) or getattr(response, "status", None)
    return status == RATE_LIMIT_STATUS


def call_with_backoff(
    func: Callable[[], T],
    retries: int = DEFAULT_RETRIES,
    delay_ms: int = DEFAULT_DELAY_MS,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call func, retrying on rate-limit errors with a doubling delay.

    Args:
        func: Zero-argument callable performing one request
        retries: Maximum number of retries after the first attempt
        delay_ms: Delay before the first retry; doubled for each later one
        sleep: Blocking sleep taking seconds

    Returns:
        Result of the first successful call

    Raises:
        Exception: The original error when it is not a rate limit, or when
            retries are exhausted
    """
    remaining = retries
    delay = delay_ms

    while True:
        try:
            return func()
        except Exception as error:
            if remaining <= 0 or not is_rate_limit_error(error):
                logger.error("gpt_request_failed", error=str(error), retries_remaining=remaining)
                raise
            logger.warning("gpt_rate_limited", retries_remaining=remaining, delay_ms=delay)
            sleep(delay / 1000)
            remaining -= 1
            delay *= 2
