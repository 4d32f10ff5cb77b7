"""Retry policy with power-of-two backoff and non-retriable rejections."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from oracle_gateway.exceptions import BroadcastError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Attempt ceilings per operation kind
DEFAULT_ATTEMPTS = 5
CLI_ATTEMPTS = 3
DELEGATED_ATTEMPTS = 1
HTTP_ATTEMPTS = 3

NON_RETRIABLE: tuple[type[BaseException], ...] = (BroadcastError,)

SleepType = Callable[[float], Awaitable[None]]


def backoff_seconds(retry_state: RetryCallState) -> float:
    """Delay after the n-th failed attempt is 2**n seconds."""
    return float(2**retry_state.attempt_number)


def is_retriable(
    error: BaseException,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
) -> bool:
    if isinstance(error, NON_RETRIABLE):
        return False
    return isinstance(error, retry_on)


async def retry_call(
    func: Callable[[], Awaitable[T]],
    label: str,
    attempts: int = DEFAULT_ATTEMPTS,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: SleepType = asyncio.sleep,
) -> T:
    """Invoke ``func`` up to ``attempts`` times.

    Broadcast rejections short-circuit immediately. Anything outside
    ``retry_on`` is raised on the first occurrence. The last error is
    re-raised unchanged once attempts are exhausted.
    """
    if attempts < 1:
        raise ValueError(f"attempts must be >= 1, got {attempts}")

    def _log_failed_attempt(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"Retry {retry_state.attempt_number}/{attempts} for {label}: {error} "
            f"(next attempt in {backoff_seconds(retry_state):.0f}s)"
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=backoff_seconds,
        retry=retry_if_exception(lambda error: is_retriable(error, retry_on)),
        before_sleep=_log_failed_attempt,
        sleep=sleep,
        reraise=True,
    )
    return await retrying(func)
