"""Retry with exponential backoff for transient provider errors."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from .errors import classify_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

MIN_BACKOFF_MS = 500


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 3
    exponential_backoff: bool = True
    max_backoff_ms: int = 8000


def calculate_backoff_delay(attempt: int, max_backoff_ms: int = 8000) -> float:
    """Delay in ms before retry ``attempt`` (1-based): doubling from 1s, jittered by up to 12.5% either way."""
    base = min(1000 * 2 ** (attempt - 1), max_backoff_ms)
    jitter = base * 0.25 * (random.random() - 0.5)
    return max(MIN_BACKOFF_MS, base + jitter)


def _is_transient(exc: BaseException) -> bool:
    return classify_error(exc) is not None


def _backoff_wait(config: RetryConfig) -> Callable[[RetryCallState], float]:
    if not config.exponential_backoff:
        return wait_fixed(MIN_BACKOFF_MS / 1000)

    def _wait(retry_state: RetryCallState) -> float:
        return calculate_backoff_delay(retry_state.attempt_number, config.max_backoff_ms) / 1000

    return _wait


def retry_call(
    fn: Callable[[], T],
    config: RetryConfig = RetryConfig(),
    sleep: Callable[[float], None] = time.sleep,
    is_retryable: Optional[Callable[[BaseException], bool]] = None,
) -> T:
    """Call ``fn``, retrying transient failures up to ``config.max_retries`` times.

    The last error is re-raised as-is once retries run out or an error is
    not retryable.
    """
    retrying = Retrying(
        stop=stop_after_attempt(config.max_retries + 1),
        wait=_backoff_wait(config),
        retry=retry_if_exception(is_retryable or _is_transient),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
        reraise=True,
    )
    return retrying(fn)
