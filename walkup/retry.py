"""Retry with exponential backoff for asynchronous operations."""

from __future__ import annotations

import asyncio
import math
import random
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .errors import OperationTimeoutError
from .logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RetryPredicate = Callable[[BaseException, int], bool]


@dataclass(frozen=True)
class RetryOptions:
    """Tuning for :func:`retry`. Delays are in milliseconds."""

    max_retries: int = 3
    initial_delay_ms: float = 200
    max_delay_ms: float = 5000
    factor: float = 2
    jitter: bool = True
    timeout_per_attempt_ms: Optional[float] = None
    should_retry: Optional[RetryPredicate] = None
    label: Optional[str] = None


async def retry(
    operation: Callable[[], Awaitable[T]],
    options: Optional[RetryOptions] = None,
    **overrides: Any,
) -> T:
    """
    Run ``operation`` until it succeeds or the retry budget is spent.

    ``operation`` is called with no arguments and must return an awaitable.
    Keyword overrides are applied on top of ``options`` (or the defaults), so
    ``retry(fn, max_retries=2)`` is shorthand for passing a RetryOptions.

    The last failure is re-raised unchanged. An attempt that outlives
    ``timeout_per_attempt_ms`` fails with OperationTimeoutError and its task is
    cancelled.
    """
    opts = replace(options or RetryOptions(), **overrides)
    label = opts.label or getattr(operation, "__name__", repr(operation))

    attempt = 0
    delay = opts.initial_delay_ms

    while True:
        try:
            return await _with_timeout(operation, opts.timeout_per_attempt_ms, label)
        except Exception as exc:
            if attempt >= opts.max_retries:
                logger.error(f"{label} failed after {attempt + 1} attempts, giving up: {exc}")
                raise
            if opts.should_retry is not None and not opts.should_retry(exc, attempt):
                logger.debug(f"{label} failed on attempt {attempt + 1} with a non-retryable error: {exc}")
                raise

            wait_ms = apply_jitter(min(delay, opts.max_delay_ms), opts.jitter)
            logger.warning(
                f"{label} failed on attempt {attempt + 1}/{opts.max_retries + 1}, retrying in {wait_ms}ms: {exc}"
            )
            await _sleep(wait_ms)
            delay *= opts.factor
            attempt += 1


async def _with_timeout(
    operation: Callable[[], Awaitable[T]],
    timeout_ms: Optional[float],
    label: str,
) -> T:
    if not timeout_ms or timeout_ms <= 0:
        return await operation()

    task = asyncio.ensure_future(operation())
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
    except asyncio.CancelledError:
        task.cancel()
        raise
    if task not in done:
        task.cancel()
        raise OperationTimeoutError(label, timeout_ms)
    return task.result()


async def _sleep(delay_ms: float) -> None:
    await asyncio.sleep(delay_ms / 1000)


def apply_jitter(base_ms: float, enabled: bool) -> float:
    """Scale ``base_ms`` by a random factor in [0.8, 1.2) and floor it."""
    if not enabled:
        return base_ms
    deviation = random.random() * 0.4 + 0.8
    return math.floor(base_ms * deviation)
