"""Exponential-backoff retry driver used by every retrying component."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from core.errors import PipelineCancelled, TransientOverload
from core.state import RetryState

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE = "retryable"
FATAL = "fatal"


def classify_overload(error: BaseException) -> str:
    """Default classifier: provider overload is retryable, everything else is fatal."""
    return RETRYABLE if isinstance(error, TransientOverload) else FATAL


def backoff_delay(attempt: int, base_delay: float = 1.0) -> float:
    """Delay before the retry that follows ``attempt`` (0-based): 2^attempt * base."""
    return (2 ** attempt) * base_delay


def raise_if_cancelled(cancel: asyncio.Event | None, where: str = "") -> None:
    if cancel is not None and cancel.is_set():
        raise PipelineCancelled(f"Run cancelled{' ' + where if where else ''}")


async def run_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int,
    classify: Callable[[BaseException], str] = classify_overload,
    *,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    cancel: asyncio.Event | None = None,
    label: str = "operation",
) -> T:
    """Invoke ``operation`` until it succeeds, fails fatally, or runs out of attempts.

    Args:
        operation: Zero-argument coroutine factory. Called once per attempt.
        max_attempts: Total attempts, including the first one. Must be >= 1.
        classify: Maps an error to RETRYABLE or FATAL.
        base_delay: Seconds multiplied by 2^attempt between attempts.
        sleep: Awaitable sleep, injectable for tests.
        cancel: Optional event; checked before every attempt and around every sleep.
        label: Name used in log lines.

    Returns:
        Whatever ``operation`` returns on its first successful attempt.

    Raises:
        The first fatal error unchanged, or the last retryable error once
        ``max_attempts`` is exhausted. PipelineCancelled if ``cancel`` is set.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    state = RetryState(max_attempts=max_attempts)

    while True:
        raise_if_cancelled(cancel, f"before {label}")
        try:
            return await operation()
        except PipelineCancelled:
            raise
        except Exception as exc:
            state.last_error = exc
            if classify(exc) != RETRYABLE:
                raise

            if state.attempt + 1 >= state.max_attempts:
                logger.warning(
                    "[backoff] %s: giving up after %d attempt(s): %s",
                    label, state.max_attempts, exc,
                )
                raise

            delay = backoff_delay(state.attempt, base_delay)
            logger.warning(
                "[backoff] %s: attempt %d/%d failed (%s), retrying in %.1fs",
                label, state.attempt + 1, state.max_attempts, exc, delay,
            )
            raise_if_cancelled(cancel, f"before backoff sleep in {label}")
            await sleep(delay)
            raise_if_cancelled(cancel, f"after backoff sleep in {label}")
            state.attempt += 1
