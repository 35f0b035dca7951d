"""Bounded retry with linearly increasing backoff for provider calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from quiz_agent.errors import ProviderError, StructuralValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (ProviderError, StructuralValidationError)


async def call_with_retries(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    base_delay: float,
    label: str,
) -> T:
    """
    Await ``operation()`` up to ``attempts`` times.

    After failed attempt N the call sleeps ``base_delay * N`` seconds. Only provider
    and structural-validation failures are retried; the last one is re-raised once
    attempts are exhausted.
    """
    last_error: Exception | None = None
    for attempt in range(1, max(attempts, 1) + 1):
        try:
            return await operation()
        except RETRYABLE_ERRORS as exc:
            last_error = exc
            logger.warning("%s: attempt %d/%d failed: %s", label, attempt, attempts, exc)
            if attempt < attempts:
                await asyncio.sleep(base_delay * attempt)
    raise last_error
