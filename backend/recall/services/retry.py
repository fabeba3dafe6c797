"""
Bounded retry with exponential backoff and jitter for provider calls.
"""
from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

from recall.config import settings
from recall.services.llm_service import LLMUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRY_EXCEPTIONS: tuple[type[Exception], ...] = (LLMUnavailableError, httpx.TransportError)


class RetryPolicy:
    def __init__(
        self,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        max_delay: float | None = None,
        jitter_max: float = 0.5,
        exceptions: tuple[type[Exception], ...] = RETRY_EXCEPTIONS,
    ) -> None:
        self.max_attempts = max(1, max_attempts or settings.provider_retry_attempts)
        self.base_delay = settings.provider_retry_base_delay if base_delay is None else base_delay
        self.max_delay = settings.provider_retry_max_delay if max_delay is None else max_delay
        self.jitter_max = jitter_max
        self.exceptions = exceptions

    def delay_for(self, attempt: int) -> float:
        delay = min(self.base_delay * (2**attempt), self.max_delay)
        return delay + delay * random.uniform(0, self.jitter_max)

    async def run(self, fn: Callable[[], Awaitable[T]], label: str = "provider call") -> T:
        for attempt in range(self.max_attempts):
            try:
                return await fn()
            except self.exceptions as e:
                if attempt + 1 >= self.max_attempts:
                    logger.warning("%s failed after %d attempts: %s", label, attempt + 1, e)
                    raise
                delay = self.delay_for(attempt)
                logger.info(
                    "%s failed (%s), retrying in %.2fs (%d/%d)",
                    label, e, delay, attempt + 1, self.max_attempts,
                )
                await asyncio.sleep(delay)
        raise RuntimeError("unreachable")  # pragma: no cover
