"""Retry with capped exponential backoff for transient primary failures."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from pairsync._constants import DEFAULT_BACKOFF_BASE, DEFAULT_BACKOFF_CAP, DEFAULT_MAX_RETRIES
from pairsync.config import PairsyncConfig
from pairsync.exceptions import PrimaryUnavailableError

_logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how long to wait before giving up on the primary API.

    ``max_retries`` counts retries after the first attempt. The delay
    before retry *n* (1-based) is ``min(cap, base * 2 ** (n - 1))``.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BACKOFF_BASE
    max_delay: float = DEFAULT_BACKOFF_CAP

    @classmethod
    def from_config(cls, config: PairsyncConfig) -> RetryPolicy:
        return cls(
            max_retries=config.max_retries,
            base_delay=config.backoff_base,
            max_delay=config.backoff_cap,
        )

    def delay_for(self, retry: int) -> float:
        return min(self.max_delay, self.base_delay * (2 ** (retry - 1)))


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    description: str = "request",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run *fn*, retrying transient :class:`PrimaryUnavailableError` failures.

    Non-transient failures (4xx, invalid payloads) are raised immediately.
    The last transient failure is re-raised once the budget is spent.
    """
    attempts = policy.max_retries + 1
    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except PrimaryUnavailableError as exc:
            if not exc.transient or attempt == attempts:
                raise
            delay = policy.delay_for(attempt)
            _logger.info(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                description,
                attempt,
                attempts,
                delay,
                exc,
            )
            await sleep(delay)
    # Unreachable: the loop either returns or raises.
    raise AssertionError("retry loop exited without result")  # pragma: no cover
