"""
Timeout and retry-with-backoff for collaborator calls.

Each attempt is bounded by ``asyncio.wait_for``.  Transient failures
(timeouts, connection errors, ``OracleUnavailableError``) are retried with
exponential backoff; every other ``VaultError`` (wrong PIN, wrong key,
unknown address, ...) propagates on the first occurrence.

Only idempotent calls should be wrapped with retries: a keyring derivation
retried after a timeout could derive twice.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import aiohttp

from chainvault_core.errors import OracleUnavailableError

logger = logging.getLogger("chainvault_retry")

T = TypeVar("T")

TRANSIENT_ERRORS = (
    asyncio.TimeoutError,
    ConnectionError,
    aiohttp.ClientError,
    OracleUnavailableError,
)


@dataclass
class RetryPolicy:
    timeout: float = 10.0
    max_retries: int = 3
    backoff_base: float = 0.5
    backoff_max: float = 8.0

    def delay(self, attempt: int) -> float:
        return min(self.backoff_base * (2 ** attempt), self.backoff_max)


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    what: str = "call",
) -> T:
    """Await ``fn()`` under *policy*; re-raise the last transient error."""
    policy = policy or RetryPolicy()
    attempt = 0
    while True:
        try:
            return await asyncio.wait_for(fn(), timeout=policy.timeout)
        except TRANSIENT_ERRORS as exc:
            if attempt >= policy.max_retries:
                logger.warning(f"{what} failed after {attempt + 1} attempts: {exc!r}")
                raise
            delay = policy.delay(attempt)
            logger.debug(f"{what} transient failure ({exc!r}); retrying in {delay:.2f}s")
            attempt += 1
            await asyncio.sleep(delay)


async def call_with_timeout(fn: Callable[[], Awaitable[T]], policy: RetryPolicy | None = None) -> T:
    """Single bounded attempt, for non-idempotent calls."""
    policy = policy or RetryPolicy()
    return await asyncio.wait_for(fn(), timeout=policy.timeout)
