from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import StoreUnavailableError

log = logging.getLogger(__name__)

T = TypeVar("T")


def compute_backoff_seconds(attempt: int, base: int = 10, cap: int = 900) -> int:
    # exponential backoff with jitter
    exp = min(cap, base * (2 ** max(0, attempt - 1)))
    jitter = random.randint(0, min(30, exp // 3))
    return exp + jitter


def compute_request_backoff(attempt: int, base: float = 0.05, cap: float = 1.0) -> float:
    # in-request variant: sub-second steps, the caller is waiting
    exp = min(cap, base * (2 ** max(0, attempt - 1)))
    return exp + random.uniform(0, exp / 3)


async def call_with_retry(
    db: AsyncSession,
    op: Callable[[], Awaitable[T]],
    *,
    attempts: int | None = None,
    what: str = "store operation",
) -> T:
    """
    Run `op` and retry it after a rollback while the store is unavailable.

    Only StoreUnavailableError is retried; domain errors surface at once.
    """
    total = max(1, attempts if attempts is not None else settings.store_retry_attempts)
    for attempt in range(1, total + 1):
        try:
            return await op()
        except StoreUnavailableError:
            await db.rollback()
            if attempt == total:
                log.error("%s failed after %d attempts", what, total)
                raise
            delay = compute_request_backoff(attempt)
            log.warning("%s unavailable (attempt %d/%d), retrying in %.2fs", what, attempt, total, delay)
            await asyncio.sleep(delay)
    raise StoreUnavailableError()
