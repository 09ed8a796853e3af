from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Awaitable, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings
from app.core.errors import StoreUnavailableError

log = logging.getLogger(__name__)

T = TypeVar("T")


def _engine_kwargs(url: str) -> dict:
    kwargs: dict = {"pool_pre_ping": True}
    if url.startswith("postgresql"):
        kwargs["pool_timeout"] = settings.db_pool_timeout_seconds
        # server-side cap so an abandoned statement never holds locks past the budget
        timeout_ms = str(int(settings.store_timeout_seconds * 1000))
        kwargs["connect_args"] = {
            "timeout": settings.db_pool_timeout_seconds,
            "server_settings": {"statement_timeout": timeout_ms, "lock_timeout": timeout_ms},
        }
    return kwargs


engine = create_async_engine(settings.database_url, **_engine_kwargs(settings.database_url))
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_db() -> AsyncIterator[AsyncSession]:
    # closing the session rolls back anything left open (timeouts, cancelled requests)
    async with SessionLocal() as session:
        yield session


def _unavailable(what: str, reason: str) -> StoreUnavailableError:
    # user-facing message stays generic; the operation goes into details
    return StoreUnavailableError(details=[{"operation": what, "reason": reason}])


async def bounded(op: Awaitable[T], *, timeout: float | None = None, what: str = "store operation") -> T:
    """
    Run a store operation under the configured time budget.

    Timeouts and connection-level faults surface as StoreUnavailableError;
    everything else (including domain errors) propagates unchanged.
    """
    budget = timeout if timeout is not None else settings.store_timeout_seconds
    try:
        return await asyncio.wait_for(op, timeout=budget)
    except asyncio.TimeoutError as e:
        log.warning("%s timed out after %gs", what, budget)
        raise _unavailable(what, "timeout") from e
    except (OperationalError, PoolTimeoutError) as e:
        log.warning("%s failed: %s", what, type(e).__name__)
        raise _unavailable(what, type(e).__name__) from e
    except DBAPIError as e:
        if e.connection_invalidated:
            log.warning("%s lost its connection", what)
            raise _unavailable(what, "connection_lost") from e
        raise
