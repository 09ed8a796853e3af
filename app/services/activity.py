from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import bounded
from app.core.errors import StoreUnavailableError
from app.models.activity_log import ActivityLog

log = logging.getLogger(__name__)


async def record_activity(
    db: AsyncSession,
    *,
    user_id: str | None,
    action: str,
    target_type: str | None = None,
    target_id: str | None = None,
    detail: dict | None = None,
) -> bool:
    """
    Append an activity entry in its own short transaction.

    Best-effort: call it after the business write has committed. Failures are
    logged and reported as False, never raised.
    """
    try:
        async with AsyncSession(bind=db.bind, expire_on_commit=False) as side:
            side.add(ActivityLog(
                user_id=user_id,
                action=action,
                target_type=target_type,
                target_id=target_id,
                detail=detail or {},
            ))
            await bounded(side.commit(), what="activity log write")
        return True
    except (SQLAlchemyError, StoreUnavailableError):
        log.warning("activity log write failed: action=%s target=%s:%s", action, target_type, target_id, exc_info=True)
        return False
