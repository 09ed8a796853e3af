from __future__ import annotations

import logging
import uuid
from datetime import timedelta

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.base import utcnow
from app.models.outbox import OutboxEvent
from app.services.http_client import TransportHttpClient
from app.services.retry import compute_backoff_seconds
from worker.celery_app import celery

log = logging.getLogger(__name__)

MAX_ATTEMPTS = 10


async def requeue_expired_leases(db: AsyncSession) -> int:
    result = await db.execute(
        update(OutboxEvent)
        .where(
            OutboxEvent.status == "processing",
            OutboxEvent.lease_expires_at.is_not(None),
            OutboxEvent.lease_expires_at < utcnow(),
        )
        .values(
            status="pending",
            lease_id=None,
            lease_expires_at=None,
            processing_started_at=None,
            last_error="requeued: lease expired",
        )
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)


async def claim_outbox_event_ids(db: AsyncSession, batch_size: int = 100, lease_minutes: int = 10) -> tuple[str, list[str]]:
    lease_id = uuid.uuid4().hex
    now = utcnow()

    stmt = (
        select(OutboxEvent.id)
        .where(
            OutboxEvent.status == "pending",
            or_(OutboxEvent.next_attempt_at.is_(None), OutboxEvent.next_attempt_at <= now),
        )
        .order_by(OutboxEvent.created_at.asc())
        .with_for_update(skip_locked=True)
        .limit(batch_size)
    )
    ids = list((await db.execute(stmt)).scalars().all())
    if not ids:
        return lease_id, []

    await db.execute(
        update(OutboxEvent)
        .where(OutboxEvent.id.in_(ids))
        .values(
            status="processing",
            processing_started_at=now,
            attempts=OutboxEvent.attempts + 1,
            lease_id=lease_id,
            lease_expires_at=now + timedelta(minutes=lease_minutes),
        )
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    return lease_id, ids


async def dispatch_outbox(db: AsyncSession, batch_size: int = 100, lease_minutes: int = 10) -> int:
    await requeue_expired_leases(db)
    lease_id, ids = await claim_outbox_event_ids(db, batch_size=batch_size, lease_minutes=lease_minutes)

    # commit before enqueue so workers see the lease
    await db.commit()
    if not ids:
        return 0

    failed: list[tuple[str, str]] = []
    dispatched = 0
    for outbox_id in ids:
        try:
            celery.send_task("worker.tasks.deliver_outbox_event", args=[outbox_id, lease_id], queue="outbox")
            dispatched += 1
        except Exception as e:
            failed.append((outbox_id, f"{type(e).__name__}: {e}"))

    if failed:
        for outbox_id, msg in failed:
            await db.execute(
                update(OutboxEvent)
                .where(OutboxEvent.id == outbox_id, OutboxEvent.lease_id == lease_id)
                .values(status="pending", lease_id=None, lease_expires_at=None, processing_started_at=None, last_error=f"enqueue failed: {msg}")
                .execution_options(synchronize_session=False)
            )
        await db.commit()
        log.warning("outbox: %d of %d events could not be enqueued", len(failed), len(ids))

    return dispatched


async def deliver_event(db: AsyncSession, outbox_id: str, lease_id: str, client: TransportHttpClient) -> str:
    """
    Push one claimed event to the messaging transport.

    Returns the resulting status: "done", "pending" (rescheduled), "dead" or
    "skipped" when the lease was lost.
    """
    ev = await db.get(OutboxEvent, outbox_id, populate_existing=True)
    if ev is None or ev.lease_id != lease_id or ev.status != "processing":
        # reclaimed by another dispatcher or already finished
        return "skipped"

    if ev.event_type != "message.created":
        status, error = "dead", f"unsupported event type {ev.event_type}"
    else:
        res = await client.post_json(
            url=settings.messaging_transport_url,
            json_body={"event": ev.event_type, "id": ev.id, "data": ev.payload},
            request_id=ev.id,
        )
        if res.ok:
            status, error = "done", None
        elif res.retryable and ev.attempts < MAX_ATTEMPTS:
            status, error = "pending", f"{res.error_code}: {res.error_message}"
        else:
            status, error = "dead", f"{res.error_code}: {res.error_message}"

    now = utcnow()
    values: dict = {"status": status, "lease_id": None, "lease_expires_at": None, "last_error": error}
    if status == "done":
        values["processed_at"] = now
    elif status == "pending":
        values["processing_started_at"] = None
        values["next_attempt_at"] = now + timedelta(seconds=compute_backoff_seconds(ev.attempts))

    result = await db.execute(
        update(OutboxEvent)
        .where(OutboxEvent.id == outbox_id, OutboxEvent.lease_id == lease_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        # lease lost; do not overwrite
        await db.rollback()
        return "skipped"
    await db.commit()

    if status != "done":
        log.warning("outbox %s -> %s: %s", outbox_id, status, error)
    return status
