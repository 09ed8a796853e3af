from datetime import timedelta

import httpx
import pytest

from app.models.base import utcnow
from app.models.outbox import OutboxEvent
from app.services import outbox_dispatcher
from app.services.http_client import TransportHttpClient
from app.services.outbox_dispatcher import claim_outbox_event_ids, deliver_event, dispatch_outbox


def _client(status: int, seen: list | None = None) -> TransportHttpClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status, json={"ok": status < 300})

    return TransportHttpClient(transport=httpx.MockTransport(handler))


async def _event(db, **kw) -> str:
    ev = OutboxEvent(
        aggregate_type="conversation",
        aggregate_id="cnv_1",
        event_type=kw.pop("event_type", "message.created"),
        payload={"message_id": "msg_1", "content": "Hi"},
        status="pending",
        **kw,
    )
    db.add(ev)
    await db.commit()
    return ev.id


@pytest.mark.asyncio
async def test_delivered_event_is_done(db_session):
    event_id = await _event(db_session)
    lease_id, ids = await claim_outbox_event_ids(db_session)
    await db_session.commit()
    assert ids == [event_id]

    seen: list[httpx.Request] = []
    client = _client(200, seen)
    try:
        assert await deliver_event(db_session, event_id, lease_id, client) == "done"
    finally:
        await client.aclose()

    assert seen[0].headers["X-Request-Id"] == event_id
    ev = await db_session.get(OutboxEvent, event_id, populate_existing=True)
    assert ev.status == "done"
    assert ev.processed_at is not None
    assert ev.lease_id is None


@pytest.mark.asyncio
async def test_transient_failure_is_rescheduled(db_session):
    event_id = await _event(db_session)
    lease_id, _ = await claim_outbox_event_ids(db_session)
    await db_session.commit()

    client = _client(503)
    try:
        assert await deliver_event(db_session, event_id, lease_id, client) == "pending"
    finally:
        await client.aclose()

    ev = await db_session.get(OutboxEvent, event_id, populate_existing=True)
    assert ev.status == "pending"
    assert ev.attempts == 1
    assert ev.next_attempt_at is not None
    assert "HTTP_503" in ev.last_error

    # not claimable again before its backoff has passed
    _, ids = await claim_outbox_event_ids(db_session)
    assert ids == []


@pytest.mark.asyncio
async def test_permanent_failure_and_lost_lease(db_session):
    event_id = await _event(db_session)
    lease_id, _ = await claim_outbox_event_ids(db_session)
    await db_session.commit()

    client = _client(400)
    try:
        assert await deliver_event(db_session, event_id, "not-my-lease", client) == "skipped"
        assert await deliver_event(db_session, event_id, lease_id, client) == "dead"
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_dispatch_enqueues_claimed_events(db_session, monkeypatch):
    sent: list[tuple] = []

    def _send_task(name, args=None, queue=None, **kw):
        sent.append((name, tuple(args), queue))

    monkeypatch.setattr(outbox_dispatcher.celery, "send_task", _send_task)

    ready = await _event(db_session)
    await _event(db_session, next_attempt_at=utcnow() + timedelta(hours=1))

    assert await dispatch_outbox(db_session) == 1
    assert [(s[0], s[1][0], s[2]) for s in sent] == [("worker.tasks.deliver_outbox_event", ready, "outbox")]

    ev = await db_session.get(OutboxEvent, ready, populate_existing=True)
    assert ev.status == "processing"
    assert ev.lease_id == sent[0][1][1]
