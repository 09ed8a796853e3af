import asyncio
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from worker.celery_app import celery
from app.core.config import settings
from app.core.errors import StoreUnavailableError
import app.models  # noqa: F401  # ensures Models are registered
from app.services.http_client import TransportHttpClient
from app.services.outbox_dispatcher import deliver_event
from app.services.retry import compute_backoff_seconds
from app.services.valuation import persist_snapshot

log = logging.getLogger(__name__)


async def _deliver_outbox_event(outbox_id: str, lease_id: str) -> str:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    client = TransportHttpClient(timeout_seconds=settings.messaging_transport_timeout_seconds)
    try:
        async with Session() as db:
            return await deliver_event(db, outbox_id, lease_id, client)
    finally:
        await client.aclose()
        await engine.dispose()


async def _persist_valuation(snapshot: dict) -> bool:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    try:
        async with Session() as db:
            return await persist_snapshot(db, snapshot)
    finally:
        await engine.dispose()


@celery.task(name="worker.tasks.deliver_outbox_event", bind=True, max_retries=5)
def deliver_outbox_event(self, outbox_id: str, lease_id: str) -> str:
    return asyncio.run(_deliver_outbox_event(outbox_id, lease_id))


@celery.task(name="worker.tasks.persist_valuation", bind=True, max_retries=8)
def persist_valuation(self, snapshot: dict) -> bool:
    try:
        inserted = asyncio.run(_persist_valuation(snapshot))
    except (SQLAlchemyError, StoreUnavailableError) as e:
        log.warning("valuation %s still not persisted (attempt %d)", snapshot.get("id"), self.request.retries + 1)
        raise self.retry(exc=e, countdown=compute_backoff_seconds(self.request.retries + 1))
    log.info("valuation %s persisted by worker (inserted=%s)", snapshot.get("id"), inserted)
    return inserted
