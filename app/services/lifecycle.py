"""
Listing lifecycle: allowed status edges and the guards for entering Active.

Writers that can change the number of unpaid Active listings of a user are
serialized per owner: an in-process lock keyed by user id, plus a row lock on
the owner's `users` row inside the same transaction as the status write, so the
count read by the quota guard cannot go stale before the write commits.
"""
from __future__ import annotations

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.db import bounded
from app.core.errors import (
    InsufficientImagesError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    QuotaExceededError,
    ValidationError,
)
from app.models.base import utcnow
from app.models.listing import Listing
from app.models.listing_image import ListingImage
from app.models.reference_code import ACTIVE, ARCHIVED, DRAFT, PAUSED
from app.models.user import User
from app.services.activity import record_activity
from app.services.reference_data import ensure_listing_status
from app.services.retry import call_with_retry

log = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    DRAFT: frozenset({ACTIVE, ARCHIVED}),
    ACTIVE: frozenset({PAUSED, ARCHIVED}),
    PAUSED: frozenset({ACTIVE, ARCHIVED}),
    ARCHIVED: frozenset(),
}


class KeyedLocks:
    """asyncio locks keyed by row id; entries vanish once nobody holds them."""

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        async with lock:
            yield


owner_locks = KeyedLocks()
# image writers per listing; positions are read then rewritten
listing_locks = KeyedLocks()


async def lock_owner(db: AsyncSession, user_id: str) -> User:
    # row lock on PostgreSQL; the in-process lock covers single-node backends
    user = (await db.execute(select(User).where(User.id == user_id).with_for_update())).scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")
    return user


async def count_images(db: AsyncSession, listing_id: str) -> int:
    stmt = select(func.count()).select_from(ListingImage).where(ListingImage.listing_id == listing_id)
    return int((await db.execute(stmt)).scalar_one())


async def count_free_active(db: AsyncSession, user_id: str, *, exclude_listing_id: str | None = None) -> int:
    stmt = select(func.count()).select_from(Listing).where(
        Listing.user_id == user_id,
        Listing.payment_id.is_(None),
        Listing.status == ACTIVE,
    )
    if exclude_listing_id is not None:
        stmt = stmt.where(Listing.id != exclude_listing_id)
    return int((await db.execute(stmt)).scalar_one())


def check_edge(current: str, new_status: str) -> None:
    allowed = ALLOWED_TRANSITIONS.get(current, frozenset())
    if new_status not in allowed:
        raise InvalidTransitionError(
            f"Cannot move a listing from {current} to {new_status}",
            details=[{"from": current, "to": new_status, "allowed": sorted(allowed)}],
        )


async def check_can_activate(db: AsyncSession, listing: Listing) -> None:
    images = await count_images(db, listing.id)
    if images < settings.min_active_images:
        raise InsufficientImagesError(
            f"At least {settings.min_active_images} images are required to publish a listing",
            details=[{"required": settings.min_active_images, "found": images}],
        )

    if listing.payment_id is None:
        others = await count_free_active(db, listing.user_id, exclude_listing_id=listing.id)
        if others + 1 > settings.free_active_listing_limit:
            log.info("quota refusal: user=%s listing=%s active_free=%d", listing.user_id, listing.id, others)
            raise QuotaExceededError(details=[{"limit": settings.free_active_listing_limit, "active": others}])


async def apply_transition(db: AsyncSession, listing: Listing, new_status: str) -> str:
    """
    Validate and apply one status change; returns the previous status.

    The caller owns the transaction and, when entering Active, the owner lock.
    Nothing is written when a guard fails.
    """
    await ensure_listing_status(db, new_status)
    check_edge(listing.status, new_status)

    if listing.details is None or listing.details.CATEGORY != listing.property_type:
        raise ValidationError("Listing details are missing or do not match its property type")

    if new_status == ACTIVE:
        await check_can_activate(db, listing)

    previous = listing.status
    listing.status = new_status
    listing.updated_at = utcnow()
    await db.flush()
    return previous


async def load_listing_for_update(db: AsyncSession, listing_id: str) -> Listing:
    stmt = (
        select(Listing)
        .where(Listing.id == listing_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    listing = (await db.execute(stmt)).scalar_one_or_none()
    if listing is None:
        raise NotFoundError("Listing not found")
    return listing


async def _commit_transition(
    db: AsyncSession, *, listing_id: str, new_status: str, actor_id: str, replay: bool
) -> tuple[Listing, str | None]:
    async with owner_locks.hold(actor_id):
        try:
            await lock_owner(db, actor_id)
            listing = await load_listing_for_update(db, listing_id)
            if listing.user_id != actor_id:
                raise PermissionDeniedError("Only the owner can change this listing")
            if replay and listing.status == new_status:
                # an earlier attempt committed; only its acknowledgement was lost
                await db.commit()
                return listing, None
            previous = await apply_transition(db, listing, new_status)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
    return listing, previous


async def transition_listing(db: AsyncSession, *, listing_id: str, new_status: str, actor_id: str) -> Listing:
    """
    Change a listing's status in one bounded, retried transaction.

    The activity entry is written after the retry loop, so a slow activity log
    never re-runs a committed transition.
    """
    attempts = 0

    async def _attempt() -> tuple[Listing, str | None]:
        nonlocal attempts
        attempts += 1
        return await bounded(
            _commit_transition(
                db, listing_id=listing_id, new_status=new_status, actor_id=actor_id, replay=attempts > 1
            ),
            what="listing transition",
        )

    listing, previous = await call_with_retry(db, _attempt, what="listing transition")

    log.info("listing %s: %s -> %s", listing.id, previous, new_status)
    await record_activity(
        db,
        user_id=actor_id,
        action="listing.transitioned",
        target_type="listing",
        target_id=listing.id,
        detail={"from": previous, "to": new_status},
    )
    return listing
