from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import bounded
from app.core.errors import InvalidTransitionError, NotFoundError, PermissionDeniedError, ValidationError
from app.core.ids import gen_id
from app.models.conversation import Conversation, Message
from app.models.favorite import Favorite
from app.models.listing import Listing
from app.models.listing_details import DETAILS_BY_CATEGORY, ListingDetails
from app.models.listing_image import ListingImage
from app.models.reference_code import ACTIVE, ARCHIVED, DRAFT
from app.models.user import User
from app.schemas.listing import DetailsReplace, ListingCreate, ListingOut, ListingUpdate, LocationIn
from app.schemas.property_details import parse_property_details
from app.services.activity import record_activity
from app.services.lifecycle import apply_transition, lock_owner, owner_locks
from app.services.payments import ensure_attachable
from app.services.reference_data import ensure_listing_type, ensure_location, ensure_property_type
from app.services.retry import call_with_retry

log = logging.getLogger(__name__)


def listing_out(listing: Listing, *, image_count: int | None = None) -> ListingOut:
    return ListingOut(
        id=listing.id,
        user_id=listing.user_id,
        listing_type=listing.listing_type,
        property_type=listing.property_type,
        status=listing.status,
        payment_id=listing.payment_id,
        title=listing.title,
        description=listing.description,
        price=listing.price,
        address=listing.address,
        city_id=listing.city_id,
        sub_locality_id=listing.sub_locality_id,
        region=listing.region,
        latitude=listing.latitude,
        longitude=listing.longitude,
        details=listing.details.as_dict() if listing.details is not None else {},
        image_count=image_count,
        created_at=listing.created_at,
        updated_at=listing.updated_at,
    )


def build_details(category: str, attrs) -> ListingDetails:
    parsed = parse_property_details(category, attrs)
    return DETAILS_BY_CATEGORY[category](**parsed.model_dump())


async def _apply_location(db: AsyncSession, listing: Listing, location: LocationIn) -> None:
    if (location.latitude is None) != (location.longitude is None):
        raise ValidationError("Latitude and longitude must be given together", details=[{"field": "location"}])
    listing.city_id = await ensure_location(db, location.city_id, location.sub_locality_id)
    listing.sub_locality_id = location.sub_locality_id
    listing.address = location.address
    listing.region = location.region
    listing.latitude = location.latitude
    listing.longitude = location.longitude


@asynccontextmanager
async def _maybe_owner_lock(owner_id: str, needed: bool) -> AsyncIterator[None]:
    if not needed:
        yield
        return
    async with owner_locks.hold(owner_id):
        yield


async def _insert_listing(db: AsyncSession, *, listing_id: str, owner_id: str, payload: ListingCreate) -> Listing:
    async with _maybe_owner_lock(owner_id, payload.publish):
        try:
            existing = await db.get(Listing, listing_id, populate_existing=True)
            if existing is not None:
                # an earlier attempt committed; only its acknowledgement was lost
                return existing

            if payload.publish:
                await lock_owner(db, owner_id)

            await ensure_listing_type(db, payload.listing_type)
            await ensure_property_type(db, payload.property_type)
            details = build_details(payload.property_type, payload.details)

            listing = Listing(
                id=listing_id,
                user_id=owner_id,
                listing_type=payload.listing_type,
                property_type=payload.property_type,
                status=DRAFT,
                title=payload.title,
                description=payload.description,
                price=payload.price,
            )
            await _apply_location(db, listing, payload.location)
            listing.details = details

            if payload.payment_id is not None:
                await ensure_attachable(db, payment_id=payload.payment_id, owner_id=owner_id)
                listing.payment_id = payload.payment_id

            db.add(listing)
            await db.flush()

            for pos, url in enumerate(payload.image_urls):
                db.add(ListingImage(listing_id=listing.id, image_url=url, position=pos))
            await db.flush()

            if payload.publish:
                await apply_transition(db, listing, ACTIVE)

            await db.commit()
        except Exception:
            await db.rollback()
            raise
    return listing


async def create_listing(db: AsyncSession, *, owner_id: str, payload: ListingCreate) -> Listing:
    """
    Insert a listing with its detail record and images in one transaction.

    With `publish` the listing also goes Draft -> Active before commit, under
    the owner lock; a failed guard leaves nothing behind. The id is fixed
    before the first attempt, so a retry after a lost commit acknowledgement
    returns the stored listing instead of inserting a second one.
    """
    listing_id = gen_id("lst")
    listing = await call_with_retry(
        db,
        lambda: bounded(
            _insert_listing(db, listing_id=listing_id, owner_id=owner_id, payload=payload),
            what="listing create",
        ),
        what="listing create",
    )

    log.info("listing created: %s owner=%s status=%s", listing.id, owner_id, listing.status)
    await record_activity(
        db,
        user_id=owner_id,
        action="listing.created",
        target_type="listing",
        target_id=listing.id,
        detail={"status": listing.status, "property_type": listing.property_type},
    )
    return listing


async def get_listing(db: AsyncSession, listing_id: str, *, viewer: User | None = None) -> Listing:
    # anything but Active is private to its owner
    listing = await db.get(Listing, listing_id)
    if listing is None:
        raise NotFoundError("Listing not found")
    if listing.status != ACTIVE and (viewer is None or viewer.id != listing.user_id):
        raise NotFoundError("Listing not found")
    return listing


async def get_owned_listing(db: AsyncSession, listing_id: str, actor_id: str) -> Listing:
    listing = await db.get(Listing, listing_id)
    if listing is None:
        raise NotFoundError("Listing not found")
    if listing.user_id != actor_id:
        raise PermissionDeniedError("Only the owner can change this listing")
    return listing


async def update_listing(db: AsyncSession, *, listing_id: str, actor_id: str, payload: ListingUpdate) -> Listing:
    try:
        listing = await get_owned_listing(db, listing_id, actor_id)
        if listing.status == ARCHIVED:
            raise ValidationError("Archived listings cannot be edited")

        changes = payload.model_dump(exclude_unset=True, exclude={"location"})
        for field in ("title", "price", "listing_type"):
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be cleared", details=[{"field": field}])
        if "listing_type" in changes:
            await ensure_listing_type(db, changes["listing_type"])

        for field, value in changes.items():
            setattr(listing, field, value)
        if payload.location is not None:
            await _apply_location(db, listing, payload.location)

        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return listing


async def set_details(db: AsyncSession, *, listing_id: str, actor_id: str, payload: DetailsReplace) -> Listing:
    """Replace the category attributes; the category itself is fixed at creation."""
    try:
        listing = await get_owned_listing(db, listing_id, actor_id)
        if payload.property_type != listing.property_type:
            raise ValidationError(
                f"{payload.property_type} details cannot be attached to a {listing.property_type} listing",
                details=[{"field": "property_type", "expected": listing.property_type, "got": payload.property_type}],
            )
        parsed = parse_property_details(listing.property_type, payload.details).model_dump()

        if listing.details is None:
            listing.details = DETAILS_BY_CATEGORY[listing.property_type](**parsed)
        else:
            for field in listing.details.FIELDS:
                setattr(listing.details, field, parsed.get(field))
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return listing


async def purge_listings(db: AsyncSession, listing_ids: Sequence[str]) -> None:
    """Hard-delete listings with every dependent row, inside the caller's transaction."""
    if not listing_ids:
        return
    conv_ids = select(Conversation.id).where(Conversation.listing_id.in_(listing_ids))
    await db.execute(delete(Message).where(Message.conversation_id.in_(conv_ids)))
    await db.execute(delete(Conversation).where(Conversation.listing_id.in_(listing_ids)))
    await db.execute(delete(Favorite).where(Favorite.listing_id.in_(listing_ids)))
    await db.execute(delete(ListingImage).where(ListingImage.listing_id.in_(listing_ids)))
    await db.execute(delete(ListingDetails).where(ListingDetails.listing_id.in_(listing_ids)))
    await db.execute(delete(Listing).where(Listing.id.in_(listing_ids)))


async def delete_listing(db: AsyncSession, *, listing_id: str, actor_id: str) -> None:
    # published listings leave the marketplace through Archived instead
    try:
        listing = await get_owned_listing(db, listing_id, actor_id)
        if listing.status != DRAFT:
            raise InvalidTransitionError(
                "Only draft listings can be deleted; archive published listings instead",
                details=[{"status": listing.status}],
            )
        await purge_listings(db, [listing.id])
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    log.info("listing deleted: %s", listing_id)
    await record_activity(db, user_id=actor_id, action="listing.deleted", target_type="listing", target_id=listing_id)


async def image_counts(db: AsyncSession, listing_ids: Sequence[str]) -> dict[str, int]:
    if not listing_ids:
        return {}
    stmt = (
        select(ListingImage.listing_id, func.count())
        .where(ListingImage.listing_id.in_(listing_ids))
        .group_by(ListingImage.listing_id)
    )
    return {lid: int(n) for lid, n in (await db.execute(stmt)).all()}


async def list_user_listings(db: AsyncSession, *, owner_id: str, status: str | None = None) -> list[ListingOut]:
    stmt = select(Listing).where(Listing.user_id == owner_id)
    if status is not None:
        stmt = stmt.where(Listing.status == status)
    rows = (await db.execute(stmt.order_by(Listing.created_at.desc(), Listing.id.desc()))).scalars().all()
    counts = await image_counts(db, [r.id for r in rows])
    return [listing_out(r, image_count=counts.get(r.id, 0)) for r in rows]
