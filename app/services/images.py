from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from app.models.listing import Listing
from app.models.listing_image import ListingImage
from app.models.reference_code import ARCHIVED
from app.models.user import User
from app.services.lifecycle import listing_locks, load_listing_for_update
from app.services.listings import get_listing

log = logging.getLogger(__name__)


async def _ordered(db: AsyncSession, listing_id: str) -> list[ListingImage]:
    stmt = select(ListingImage).where(ListingImage.listing_id == listing_id).order_by(ListingImage.position)
    return list((await db.execute(stmt)).scalars().all())


async def _renumber(db: AsyncSession, images: list[ListingImage]) -> None:
    """
    Write positions 0..n-1 in list order.

    Two passes through negative positions so no intermediate state hits the
    (listing_id, position) unique constraint.
    """
    for i, img in enumerate(images):
        if img.id is not None:
            img.position = -(i + 1)
    await db.flush()
    for i, img in enumerate(images):
        img.position = i
        db.add(img)
    await db.flush()


async def _editable(db: AsyncSession, listing_id: str, actor_id: str) -> Listing:
    # row lock on PostgreSQL; listing_locks covers single-node backends
    listing = await load_listing_for_update(db, listing_id)
    if listing.user_id != actor_id:
        raise PermissionDeniedError("Only the owner can change this listing")
    if listing.status == ARCHIVED:
        raise ValidationError("Archived listings cannot be edited")
    return listing



async def add_image(
    db: AsyncSession, *, listing_id: str, actor_id: str, image_url: str, position: int | None = None
) -> ListingImage:
    async with listing_locks.hold(listing_id):
        try:
            await _editable(db, listing_id, actor_id)
            images = await _ordered(db, listing_id)
            at = len(images) if position is None else min(position, len(images))

            image = ListingImage(listing_id=listing_id, image_url=image_url)
            if at == len(images):
                image.position = at
                db.add(image)
                await db.flush()
            else:
                images.insert(at, image)
                await _renumber(db, images)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
    return image


async def delete_image(db: AsyncSession, *, listing_id: str, image_id: str, actor_id: str) -> None:
    # does not touch the listing status; the image guard runs on the next activation
    async with listing_locks.hold(listing_id):
        try:
            await _editable(db, listing_id, actor_id)
            images = await _ordered(db, listing_id)
            target = next((img for img in images if img.id == image_id), None)
            if target is None:
                raise NotFoundError("Image not found")

            await db.delete(target)
            await db.flush()
            await _renumber(db, [img for img in images if img.id != image_id])
            await db.commit()
        except Exception:
            await db.rollback()
            raise


async def reorder_images(db: AsyncSession, *, listing_id: str, actor_id: str, image_ids: list[str]) -> list[ListingImage]:
    async with listing_locks.hold(listing_id):
        try:
            await _editable(db, listing_id, actor_id)
            images = await _ordered(db, listing_id)
            by_id = {img.id: img for img in images}
            if len(image_ids) != len(by_id) or set(image_ids) != set(by_id):
                raise ValidationError(
                    "New order must list every image of the listing exactly once",
                    details=[{"field": "image_ids", "expected": len(by_id), "got": len(image_ids)}],
                )
            ordered = [by_id[i] for i in image_ids]
            await _renumber(db, ordered)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
    return ordered


async def list_images(db: AsyncSession, *, listing_id: str, viewer: User | None = None) -> list[ListingImage]:
    await get_listing(db, listing_id, viewer=viewer)
    return await _ordered(db, listing_id)
