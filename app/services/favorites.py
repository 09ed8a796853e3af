from __future__ import annotations

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.favorite import Favorite
from app.models.listing import Listing
from app.models.reference_code import ACTIVE
from app.models.user import User
from app.services.listings import get_listing


async def add_favorite(db: AsyncSession, *, user: User, listing_id: str) -> Favorite:
    """Idempotent: favoriting twice returns the existing row."""
    await get_listing(db, listing_id, viewer=user)

    stmt = select(Favorite).where(Favorite.user_id == user.id, Favorite.listing_id == listing_id)
    existing = (await db.execute(stmt)).scalar_one_or_none()
    if existing is not None:
        return existing

    fav = Favorite(user_id=user.id, listing_id=listing_id)
    db.add(fav)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        return (await db.execute(stmt)).scalar_one()
    return fav


async def remove_favorite(db: AsyncSession, *, user_id: str, listing_id: str) -> bool:
    res = await db.execute(
        delete(Favorite).where(Favorite.user_id == user_id, Favorite.listing_id == listing_id)
    )
    await db.commit()
    return bool(res.rowcount)


async def list_favorites(db: AsyncSession, *, user_id: str) -> list[Listing]:
    # newest favorite first; listings that left Active are only shown to their owner
    stmt = (
        select(Listing)
        .join(Favorite, Favorite.listing_id == Listing.id)
        .where(Favorite.user_id == user_id, or_(Listing.status == ACTIVE, Listing.user_id == user_id))
        .order_by(Favorite.created_at.desc(), Favorite.id.desc())
    )
    return list((await db.execute(stmt)).scalars().all())
