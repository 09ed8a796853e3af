from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.models.user import User
from app.schemas.common import StatusResponse
from app.schemas.listing import ListingOut
from app.schemas.me import ProfileUpdate, UserOut
from app.schemas.valuation import ValuationRecordOut
from app.services.auth import get_current_user
from app.services.favorites import list_favorites
from app.services.listings import list_user_listings, listing_out
from app.services.users import delete_user, update_profile
from app.services.valuation import list_user_valuations

router = APIRouter()


@router.get("/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user)) -> UserOut:
    return UserOut.model_validate(user)


@router.patch("/me", response_model=UserOut)
async def patch_me(
    body: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> UserOut:
    user = await update_profile(db, user, body)
    return UserOut.model_validate(user)


@router.delete("/me", response_model=StatusResponse)
async def delete_me(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> StatusResponse:
    user_id = user.id
    await delete_user(db, user)
    return StatusResponse(status="deleted", id=user_id)


@router.get("/me/listings", response_model=list[ListingOut])
async def my_listings(
    status: str | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[ListingOut]:
    return await list_user_listings(db, owner_id=user.id, status=status)


@router.get("/me/favorites", response_model=list[ListingOut])
async def my_favorites(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[ListingOut]:
    return [listing_out(row) for row in await list_favorites(db, user_id=user.id)]


@router.get("/me/valuations", response_model=list[ValuationRecordOut])
async def my_valuations(
    user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)
) -> list[ValuationRecordOut]:
    rows = await list_user_valuations(db, user_id=user.id)
    return [
        ValuationRecordOut(
            id=r.id,
            property_type=r.property_type,
            valuation_result=r.valuation_result,
            estimator=r.estimator,
            created_at=r.created_at,
        )
        for r in rows
    ]
