from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.models.user import User
from app.schemas.common import StatusResponse
from app.services.auth import get_current_user
from app.services.favorites import add_favorite, remove_favorite

router = APIRouter()


@router.put("/listings/{listing_id}/favorite", response_model=StatusResponse)
async def put_favorite(
    listing_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> StatusResponse:
    fav = await add_favorite(db, user=user, listing_id=listing_id)
    return StatusResponse(status="favorited", id=fav.id)


@router.delete("/listings/{listing_id}/favorite", response_model=StatusResponse)
async def delete_favorite(
    listing_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> StatusResponse:
    removed = await remove_favorite(db, user_id=user.id, listing_id=listing_id)
    return StatusResponse(status="removed" if removed else "absent")
