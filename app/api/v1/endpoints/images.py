from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.models.user import User
from app.schemas.common import StatusResponse
from app.schemas.listing import ImageIn, ImageOrderIn, ImageOut
from app.services.auth import get_current_user, get_optional_user
from app.services.images import add_image, delete_image, list_images, reorder_images

router = APIRouter()


@router.post("/listings/{listing_id}/images", response_model=ImageOut, status_code=201)
async def post_image(
    listing_id: str,
    body: ImageIn,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ImageOut:
    image = await add_image(db, listing_id=listing_id, actor_id=user.id, image_url=body.image_url, position=body.position)
    return ImageOut.model_validate(image)


@router.get("/listings/{listing_id}/images", response_model=list[ImageOut])
async def get_images(
    listing_id: str,
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
) -> list[ImageOut]:
    return [ImageOut.model_validate(i) for i in await list_images(db, listing_id=listing_id, viewer=viewer)]


@router.put("/listings/{listing_id}/images/order", response_model=list[ImageOut])
async def put_image_order(
    listing_id: str,
    body: ImageOrderIn,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[ImageOut]:
    images = await reorder_images(db, listing_id=listing_id, actor_id=user.id, image_ids=body.image_ids)
    return [ImageOut.model_validate(i) for i in images]


@router.delete("/listings/{listing_id}/images/{image_id}", response_model=StatusResponse)
async def remove_image(
    listing_id: str,
    image_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> StatusResponse:
    await delete_image(db, listing_id=listing_id, image_id=image_id, actor_id=user.id)
    return StatusResponse(status="deleted", id=image_id)
