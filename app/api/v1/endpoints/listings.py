from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.models.user import User
from app.schemas.common import StatusResponse
from app.schemas.listing import (
    DetailsReplace,
    ListingCreate,
    ListingOut,
    ListingUpdate,
    PaymentAttachIn,
    TransitionIn,
)
from app.services.auth import get_current_user, get_optional_user
from app.services.lifecycle import count_images, transition_listing
from app.services.listings import (
    create_listing,
    delete_listing,
    get_listing,
    listing_out,
    set_details,
    update_listing,
)
from app.services.payments import attach_payment

router = APIRouter()


@router.post("/listings", response_model=ListingOut, status_code=201)
async def post_listing(
    body: ListingCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await create_listing(db, owner_id=user.id, payload=body)
    return listing_out(listing, image_count=len(body.image_urls))


@router.get("/listings/{listing_id}", response_model=ListingOut)
async def read_listing(
    listing_id: str,
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await get_listing(db, listing_id, viewer=viewer)
    return listing_out(listing, image_count=await count_images(db, listing.id))


@router.patch("/listings/{listing_id}", response_model=ListingOut)
async def patch_listing(
    listing_id: str,
    body: ListingUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await update_listing(db, listing_id=listing_id, actor_id=user.id, payload=body)
    return listing_out(listing)


@router.delete("/listings/{listing_id}", response_model=StatusResponse)
async def remove_listing(
    listing_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> StatusResponse:
    await delete_listing(db, listing_id=listing_id, actor_id=user.id)
    return StatusResponse(status="deleted", id=listing_id)


@router.put("/listings/{listing_id}/details", response_model=ListingOut)
async def put_details(
    listing_id: str,
    body: DetailsReplace,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await set_details(db, listing_id=listing_id, actor_id=user.id, payload=body)
    return listing_out(listing)


@router.post("/listings/{listing_id}/transitions", response_model=ListingOut)
async def post_transition(
    listing_id: str,
    body: TransitionIn,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await transition_listing(db, listing_id=listing_id, new_status=body.status, actor_id=user.id)
    return listing_out(listing)


@router.post("/listings/{listing_id}/payment", response_model=ListingOut)
async def post_payment(
    listing_id: str,
    body: PaymentAttachIn,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await attach_payment(db, listing_id=listing_id, payment_id=body.payment_id, actor_id=user.id)
    return listing_out(listing)
