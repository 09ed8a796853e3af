from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import bounded, get_db
from app.schemas.search import AreaCountOut, SearchIn, SearchPageOut
from app.services.retry import call_with_retry
from app.services.search import area_count, search_listings

router = APIRouter()


@router.post("/search", response_model=SearchPageOut)
async def search(body: SearchIn, db: AsyncSession = Depends(get_db)) -> SearchPageOut:
    return await call_with_retry(db, lambda: bounded(search_listings(db, body), what="search"), what="search")


@router.get("/search/area-count", response_model=AreaCountOut)
async def search_area_count(
    place: str = Query(..., min_length=1, max_length=120),
    listing_type: str | None = None,
    property_type: str | None = None,
    db: AsyncSession = Depends(get_db),
) -> AreaCountOut:
    return await call_with_retry(
        db,
        lambda: bounded(
            area_count(db, place=place, listing_type=listing_type, property_type=property_type),
            what="area count",
        ),
        what="area count",
    )
