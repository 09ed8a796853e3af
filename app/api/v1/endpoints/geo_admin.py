from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.schemas.geo_admin import GeoAreaOut, GeoAreaUpsert, GeoCityOut, GeoCityUpsert, ReferenceOut
from app.services.internal_admin import require_internal_admin
from app.services.reference_data import reference_snapshot, upsert_area, upsert_city

router = APIRouter()


@router.get("/reference", response_model=ReferenceOut)
async def reference(db: AsyncSession = Depends(get_db)) -> ReferenceOut:
    return ReferenceOut(**await reference_snapshot(db))


@router.put("/admin/geo/cities/{slug}", response_model=GeoCityOut, dependencies=[Depends(require_internal_admin)])
async def put_city(slug: str, body: GeoCityUpsert, db: AsyncSession = Depends(get_db)) -> GeoCityOut:
    city = await upsert_city(db, slug=slug, name=body.name, region=body.region)
    await db.commit()
    return GeoCityOut(id=city.id, name=city.name, slug=city.slug, region=city.region)


@router.put(
    "/admin/geo/cities/{city_slug}/areas/{slug}",
    response_model=GeoAreaOut,
    dependencies=[Depends(require_internal_admin)],
)
async def put_area(city_slug: str, slug: str, body: GeoAreaUpsert, db: AsyncSession = Depends(get_db)) -> GeoAreaOut:
    area = await upsert_area(db, city_slug=city_slug, slug=slug, name=body.name)
    await db.commit()
    return GeoAreaOut(id=area.id, name=area.name, slug=area.slug)
