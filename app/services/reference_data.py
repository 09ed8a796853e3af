from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from typing import Literal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError, ValidationError
from app.models.geo_area import GeoArea
from app.models.geo_city import GeoCity
from app.models.reference_code import (
    LISTING_STATUSES,
    LISTING_TYPES,
    PROPERTY_TYPES,
    ListingStatus,
    ListingType,
    PropertyType,
)

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    ascii_value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    return _SLUG_RE.sub("-", ascii_value.lower()).strip("-")


async def seed_reference_codes(db: AsyncSession) -> None:
    """Insert the static lookup codes that are missing (idempotent)."""
    for model, codes in ((ListingType, LISTING_TYPES), (PropertyType, PROPERTY_TYPES), (ListingStatus, LISTING_STATUSES)):
        existing = set((await db.execute(select(model.code))).scalars().all())
        db.add_all(model(code=c) for c in codes if c not in existing)
    await db.flush()


async def _ensure_code(db: AsyncSession, model, code: str | None, field_name: str) -> str:
    if not code or await db.get(model, code) is None:
        raise ValidationError(
            f"Unknown {field_name.replace('_', ' ')} '{code}'",
            details=[{"field": field_name, "value": code}],
        )
    return code


async def ensure_listing_type(db: AsyncSession, code: str | None) -> str:
    return await _ensure_code(db, ListingType, code, "listing_type")


async def ensure_property_type(db: AsyncSession, code: str | None) -> str:
    return await _ensure_code(db, PropertyType, code, "property_type")


async def ensure_listing_status(db: AsyncSession, code: str | None) -> str:
    return await _ensure_code(db, ListingStatus, code, "status")


async def ensure_location(db: AsyncSession, city_id: str | None, sub_locality_id: str | None) -> str | None:
    """
    Validate the city / sub-locality pair and return the effective city id.

    A sub-locality alone implies its city; when both are given they must agree.
    """
    area = None
    if sub_locality_id is not None:
        area = await db.get(GeoArea, sub_locality_id)
        if area is None:
            raise ValidationError("Unknown sub-locality", details=[{"field": "sub_locality_id", "value": sub_locality_id}])

    if city_id is not None:
        if await db.get(GeoCity, city_id) is None:
            raise ValidationError("Unknown city", details=[{"field": "city_id", "value": city_id}])
        if area is not None and area.city_id != city_id:
            raise ValidationError(
                "Sub-locality does not belong to the city",
                details=[{"field": "sub_locality_id", "value": sub_locality_id}],
            )
        return city_id

    return area.city_id if area is not None else None


@dataclass(frozen=True)
class ResolvedArea:
    kind: Literal["sub_locality", "city", "region"]
    name: str
    city_ids: tuple[str, ...] = field(default_factory=tuple)
    sub_locality_ids: tuple[str, ...] = field(default_factory=tuple)
    region: str | None = None


async def resolve_place(db: AsyncSession, text: str) -> ResolvedArea | None:
    """
    Resolve a typed place name to a canonical area.

    "Area, City" names a sub-locality inside one city and resolves to nothing
    when either part is unknown. A bare name is tried as a city, then a
    sub-locality (all same-named ones), then a region.
    """
    raw = (text or "").strip()
    if not raw:
        return None

    if "," in raw:
        area_part, city_part = [p.strip() for p in raw.split(",", 1)]
        city = await _find_city(db, city_part)
        if city is None:
            return None
        areas = await _find_areas(db, area_part, city_id=city.id)
        if not areas:
            return None
        return ResolvedArea(
            kind="sub_locality",
            name=f"{areas[0].name}, {city.name}",
            city_ids=(city.id,),
            sub_locality_ids=tuple(a.id for a in areas),
        )

    city = await _find_city(db, raw)
    if city is not None:
        return ResolvedArea(kind="city", name=city.name, city_ids=(city.id,), region=city.region)

    areas = await _find_areas(db, raw)
    if areas:
        return ResolvedArea(
            kind="sub_locality",
            name=areas[0].name,
            city_ids=tuple(sorted({a.city_id for a in areas})),
            sub_locality_ids=tuple(a.id for a in areas),
        )

    region_cities = (
        await db.execute(select(GeoCity).where(func.lower(GeoCity.region) == raw.lower()))
    ).scalars().all()
    if region_cities:
        return ResolvedArea(
            kind="region",
            name=region_cities[0].region or raw,
            city_ids=tuple(c.id for c in region_cities),
            region=region_cities[0].region,
        )
    return None


async def _find_city(db: AsyncSession, name: str) -> GeoCity | None:
    stmt = select(GeoCity).where(
        (GeoCity.slug == slugify(name)) | (func.lower(GeoCity.name) == name.lower())
    ).order_by(GeoCity.name)
    return (await db.execute(stmt)).scalars().first()


async def _find_areas(db: AsyncSession, name: str, *, city_id: str | None = None) -> list[GeoArea]:
    stmt = select(GeoArea).where(
        (GeoArea.slug == slugify(name)) | (func.lower(GeoArea.name) == name.lower())
    )
    if city_id is not None:
        stmt = stmt.where(GeoArea.city_id == city_id)
    return list((await db.execute(stmt.order_by(GeoArea.name, GeoArea.id))).scalars().all())


async def upsert_city(db: AsyncSession, *, slug: str, name: str, region: str | None) -> GeoCity:
    slug_norm = slugify(slug)
    if not slug_norm:
        raise ValidationError("City slug is empty", details=[{"field": "slug"}])
    city = (await db.execute(select(GeoCity).where(GeoCity.slug == slug_norm))).scalar_one_or_none()
    if city is None:
        city = GeoCity(slug=slug_norm, name=name, region=region)
        db.add(city)
    else:
        city.name = name
        city.region = region
    await db.flush()
    return city


async def upsert_area(db: AsyncSession, *, city_slug: str, slug: str, name: str) -> GeoArea:
    city = (await db.execute(select(GeoCity).where(GeoCity.slug == slugify(city_slug)))).scalar_one_or_none()
    if city is None:
        raise NotFoundError("City not found")
    slug_norm = slugify(slug)
    if not slug_norm:
        raise ValidationError("Area slug is empty", details=[{"field": "slug"}])
    area = (
        await db.execute(select(GeoArea).where(GeoArea.city_id == city.id, GeoArea.slug == slug_norm))
    ).scalar_one_or_none()
    if area is None:
        area = GeoArea(city_id=city.id, slug=slug_norm, name=name)
        db.add(area)
    else:
        area.name = name
    await db.flush()
    return area


async def reference_snapshot(db: AsyncSession) -> dict:
    cities = (await db.execute(select(GeoCity).order_by(GeoCity.name))).scalars().all()
    areas = (await db.execute(select(GeoArea).order_by(GeoArea.name))).scalars().all()
    by_city: dict[str, list[GeoArea]] = {}
    for a in areas:
        by_city.setdefault(a.city_id, []).append(a)

    return {
        "listing_types": list((await db.execute(select(ListingType.code))).scalars().all()),
        "property_types": list((await db.execute(select(PropertyType.code))).scalars().all()),
        "listing_statuses": list((await db.execute(select(ListingStatus.code))).scalars().all()),
        "cities": [
            {
                "id": c.id,
                "name": c.name,
                "slug": c.slug,
                "region": c.region,
                "areas": [{"id": a.id, "name": a.name, "slug": a.slug} for a in by_city.get(c.id, [])],
            }
            for c in cities
        ],
    }
