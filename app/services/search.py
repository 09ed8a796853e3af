"""
Listing search.

Categorical, numeric and area predicates run in SQL. On PostGIS, circle and
polygon containment run there too (ST_DWithin / ST_Covers on `geom`); other
backends get a bounding-box pre-filter and the exact test in Python. Text
relevance is scored in Python over at most `search_candidate_limit`
candidates, taken in SQL order (newest first for relevance). Without text
or a Python-side shape the whole query, including ordering and paging, stays
in SQL.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, Select, and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import ValidationError
from app.models.listing import Listing
from app.models.listing_details import ListingDetails
from app.models.listing_image import ListingImage
from app.models.reference_code import ACTIVE, CONDOMINIUM, HOUSE_AND_LOT, VACANT_LOT
from app.schemas.search import AreaCountOut, AreaOut, ListingSummary, SearchIn, SearchPageOut
from app.services.geo import circle_bbox, haversine_km, point_ewkt, point_in_polygon, polygon_bbox, polygon_ewkt
from app.services.reference_data import ResolvedArea, ensure_listing_type, ensure_property_type, resolve_place
from app.services.text_search import like_pattern, query_terms, score

log = logging.getLogger(__name__)

ROOM_FILTER_CATEGORIES = (CONDOMINIUM, HOUSE_AND_LOT)

_details = ListingDetails.__table__


def size_column(category: str):
    return _details.c.lot_size if category == VACANT_LOT else _details.c.floor_area


# cursor ----------------------------------------------------------------------

def encode_cursor(offset: int, sort: str) -> str:
    raw = json.dumps({"o": offset, "s": sort}, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(cursor: str | None, sort: str) -> int:
    if not cursor:
        return 0
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        offset = int(data["o"])
        cursor_sort = data["s"]
    except (binascii.Error, ValueError, KeyError, TypeError):
        raise ValidationError("Invalid cursor", details=[{"field": "cursor"}])
    if offset < 0 or cursor_sort != sort:
        raise ValidationError("Cursor does not belong to this query", details=[{"field": "cursor"}])
    return offset


# predicates --------------------------------------------------------------------

def _check_ranges(params: SearchIn) -> None:
    for lo, hi, name in (
        (params.price_min, params.price_max, "price"),
        (params.size_min, params.size_max, "size"),
    ):
        if lo is not None and hi is not None and lo > hi:
            raise ValidationError(f"{name}_min is greater than {name}_max", details=[{"field": f"{name}_min"}])

    if params.property_type not in ROOM_FILTER_CATEGORIES:
        for name in ("bedrooms_min", "bathrooms_min"):
            if getattr(params, name) is not None:
                raise ValidationError(
                    f"{name} does not apply to {params.property_type}",
                    details=[{"field": name, "property_type": params.property_type}],
                )


def area_predicate(area: ResolvedArea):
    if area.kind == "sub_locality":
        return Listing.sub_locality_id.in_(area.sub_locality_ids)
    if area.kind == "city":
        return Listing.city_id.in_(area.city_ids)
    clauses = [func.lower(Listing.region) == (area.region or area.name).lower()]
    if area.city_ids:
        clauses.append(Listing.city_id.in_(area.city_ids))
    return or_(*clauses)


def area_out(area: ResolvedArea) -> AreaOut:
    return AreaOut(
        kind=area.kind,
        name=area.name,
        city_id=area.city_ids[0] if len(area.city_ids) == 1 else None,
        sub_locality_id=area.sub_locality_ids[0] if len(area.sub_locality_ids) == 1 else None,
        region=area.region,
    )


def base_query(params: SearchIn, terms: list[str], area: ResolvedArea | None, *, postgis: bool = False) -> Select:
    stmt = select(Listing).where(
        Listing.listing_type == params.listing_type,
        Listing.property_type == params.property_type,
        Listing.status == ACTIVE,
    )

    if params.price_min is not None:
        stmt = stmt.where(Listing.price >= params.price_min)
    if params.price_max is not None:
        stmt = stmt.where(Listing.price <= params.price_max)

    detail_filters = []
    size_col = size_column(params.property_type)
    if params.size_min is not None:
        detail_filters.append(size_col >= params.size_min)
    if params.size_max is not None:
        detail_filters.append(size_col <= params.size_max)
    if params.bedrooms_min is not None:
        detail_filters.append(_details.c.bedrooms >= params.bedrooms_min)
    if params.bathrooms_min is not None:
        detail_filters.append(_details.c.bathrooms >= params.bathrooms_min)
    if detail_filters:
        stmt = stmt.join(_details, _details.c.listing_id == Listing.id).where(and_(*detail_filters))

    if terms:
        # token matches on the padded vector; scoring happens in Python
        stmt = stmt.where(or_(*[Listing.search_vector.like(like_pattern(t), escape="\\") for t in terms]))

    if area is not None:
        stmt = stmt.where(area_predicate(area))

    if postgis:
        return stmt.where(*spatial_predicates(params))

    box = None
    if params.circle is not None:
        box = circle_bbox(params.circle.center.lat, params.circle.center.lon, params.circle.radius_km)
    elif params.polygon is not None:
        box = polygon_bbox([(v.lat, v.lon) for v in params.polygon.vertices])
    if box is not None:
        stmt = stmt.where(
            Listing.latitude.is_not(None),
            Listing.latitude.between(box.min_lat, box.max_lat),
            or_(*[Listing.longitude.between(lo, hi) for lo, hi in box.lon_ranges()]),
        )

    return stmt


def spatial_predicates(params: SearchIn) -> list:
    """Exact circle / polygon containment on the PostGIS `geom` column."""
    if params.circle is not None:
        c = params.circle
        center = func.ST_GeogFromText(point_ewkt(c.center.lat, c.center.lon))
        return [func.ST_DWithin(Listing.geom, center, c.radius_km * 1000.0, type_=Boolean)]
    if params.polygon is not None:
        area = func.ST_GeogFromText(polygon_ewkt([(v.lat, v.lon) for v in params.polygon.vertices]))
        return [Listing.geom.is_not(None), func.ST_Covers(area, Listing.geom, type_=Boolean)]
    return []


# ordering ----------------------------------------------------------------------

def _sql_order(sort: str) -> list:
    tail = [Listing.created_at.desc(), Listing.id.desc()]
    if sort == "price_asc":
        return [Listing.price.asc()] + tail
    if sort == "price_desc":
        return [Listing.price.desc()] + tail
    # relevance without text degrades to newest
    return tail


@dataclass
class _Hit:
    listing: Listing
    relevance: float | None = None
    distance_km: float | None = None


def _ts(dt: datetime) -> datetime:
    # some backends hand back naive UTC
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def _sort_hits(hits: list[_Hit], sort: str) -> None:
    # stable passes, least significant key first
    hits.sort(key=lambda h: h.listing.id, reverse=True)
    hits.sort(key=lambda h: _ts(h.listing.created_at), reverse=True)
    if sort == "relevance":
        hits.sort(key=lambda h: h.relevance or 0.0, reverse=True)
    elif sort == "price_asc":
        hits.sort(key=lambda h: h.listing.price if h.listing.price is not None else Decimal("Infinity"))
    elif sort == "price_desc":
        hits.sort(key=lambda h: h.listing.price if h.listing.price is not None else Decimal("-Infinity"), reverse=True)


def _distance(row: Listing, params: SearchIn) -> float | None:
    if params.circle is None or row.latitude is None or row.longitude is None:
        return None
    c = params.circle
    return haversine_km(c.center.lat, c.center.lon, row.latitude, row.longitude)


def _evaluate(rows: list[Listing], params: SearchIn, terms: list[str], *, exact_shapes: bool = True) -> list[_Hit]:
    """Text scoring, plus circle / polygon containment unless the database already applied it."""
    out: list[_Hit] = []
    vertices = [(v.lat, v.lon) for v in params.polygon.vertices] if params.polygon is not None else None

    for row in rows:
        hit = _Hit(listing=row)
        if terms:
            s = score(row.search_vector, terms)
            if not s.matched_terms:
                continue
            hit.relevance = s.relevance

        if params.circle is not None:
            d = _distance(row, params)
            if d is None or (exact_shapes and d > params.circle.radius_km):
                continue
            hit.distance_km = round(d, 3)
        elif vertices is not None and exact_shapes:
            if row.latitude is None or row.longitude is None:
                continue
            if not point_in_polygon(row.latitude, row.longitude, vertices):
                continue

        out.append(hit)
    return out


async def _cover_images(db: AsyncSession, listing_ids: list[str]) -> dict[str, str]:
    if not listing_ids:
        return {}
    stmt = select(ListingImage.listing_id, ListingImage.image_url).where(
        ListingImage.listing_id.in_(listing_ids),
        ListingImage.position == 0,
    )
    return {lid: url for lid, url in (await db.execute(stmt)).all()}


def _summary(hit: _Hit, cover: str | None) -> ListingSummary:
    row = hit.listing
    return ListingSummary(
        id=row.id,
        listing_type=row.listing_type,
        property_type=row.property_type,
        title=row.title,
        price=row.price,
        address=row.address,
        city_id=row.city_id,
        sub_locality_id=row.sub_locality_id,
        region=row.region,
        latitude=row.latitude,
        longitude=row.longitude,
        cover_image_url=cover,
        relevance=hit.relevance,
        distance_km=hit.distance_km,
        created_at=row.created_at,
    )


async def search_listings(db: AsyncSession, params: SearchIn) -> SearchPageOut:
    await ensure_listing_type(db, params.listing_type)
    await ensure_property_type(db, params.property_type)
    _check_ranges(params)

    limit = params.limit or settings.search_default_limit
    if limit > settings.search_max_limit:
        raise ValidationError(
            f"limit must be at most {settings.search_max_limit}",
            details=[{"field": "limit", "max": settings.search_max_limit}],
        )
    offset = decode_cursor(params.cursor, params.sort)

    area = None
    if params.place:
        area = await resolve_place(db, params.place)
        if area is None:
            log.info("search: unknown place %r", params.place)
            return SearchPageOut(items=[], total=0)

    terms = query_terms(params.q)
    has_shape = params.circle is not None or params.polygon is not None
    postgis = has_shape and db.get_bind().dialect.name == "postgresql"
    stmt = base_query(params, terms, area, postgis=postgis)

    if terms or (has_shape and not postgis):
        cap = settings.search_candidate_limit
        rows = list((await db.execute(stmt.order_by(*_sql_order(params.sort)).limit(cap))).scalars().all())
        if len(rows) == cap:
            log.warning("search: candidate set truncated at %d rows", cap)
        hits = _evaluate(rows, params, terms, exact_shapes=not postgis)
        _sort_hits(hits, params.sort)
        total = len(hits)
        page = hits[offset:offset + limit]
    else:
        total = int((await db.execute(select(func.count()).select_from(stmt.order_by(None).subquery()))).scalar_one())
        rows = (await db.execute(stmt.order_by(*_sql_order(params.sort)).offset(offset).limit(limit))).scalars().all()
        page = [_Hit(listing=r) for r in rows]
        for hit in page:
            d = _distance(hit.listing, params)
            hit.distance_km = round(d, 3) if d is not None else None

    covers = await _cover_images(db, [h.listing.id for h in page])
    next_cursor = encode_cursor(offset + limit, params.sort) if offset + limit < total else None

    return SearchPageOut(
        items=[_summary(h, covers.get(h.listing.id)) for h in page],
        total=total,
        next_cursor=next_cursor,
        area=area_out(area) if area is not None else None,
    )


async def area_count(
    db: AsyncSession, *, place: str, listing_type: str | None = None, property_type: str | None = None
) -> AreaCountOut:
    """Active listings in a named area; same area semantics as a place search."""
    area = await resolve_place(db, place)
    if area is None:
        return AreaCountOut(place=place, area=None, count=0)

    filters: list[Any] = [Listing.status == ACTIVE, area_predicate(area)]
    if listing_type is not None:
        filters.append(Listing.listing_type == await ensure_listing_type(db, listing_type))
    if property_type is not None:
        filters.append(Listing.property_type == await ensure_property_type(db, property_type))

    count = int((await db.execute(select(func.count()).select_from(Listing).where(*filters))).scalar_one())
    return AreaCountOut(place=place, area=area_out(area), count=count)
