from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, model_validator


class LatLon(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


class CircleIn(BaseModel):
    center: LatLon
    radius_km: float = Field(..., gt=0, le=500)


class PolygonIn(BaseModel):
    vertices: list[LatLon] = Field(..., min_length=3, max_length=500)


SortOrder = Literal["relevance", "newest", "price_asc", "price_desc"]


class SearchIn(BaseModel):
    listing_type: str
    property_type: str

    q: str | None = Field(default=None, max_length=200)

    price_min: Decimal | None = Field(default=None, ge=0)
    price_max: Decimal | None = Field(default=None, ge=0)
    size_min: Decimal | None = Field(default=None, ge=0)
    size_max: Decimal | None = Field(default=None, ge=0)
    bedrooms_min: int | None = Field(default=None, ge=0)
    bathrooms_min: int | None = Field(default=None, ge=0)

    # at most one geospatial filter
    place: str | None = Field(default=None, max_length=120)
    circle: CircleIn | None = None
    polygon: PolygonIn | None = None

    sort: SortOrder = "relevance"
    cursor: str | None = None
    limit: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def one_geo_filter(self) -> "SearchIn":
        given = [f for f in (self.place, self.circle, self.polygon) if f]
        if len(given) > 1:
            raise ValueError("use only one of place, circle or polygon")
        return self


class ListingSummary(BaseModel):
    id: str
    listing_type: str
    property_type: str
    title: str | None
    price: Decimal | None
    address: str | None
    city_id: str | None
    sub_locality_id: str | None
    region: str | None
    latitude: float | None
    longitude: float | None
    cover_image_url: str | None = None
    relevance: float | None = None
    distance_km: float | None = None
    created_at: datetime


class AreaOut(BaseModel):
    kind: Literal["sub_locality", "city", "region"]
    name: str
    city_id: str | None = None
    sub_locality_id: str | None = None
    region: str | None = None


class SearchPageOut(BaseModel):
    items: list[ListingSummary]
    total: int
    next_cursor: str | None = None
    area: AreaOut | None = None


class AreaCountOut(BaseModel):
    place: str
    area: AreaOut | None
    count: int
