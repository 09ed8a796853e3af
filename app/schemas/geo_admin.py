from pydantic import BaseModel, Field

class GeoCityUpsert(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    region: str | None = Field(default=None, max_length=100)

class GeoAreaUpsert(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)

class GeoAreaOut(BaseModel):
    id: str
    name: str
    slug: str

class GeoCityOut(BaseModel):
    id: str
    name: str
    slug: str
    region: str | None
    areas: list[GeoAreaOut] = Field(default_factory=list)

class ReferenceOut(BaseModel):
    listing_types: list[str]
    property_types: list[str]
    listing_statuses: list[str]
    cities: list[GeoCityOut]
