from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LocationIn(BaseModel):
    """Resolved tuple from the geocoding provider."""

    address: str | None = Field(default=None, max_length=1000)
    city_id: str | None = None
    sub_locality_id: str | None = None
    region: str | None = Field(default=None, max_length=100)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)


class ListingCreate(BaseModel):
    listing_type: str = Field(..., max_length=10)
    property_type: str = Field(..., max_length=20)
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=20_000)
    price: Decimal = Field(..., ge=0, max_digits=15, decimal_places=2)
    location: LocationIn = Field(default_factory=LocationIn)
    details: dict[str, Any] = Field(default_factory=dict)

    payment_id: str | None = None
    image_urls: list[str] = Field(default_factory=list, max_length=50)
    # attempt Draft -> Active in the same transaction
    publish: bool = False


class ListingUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=20_000)
    price: Decimal | None = Field(default=None, ge=0, max_digits=15, decimal_places=2)
    listing_type: str | None = Field(default=None, max_length=10)
    location: LocationIn | None = None


class DetailsReplace(BaseModel):
    property_type: str
    details: dict[str, Any] = Field(default_factory=dict)


class TransitionIn(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def strip_status(cls, v: str) -> str:
        return v.strip()


class PaymentAttachIn(BaseModel):
    payment_id: str


class ImageIn(BaseModel):
    image_url: str = Field(..., min_length=1, max_length=2000)
    position: int | None = Field(default=None, ge=0)


class ImageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    listing_id: str
    image_url: str
    position: int


class ImageOrderIn(BaseModel):
    image_ids: list[str] = Field(..., min_length=1)


class ListingOut(BaseModel):
    id: str
    user_id: str
    listing_type: str
    property_type: str
    status: str
    payment_id: str | None
    title: str | None
    description: str | None
    price: Decimal | None
    address: str | None
    city_id: str | None
    sub_locality_id: str | None
    region: str | None
    latitude: float | None
    longitude: float | None
    details: dict[str, Any]
    image_count: int | None = None
    created_at: datetime
    updated_at: datetime
