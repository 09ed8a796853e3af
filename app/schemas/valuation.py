from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, EmailStr, Field

from app.schemas.listing import LocationIn


class GuestContact(BaseModel):
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=30)
    whatsapp_available: bool | None = None


class ValuationIn(BaseModel):
    property_type: str
    details: dict[str, Any] = Field(default_factory=dict)
    location: LocationIn = Field(default_factory=LocationIn)
    # required when the caller is not signed in
    guest: GuestContact | None = None


class ValuationOut(BaseModel):
    estimate: Decimal
    property_type: str
    estimator: str
    valuation_id: str | None = None
    persisted: bool
    warning: str | None = None


class ValuationRecordOut(BaseModel):
    id: str
    property_type: str
    valuation_result: Decimal
    estimator: str
    created_at: datetime
