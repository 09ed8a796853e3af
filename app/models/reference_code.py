from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base

# Seeded by the initial migration; codes are user-facing labels.
LISTING_TYPES = ("Rent", "Buy")
PROPERTY_TYPES = ("Condominium", "House and Lot", "Warehouse", "Vacant Lot")
LISTING_STATUSES = ("Draft", "Active", "Paused", "Archived")

CONDOMINIUM = "Condominium"
HOUSE_AND_LOT = "House and Lot"
WAREHOUSE = "Warehouse"
VACANT_LOT = "Vacant Lot"

DRAFT = "Draft"
ACTIVE = "Active"
PAUSED = "Paused"
ARCHIVED = "Archived"


class ListingType(Base):
    __tablename__ = "listing_types"

    code: Mapped[str] = mapped_column(String(10), primary_key=True)


class PropertyType(Base):
    __tablename__ = "property_types"

    code: Mapped[str] = mapped_column(String(20), primary_key=True)


class ListingStatus(Base):
    __tablename__ = "listing_statuses"

    code: Mapped[str] = mapped_column(String(10), primary_key=True)
