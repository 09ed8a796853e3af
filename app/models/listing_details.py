from decimal import Decimal
from typing import ClassVar

from sqlalchemy import ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.reference_code import CONDOMINIUM, HOUSE_AND_LOT, VACANT_LOT, WAREHOUSE


class ListingDetails(Base):
    """
    Satellite record, one per listing, discriminated by property type.

    Each subclass maps only the columns its category owns, so a Condominium record
    cannot carry a lot size and so on.
    """

    __tablename__ = "listing_details"

    listing_id: Mapped[str] = mapped_column(String, ForeignKey("listings.id", ondelete="CASCADE"), primary_key=True)
    property_type: Mapped[str] = mapped_column(String(20), ForeignKey("property_types.code"), nullable=False)

    CATEGORY: ClassVar[str] = ""
    FIELDS: ClassVar[tuple[str, ...]] = ()

    __mapper_args__ = {
        "polymorphic_on": "property_type",
        "with_polymorphic": "*",
    }

    def as_dict(self) -> dict:
        return {f: getattr(self, f) for f in self.FIELDS}


class CondominiumDetails(ListingDetails):
    CATEGORY = CONDOMINIUM
    FIELDS = ("floor_area", "bedrooms", "bathrooms", "parking")
    __mapper_args__ = {"polymorphic_identity": CONDOMINIUM}

    floor_area: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True, use_existing_column=True)
    bedrooms: Mapped[int | None] = mapped_column(Integer, nullable=True, use_existing_column=True)
    bathrooms: Mapped[int | None] = mapped_column(Integer, nullable=True, use_existing_column=True)
    parking: Mapped[int | None] = mapped_column(Integer, nullable=True, use_existing_column=True)


class HouseAndLotDetails(ListingDetails):
    CATEGORY = HOUSE_AND_LOT
    FIELDS = ("lot_size", "floor_area", "bedrooms", "bathrooms", "parking")
    __mapper_args__ = {"polymorphic_identity": HOUSE_AND_LOT}

    lot_size: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True, use_existing_column=True)
    floor_area: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True, use_existing_column=True)
    bedrooms: Mapped[int | None] = mapped_column(Integer, nullable=True, use_existing_column=True)
    bathrooms: Mapped[int | None] = mapped_column(Integer, nullable=True, use_existing_column=True)
    parking: Mapped[int | None] = mapped_column(Integer, nullable=True, use_existing_column=True)


class WarehouseDetails(ListingDetails):
    CATEGORY = WAREHOUSE
    FIELDS = ("lot_size", "floor_area", "building_size", "ceiling_height")
    __mapper_args__ = {"polymorphic_identity": WAREHOUSE}

    lot_size: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True, use_existing_column=True)
    floor_area: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True, use_existing_column=True)
    building_size: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True, use_existing_column=True)
    ceiling_height: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True, use_existing_column=True)


class VacantLotDetails(ListingDetails):
    CATEGORY = VACANT_LOT
    FIELDS = ("lot_size",)
    __mapper_args__ = {"polymorphic_identity": VACANT_LOT}

    lot_size: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True, use_existing_column=True)


DETAILS_BY_CATEGORY: dict[str, type[ListingDetails]] = {
    cls.CATEGORY: cls
    for cls in (CondominiumDetails, HouseAndLotDetails, WarehouseDetails, VacantLotDetails)
}
