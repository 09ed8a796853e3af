from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Float, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.ids import id_default
from app.models.base import Base, CreatedAtMixin


class PropertyValuation(CreatedAtMixin, Base):
    """
    Write-once snapshot of a valuation request and its result.

    Requester is either `user_id` or the guest_* tuple, never both.
    """

    __tablename__ = "property_valuations"
    __table_args__ = (
        CheckConstraint(
            "(user_id IS NOT NULL AND guest_email IS NULL) OR "
            "(user_id IS NULL AND guest_first_name IS NOT NULL AND guest_last_name IS NOT NULL "
            "AND guest_email IS NOT NULL AND guest_phone IS NOT NULL AND guest_whatsapp_available IS NOT NULL)",
            name="ck_valuation_requester",
        ),
        Index("ix_valuations_user_created", "user_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=id_default("val"))
    user_id: Mapped[str | None] = mapped_column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)

    property_type: Mapped[str] = mapped_column(String(20), ForeignKey("property_types.code"), nullable=False)
    floor_area: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    lot_size: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    bedrooms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bathrooms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    parking: Mapped[int | None] = mapped_column(Integer, nullable=True)
    building_size: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    ceiling_height: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    city_id: Mapped[str | None] = mapped_column(String, ForeignKey("geo_cities.id"), nullable=True)
    sub_locality_id: Mapped[str | None] = mapped_column(String, ForeignKey("geo_areas.id"), nullable=True)
    region: Mapped[str | None] = mapped_column(String(100), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    guest_first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    guest_last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    guest_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    guest_phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    guest_whatsapp_available: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    valuation_result: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    estimator: Mapped[str] = mapped_column(String(60), nullable=False)
