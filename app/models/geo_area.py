from sqlalchemy import String, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.ids import id_default
from app.models.base import Base, CreatedAtMixin

class GeoArea(CreatedAtMixin, Base):
    """Sub-locality (barangay / district) inside a city."""

    __tablename__ = "geo_areas"
    __table_args__ = (
        UniqueConstraint("city_id", "slug", name="uq_geo_area_slug"),
        Index("ix_geo_area_city", "city_id"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=id_default("gar"))
    city_id: Mapped[str] = mapped_column(String, ForeignKey("geo_cities.id", ondelete="CASCADE"), nullable=False)

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(160), nullable=False)  # normalized, e.g., "bel-air"
