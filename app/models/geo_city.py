from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.ids import id_default
from app.models.base import Base, CreatedAtMixin

class GeoCity(CreatedAtMixin, Base):
    __tablename__ = "geo_cities"
    __table_args__ = (
        UniqueConstraint("slug", name="uq_geo_city_slug"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=id_default("gcy"))

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(120), nullable=False)  # normalized, e.g., "quezon-city"
    region: Mapped[str | None] = mapped_column(String(100), nullable=True)  # e.g., "NCR"
