from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.ids import id_default
from app.models.base import Base, CreatedAtMixin


class ListingImage(CreatedAtMixin, Base):
    __tablename__ = "listing_images"
    __table_args__ = (
        UniqueConstraint("listing_id", "position", name="uq_listing_image_position"),
        Index("ix_listing_images_listing_pos", "listing_id", "position"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=id_default("img"))
    listing_id: Mapped[str] = mapped_column(String, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False)

    # object storage URL; upload itself happens outside this service
    image_url: Mapped[str] = mapped_column(Text, nullable=False)
    # zero-based, contiguous per listing
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
