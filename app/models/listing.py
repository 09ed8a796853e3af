from decimal import Decimal

from geoalchemy2.elements import WKBElement
from sqlalchemy import Float, ForeignKey, Index, Numeric, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from app.core.errors import ValidationError
from app.core.ids import id_default
from app.models.base import Base, TimestampMixin
from app.models.geo_types import PointGeography
from app.models.listing_details import ListingDetails
from app.models.reference_code import DRAFT
from app.services.geo import point_geography
from app.services.text_search import build_search_vector


class Listing(TimestampMixin, Base):
    __tablename__ = "listings"
    __table_args__ = (
        Index("ix_listings_search", "property_type", "listing_type", "status", "price"),
        Index("ix_listings_owner_status", "user_id", "status"),
        Index("ix_listings_lat_lon", "latitude", "longitude"),
        Index("ix_listings_city_area", "city_id", "sub_locality_id"),
        Index("ix_listings_geom", "geom", postgresql_using="gist"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=id_default("lst"))
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    listing_type: Mapped[str] = mapped_column(String(10), ForeignKey("listing_types.code"), nullable=False)
    property_type: Mapped[str] = mapped_column(String(20), ForeignKey("property_types.code"), nullable=False)
    # new listings start hidden; publishing goes through the lifecycle engine
    status: Mapped[str] = mapped_column(String(10), ForeignKey("listing_statuses.code"), nullable=False, default=DRAFT)

    # set => listing is exempt from the free quota
    payment_id: Mapped[str | None] = mapped_column(String, ForeignKey("user_payments.id"), nullable=True)

    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)

    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    city_id: Mapped[str | None] = mapped_column(String, ForeignKey("geo_cities.id"), nullable=True)
    sub_locality_id: Mapped[str | None] = mapped_column(String, ForeignKey("geo_areas.id"), nullable=True)
    region: Mapped[str | None] = mapped_column(String(100), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    # derived on every write, see derive_listing_columns
    geom: Mapped[WKBElement | None] = mapped_column(PointGeography(), nullable=True)
    search_vector: Mapped[str] = mapped_column(Text, nullable=False, default="")

    details: Mapped[ListingDetails | None] = relationship(
        ListingDetails,
        uselist=False,
        lazy="selectin",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @validates("details")
    def _check_details_category(self, key, details: ListingDetails | None) -> ListingDetails | None:
        if details is not None and details.CATEGORY != self.property_type:
            raise ValidationError(
                f"{details.CATEGORY} details cannot be attached to a {self.property_type} listing",
                details=[{"field": "details", "expected": self.property_type, "got": details.CATEGORY}],
            )
        return details


@event.listens_for(Listing, "before_insert")
@event.listens_for(Listing, "before_update")
def derive_listing_columns(mapper, connection, target: Listing) -> None:
    target.search_vector = build_search_vector(target.title, target.description)
    target.geom = point_geography(target.latitude, target.longitude)
