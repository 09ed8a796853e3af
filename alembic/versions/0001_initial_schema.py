from alembic import op
import sqlalchemy as sa
from geoalchemy2 import Geography

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _created_at():
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def _updated_at():
    return sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def upgrade():
    op.execute("CREATE EXTENSION IF NOT EXISTS postgis")

    listing_types = op.create_table("listing_types", sa.Column("code", sa.String(length=10), primary_key=True))
    property_types = op.create_table("property_types", sa.Column("code", sa.String(length=20), primary_key=True))
    listing_statuses = op.create_table("listing_statuses", sa.Column("code", sa.String(length=10), primary_key=True))

    op.bulk_insert(listing_types, [{"code": c} for c in ("Rent", "Buy")])
    op.bulk_insert(property_types, [{"code": c} for c in ("Condominium", "House and Lot", "Warehouse", "Vacant Lot")])
    op.bulk_insert(listing_statuses, [{"code": c} for c in ("Draft", "Active", "Paused", "Archived")])

    op.create_table(
        "geo_cities",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("slug", sa.String(length=120), nullable=False),
        sa.Column("region", sa.String(length=100), nullable=True),
        _created_at(),
        sa.UniqueConstraint("slug", name="uq_geo_city_slug"),
    )
    op.create_table(
        "geo_areas",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("city_id", sa.String(), sa.ForeignKey("geo_cities.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("slug", sa.String(length=160), nullable=False),
        _created_at(),
        sa.UniqueConstraint("city_id", "slug", name="uq_geo_area_slug"),
    )
    op.create_index("ix_geo_area_city", "geo_areas", ["city_id"])

    op.create_table(
        "users",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("external_subject_id", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=True),
        sa.Column("last_name", sa.String(length=100), nullable=True),
        sa.Column("phone", sa.String(length=30), nullable=True),
        sa.Column("whatsapp_available", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("external_subject_id", name="uq_users_subject"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "user_payments",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("payment_type", sa.String(length=20), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("payment_status", sa.String(length=20), nullable=False),
        sa.Column("provider_ref", sa.String(length=200), nullable=False),
        _created_at(),
        sa.UniqueConstraint("provider_ref", name="uq_user_payment_provider_ref"),
    )

    op.create_table(
        "listings",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("listing_type", sa.String(length=10), sa.ForeignKey("listing_types.code"), nullable=False),
        sa.Column("property_type", sa.String(length=20), sa.ForeignKey("property_types.code"), nullable=False),
        sa.Column("status", sa.String(length=10), sa.ForeignKey("listing_statuses.code"), nullable=False, server_default="Draft"),
        sa.Column("payment_id", sa.String(), sa.ForeignKey("user_payments.id"), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Numeric(15, 2), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("city_id", sa.String(), sa.ForeignKey("geo_cities.id"), nullable=True),
        sa.Column("sub_locality_id", sa.String(), sa.ForeignKey("geo_areas.id"), nullable=True),
        sa.Column("region", sa.String(length=100), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("geom", Geography(geometry_type="POINT", srid=4326, spatial_index=False), nullable=True),
        sa.Column("search_vector", sa.Text(), nullable=False, server_default=""),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_listings_search", "listings", ["property_type", "listing_type", "status", "price"])
    op.create_index("ix_listings_owner_status", "listings", ["user_id", "status"])
    op.create_index("ix_listings_lat_lon", "listings", ["latitude", "longitude"])
    op.create_index("ix_listings_city_area", "listings", ["city_id", "sub_locality_id"])
    op.create_index("ix_listings_geom", "listings", ["geom"], postgresql_using="gist")

    op.create_table(
        "listing_details",
        sa.Column("listing_id", sa.String(), sa.ForeignKey("listings.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("property_type", sa.String(length=20), sa.ForeignKey("property_types.code"), nullable=False),
        sa.Column("floor_area", sa.Numeric(10, 2), nullable=True),
        sa.Column("lot_size", sa.Numeric(10, 2), nullable=True),
        sa.Column("bedrooms", sa.Integer(), nullable=True),
        sa.Column("bathrooms", sa.Integer(), nullable=True),
        sa.Column("parking", sa.Integer(), nullable=True),
        sa.Column("building_size", sa.Numeric(10, 2), nullable=True),
        sa.Column("ceiling_height", sa.Numeric(10, 2), nullable=True),
    )

    op.create_table(
        "listing_images",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("listing_id", sa.String(), sa.ForeignKey("listings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("image_url", sa.Text(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
        sa.UniqueConstraint("listing_id", "position", name="uq_listing_image_position"),
    )
    op.create_index("ix_listing_images_listing_pos", "listing_images", ["listing_id", "position"])

    op.create_table(
        "favorites",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("listing_id", sa.String(), sa.ForeignKey("listings.id", ondelete="CASCADE"), nullable=False),
        _created_at(),
        sa.UniqueConstraint("user_id", "listing_id", name="uq_favorite_user_listing"),
    )
    op.create_index("ix_favorites_user_created", "favorites", ["user_id", "created_at"])

    op.create_table(
        "conversations",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("listing_id", sa.String(), sa.ForeignKey("listings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_low_id", sa.String(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_high_id", sa.String(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        _created_at(),
        sa.UniqueConstraint("listing_id", "user_low_id", "user_high_id", name="uq_conversation_listing_pair"),
    )

    op.create_table(
        "messages",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("conversation_id", sa.String(), sa.ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sender_id", sa.String(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_messages_conv_sent", "messages", ["conversation_id", "sent_at"])

    op.create_table(
        "property_valuations",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column("property_type", sa.String(length=20), sa.ForeignKey("property_types.code"), nullable=False),
        sa.Column("floor_area", sa.Numeric(10, 2), nullable=True),
        sa.Column("lot_size", sa.Numeric(10, 2), nullable=True),
        sa.Column("bedrooms", sa.Integer(), nullable=True),
        sa.Column("bathrooms", sa.Integer(), nullable=True),
        sa.Column("parking", sa.Integer(), nullable=True),
        sa.Column("building_size", sa.Numeric(10, 2), nullable=True),
        sa.Column("ceiling_height", sa.Numeric(10, 2), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("city_id", sa.String(), sa.ForeignKey("geo_cities.id"), nullable=True),
        sa.Column("sub_locality_id", sa.String(), sa.ForeignKey("geo_areas.id"), nullable=True),
        sa.Column("region", sa.String(length=100), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("guest_first_name", sa.String(length=100), nullable=True),
        sa.Column("guest_last_name", sa.String(length=100), nullable=True),
        sa.Column("guest_email", sa.String(length=255), nullable=True),
        sa.Column("guest_phone", sa.String(length=30), nullable=True),
        sa.Column("guest_whatsapp_available", sa.Boolean(), nullable=True),
        sa.Column("valuation_result", sa.Numeric(15, 2), nullable=False),
        sa.Column("estimator", sa.String(length=60), nullable=False),
        _created_at(),
        # user or complete guest tuple, never both
        sa.CheckConstraint(
            "(user_id IS NOT NULL AND guest_email IS NULL) OR "
            "(user_id IS NULL AND guest_first_name IS NOT NULL AND guest_last_name IS NOT NULL "
            "AND guest_email IS NOT NULL AND guest_phone IS NOT NULL AND guest_whatsapp_available IS NOT NULL)",
            name="ck_valuation_requester",
        ),
    )
    op.create_index("ix_valuations_user_created", "property_valuations", ["user_id", "created_at"])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("target_type", sa.String(length=60), nullable=True),
        sa.Column("target_id", sa.String(length=200), nullable=True),
        sa.Column("detail", sa.JSON(), nullable=False),
        _created_at(),
    )

    op.create_table(
        "outbox",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("aggregate_type", sa.String(length=100), nullable=False),
        sa.Column("aggregate_id", sa.String(length=100), nullable=False),
        sa.Column("event_type", sa.String(length=200), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("lease_id", sa.String(length=64), nullable=True),
        sa.Column("lease_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processing_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_outbox_status_created", "outbox", ["status", "created_at"])
    op.create_index("ix_outbox_lease_expires", "outbox", ["status", "lease_expires_at"])


def downgrade():
    for name in (
        "outbox",
        "activity_logs",
        "property_valuations",
        "messages",
        "conversations",
        "favorites",
        "listing_images",
        "listing_details",
        "listings",
        "user_payments",
        "users",
        "geo_areas",
        "geo_cities",
        "listing_statuses",
        "property_types",
        "listing_types",
    ):
        op.drop_table(name)
