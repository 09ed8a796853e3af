from decimal import Decimal

import pytest
from geoalchemy2.shape import to_shape
from sqlalchemy import func, select

from app.models.activity_log import ActivityLog
from app.models.listing import Listing
from app.models.reference_code import ACTIVE, DRAFT, WAREHOUSE
from tests.fixtures_seed import auth, condo_body, make_listing

IMAGES = [f"https://img.test/new/{i}.jpg" for i in range(3)]


@pytest.mark.asyncio
async def test_create_draft_listing(client, db_session, owner, geo):
    body = condo_body(location={
        "address": "12 Jupiter St",
        "sub_locality_id": geo["bel_air"].id,
        "region": "NCR",
        "latitude": 14.56,
        "longitude": 121.03,
    })
    r = await client.post("/v1/listings", headers=auth("sub-owner"), json=body)
    assert r.status_code == 201, r.text
    out = r.json()
    assert out["status"] == DRAFT
    assert out["user_id"] == owner.id
    # the city follows from the sub-locality
    assert out["city_id"] == geo["makati"].id
    details = out["details"]
    assert Decimal(details.pop("floor_area")) == Decimal("48.5")
    assert details == {"bedrooms": 2, "bathrooms": 1, "parking": 1}
    assert out["image_count"] == 0

    row = await db_session.get(Listing, out["id"])
    point = to_shape(row.geom)
    assert (point.x, point.y) == (121.03, 14.56)
    assert row.geom.srid == 4326
    assert " jupiter " not in row.search_vector
    assert " bright " in row.search_vector

    logged = (await db_session.execute(
        select(func.count()).select_from(ActivityLog).where(ActivityLog.action == "listing.created")
    )).scalar_one()
    assert logged == 1


@pytest.mark.asyncio
async def test_create_rejects_bad_input(client, owner, geo):
    headers = auth("sub-owner")
    mismatch = {"city_id": geo["quezon"].id, "sub_locality_id": geo["bel_air"].id}

    r = await client.post("/v1/listings", headers=headers, json=condo_body(details={"floor_area": "40", "bedrooms": 1, "bathrooms": 1, "lot_size": "90"}))
    assert r.status_code == 422
    assert r.json()["code"] == "validation_error"

    r = await client.post("/v1/listings", headers=headers, json=condo_body(details={"floor_area": "40"}))
    assert r.status_code == 422

    r = await client.post("/v1/listings", headers=headers, json=condo_body(listing_type="Lease"))
    assert r.status_code == 422

    r = await client.post("/v1/listings", headers=headers, json=condo_body(property_type="Castle"))
    assert r.status_code == 422

    r = await client.post("/v1/listings", headers=headers, json=condo_body(location={"latitude": 14.5}))
    assert r.status_code == 422

    r = await client.post("/v1/listings", headers=headers, json=condo_body(location=mismatch))
    assert r.status_code == 422

    r = await client.get("/v1/me/listings", headers=headers)
    assert r.json() == []


@pytest.mark.asyncio
async def test_publish_on_create(client, db_session, owner):
    headers = auth("sub-owner")

    r = await client.post("/v1/listings", headers=headers, json=condo_body(image_urls=IMAGES[:2], publish=True))
    assert r.status_code == 409, r.text
    assert r.json()["code"] == "insufficient_images"
    # nothing is left behind by a refused publish
    assert (await db_session.execute(select(func.count()).select_from(Listing))).scalar_one() == 0

    for _ in range(2):
        r = await client.post("/v1/listings", headers=headers, json=condo_body(image_urls=IMAGES, publish=True))
        assert r.status_code == 201, r.text
        assert r.json()["status"] == ACTIVE
        assert r.json()["image_count"] == 3

    r = await client.post("/v1/listings", headers=headers, json=condo_body(image_urls=IMAGES, publish=True))
    assert r.status_code == 402
    assert r.json()["code"] == "quota_exceeded"

    r = await client.get("/v1/me/listings", params={"status": "Active"}, headers=headers)
    assert len(r.json()) == 2


@pytest.mark.asyncio
async def test_visibility_of_non_active_listings(client, db_session, owner, buyer):
    draft = await make_listing(db_session, owner)
    active = await make_listing(db_session, owner, status=ACTIVE)

    r = await client.get(f"/v1/listings/{draft.id}", headers=auth("sub-buyer"))
    assert r.status_code == 404
    r = await client.get(f"/v1/listings/{draft.id}")
    assert r.status_code == 404

    r = await client.get(f"/v1/listings/{draft.id}", headers=auth("sub-owner"))
    assert r.status_code == 200
    assert r.json()["image_count"] == 3

    r = await client.get(f"/v1/listings/{active.id}")
    assert r.status_code == 200
    assert r.json()["status"] == ACTIVE


@pytest.mark.asyncio
async def test_update_and_details(client, db_session, owner, buyer):
    listing = await make_listing(db_session, owner, title="Old title")
    listing_id = listing.id

    r = await client.patch(f"/v1/listings/{listing_id}", headers=auth("sub-owner"), json={"title": "Sea view penthouse", "price": "99000"})
    assert r.status_code == 200, r.text
    assert r.json()["title"] == "Sea view penthouse"

    r = await client.patch(f"/v1/listings/{listing_id}", headers=auth("sub-owner"), json={"title": None})
    assert r.status_code == 422

    r = await client.patch(f"/v1/listings/{listing_id}", headers=auth("sub-buyer"), json={"title": "Mine now"})
    assert r.status_code == 403

    r = await client.put(
        f"/v1/listings/{listing_id}/details",
        headers=auth("sub-owner"),
        json={"property_type": WAREHOUSE, "details": {"lot_size": "100", "floor_area": "80"}},
    )
    assert r.status_code == 422

    r = await client.put(
        f"/v1/listings/{listing_id}/details",
        headers=auth("sub-owner"),
        json={"property_type": "Condominium", "details": {"floor_area": "75", "bedrooms": 3, "bathrooms": 2}},
    )
    assert r.status_code == 200, r.text
    details = r.json()["details"]
    assert Decimal(details.pop("floor_area")) == Decimal("75")
    assert details == {"bedrooms": 3, "bathrooms": 2, "parking": 0}

    row = await db_session.get(Listing, listing_id, populate_existing=True)
    assert " penthouse " in row.search_vector


@pytest.mark.asyncio
async def test_only_drafts_can_be_deleted(client, db_session, owner):
    draft_id = (await make_listing(db_session, owner)).id
    active_id = (await make_listing(db_session, owner, status=ACTIVE)).id

    r = await client.delete(f"/v1/listings/{active_id}", headers=auth("sub-owner"))
    assert r.status_code == 409

    r = await client.delete(f"/v1/listings/{draft_id}", headers=auth("sub-owner"))
    assert r.status_code == 200, r.text
    assert r.json() == {"status": "deleted", "id": draft_id}

    r = await client.get(f"/v1/listings/{draft_id}", headers=auth("sub-owner"))
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_identity_headers(client):
    r = await client.get("/v1/me")
    assert r.status_code == 401
    assert r.json()["code"] == "unauthorized"

    # first sight needs an email
    r = await client.get("/v1/me", headers=auth("sub-new"))
    assert r.status_code == 422

    r = await client.get("/v1/me", headers=auth("sub-new", "New@Example.com"))
    assert r.status_code == 200, r.text
    assert r.json()["email"] == "new@example.com"
