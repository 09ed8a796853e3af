from decimal import Decimal

import pytest

from app.core.config import settings
from app.models.reference_code import ACTIVE, CONDOMINIUM, PAUSED, WAREHOUSE
from app.services.search import decode_cursor, encode_cursor
from tests.fixtures_seed import make_listing

MAKATI_CENTER = (14.5547, 121.0244)


def _search(**kw) -> dict:
    body = {"listing_type": "Rent", "property_type": CONDOMINIUM}
    body.update(kw)
    return body


def _condo(bedrooms: int, bathrooms: int = 1, floor_area: str = "40") -> dict:
    return {"floor_area": Decimal(floor_area), "bedrooms": bedrooms, "bathrooms": bathrooms, "parking": 0}


@pytest.mark.asyncio
async def test_price_and_room_filters(client, db_session, owner):
    cheap = await make_listing(db_session, owner, status=ACTIVE, price="20000", details=_condo(3))
    mid = await make_listing(db_session, owner, status=ACTIVE, price="30000", details=_condo(2))
    high = await make_listing(db_session, owner, status=ACTIVE, price="50000", details=_condo(3, bathrooms=2))
    await make_listing(db_session, owner, status=PAUSED, price="40000", details=_condo(4))

    r = await client.post("/v1/search", json=_search(price_min="25000", bedrooms_min=2, sort="price_asc"))
    assert r.status_code == 200, r.text
    body = r.json()
    assert [i["id"] for i in body["items"]] == [mid.id, high.id]
    assert body["total"] == 2
    assert [Decimal(i["price"]) for i in body["items"]] == [Decimal("30000"), Decimal("50000")]

    r = await client.post("/v1/search", json=_search(bathrooms_min=2))
    assert [i["id"] for i in r.json()["items"]] == [high.id]

    r = await client.post("/v1/search", json=_search(price_max="20000"))
    assert [i["id"] for i in r.json()["items"]] == [cheap.id]


@pytest.mark.asyncio
async def test_size_filter_uses_floor_area(client, db_session, owner):
    small = await make_listing(db_session, owner, status=ACTIVE, details=_condo(1, floor_area="30"))
    await make_listing(db_session, owner, status=ACTIVE, details=_condo(1, floor_area="90"))

    r = await client.post("/v1/search", json=_search(size_max="50"))
    assert [i["id"] for i in r.json()["items"]] == [small.id]


@pytest.mark.asyncio
async def test_text_relevance_ranks_more_matched_terms_first(client, db_session, owner):
    both = await make_listing(db_session, owner, status=ACTIVE, title="Loft with garden view")
    one = await make_listing(db_session, owner, status=ACTIVE, title="Garden apartment", description="ground floor")
    await make_listing(db_session, owner, status=ACTIVE, title="Quiet studio")

    r = await client.post("/v1/search", json=_search(q="Garden VIEW"))
    assert r.status_code == 200, r.text
    items = r.json()["items"]
    assert [i["id"] for i in items] == [both.id, one.id]
    assert items[0]["relevance"] > items[1]["relevance"]


@pytest.mark.asyncio
async def test_newest_sort_breaks_ties_by_creation(client, db_session, owner):
    first = await make_listing(db_session, owner, status=ACTIVE, title="Garden unit")
    second = await make_listing(db_session, owner, status=ACTIVE, title="Garden unit")

    r = await client.post("/v1/search", json=_search(q="garden", sort="newest"))
    assert [i["id"] for i in r.json()["items"]] == [second.id, first.id]


@pytest.mark.asyncio
async def test_circle_is_exact_not_bounding_box(client, db_session, owner):
    lat, lon = MAKATI_CENTER
    near = await make_listing(db_session, owner, status=ACTIVE, lat=lat + 0.01, lon=lon)
    # inside the square around the circle but outside the circle itself
    await make_listing(db_session, owner, status=ACTIVE, lat=lat + 0.04, lon=lon + 0.04)
    await make_listing(db_session, owner, status=ACTIVE, lat=lat + 0.1, lon=lon)
    await make_listing(db_session, owner, status=ACTIVE)

    r = await client.post(
        "/v1/search",
        json=_search(circle={"center": {"lat": lat, "lon": lon}, "radius_km": 5}),
    )
    assert r.status_code == 200, r.text
    items = r.json()["items"]
    assert [i["id"] for i in items] == [near.id]
    assert 1.0 < items[0]["distance_km"] < 1.2


@pytest.mark.asyncio
async def test_polygon_containment(client, db_session, owner):
    inside = await make_listing(db_session, owner, status=ACTIVE, lat=14.55, lon=121.02)
    await make_listing(db_session, owner, status=ACTIVE, lat=14.70, lon=121.02)

    triangle = [{"lat": 14.50, "lon": 121.00}, {"lat": 14.60, "lon": 121.00}, {"lat": 14.55, "lon": 121.10}]
    r = await client.post("/v1/search", json=_search(polygon={"vertices": triangle}))
    assert r.status_code == 200, r.text
    assert [i["id"] for i in r.json()["items"]] == [inside.id]


@pytest.mark.asyncio
async def test_place_search_and_area_count_agree(client, db_session, owner, geo):
    mk, qc = geo["makati"], geo["quezon"]
    in_pob_mk = await make_listing(
        db_session, owner, status=ACTIVE, city_id=mk.id, sub_locality_id=geo["pob_makati"].id, region="NCR"
    )
    in_pob_qc = await make_listing(
        db_session, owner, status=ACTIVE, city_id=qc.id, sub_locality_id=geo["pob_quezon"].id, region="NCR"
    )
    in_bel_air = await make_listing(
        db_session, owner, status=ACTIVE, city_id=mk.id, sub_locality_id=geo["bel_air"].id, region="NCR"
    )
    await make_listing(db_session, owner, status=ACTIVE, city_id=geo["cebu"].id, region="Central Visayas")

    cases = {
        "Poblacion, Makati": {in_pob_mk.id},
        "poblacion": {in_pob_mk.id, in_pob_qc.id},
        "Makati": {in_pob_mk.id, in_bel_air.id},
        "NCR": {in_pob_mk.id, in_pob_qc.id, in_bel_air.id},
    }
    for place, expected in cases.items():
        r = await client.post("/v1/search", json=_search(place=place))
        assert r.status_code == 200, r.text
        body = r.json()
        assert {i["id"] for i in body["items"]} == expected, place

        r = await client.get("/v1/search/area-count", params={"place": place})
        assert r.status_code == 200, r.text
        assert r.json()["count"] == body["total"] == len(expected), place

    r = await client.post("/v1/search", json=_search(place="Poblacion, Makati"))
    area = r.json()["area"]
    assert area["kind"] == "sub_locality"
    assert area["sub_locality_id"] == geo["pob_makati"].id


@pytest.mark.asyncio
async def test_unknown_place_returns_empty_page(client, db_session, owner, geo):
    await make_listing(db_session, owner, status=ACTIVE, city_id=geo["makati"].id)

    r = await client.post("/v1/search", json=_search(place="Atlantis"))
    assert r.status_code == 200, r.text
    assert r.json() == {"items": [], "total": 0, "next_cursor": None, "area": None}

    r = await client.get("/v1/search/area-count", params={"place": "Atlantis"})
    assert r.json()["count"] == 0


@pytest.mark.asyncio
async def test_area_city_pair_never_widens_past_the_city(client, db_session, owner, geo):
    await make_listing(
        db_session, owner, status=ACTIVE, city_id=geo["makati"].id, sub_locality_id=geo["bel_air"].id, region="NCR"
    )

    for place in ("Bel-Air, Quezon City", "Bel-Air, Atlantis"):
        r = await client.post("/v1/search", json=_search(place=place))
        assert r.status_code == 200, r.text
        assert r.json()["total"] == 0, place

        r = await client.get("/v1/search/area-count", params={"place": place})
        assert r.json()["count"] == 0, place


@pytest.mark.asyncio
async def test_circle_across_the_antimeridian(client, db_session, owner):
    east = await make_listing(db_session, owner, status=ACTIVE, lat=0.0, lon=-179.95)
    await make_listing(db_session, owner, status=ACTIVE, lat=0.0, lon=179.0)

    r = await client.post(
        "/v1/search",
        json=_search(circle={"center": {"lat": 0.0, "lon": 179.95}, "radius_km": 50}),
    )
    assert r.status_code == 200, r.text
    items = r.json()["items"]
    assert [i["id"] for i in items] == [east.id]
    assert items[0]["distance_km"] == pytest.approx(11.12, abs=0.01)


@pytest.mark.asyncio
async def test_text_candidates_are_capped(client, db_session, owner, monkeypatch):
    for i in range(3):
        await make_listing(db_session, owner, status=ACTIVE, title=f"Garden loft {i}")
    monkeypatch.setattr(settings, "search_candidate_limit", 2)

    r = await client.post("/v1/search", json=_search(q="garden"))
    assert r.status_code == 200, r.text
    assert r.json()["total"] == 2
    assert len(r.json()["items"]) == 2


@pytest.mark.asyncio
async def test_room_filters_rejected_for_warehouse(client):
    r = await client.post("/v1/search", json={"listing_type": "Buy", "property_type": WAREHOUSE, "bedrooms_min": 1})
    assert r.status_code == 422
    body = r.json()
    assert body["code"] == "validation_error"
    assert body["details"][0]["field"] == "bedrooms_min"


@pytest.mark.asyncio
async def test_invalid_queries(client):
    r = await client.post("/v1/search", json=_search(price_min="500", price_max="100"))
    assert r.status_code == 422

    r = await client.post("/v1/search", json=_search(listing_type="Lease"))
    assert r.status_code == 422

    r = await client.post("/v1/search", json=_search(limit=1000))
    assert r.status_code == 422

    circle = {"center": {"lat": 14.5, "lon": 121.0}, "radius_km": 2}
    r = await client.post("/v1/search", json=_search(place="Makati", circle=circle))
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_cursor_pages_through_results(client, db_session, owner):
    ids = [(await make_listing(db_session, owner, status=ACTIVE, price=str(p))).id for p in (100, 200, 300)]

    r = await client.post("/v1/search", json=_search(sort="price_desc", limit=2))
    page1 = r.json()
    assert [i["id"] for i in page1["items"]] == [ids[2], ids[1]]
    assert page1["total"] == 3
    assert page1["next_cursor"]

    r = await client.post("/v1/search", json=_search(sort="price_desc", limit=2, cursor=page1["next_cursor"]))
    page2 = r.json()
    assert [i["id"] for i in page2["items"]] == [ids[0]]
    assert page2["next_cursor"] is None

    # a cursor is only valid for the ordering it was issued for
    r = await client.post("/v1/search", json=_search(sort="price_asc", limit=2, cursor=page1["next_cursor"]))
    assert r.status_code == 422


def test_cursor_encoding():
    assert decode_cursor(encode_cursor(40, "newest"), "newest") == 40
    assert decode_cursor(None, "newest") == 0
