from decimal import Decimal

import pytest
from sqlalchemy import select

from app.core.errors import StoreUnavailableError
from app.models.property_valuation import PropertyValuation
from app.models.reference_code import CONDOMINIUM, VACANT_LOT, WAREHOUSE
from app.services import valuation as valuation_service
from app.services.valuation import (
    ValuationContext,
    WeightedLinearEstimator,
    persist_snapshot,
    snapshot_from_json,
    snapshot_to_json,
)
from tests.fixtures_seed import auth

GUEST = {
    "first_name": "Ana",
    "last_name": "Reyes",
    "email": "ana@example.com",
    "phone": "+63 917 000 0000",
    "whatsapp_available": False,
}


def test_estimator_rates_and_region():
    est = WeightedLinearEstimator()
    lot = est.estimate(VACANT_LOT, {"lot_size": Decimal("300")}, ValuationContext())
    assert lot == Decimal("9000000.00")

    ncr = est.estimate(VACANT_LOT, {"lot_size": Decimal("300")}, ValuationContext(region=" NCR "))
    assert ncr == Decimal("12150000.00")

    condo = est.estimate(
        CONDOMINIUM,
        {"floor_area": Decimal("50"), "bedrooms": 2, "bathrooms": 1, "parking": 1},
        ValuationContext(),
    )
    assert condo == Decimal("6000000") + Decimal("300000") + Decimal("80000") + Decimal("250000")


def test_high_ceiling_adds_premium():
    est = WeightedLinearEstimator()
    base = {"lot_size": Decimal("100"), "floor_area": Decimal("80")}
    low = est.estimate(WAREHOUSE, {**base, "ceiling_height": Decimal("4")}, ValuationContext())
    high = est.estimate(WAREHOUSE, {**base, "ceiling_height": Decimal("6")}, ValuationContext())
    assert high == (low * Decimal("1.06")).quantize(Decimal("0.01"))


@pytest.mark.asyncio
async def test_guest_vacant_lot_valuation_is_stored(client, db_session):
    r = await client.post(
        "/v1/valuations",
        json={"property_type": VACANT_LOT, "details": {"lot_size": "300"}, "guest": GUEST},
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["persisted"] is True
    assert Decimal(body["estimate"]) == Decimal("9000000.00")
    assert body["warning"] is None

    row = (await db_session.execute(
        select(PropertyValuation).where(PropertyValuation.id == body["valuation_id"])
    )).scalar_one()
    assert row.user_id is None
    assert row.guest_email == "ana@example.com"
    assert row.guest_whatsapp_available is False
    assert row.lot_size == Decimal("300")
    assert row.floor_area is None
    assert row.estimator == "weighted_linear"


@pytest.mark.asyncio
async def test_guest_contact_must_be_complete(client):
    guest = dict(GUEST)
    del guest["phone"]
    r = await client.post(
        "/v1/valuations",
        json={"property_type": VACANT_LOT, "details": {"lot_size": "300"}, "guest": guest},
    )
    assert r.status_code == 422
    body = r.json()
    assert body["code"] == "validation_error"
    assert {"field": "guest.phone", "type": "missing"} in body["details"]

    r = await client.post("/v1/valuations", json={"property_type": VACANT_LOT, "details": {"lot_size": "300"}})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_signed_in_valuation_belongs_to_user(client, owner):
    r = await client.post(
        "/v1/valuations",
        headers=auth("sub-owner"),
        json={
            "property_type": CONDOMINIUM,
            "details": {"floor_area": "50", "bedrooms": 2, "bathrooms": 1},
            "location": {"region": "NCR"},
        },
    )
    assert r.status_code == 200, r.text
    val_id = r.json()["valuation_id"]

    r = await client.get("/v1/me/valuations", headers=auth("sub-owner"))
    assert [v["id"] for v in r.json()] == [val_id]

    # signed-in callers do not send a guest block
    r = await client.post(
        "/v1/valuations",
        headers=auth("sub-owner"),
        json={"property_type": VACANT_LOT, "details": {"lot_size": "10"}, "guest": GUEST},
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_details_must_match_category(client):
    r = await client.post(
        "/v1/valuations",
        json={
            "property_type": CONDOMINIUM,
            "details": {"floor_area": "50", "bedrooms": 2, "bathrooms": 1, "lot_size": "100"},
            "guest": GUEST,
        },
    )
    assert r.status_code == 422
    assert any(d["field"] == "lot_size" for d in r.json()["details"])


@pytest.mark.asyncio
async def test_store_failure_still_returns_estimate(client, db_session, monkeypatch):
    queued: list[dict] = []

    async def _down(db, snapshot):
        raise StoreUnavailableError("valuation write timed out")

    def _enqueue(snapshot):
        queued.append(snapshot_to_json(snapshot))
        return True

    monkeypatch.setattr(valuation_service, "persist_snapshot", _down)
    monkeypatch.setattr(valuation_service, "enqueue_persist", _enqueue)

    r = await client.post(
        "/v1/valuations",
        json={"property_type": VACANT_LOT, "details": {"lot_size": "300"}, "guest": GUEST},
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["persisted"] is False
    assert body["valuation_id"] is None
    assert body["warning"]
    assert Decimal(body["estimate"]) == Decimal("9000000.00")

    assert len(queued) == 1
    assert queued[0]["valuation_result"] == "9000000.00"
    assert queued[0]["guest_email"] == "ana@example.com"

    count = (await db_session.execute(select(PropertyValuation.id))).all()
    assert count == []


@pytest.mark.asyncio
async def test_persist_snapshot_is_idempotent(db_session):
    snapshot = snapshot_to_json({
        "id": "val_fixed",
        "user_id": None,
        "property_type": VACANT_LOT,
        "lot_size": Decimal("120.50"),
        **{f"guest_{k}": v for k, v in GUEST.items()},
        "valuation_result": Decimal("3615000.00"),
        "estimator": "weighted_linear",
    })
    assert snapshot_from_json(snapshot)["lot_size"] == Decimal("120.50")

    assert await persist_snapshot(db_session, snapshot) is True
    assert await persist_snapshot(db_session, snapshot) is False

    rows = (await db_session.execute(select(PropertyValuation))).scalars().all()
    assert len(rows) == 1
    assert rows[0].valuation_result == Decimal("3615000.00")
