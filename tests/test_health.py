import pytest
import httpx
from app.main import app

@pytest.mark.asyncio
async def test_health():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        r = await ac.get("/v1/health")
        assert r.status_code == 200
        body = r.json()
        assert body["status"] == "ok"
        assert body["service"] == "estate-core-api"


@pytest.mark.asyncio
async def test_unknown_route_uses_error_envelope(client):
    r = await client.get("/v1/nope")
    assert r.status_code == 404
    assert r.json()["code"] == "not_found"


@pytest.mark.asyncio
async def test_reference_lists_seeded_codes(client):
    r = await client.get("/v1/reference")
    assert r.status_code == 200, r.text
    body = r.json()
    assert sorted(body["listing_types"]) == ["Buy", "Rent"]
    assert "Vacant Lot" in body["property_types"]
    assert set(body["listing_statuses"]) == {"Draft", "Active", "Paused", "Archived"}
