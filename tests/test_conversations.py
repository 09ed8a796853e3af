import pytest
from sqlalchemy import select

from app.models.conversation import Conversation
from app.models.outbox import OutboxEvent
from app.models.reference_code import ACTIVE
from app.services.conversations import canonical_pair
from tests.fixtures_seed import auth, make_listing, make_user

OWNER = auth("sub-owner")
BUYER = auth("sub-buyer")


def test_canonical_pair_is_order_free():
    assert canonical_pair("usr_b", "usr_a") == canonical_pair("usr_a", "usr_b") == ("usr_a", "usr_b")


@pytest.mark.asyncio
async def test_conversation_is_created_once_from_either_side(client, db_session, owner, buyer):
    listing_id = (await make_listing(db_session, owner, status=ACTIVE)).id

    r = await client.post(f"/v1/listings/{listing_id}/conversations", headers=BUYER)
    assert r.status_code == 201, r.text
    conv = r.json()

    r = await client.post(f"/v1/listings/{listing_id}/conversations", headers=BUYER)
    assert r.status_code == 200
    assert r.json()["id"] == conv["id"]

    r = await client.post(
        f"/v1/listings/{listing_id}/conversations", headers=OWNER, json={"other_user_id": buyer.id}
    )
    assert r.status_code == 200, r.text
    assert r.json()["id"] == conv["id"]

    rows = (await db_session.execute(select(Conversation))).scalars().all()
    assert len(rows) == 1
    assert (rows[0].user_low_id, rows[0].user_high_id) == canonical_pair(owner.id, buyer.id)


@pytest.mark.asyncio
async def test_conversation_needs_owner_and_two_people(client, db_session, owner, buyer):
    stranger = await make_user(db_session, "sub-stranger")
    listing_id = (await make_listing(db_session, owner, status=ACTIVE)).id

    r = await client.post(f"/v1/listings/{listing_id}/conversations", headers=OWNER)
    assert r.status_code == 422

    r = await client.post(
        f"/v1/listings/{listing_id}/conversations", headers=BUYER, json={"other_user_id": stranger.id}
    )
    assert r.status_code == 422

    r = await client.post(
        f"/v1/listings/{listing_id}/conversations", headers=OWNER, json={"other_user_id": "usr_missing"}
    )
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_messages_write_outbox_and_read_state(client, db_session, owner, buyer):
    listing_id = (await make_listing(db_session, owner, status=ACTIVE)).id
    r = await client.post(f"/v1/listings/{listing_id}/conversations", headers=BUYER)
    conv_id = r.json()["id"]

    r = await client.post(f"/v1/conversations/{conv_id}/messages", headers=BUYER, json={"content": "  Is it still available?  "})
    assert r.status_code == 201, r.text
    msg = r.json()
    assert msg["content"] == "Is it still available?"
    assert msg["is_read"] is False

    event = (await db_session.execute(select(OutboxEvent))).scalar_one()
    assert event.event_type == "message.created"
    assert event.status == "pending"
    assert event.aggregate_id == conv_id
    assert event.payload["message_id"] == msg["id"]
    assert event.payload["sender_id"] == buyer.id
    assert event.payload["recipient_id"] == owner.id
    assert event.payload["listing_id"] == listing_id

    r = await client.post(f"/v1/conversations/{conv_id}/messages", headers=OWNER, json={"content": "Yes"})
    assert r.status_code == 201

    r = await client.get(f"/v1/conversations/{conv_id}/messages", headers=OWNER)
    assert [m["content"] for m in r.json()] == ["Yes", "Is it still available?"]

    # only the other side's messages are marked
    r = await client.post(f"/v1/conversations/{conv_id}/read", headers=OWNER)
    assert r.json()["marked_read"] == 1
    r = await client.post(f"/v1/conversations/{conv_id}/read", headers=OWNER)
    assert r.json()["marked_read"] == 0

    r = await client.get("/v1/conversations", headers=OWNER)
    assert [c["id"] for c in r.json()] == [conv_id]


@pytest.mark.asyncio
async def test_only_participants_and_senders(client, db_session, owner, buyer):
    await make_user(db_session, "sub-stranger")
    listing_id = (await make_listing(db_session, owner, status=ACTIVE)).id
    conv_id = (await client.post(f"/v1/listings/{listing_id}/conversations", headers=BUYER)).json()["id"]
    msg_id = (await client.post(f"/v1/conversations/{conv_id}/messages", headers=BUYER, json={"content": "Hi"})).json()["id"]

    r = await client.get(f"/v1/conversations/{conv_id}/messages", headers=auth("sub-stranger"))
    assert r.status_code == 403

    r = await client.post(f"/v1/conversations/{conv_id}/messages", headers=auth("sub-stranger"), json={"content": "me too"})
    assert r.status_code == 403

    r = await client.delete(f"/v1/conversations/{conv_id}/messages/{msg_id}", headers=OWNER)
    assert r.status_code == 403

    r = await client.delete(f"/v1/conversations/{conv_id}/messages/{msg_id}", headers=BUYER)
    assert r.status_code == 200

    r = await client.get(f"/v1/conversations/{conv_id}/messages", headers=BUYER)
    assert r.json() == []

    r = await client.post(f"/v1/conversations/{conv_id}/messages", headers=BUYER, json={"content": "   "})
    assert r.status_code == 422
