from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from app.models.base import utcnow
from app.models.conversation import Conversation, Message
from app.models.outbox import OutboxEvent
from app.models.user import User
from app.services.listings import get_listing

log = logging.getLogger(__name__)


def canonical_pair(a: str, b: str) -> tuple[str, str]:
    return (a, b) if a <= b else (b, a)


async def get_or_create_conversation(
    db: AsyncSession, *, listing_id: str, user: User, other_user_id: str | None = None
) -> tuple[Conversation, bool]:
    """
    Return the conversation about a listing between two users, creating it once.

    The pair is unordered and one side must be the listing owner; the other
    side defaults to the owner.
    """
    listing = await get_listing(db, listing_id, viewer=user)
    other_id = other_user_id or listing.user_id

    if other_id == user.id:
        raise ValidationError("A conversation needs two different users", details=[{"field": "other_user_id"}])
    if listing.user_id not in (user.id, other_id):
        raise ValidationError("One participant must own the listing", details=[{"field": "other_user_id"}])
    if await db.get(User, other_id) is None:
        raise NotFoundError("User not found")

    low, high = canonical_pair(user.id, other_id)
    stmt = select(Conversation).where(
        Conversation.listing_id == listing_id,
        Conversation.user_low_id == low,
        Conversation.user_high_id == high,
    )
    existing = (await db.execute(stmt)).scalar_one_or_none()
    if existing is not None:
        return existing, False

    conv = Conversation(listing_id=listing_id, user_low_id=low, user_high_id=high)
    db.add(conv)
    try:
        await db.commit()
    except IntegrityError:
        # the other participant opened it at the same time
        await db.rollback()
        return (await db.execute(stmt)).scalar_one(), False
    return conv, True


async def _participant_conversation(db: AsyncSession, conversation_id: str, user_id: str) -> Conversation:
    conv = await db.get(Conversation, conversation_id)
    if conv is None:
        raise NotFoundError("Conversation not found")
    if not conv.has_participant(user_id):
        raise PermissionDeniedError("Not a participant of this conversation")
    return conv


async def post_message(db: AsyncSession, *, conversation_id: str, sender_id: str, content: str) -> Message:
    try:
        conv = await _participant_conversation(db, conversation_id, sender_id)
        text = content.strip()
        if not text:
            raise ValidationError("Message is empty", details=[{"field": "content"}])

        msg = Message(conversation_id=conv.id, sender_id=sender_id, content=text, sent_at=utcnow())
        db.add(msg)
        await db.flush()

        # delivery to the real-time transport happens from the outbox
        db.add(OutboxEvent(
            aggregate_type="conversation",
            aggregate_id=conv.id,
            event_type="message.created",
            payload={
                "conversation_id": conv.id,
                "listing_id": conv.listing_id,
                "message_id": msg.id,
                "sender_id": sender_id,
                "recipient_id": conv.user_high_id if sender_id == conv.user_low_id else conv.user_low_id,
                "content": text,
                "sent_at": msg.sent_at.isoformat(),
            },
            status="pending",
        ))
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return msg


async def list_messages(
    db: AsyncSession, *, conversation_id: str, user_id: str, limit: int = 50, before: datetime | None = None
) -> list[Message]:
    await _participant_conversation(db, conversation_id, user_id)
    stmt = select(Message).where(Message.conversation_id == conversation_id, Message.deleted_at.is_(None))
    if before is not None:
        stmt = stmt.where(Message.sent_at < before)
    stmt = stmt.order_by(Message.sent_at.desc(), Message.id.desc()).limit(limit)
    return list((await db.execute(stmt)).scalars().all())


async def mark_read(db: AsyncSession, *, conversation_id: str, user_id: str) -> int:
    """Mark every message the other side sent as read; returns how many changed."""
    await _participant_conversation(db, conversation_id, user_id)
    res = await db.execute(
        update(Message)
        .where(
            Message.conversation_id == conversation_id,
            Message.sender_id != user_id,
            Message.is_read.is_(False),
            Message.deleted_at.is_(None),
        )
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return int(res.rowcount or 0)


async def delete_message(db: AsyncSession, *, conversation_id: str, message_id: str, user_id: str) -> None:
    await _participant_conversation(db, conversation_id, user_id)
    msg = await db.get(Message, message_id)
    if msg is None or msg.conversation_id != conversation_id or msg.deleted_at is not None:
        raise NotFoundError("Message not found")
    if msg.sender_id != user_id:
        raise PermissionDeniedError("Only the sender can delete a message")
    msg.deleted_at = utcnow()
    await db.commit()


async def list_conversations(db: AsyncSession, *, user_id: str) -> list[Conversation]:
    stmt = (
        select(Conversation)
        .where(or_(Conversation.user_low_id == user_id, Conversation.user_high_id == user_id))
        .order_by(Conversation.created_at.desc(), Conversation.id.desc())
    )
    return list((await db.execute(stmt)).scalars().all())
