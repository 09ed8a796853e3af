from __future__ import annotations

import logging

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ValidationError
from app.models.activity_log import ActivityLog
from app.models.conversation import Conversation, Message
from app.models.favorite import Favorite
from app.models.listing import Listing
from app.models.property_valuation import PropertyValuation
from app.models.user import User
from app.models.user_payment import UserPayment
from app.schemas.me import ProfileUpdate
from app.services.listings import purge_listings

log = logging.getLogger(__name__)


async def get_or_create_user(db: AsyncSession, *, subject_id: str, email: str | None) -> User:
    """
    Map an identity-provider subject to a User, creating it on first sight.

    The email is taken once at creation; later changes go through the profile.
    """
    stmt = select(User).where(User.external_subject_id == subject_id)
    user = (await db.execute(stmt)).scalar_one_or_none()
    if user is not None:
        return user

    if not email:
        raise ValidationError("Email is required on first sign-in", details=[{"field": "email"}])

    user = User(external_subject_id=subject_id, email=email.strip().lower())
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        # concurrent first requests for the same subject, or email taken
        await db.rollback()
        user = (await db.execute(stmt)).scalar_one_or_none()
        if user is None:
            raise ValidationError("Email already belongs to another account", details=[{"field": "email"}])
        return user

    log.info("user created: %s", user.id)
    return user


async def update_profile(db: AsyncSession, user: User, payload: ProfileUpdate) -> User:
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("whatsapp_available", False) is None:
        raise ValidationError("whatsapp_available cannot be null", details=[{"field": "whatsapp_available"}])

    for field, value in changes.items():
        setattr(user, field, value)
    await db.commit()
    await db.refresh(user)
    return user


async def delete_user(db: AsyncSession, user: User) -> None:
    """
    Remove a user and everything that hangs off them.

    Deletes are explicit so the outcome does not depend on the backend
    honouring ON DELETE CASCADE.
    """
    user_id = user.id
    try:
        listing_ids = list((await db.execute(select(Listing.id).where(Listing.user_id == user_id))).scalars().all())
        await purge_listings(db, listing_ids)

        conv_ids = select(Conversation.id).where(
            or_(Conversation.user_low_id == user_id, Conversation.user_high_id == user_id)
        )
        await db.execute(delete(Message).where(Message.conversation_id.in_(conv_ids)))
        await db.execute(delete(Message).where(Message.sender_id == user_id))
        await db.execute(delete(Conversation).where(
            or_(Conversation.user_low_id == user_id, Conversation.user_high_id == user_id)
        ))
        await db.execute(delete(Favorite).where(Favorite.user_id == user_id))
        await db.execute(delete(PropertyValuation).where(PropertyValuation.user_id == user_id))
        await db.execute(delete(ActivityLog).where(ActivityLog.user_id == user_id))
        await db.execute(delete(UserPayment).where(UserPayment.user_id == user_id))
        await db.execute(delete(User).where(User.id == user_id))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    log.info("user deleted: %s (%d listings)", user_id, len(listing_ids))
