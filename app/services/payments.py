from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from app.models.base import utcnow
from app.models.listing import Listing
from app.models.user import User
from app.models.user_payment import PAYMENT_COMPLETED, PAYMENT_TYPES, UserPayment
from app.services.activity import record_activity
from app.services.lifecycle import lock_owner, owner_locks

log = logging.getLogger(__name__)


async def record_payment(
    db: AsyncSession,
    *,
    provider_ref: str,
    user_id: str,
    payment_type: str,
    amount: Decimal,
    payment_status: str = PAYMENT_COMPLETED,
) -> tuple[UserPayment, bool]:
    """
    Store a processor notification. Returns (payment, created).

    Processors re-send callbacks; a known provider_ref returns the stored row
    unchanged.
    """
    if payment_type not in PAYMENT_TYPES:
        raise ValidationError(f"Unknown payment type '{payment_type}'", details=[{"field": "payment_type"}])

    stmt = select(UserPayment).where(UserPayment.provider_ref == provider_ref)
    existing = (await db.execute(stmt)).scalar_one_or_none()
    if existing is not None:
        return existing, False

    if await db.get(User, user_id) is None:
        raise NotFoundError("User not found")

    payment = UserPayment(
        provider_ref=provider_ref,
        user_id=user_id,
        payment_type=payment_type,
        amount=amount,
        payment_status=payment_status,
    )
    db.add(payment)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        existing = (await db.execute(stmt)).scalar_one_or_none()
        if existing is None:
            raise
        return existing, False

    log.info("payment recorded: %s ref=%s user=%s type=%s", payment.id, provider_ref, user_id, payment_type)
    return payment, True


async def ensure_attachable(db: AsyncSession, *, payment_id: str, owner_id: str, listing_id: str | None = None) -> UserPayment:
    """
    A payment can exempt a listing when it is completed and belongs to the owner.

    A listing_unlock payment covers one listing; a subscription covers any number.
    """
    payment = await db.get(UserPayment, payment_id)
    if payment is None or payment.user_id != owner_id:
        raise ValidationError("Unknown payment", details=[{"field": "payment_id", "value": payment_id}])
    if payment.payment_status != PAYMENT_COMPLETED:
        raise ValidationError("Payment is not completed", details=[{"field": "payment_id", "status": payment.payment_status}])

    if payment.payment_type == "listing_unlock":
        stmt = select(func.count()).select_from(Listing).where(Listing.payment_id == payment_id)
        if listing_id is not None:
            stmt = stmt.where(Listing.id != listing_id)
        if int((await db.execute(stmt)).scalar_one()) > 0:
            raise ValidationError("Payment is already used by another listing", details=[{"field": "payment_id"}])
    return payment


async def attach_payment(db: AsyncSession, *, listing_id: str, payment_id: str, actor_id: str) -> Listing:
    # takes the owner lock: attaching changes what counts against the quota
    async with owner_locks.hold(actor_id):
        try:
            await lock_owner(db, actor_id)
            listing = await db.get(Listing, listing_id, with_for_update=True)
            if listing is None:
                raise NotFoundError("Listing not found")
            if listing.user_id != actor_id:
                raise PermissionDeniedError("Only the owner can change this listing")
            await ensure_attachable(db, payment_id=payment_id, owner_id=actor_id, listing_id=listing.id)
            listing.payment_id = payment_id
            listing.updated_at = utcnow()
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    await record_activity(
        db,
        user_id=actor_id,
        action="listing.payment_attached",
        target_type="listing",
        target_id=listing.id,
        detail={"payment_id": payment_id},
    )
    return listing
