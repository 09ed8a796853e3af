from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.schemas.payment import PaymentCallbackIn, PaymentOut
from app.services.internal_admin import require_internal_admin
from app.services.payments import record_payment

router = APIRouter()


@router.post("/payments/callback", response_model=PaymentOut, dependencies=[Depends(require_internal_admin)])
async def payment_callback(body: PaymentCallbackIn, response: Response, db: AsyncSession = Depends(get_db)) -> PaymentOut:
    payment, created = await record_payment(
        db,
        provider_ref=body.provider_ref,
        user_id=body.user_id,
        payment_type=body.payment_type,
        amount=body.amount,
        payment_status=body.payment_status,
    )
    response.status_code = 201 if created else 200
    return PaymentOut.model_validate(payment)
