from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class PaymentCallbackIn(BaseModel):
    """Completed-transaction notification from the payment processor."""

    provider_ref: str = Field(..., min_length=1, max_length=200)
    user_id: str
    payment_type: Literal["listing_unlock", "subscription"]
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    payment_status: str = Field(default="completed", max_length=20)


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    payment_type: str
    amount: Decimal
    payment_status: str
    provider_ref: str
    created_at: datetime
