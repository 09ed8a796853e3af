from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.models.user import User
from app.schemas.valuation import ValuationIn, ValuationOut
from app.services.auth import get_optional_user
from app.services.valuation import submit_valuation

router = APIRouter()


@router.post("/valuations", response_model=ValuationOut)
async def post_valuation(
    body: ValuationIn,
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
) -> ValuationOut:
    # guests identify themselves through the contact block
    return await submit_valuation(db, payload=body, user=user)
