from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.models.user import User
from app.services.users import get_or_create_user


async def get_current_user(
    x_auth_subject: str | None = Header(default=None),
    x_auth_email: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
) -> User:
    # the gateway has already authenticated the caller; we only map the subject
    if not x_auth_subject:
        raise HTTPException(status_code=401, detail="Missing X-Auth-Subject")
    return await get_or_create_user(db, subject_id=x_auth_subject, email=x_auth_email)


async def get_optional_user(
    x_auth_subject: str | None = Header(default=None),
    x_auth_email: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    if not x_auth_subject:
        return None
    return await get_or_create_user(db, subject_id=x_auth_subject, email=x_auth_email)
