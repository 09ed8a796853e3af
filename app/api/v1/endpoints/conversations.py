from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.models.user import User
from app.schemas.common import StatusResponse
from app.schemas.conversation import ConversationOut, ConversationStart, MessageIn, MessageOut
from app.services.auth import get_current_user
from app.services.conversations import (
    delete_message,
    get_or_create_conversation,
    list_conversations,
    list_messages,
    mark_read,
    post_message,
)

router = APIRouter()


@router.post("/listings/{listing_id}/conversations", response_model=ConversationOut)
async def start_conversation(
    listing_id: str,
    response: Response,
    body: ConversationStart | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ConversationOut:
    conv, created = await get_or_create_conversation(
        db, listing_id=listing_id, user=user, other_user_id=body.other_user_id if body else None
    )
    response.status_code = 201 if created else 200
    return ConversationOut.model_validate(conv)


@router.get("/conversations", response_model=list[ConversationOut])
async def my_conversations(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[ConversationOut]:
    return [ConversationOut.model_validate(c) for c in await list_conversations(db, user_id=user.id)]


@router.get("/conversations/{conversation_id}/messages", response_model=list[MessageOut])
async def get_messages(
    conversation_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    before: datetime | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[MessageOut]:
    rows = await list_messages(db, conversation_id=conversation_id, user_id=user.id, limit=limit, before=before)
    return [MessageOut.model_validate(m) for m in rows]


@router.post("/conversations/{conversation_id}/messages", response_model=MessageOut, status_code=201)
async def send_message(
    conversation_id: str,
    body: MessageIn,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MessageOut:
    msg = await post_message(db, conversation_id=conversation_id, sender_id=user.id, content=body.content)
    return MessageOut.model_validate(msg)


@router.post("/conversations/{conversation_id}/read")
async def read_conversation(
    conversation_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict:
    updated = await mark_read(db, conversation_id=conversation_id, user_id=user.id)
    return {"conversation_id": conversation_id, "marked_read": updated}


@router.delete("/conversations/{conversation_id}/messages/{message_id}", response_model=StatusResponse)
async def remove_message(
    conversation_id: str,
    message_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> StatusResponse:
    await delete_message(db, conversation_id=conversation_id, message_id=message_id, user_id=user.id)
    return StatusResponse(status="deleted", id=message_id)
