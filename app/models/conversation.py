from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.ids import id_default
from app.models.base import Base, CreatedAtMixin, utcnow


class Conversation(CreatedAtMixin, Base):
    __tablename__ = "conversations"
    __table_args__ = (
        # participants are stored sorted, so (a, b) and (b, a) hit the same row
        UniqueConstraint("listing_id", "user_low_id", "user_high_id", name="uq_conversation_listing_pair"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=id_default("cnv"))
    listing_id: Mapped[str] = mapped_column(String, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False)
    user_low_id: Mapped[str] = mapped_column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    user_high_id: Mapped[str] = mapped_column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    def has_participant(self, user_id: str) -> bool:
        return user_id in (self.user_low_id, self.user_high_id)


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_conv_sent", "conversation_id", "sent_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=id_default("msg"))
    conversation_id: Mapped[str] = mapped_column(String, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    sender_id: Mapped[str] = mapped_column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    content: Mapped[str] = mapped_column(Text, nullable=False)
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
