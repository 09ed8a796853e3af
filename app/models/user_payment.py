from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.ids import id_default
from app.models.base import Base, CreatedAtMixin

PAYMENT_TYPES = ("listing_unlock", "subscription")
PAYMENT_COMPLETED = "completed"


class UserPayment(CreatedAtMixin, Base):
    __tablename__ = "user_payments"
    __table_args__ = (
        UniqueConstraint("provider_ref", name="uq_user_payment_provider_ref"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=id_default("pay"))
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    payment_type: Mapped[str] = mapped_column(String(20), nullable=False)  # listing_unlock | subscription
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False)

    # processor transaction id; repeated callbacks carry the same value
    provider_ref: Mapped[str] = mapped_column(String(200), nullable=False)
