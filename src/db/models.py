"""SQLAlchemy ORM models read by the AML engine."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class PaymentTransaction(Base):
    """Settled card transactions, already scoped to a card context hash."""

    __tablename__ = "payment_transactions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    transaction_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    card_context_hash: Mapped[str] = mapped_column(String, index=True)
    # Integer minor units; refunds are negative
    amount: Mapped[int] = mapped_column(BigInteger)
    currency: Mapped[str] = mapped_column(String, default="USD")
    merchant_name: Mapped[str | None] = mapped_column(String, nullable=True)
    merchant_category: Mapped[str | None] = mapped_column(String, nullable=True)
    transaction_type: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )
