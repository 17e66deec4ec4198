"""CreditTransaction ORM model: one immutable entry of the credit ledger."""

import uuid
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Any

from sqlalchemy import JSON, Enum, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marketplace.models import Base, BaseModel, enum_values
from marketplace.services.locale_service import format_signed_amount


class TransactionType(PyEnum):
    """Stored type bucket of a ledger entry.

    Manual admin deductions are stored as ADMIN_GRANT with a negative amount.
    """

    ADMIN_GRANT = "admin_grant"
    PURCHASE = "purchase"
    REFUND = "refund"
    PAYMENT = "payment"


class TransactionReason(PyEnum):
    """Reason recorded on a ledger entry."""

    GIVEAWAY = "giveaway"
    REFUND = "refund"
    GIFT = "gift"
    PURCHASE = "purchase"
    PAYMENT = "payment"
    OTHER = "other"


class CreditTransaction(Base, BaseModel):
    """
    Ledger entry recording one signed change to a user's credit balance.

    Entries are append-only. For a given user, ordered by (created_at, id):
        balance_after[n] == balance_after[n-1] + amount[n]
    and the user's live `credits` equals the newest entry's balance_after.

    Externally referenced by `uuid`; the surrogate id is never exposed alone.
    """

    __tablename__ = "credit_transactions"

    uuid: Mapped[str] = mapped_column(
        String(36), nullable=False, unique=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        comment="Balance owner",
    )
    admin_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        comment="Acting admin for manual grants/deductions",
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        comment="Positive for credit, negative for debit",
    )
    balance_after: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        comment="Balance snapshot right after this entry",
    )
    type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType, native_enum=False, values_callable=enum_values),
        nullable=False,
        default=TransactionType.PAYMENT,
    )
    reason: Mapped[TransactionReason | None] = mapped_column(
        Enum(TransactionReason, native_enum=False, values_callable=enum_values),
        nullable=True,
    )
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    order_id: Mapped[int | None] = mapped_column(
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True,
        comment="Originating order, if any",
    )
    # "metadata" is reserved on declarative classes
    meta: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSON, nullable=True, comment="Acting admin identity snapshot"
    )

    user: Mapped["User"] = relationship("User", foreign_keys=[user_id])  # noqa: F821
    admin: Mapped["User | None"] = relationship("User", foreign_keys=[admin_id])  # noqa: F821
    order: Mapped["Order | None"] = relationship("Order", foreign_keys=[order_id])  # noqa: F821

    __table_args__ = (
        Index("idx_credit_transactions_user_created", "user_id", "created_at"),
        Index("idx_credit_transactions_type_created", "type", "created_at"),
    )

    @property
    def is_credit(self) -> bool:
        return self.amount > 0

    @property
    def is_debit(self) -> bool:
        return self.amount < 0

    @property
    def formatted_amount(self) -> str:
        return format_signed_amount(self.amount)

    def __repr__(self) -> str:
        return (
            f"<CreditTransaction(uuid={self.uuid}, user_id={self.user_id}, "
            f"type={self.type.value}, amount={self.amount}, balance_after={self.balance_after})>"
        )


__all__ = ["CreditTransaction", "TransactionType", "TransactionReason"]
