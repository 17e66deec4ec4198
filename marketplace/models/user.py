"""User ORM model: the panel account and its spendable credit balance."""

import uuid
from decimal import Decimal

from sqlalchemy import Boolean, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from marketplace.models import Base, BaseModel


class User(Base, BaseModel):
    """
    Panel user as seen by the billing core.

    Identity and login live in the hosting control panel. This table carries the
    fields billing relies on: email (invitations are addressed by email), the
    admin flag, and the credit balance.

    The `credits` column is the live Balance. It is only ever written by
    CreditService inside the same transaction that appends a CreditTransaction,
    so it always equals the latest entry's balance_after.
    """

    __tablename__ = "users"

    uuid: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
        unique=True,
        default=lambda: str(uuid.uuid4()),
        comment="External identifier",
    )
    username: Mapped[str] = mapped_column(
        String(191), nullable=False, unique=True, comment="Panel username"
    )
    email: Mapped[str] = mapped_column(
        String(191), nullable=False, unique=True, comment="Login email, invitation address"
    )
    name_first: Mapped[str | None] = mapped_column(String(191), nullable=True)
    name_last: Mapped[str | None] = mapped_column(String(191), nullable=True)

    credits: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Spendable credit balance",
    )

    is_administrator: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, comment="Can manage credits"
    )

    __table_args__ = (Index("idx_users_credits", "credits"),)

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.name_first, self.name_last) if part) or self.username

    def __repr__(self) -> str:
        return (
            f"<User(id={self.id}, username={self.username}, email={self.email}, "
            f"credits={self.credits}, admin={self.is_administrator})>"
        )


__all__ = ["User"]
