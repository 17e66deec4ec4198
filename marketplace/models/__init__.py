"""SQLAlchemy base model with common fields and model exports."""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

# Base class for all models
Base = declarative_base()


class BaseModel:
    """Base model with common timestamp fields."""

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


def enum_values(enum_cls) -> list[str]:
    """Store enum values (not member names) in enum columns."""
    return [member.value for member in enum_cls]


# Import models to register them with Base (after Base is defined)
# This must be after Base declaration to avoid circular imports
from marketplace.models.user import User  # noqa: E402
from marketplace.models.server import Server, Subuser  # noqa: E402
from marketplace.models.order import Order, OrderStatus  # noqa: E402
from marketplace.models.credit_transaction import (  # noqa: E402
    CreditTransaction,
    TransactionReason,
    TransactionType,
)
from marketplace.models.billing_invitation import BillingInvitation, InvitationStatus  # noqa: E402
from marketplace.models.server_billing_share import ServerBillingShare, ShareStatus  # noqa: E402

__all__ = [
    "Base",
    "BaseModel",
    "enum_values",
    "User",
    "Server",
    "Subuser",
    "Order",
    "OrderStatus",
    "CreditTransaction",
    "TransactionType",
    "TransactionReason",
    "BillingInvitation",
    "InvitationStatus",
    "ServerBillingShare",
    "ShareStatus",
]
