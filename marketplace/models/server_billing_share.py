"""ServerBillingShare ORM model: one user's percentage of a server's cost."""

from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import Boolean, Enum, ForeignKey, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marketplace.models import Base, BaseModel, enum_values


class ShareStatus(PyEnum):
    """Enumeration for billing share status."""

    ACTIVE = "active"
    PENDING = "pending"
    CANCELLED = "cancelled"


class ServerBillingShare(Base, BaseModel):
    """
    Percentage responsibility of one user for one server.

    At most one row per (server, user). With a co-payer present, the owner's
    active row and the co-payer's active row sum to 100.00.
    """

    __tablename__ = "server_billing_shares"

    server_id: Mapped[int] = mapped_column(
        ForeignKey("servers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    share_percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("50.00")
    )
    status: Mapped[ShareStatus] = mapped_column(
        Enum(ShareStatus, native_enum=False, values_callable=enum_values),
        nullable=False,
        default=ShareStatus.ACTIVE,
    )
    has_server_access: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    server: Mapped["Server"] = relationship("Server")  # noqa: F821
    user: Mapped["User"] = relationship("User")  # noqa: F821

    __table_args__ = (UniqueConstraint("server_id", "user_id", name="uq_share_server_user"),)

    def __repr__(self) -> str:
        return (
            f"<ServerBillingShare(server_id={self.server_id}, user_id={self.user_id}, "
            f"share_percentage={self.share_percentage}, status={self.status.value})>"
        )


__all__ = ["ServerBillingShare", "ShareStatus"]
