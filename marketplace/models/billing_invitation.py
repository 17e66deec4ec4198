"""BillingInvitation ORM model: a time-bounded offer to share a server's cost."""

import secrets
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marketplace.models import Base, BaseModel, enum_values


class InvitationStatus(PyEnum):
    """Stored invitation status.

    EXPIRED is never written by the engine: expiry is computed from expires_at.
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


def generate_invitation_token() -> str:
    # 48 random bytes -> 64 URL-safe characters
    return secrets.token_urlsafe(48)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class BillingInvitation(Base, BaseModel):
    """
    Invitation from a server owner to an email address to co-pay the server.

    Lifecycle: pending -> accepted | declined | cancelled (each terminal).
    A stored "pending" status is only actionable while now <= expires_at;
    see is_pending(). The token is single-use: every transition away from
    pending makes it unusable.
    """

    __tablename__ = "billing_invitations"

    uuid: Mapped[str] = mapped_column(
        String(36), nullable=False, unique=True, default=lambda: str(uuid.uuid4())
    )
    token: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True, default=generate_invitation_token
    )
    server_id: Mapped[int] = mapped_column(
        ForeignKey("servers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    inviter_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    invitee_email: Mapped[str] = mapped_column(String(191), nullable=False)
    invitee_user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        comment="Filled on acceptance",
    )
    share_percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("50.00")
    )
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[InvitationStatus] = mapped_column(
        Enum(InvitationStatus, native_enum=False, values_callable=enum_values),
        nullable=False,
        default=InvitationStatus.PENDING,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    server: Mapped["Server"] = relationship("Server")  # noqa: F821
    inviter: Mapped["User"] = relationship("User", foreign_keys=[inviter_id])  # noqa: F821
    invitee: Mapped["User | None"] = relationship(  # noqa: F821
        "User", foreign_keys=[invitee_user_id]
    )

    __table_args__ = (
        Index("idx_invitation_email_status", "invitee_email", "status"),
        Index("idx_invitation_server_email", "server_id", "invitee_email"),
    )

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now > _as_utc(self.expires_at)

    def is_pending(self, now: datetime | None = None) -> bool:
        """True only when stored status is pending AND the invitation has not expired."""
        return self.status == InvitationStatus.PENDING and not self.is_expired(now)

    @property
    def effective_status(self) -> InvitationStatus:
        if self.status == InvitationStatus.PENDING and self.is_expired():
            return InvitationStatus.EXPIRED
        return self.status

    def __repr__(self) -> str:
        return (
            f"<BillingInvitation(uuid={self.uuid}, server_id={self.server_id}, "
            f"invitee_email={self.invitee_email}, status={self.status.value})>"
        )


__all__ = ["BillingInvitation", "InvitationStatus", "generate_invitation_token"]
