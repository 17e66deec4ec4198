"""Server and Subuser ORM models (panel records the billing core touches)."""

import uuid
from typing import Any

from sqlalchemy import JSON, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marketplace.models import Base, BaseModel


class Server(Base, BaseModel):
    """Game server owned by exactly one user.

    Provisioning is handled by the panel; billing reads `owner_id` and manages
    the subuser list as a side effect of split-billing transitions.
    """

    __tablename__ = "servers"

    uuid: Mapped[str] = mapped_column(
        String(36), nullable=False, unique=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(191), nullable=False)
    owner_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Current owner",
    )

    owner: Mapped["User"] = relationship("User", foreign_keys=[owner_id])  # noqa: F821
    subusers: Mapped[list["Subuser"]] = relationship(
        "Subuser",
        back_populates="server",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Server(id={self.id}, name={self.name!r}, owner_id={self.owner_id})>"


class Subuser(Base, BaseModel):
    """Operational access of a non-owner user to a server."""

    __tablename__ = "subusers"

    server_id: Mapped[int] = mapped_column(
        ForeignKey("servers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    permissions: Mapped[list[Any]] = mapped_column(
        JSON, nullable=False, default=list, comment='Permission scope, ["*"] for full access'
    )

    server: Mapped["Server"] = relationship("Server", back_populates="subusers")
    user: Mapped["User"] = relationship("User")  # noqa: F821

    __table_args__ = (UniqueConstraint("server_id", "user_id", name="uq_subuser_server_user"),)

    def __repr__(self) -> str:
        return f"<Subuser(server_id={self.server_id}, user_id={self.user_id})>"


__all__ = ["Server", "Subuser"]
