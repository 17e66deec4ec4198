"""Order ORM model (checkout record that credit payments are linked to)."""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import DateTime, Enum, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from marketplace.models import Base, BaseModel, enum_values


class OrderStatus(PyEnum):
    """Enumeration for order status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


def generate_order_number() -> str:
    return "ORD-" + uuid.uuid4().hex[:13].upper()


class Order(Base, BaseModel):
    """Marketplace order. Totals are computed by the checkout collaborator."""

    __tablename__ = "orders"

    uuid: Mapped[str] = mapped_column(
        String(36), nullable=False, unique=True, default=lambda: str(uuid.uuid4())
    )
    order_number: Mapped[str] = mapped_column(
        String(32), nullable=False, unique=True, default=generate_order_number
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, native_enum=False, values_callable=enum_values),
        nullable=False,
        default=OrderStatus.PENDING,
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, order_number={self.order_number}, total={self.total})>"


__all__ = ["Order", "OrderStatus", "generate_order_number"]
