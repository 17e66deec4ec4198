"""Shared money and time helpers used by the ledger and split-billing services."""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Generic, TypeVar

from marketplace.errors import ValidationError

CENT = Decimal("0.01")
HUNDRED = Decimal("100.00")
# Largest value a Numeric(10, 2) column holds
MAX_AMOUNT = Decimal("99999999.99")

T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_money(value) -> Decimal:
    """Coerce a numeric value to a Decimal rounded to cents.

    Floats are converted through str() so 0.1 stays 0.10.

    Raises:
        ValidationError: If value is not numeric or too large to hold cents
    """
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
        if not amount.is_finite():
            raise ValidationError(f"Invalid amount: {value!r}")
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid amount: {value!r}") from e


def validate_amount(
    value,
    minimum: Decimal = CENT,
    maximum: Decimal | None = None,
) -> Decimal:
    """Validate a positive monetary amount against inclusive bounds.

    Args:
        value: Raw amount
        minimum: Smallest accepted amount
        maximum: Largest accepted amount (None for the column limit, 99999999.99)

    Returns:
        Amount as Decimal rounded to cents

    Raises:
        ValidationError: If amount is not numeric or out of range
    """
    amount = to_money(value)
    if amount < minimum:
        raise ValidationError(f"Amount must be at least {minimum}")
    if maximum is None or maximum > MAX_AMOUNT:
        maximum = MAX_AMOUNT
    if amount > maximum:
        raise ValidationError(f"Amount may not be greater than {maximum}")
    return amount


def validate_percentage(value) -> Decimal:
    """Validate a share percentage in the inclusive range 0-100."""
    percentage = to_money(value)
    if percentage < 0 or percentage > HUNDRED:
        raise ValidationError("Share percentage must be between 0 and 100")
    return percentage


def validate_description(value: str | None, max_length: int = 500) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"Description may not be greater than {max_length} characters")
    return value or None


def normalize_email(value: str) -> str:
    return value.strip().lower()


@dataclass
class Page(Generic[T]):
    """One page of a listing."""

    items: list[T]
    total: int
    page: int
    per_page: int

    @property
    def last_page(self) -> int:
        return max(1, -(-self.total // self.per_page))


__all__ = [
    "CENT",
    "HUNDRED",
    "MAX_AMOUNT",
    "Page",
    "utcnow",
    "to_money",
    "validate_amount",
    "validate_percentage",
    "validate_description",
    "normalize_email",
]
