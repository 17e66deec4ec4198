"""Pydantic schemas for the admin credits API."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from marketplace.models import TransactionReason, TransactionType

T = TypeVar("T")


class GrantCreditsPayload(BaseModel):
    """Payload for POST /admin/credits/grant."""

    user_id: int = Field(..., description="User receiving the credits")
    amount: Decimal = Field(..., description="Amount between 0.01 and 10000")
    reason: str = Field(..., description="One of: giveaway, refund, gift")
    description: str | None = Field(None, description="Optional note (max 500 chars)")


class DeductCreditsPayload(BaseModel):
    """Payload for POST /admin/credits/deduct."""

    user_id: int = Field(..., description="User losing the credits")
    amount: Decimal = Field(..., description="Positive amount to deduct")
    reason: str | None = Field(None, description="Free-form reason")
    description: str | None = Field(None, description="Optional note (max 500 chars)")


class UserCreditsResponse(BaseModel):
    """A user with their live balance."""

    id: int
    uuid: str
    username: str
    email: str
    credits: Decimal

    model_config = ConfigDict(from_attributes=True)


class TransactionResponse(BaseModel):
    """One ledger entry."""

    uuid: str
    user_id: int
    amount: Decimal
    balance_after: Decimal
    type: TransactionType
    reason: TransactionReason | None = None
    description: str | None = None
    formatted_amount: str
    is_credit: bool
    is_debit: bool
    admin: dict[str, Any] | None = Field(None, validation_alias="meta")
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class RecentTransactionResponse(TransactionResponse):
    """Ledger entry with its owner, for the statistics feed."""

    user: UserCreditsResponse


class LedgerResponse(BaseModel):
    """Result of a grant or deduction."""

    transaction: TransactionResponse
    new_balance: Decimal


class PageResponse(BaseModel, Generic[T]):
    """One page of a listing."""

    data: list[T]
    current_page: int
    per_page: int
    total: int
    last_page: int


class CreditStatisticsResponse(BaseModel):
    """Aggregate view of the ledger."""

    total_credits_in_circulation: Decimal
    users_with_credits: int
    total_users: int
    credits_granted_30_days: Decimal
    credits_used_30_days: Decimal
    recent_transactions: list[RecentTransactionResponse]

    model_config = ConfigDict(from_attributes=True)
