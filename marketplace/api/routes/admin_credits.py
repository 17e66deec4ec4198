"""Admin credit management API routes."""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from marketplace.models import User
from marketplace.schemas.credits import (
    CreditStatisticsResponse,
    DeductCreditsPayload,
    GrantCreditsPayload,
    LedgerResponse,
    PageResponse,
    TransactionResponse,
    UserCreditsResponse,
)
from marketplace.services import get_db
from marketplace.services.auth_service import require_admin
from marketplace.services.credit_service import CreditService
from marketplace.services.validation import Page

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/credits", tags=["admin"])


def _page(page: Page, schema) -> dict:
    return {
        "data": [schema.model_validate(item) for item in page.items],
        "current_page": page.page,
        "per_page": page.per_page,
        "total": page.total,
        "last_page": page.last_page,
    }


@router.get("/users", response_model=PageResponse[UserCreditsResponse])
def list_users(
    search: str | None = Query(None, description="Substring of email or username"),
    page: int = Query(1, ge=1),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    List users with their credit balances, highest balance first.

    Returns:
        200: Page of users
        403: Caller is not an administrator
    """
    result = CreditService(db).list_users(search=search, page=page)
    return _page(result, UserCreditsResponse)


@router.get("/users/{user_id}/transactions", response_model=PageResponse[TransactionResponse])
def user_transactions(
    user_id: int,
    page: int = Query(1, ge=1),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Ledger history of one user, newest first.

    Returns:
        200: Page of ledger entries
        404: Unknown user
    """
    result = CreditService(db).get_history(user_id, page=page)
    return _page(result, TransactionResponse)


@router.post("/grant", response_model=LedgerResponse)
def grant_credits(
    payload: GrantCreditsPayload,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> LedgerResponse:
    """
    Grant credits to a user.

    Returns:
        200: {transaction, new_balance}
        400: Amount or reason out of range
        404: Unknown user
        500: Write failed and was rolled back
    """
    result = CreditService(db).grant(
        payload.user_id,
        payload.amount,
        payload.reason,
        description=payload.description,
        admin=admin,
    )
    return LedgerResponse(
        transaction=TransactionResponse.model_validate(result.transaction),
        new_balance=result.new_balance,
    )


@router.post("/deduct", response_model=LedgerResponse)
def deduct_credits(
    payload: DeductCreditsPayload,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> LedgerResponse:
    """
    Deduct credits from a user.

    Returns:
        200: {transaction, new_balance}
        400: Insufficient credits or invalid amount
        404: Unknown user
        500: Write failed and was rolled back
    """
    result = CreditService(db).deduct(
        payload.user_id,
        payload.amount,
        reason=payload.reason,
        description=payload.description,
        admin=admin,
    )
    return LedgerResponse(
        transaction=TransactionResponse.model_validate(result.transaction),
        new_balance=result.new_balance,
    )


@router.get("/statistics", response_model=CreditStatisticsResponse)
def credit_statistics(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> CreditStatisticsResponse:
    """Credits in circulation, 30-day flows and the latest ledger entries."""
    stats = CreditService(db).statistics()
    logger.info(f"Admin {admin.id} viewed credit statistics")
    return CreditStatisticsResponse.model_validate(stats)
