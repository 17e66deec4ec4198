"""Credit ledger service: balances and their append-only audit trail.

Every balance change goes through CreditService, which in one transaction:
- locks the user's row (SELECT ... FOR UPDATE; BEGIN IMMEDIATE on SQLite)
- checks the resulting balance stays non-negative
- updates users.credits
- appends a CreditTransaction with the new balance_after

If any step fails the transaction is rolled back, so the balance and the
ledger never disagree.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from marketplace.config import settings
from marketplace.errors import (
    AppError,
    InsufficientFundsError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from marketplace.models import (
    CreditTransaction,
    Order,
    TransactionReason,
    TransactionType,
    User,
)
from marketplace.services import begin_write
from marketplace.services.validation import (
    Page,
    to_money,
    utcnow,
    validate_amount,
    validate_description,
)

logger = logging.getLogger(__name__)


class EntryKind(Enum):
    """What a ledger mutation means, independent of how it is stored."""

    GRANT = "grant"
    DEDUCT = "deduct"
    PURCHASE = "purchase"
    REFUND = "refund"
    PAYMENT = "payment"


# kind -> (stored type, sign of amount)
# GRANT and DEDUCT share the admin_grant bucket; only the sign differs.
ENTRY_RULES: dict[EntryKind, tuple[TransactionType, int]] = {
    EntryKind.GRANT: (TransactionType.ADMIN_GRANT, 1),
    EntryKind.DEDUCT: (TransactionType.ADMIN_GRANT, -1),
    EntryKind.PURCHASE: (TransactionType.PURCHASE, -1),
    EntryKind.REFUND: (TransactionType.REFUND, 1),
    EntryKind.PAYMENT: (TransactionType.PAYMENT, -1),
}

GRANT_REASONS = frozenset(
    {TransactionReason.GIVEAWAY, TransactionReason.REFUND, TransactionReason.GIFT}
)


@dataclass
class LedgerResult:
    """Outcome of a balance mutation."""

    transaction: CreditTransaction
    new_balance: Decimal


@dataclass
class CreditApplication:
    """Credits applied to an order during checkout."""

    credits_used: Decimal
    remaining_amount: Decimal
    new_balance: Decimal
    transaction: CreditTransaction | None = None


@dataclass
class CreditStatistics:
    """Aggregate view of the ledger for the admin dashboard."""

    total_credits_in_circulation: Decimal
    users_with_credits: int
    total_users: int
    credits_granted_30_days: Decimal
    credits_used_30_days: Decimal
    recent_transactions: list[CreditTransaction] = field(default_factory=list)


def admin_snapshot(admin: User | None) -> dict | None:
    """Identity of the acting admin, frozen into the entry's metadata."""
    if admin is None:
        return None
    return {"admin_email": admin.email, "admin_username": admin.username}


class CreditService:
    """Service for credit balance mutations and ledger queries."""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def grant(
        self,
        user_id: int,
        amount,
        reason: str | TransactionReason,
        description: str | None = None,
        admin: User | None = None,
    ) -> LedgerResult:
        """Grant credits to a user.

        Args:
            user_id: Receiving user
            amount: Amount within the configured grant bounds (0.01-10000)
            reason: One of giveaway, refund, gift
            description: Optional note (max 500 chars)
            admin: Acting admin

        Returns:
            LedgerResult with the admin_grant entry and the new balance

        Raises:
            ValidationError: Amount or reason out of range
            NotFoundError: User does not exist
        """
        amount = validate_amount(
            amount, minimum=settings.credit_grant_min, maximum=settings.credit_grant_max
        )
        grant_reason = self._parse_reason(reason)
        if grant_reason not in GRANT_REASONS:
            raise ValidationError("Reason must be one of: giveaway, refund, gift")
        description = validate_description(description)

        result = self._mutate(
            user_id,
            EntryKind.GRANT,
            amount,
            reason=grant_reason,
            description=description,
            admin=admin,
        )
        logger.info(
            f"Granted {amount} credits to user {user_id} "
            f"(reason={grant_reason.value}, admin={admin.id if admin else None}, "
            f"balance={result.new_balance})"
        )
        return result

    def deduct(
        self,
        user_id: int,
        amount,
        reason: str | None = None,
        description: str | None = None,
        admin: User | None = None,
    ) -> LedgerResult:
        """Deduct credits from a user.

        A reason matching a known ledger reason is stored as-is. Anything else
        (including no reason) is stored as "other", and free-form reason text
        becomes the description when none is given.

        Raises:
            ValidationError: Amount not positive
            NotFoundError: User does not exist
            InsufficientFundsError: Balance below amount (nothing written)
        """
        amount = validate_amount(amount)
        reason_text = (reason or "").strip()
        try:
            stored_reason = TransactionReason(reason_text)
        except ValueError:
            stored_reason = TransactionReason.OTHER
            description = description or reason_text or None
        description = validate_description(description)

        result = self._mutate(
            user_id,
            EntryKind.DEDUCT,
            amount,
            reason=stored_reason,
            description=description,
            admin=admin,
        )
        logger.info(
            f"Deducted {amount} credits from user {user_id} "
            f"(admin={admin.id if admin else None}, balance={result.new_balance})"
        )
        return result

    def debit_for_purchase(self, user_id: int, amount, order: Order) -> LedgerResult:
        """Spend credits toward an order.

        The caller clamps amount to min(balance, order total); an amount above
        the balance fails like a deduction.

        Raises:
            ValidationError: Amount not positive
            NotFoundError: User does not exist
            InsufficientFundsError: Balance below amount
        """
        amount = validate_amount(amount)
        result = self._mutate(
            user_id,
            EntryKind.PAYMENT,
            amount,
            reason=TransactionReason.PAYMENT,
            description=f"Payment for order {order.order_number}",
            order=order,
        )
        logger.info(
            f"User {user_id} paid {amount} credits for order {order.order_number} "
            f"(balance={result.new_balance})"
        )
        return result

    def refund(
        self,
        user_id: int,
        amount,
        order: Order | None = None,
        description: str | None = None,
    ) -> LedgerResult:
        """Return credits to a user, optionally linked to the refunded order."""
        amount = validate_amount(amount)
        if description is None and order is not None:
            description = f"Refund for order {order.order_number}"
        description = validate_description(description)

        result = self._mutate(
            user_id,
            EntryKind.REFUND,
            amount,
            reason=TransactionReason.REFUND,
            description=description,
            order=order,
        )
        logger.info(f"Refunded {amount} credits to user {user_id} (balance={result.new_balance})")
        return result

    def apply_credits_to_order(self, user_id: int, order: Order) -> CreditApplication:
        """Use as much of the user's balance as the order total allows.

        Clamping happens under the row lock, so a concurrent deduction cannot
        push the debit above the balance.

        Returns:
            CreditApplication; transaction is None when no credits were used
        """
        total = to_money(order.total)
        order_number = order.order_number
        try:
            begin_write(self.db)
            user = self._lock_user(user_id)
            balance = to_money(user.credits)
            credits_used = min(balance, total)
            if credits_used <= 0:
                self.db.rollback()
                return CreditApplication(
                    credits_used=Decimal("0.00"),
                    remaining_amount=total,
                    new_balance=balance,
                )
            entry = self._append_entry(
                user,
                EntryKind.PAYMENT,
                credits_used,
                reason=TransactionReason.PAYMENT,
                description=f"Payment for order {order_number}",
                order=order,
            )
            self.db.commit()
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to apply credits to order {order_number}: {e}", exc_info=True)
            raise InternalError("Failed to apply credits") from e

        self.db.refresh(entry)
        logger.info(
            f"Applied {credits_used} credits from user {user_id} to order {order_number}"
        )
        return CreditApplication(
            credits_used=credits_used,
            remaining_amount=total - credits_used,
            new_balance=entry.balance_after,
            transaction=entry,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_balance(self, user_id: int) -> Decimal:
        user = self.db.get(User, user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        return to_money(user.credits)

    def get_history(
        self, user_id: int, page: int = 1, per_page: int | None = None
    ) -> Page[CreditTransaction]:
        """Ledger entries for a user, newest first."""
        if not self.db.get(User, user_id):
            raise NotFoundError(f"User {user_id} not found")
        per_page = per_page or settings.page_size
        page = max(page, 1)

        total = self.db.execute(
            select(func.count(CreditTransaction.id)).where(CreditTransaction.user_id == user_id)
        ).scalar_one()
        items = (
            self.db.execute(
                select(CreditTransaction)
                .options(selectinload(CreditTransaction.admin))
                .where(CreditTransaction.user_id == user_id)
                .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
                .offset((page - 1) * per_page)
                .limit(per_page)
            )
            .scalars()
            .all()
        )
        return Page(items=list(items), total=total, page=page, per_page=per_page)

    def list_users(
        self, search: str | None = None, page: int = 1, per_page: int | None = None
    ) -> Page[User]:
        """Users with their balances, richest first, optionally filtered by email/username."""
        per_page = per_page or settings.page_size
        page = max(page, 1)

        stmt = select(User)
        count_stmt = select(func.count(User.id))
        if search:
            pattern = f"%{search.strip()}%"
            condition = or_(User.email.ilike(pattern), User.username.ilike(pattern))
            stmt = stmt.where(condition)
            count_stmt = count_stmt.where(condition)

        total = self.db.execute(count_stmt).scalar_one()
        items = (
            self.db.execute(
                stmt.order_by(User.credits.desc(), User.id)
                .offset((page - 1) * per_page)
                .limit(per_page)
            )
            .scalars()
            .all()
        )
        return Page(items=list(items), total=total, page=page, per_page=per_page)

    def statistics(self, now: datetime | None = None) -> CreditStatistics:
        now = now or utcnow()
        since = now - timedelta(days=settings.statistics_window_days)

        total_credits = self.db.execute(select(func.coalesce(func.sum(User.credits), 0))).scalar_one()
        users_with_credits = self.db.execute(
            select(func.count(User.id)).where(User.credits > 0)
        ).scalar_one()
        total_users = self.db.execute(select(func.count(User.id))).scalar_one()

        granted = self.db.execute(
            select(func.coalesce(func.sum(CreditTransaction.amount), 0)).where(
                CreditTransaction.type == TransactionType.ADMIN_GRANT,
                CreditTransaction.amount > 0,
                CreditTransaction.created_at >= since,
            )
        ).scalar_one()
        used = self.db.execute(
            select(func.coalesce(func.sum(CreditTransaction.amount), 0)).where(
                CreditTransaction.type == TransactionType.PAYMENT,
                CreditTransaction.created_at >= since,
            )
        ).scalar_one()

        recent = (
            self.db.execute(
                select(CreditTransaction)
                .options(
                    selectinload(CreditTransaction.user),
                    selectinload(CreditTransaction.admin),
                )
                .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
                .limit(10)
            )
            .scalars()
            .all()
        )

        return CreditStatistics(
            total_credits_in_circulation=to_money(total_credits),
            users_with_credits=users_with_credits,
            total_users=total_users,
            credits_granted_30_days=to_money(granted),
            credits_used_30_days=abs(to_money(used)),
            recent_transactions=list(recent),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_reason(reason: str | TransactionReason) -> TransactionReason:
        if isinstance(reason, TransactionReason):
            return reason
        try:
            return TransactionReason((reason or "").strip())
        except ValueError as e:
            raise ValidationError(f"Unknown reason: {reason!r}") from e

    def _lock_user(self, user_id: int) -> User:
        user = self.db.execute(
            select(User)
            .where(User.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def _append_entry(
        self,
        user: User,
        kind: EntryKind,
        amount: Decimal,
        reason: TransactionReason | None = None,
        description: str | None = None,
        admin: User | None = None,
        order: Order | None = None,
    ) -> CreditTransaction:
        stored_type, sign = ENTRY_RULES[kind]
        signed_amount = amount * sign
        new_balance = to_money(user.credits) + signed_amount
        if new_balance < 0:
            logger.warning(
                f"Insufficient credits for user {user.id}: balance={user.credits}, requested={amount}"
            )
            raise InsufficientFundsError()

        user.credits = new_balance
        entry = CreditTransaction(
            user_id=user.id,
            admin_id=admin.id if admin else None,
            amount=signed_amount,
            balance_after=new_balance,
            type=stored_type,
            reason=reason,
            description=description,
            order_id=order.id if order else None,
            meta=admin_snapshot(admin),
        )
        self.db.add(entry)
        return entry

    def _mutate(
        self,
        user_id: int,
        kind: EntryKind,
        amount: Decimal,
        **entry_fields,
    ) -> LedgerResult:
        """Lock the user, append one entry and commit, or roll back everything."""
        try:
            begin_write(self.db)
            user = self._lock_user(user_id)
            entry = self._append_entry(user, kind, amount, **entry_fields)
            self.db.commit()
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Ledger write ({kind.value}) failed for user {user_id}: {e}", exc_info=True)
            raise InternalError(f"Failed to {kind.value} credits") from e

        self.db.refresh(entry)
        return LedgerResult(transaction=entry, new_balance=entry.balance_after)


__all__ = [
    "CreditService",
    "CreditApplication",
    "CreditStatistics",
    "EntryKind",
    "ENTRY_RULES",
    "GRANT_REASONS",
    "LedgerResult",
    "admin_snapshot",
]
