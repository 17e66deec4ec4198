"""Split-billing service: invitations to co-pay a server and the resulting shares.

Invitation lifecycle:
    send -> pending -> accepted | declined | cancelled

Expiry is never stored. An invitation whose expires_at has passed is treated
as expired by every transition, whatever its status column says.

Share model: the owner plus at most one co-payer. Shares are keyed by
(server, user); after every change the owner's row is rebalanced so that the
active rows sum to 100.00.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from marketplace.config import settings
from marketplace.errors import (
    AppError,
    AuthorizationError,
    ConflictError,
    InternalError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from marketplace.models import (
    BillingInvitation,
    InvitationStatus,
    Server,
    ServerBillingShare,
    ShareStatus,
    User,
)
from marketplace.services import begin_write
from marketplace.services.notification_service import (
    NotificationService,
    get_notification_service,
)
from marketplace.services.server_access_service import FULL_ACCESS, ServerAccessService
from marketplace.services.validation import (
    HUNDRED,
    normalize_email,
    to_money,
    utcnow,
    validate_description,
    validate_percentage,
)

logger = logging.getLogger(__name__)


@dataclass
class AcceptResult:
    """Outcome of an accepted invitation."""

    invitation: BillingInvitation
    server: Server
    share_percentage: Decimal


def is_actionable(invitation: BillingInvitation, now: datetime | None = None) -> bool:
    """Whether the invitation may still change state (pending and not expired)."""
    return invitation.is_pending(now)


def compute_charge_share(share: ServerBillingShare, total_amount) -> Decimal:
    """Portion of a recurring charge owed by a share holder.

    Not rounded: the billing cycle decides how to settle fractions of a cent.
    """
    return to_money(total_amount) * Decimal(share.share_percentage) / HUNDRED


class SplitBillingService:
    """Service for billing invitations and server billing shares."""

    def __init__(
        self,
        db: Session,
        notifier: Optional[NotificationService] = None,
        dispatch: Optional[Callable[..., Any]] = None,
    ):
        """Initialize split-billing service.

        Args:
            db: Database session
            notifier: Notification service (defaults to the global one)
            dispatch: Runs delivery outside the request, e.g. BackgroundTasks.add_task.
                Delivery runs inline when omitted.
        """
        self.db = db
        self.notifier = notifier or get_notification_service()
        self.dispatch = dispatch
        self.access = ServerAccessService(db)

    # ------------------------------------------------------------------
    # Invitations
    # ------------------------------------------------------------------

    def send_invitation(
        self,
        server_id: int,
        inviter: User,
        email: str,
        message: str | None = None,
        now: datetime | None = None,
    ) -> BillingInvitation:
        """Invite an email address to split a server's billing.

        Raises:
            NotFoundError: Server does not exist
            AuthorizationError: Inviter is not the server owner
            ValidationError: Bad email or message, or inviting oneself
            ConflictError: Already sharing, or a pending invitation exists
        """
        now = now or utcnow()
        email = normalize_email(email or "")
        if "@" not in email:
            raise ValidationError("A valid email address is required")
        message = validate_description(message)

        try:
            begin_write(self.db)
            server = self._lock_server(server_id)
            if server.owner_id != inviter.id:
                logger.warning(
                    f"User {inviter.id} tried to invite to server {server_id} they do not own"
                )
                raise AuthorizationError("Only server owner can send invitations")
            if email == normalize_email(inviter.email):
                raise ValidationError("You cannot invite yourself")

            already_sharing = self.db.execute(
                select(ServerBillingShare.id)
                .join(User, User.id == ServerBillingShare.user_id)
                .where(
                    ServerBillingShare.server_id == server_id,
                    ServerBillingShare.status == ShareStatus.ACTIVE,
                    func.lower(User.email) == email,
                )
            ).first()
            if already_sharing:
                raise ConflictError("This user is already sharing billing for this server")

            pending = self.db.execute(
                select(BillingInvitation).where(
                    BillingInvitation.server_id == server_id,
                    BillingInvitation.invitee_email == email,
                    BillingInvitation.status == InvitationStatus.PENDING,
                )
            ).scalars()
            if any(invitation.is_pending(now) for invitation in pending):
                raise ConflictError("There is already a pending invitation for this email")

            invitation = BillingInvitation(
                server_id=server_id,
                inviter_id=inviter.id,
                invitee_email=email,
                share_percentage=validate_percentage(settings.invitation_share_percentage),
                message=message,
                status=InvitationStatus.PENDING,
                expires_at=now + timedelta(days=settings.invitation_ttl_days),
            )
            self.db.add(invitation)
            self.db.commit()
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error sending invitation for server {server_id}: {e}", exc_info=True)
            raise InternalError("Failed to send invitation") from e

        self.db.refresh(invitation)
        logger.info(
            f"Invitation {invitation.uuid} sent for server {server_id} "
            f"by user {inviter.id} to {email}"
        )
        self._notify_invitee(invitation)
        return invitation

    def list_invitations(self, user: User, now: datetime | None = None) -> list[BillingInvitation]:
        """Actionable invitations addressed to the user's email."""
        invitations = (
            self.db.execute(
                select(BillingInvitation)
                .options(
                    selectinload(BillingInvitation.server),
                    selectinload(BillingInvitation.inviter),
                )
                .where(
                    BillingInvitation.invitee_email == normalize_email(user.email),
                    BillingInvitation.status == InvitationStatus.PENDING,
                )
                .order_by(BillingInvitation.created_at.desc())
            )
            .scalars()
            .all()
        )
        return [invitation for invitation in invitations if invitation.is_pending(now)]

    def accept_invitation(
        self, token: str, user: User, now: datetime | None = None
    ) -> AcceptResult:
        """Join a server's billing through an invitation.

        In one transaction: marks the invitation accepted, activates the
        joiner's share, rebalances the owner's share and grants the joiner
        full access to the server.

        Raises:
            NotFoundError: Unknown token
            InvalidStateError: Invitation not pending or expired
            AuthorizationError: Invitation addressed to another email
            ConflictError: Server already has another co-payer
        """
        now = now or utcnow()
        invitation_id = None
        try:
            begin_write(self.db)
            invitation = self._get_by_token(token)
            invitation_id = invitation.id
            self._check_invitee(invitation, user, now)

            server = self._lock_server(invitation.server_id)
            invitation = self._lock_invitation(invitation_id)
            if not invitation.is_pending(now):
                raise InvalidStateError()
            if user.id == server.owner_id:
                raise ConflictError("You already own this server")

            other_payer = self.db.execute(
                select(ServerBillingShare.id).where(
                    ServerBillingShare.server_id == server.id,
                    ServerBillingShare.status == ShareStatus.ACTIVE,
                    ServerBillingShare.user_id.not_in([server.owner_id, user.id]),
                )
            ).first()
            if other_payer:
                raise ConflictError("This server already has a billing partner")

            invitation.status = InvitationStatus.ACCEPTED
            invitation.invitee_user_id = user.id
            invitation.accepted_at = now

            share = self._get_share(server.id, user.id)
            if share is None:
                share = ServerBillingShare(server_id=server.id, user_id=user.id)
                self.db.add(share)
            share.share_percentage = invitation.share_percentage
            share.status = ShareStatus.ACTIVE
            share.has_server_access = True
            self.db.flush()

            self.rebalance_to_owner_default(server, create_missing=True)
            self.access.grant_access(server.id, user.id, FULL_ACCESS)
            self.db.commit()
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error accepting invitation {invitation_id}: {e}", exc_info=True)
            raise InternalError("Failed to accept invitation") from e

        self.db.refresh(invitation)
        logger.info(
            f"User {user.id} joined billing of server {server.id} "
            f"with {invitation.share_percentage}% (invitation {invitation.uuid})"
        )
        return AcceptResult(
            invitation=invitation,
            server=server,
            share_percentage=invitation.share_percentage,
        )

    def decline_invitation(
        self, token: str, user: User, now: datetime | None = None
    ) -> BillingInvitation:
        """Decline an invitation. No shares change.

        Raises:
            NotFoundError: Unknown token
            InvalidStateError: Invitation not pending or expired
            AuthorizationError: Invitation addressed to another email
        """
        now = now or utcnow()

        def find() -> BillingInvitation:
            invitation = self._get_by_token(token)
            self._check_invitee(invitation, user, now)
            return invitation

        return self._finish(find, InvitationStatus.DECLINED, now)

    def cancel_invitation(
        self, invitation_uuid: str, inviter: User, now: datetime | None = None
    ) -> BillingInvitation:
        """Withdraw a pending invitation (original inviter only).

        Raises:
            NotFoundError: Unknown invitation
            AuthorizationError: Caller is not the inviter
            InvalidStateError: Invitation not pending or expired
        """
        now = now or utcnow()

        def find() -> BillingInvitation:
            invitation = self.db.execute(
                select(BillingInvitation).where(BillingInvitation.uuid == invitation_uuid)
            ).scalar_one_or_none()
            if not invitation:
                raise NotFoundError("Invitation not found")
            if invitation.inviter_id != inviter.id:
                logger.warning(f"User {inviter.id} tried to cancel invitation {invitation_uuid}")
                raise AuthorizationError()
            if not invitation.is_pending(now):
                raise InvalidStateError("Cannot cancel this invitation")
            return invitation

        return self._finish(find, InvitationStatus.CANCELLED, now)

    # ------------------------------------------------------------------
    # Shares
    # ------------------------------------------------------------------

    def get_server_shares(self, server_id: int, requester: User) -> list[ServerBillingShare]:
        """All share rows of a server, visible to its owner and collaborators.

        Raises:
            NotFoundError: Server does not exist
            AuthorizationError: Requester neither owns nor collaborates on the server
        """
        server = self.access.get_server(server_id)
        if not server:
            raise NotFoundError(f"Server {server_id} not found")
        if server.owner_id != requester.id and not self.access.is_collaborator(
            server_id, requester.id
        ):
            raise AuthorizationError()

        return list(
            self.db.execute(
                select(ServerBillingShare)
                .options(selectinload(ServerBillingShare.user))
                .where(ServerBillingShare.server_id == server_id)
                .order_by(ServerBillingShare.id)
            )
            .scalars()
            .all()
        )

    def remove_share(self, server_id: int, target_user_id: int, requester: User) -> None:
        """Remove a co-payer: delete their share, revoke access, give the owner 100%.

        Raises:
            NotFoundError: Server or share does not exist
            AuthorizationError: Requester is not the server owner
            ValidationError: Target is the owner
        """
        try:
            begin_write(self.db)
            server = self._lock_server(server_id)
            if server.owner_id != requester.id:
                logger.warning(
                    f"User {requester.id} tried to remove a share on server {server_id}"
                )
                raise AuthorizationError("Only server owner can remove billing shares")
            if target_user_id == server.owner_id:
                raise ValidationError("The owner's share cannot be removed")

            share = self._get_share(server_id, target_user_id)
            if share is None:
                raise NotFoundError("Billing share not found")

            self.db.delete(share)
            self.access.revoke_access(server_id, target_user_id)
            self.db.flush()
            self.rebalance_to_owner_default(server, create_missing=False)
            self.db.commit()
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Error removing user {target_user_id} from server {server_id}: {e}", exc_info=True
            )
            raise InternalError("Failed to remove user") from e

        logger.info(f"User {target_user_id} removed from billing of server {server_id}")

    def rebalance_to_owner_default(
        self, server: Server, create_missing: bool = False
    ) -> ServerBillingShare | None:
        """Give the owner whatever the active co-payer shares leave of 100%.

        Stages changes only; the caller commits. A missing owner row is
        created when create_missing is set, otherwise left alone.
        """
        others = self.db.execute(
            select(func.coalesce(func.sum(ServerBillingShare.share_percentage), 0)).where(
                ServerBillingShare.server_id == server.id,
                ServerBillingShare.user_id != server.owner_id,
                ServerBillingShare.status == ShareStatus.ACTIVE,
            )
        ).scalar_one()
        owner_percentage = HUNDRED - to_money(others)
        if owner_percentage < 0:
            raise ConflictError("Billing shares exceed 100%")

        owner_share = self._get_share(server.id, server.owner_id)
        if owner_share is None:
            if not create_missing:
                logger.warning(f"Server {server.id} has no owner share row, nothing to rebalance")
                return None
            owner_share = ServerBillingShare(server_id=server.id, user_id=server.owner_id)
            self.db.add(owner_share)

        owner_share.share_percentage = owner_percentage
        owner_share.status = ShareStatus.ACTIVE
        owner_share.has_server_access = True
        return owner_share

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock_server(self, server_id: int) -> Server:
        server = self.db.execute(
            select(Server)
            .where(Server.id == server_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if not server:
            raise NotFoundError(f"Server {server_id} not found")
        return server

    def _lock_invitation(self, invitation_id: int) -> BillingInvitation:
        return self.db.execute(
            select(BillingInvitation)
            .where(BillingInvitation.id == invitation_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()

    def _get_by_token(self, token: str) -> BillingInvitation:
        invitation = self.db.execute(
            select(BillingInvitation).where(BillingInvitation.token == token)
        ).scalar_one_or_none()
        if not invitation:
            raise NotFoundError("Invitation not found")
        return invitation

    def _get_share(self, server_id: int, user_id: int) -> ServerBillingShare | None:
        return self.db.execute(
            select(ServerBillingShare).where(
                ServerBillingShare.server_id == server_id,
                ServerBillingShare.user_id == user_id,
            )
        ).scalar_one_or_none()

    @staticmethod
    def _check_invitee(invitation: BillingInvitation, user: User, now: datetime) -> None:
        if not invitation.is_pending(now):
            raise InvalidStateError()
        if normalize_email(user.email) != invitation.invitee_email:
            logger.warning(f"User {user.id} used invitation {invitation.uuid} sent to another email")
            raise AuthorizationError("This invitation was sent to a different email address")

    def _finish(
        self,
        find: Callable[[], BillingInvitation],
        status: InvitationStatus,
        now: datetime,
    ) -> BillingInvitation:
        """Move a pending invitation to a terminal status, re-checked under lock.

        find runs inside the write transaction and raises when the caller may
        not touch the invitation.
        """
        invitation_id = None
        try:
            begin_write(self.db)
            invitation_id = find().id
            invitation = self._lock_invitation(invitation_id)
            if not invitation.is_pending(now):
                raise InvalidStateError()
            invitation.status = status
            self.db.commit()
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating invitation {invitation_id}: {e}", exc_info=True)
            raise InternalError("Failed to update invitation") from e

        self.db.refresh(invitation)
        logger.info(f"Invitation {invitation.uuid} {status.value}")
        return invitation

    def _notify_invitee(self, invitation: BillingInvitation) -> None:
        # Fire-and-forget: the invitation is already committed
        try:
            message = self.notifier.build_invitation_message(invitation)
            if self.dispatch:
                self.dispatch(self.notifier.deliver, message)
            else:
                self.notifier.deliver(message)
        except Exception as e:
            logger.error(
                f"Failed to notify {invitation.invitee_email} of invitation {invitation.uuid}: {e}"
            )


__all__ = [
    "SplitBillingService",
    "AcceptResult",
    "compute_charge_share",
    "is_actionable",
]
