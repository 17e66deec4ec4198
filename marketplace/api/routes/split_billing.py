"""Split-billing API routes: shares of a server and the invitations that create them."""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from marketplace.models import User
from marketplace.schemas.billing import (
    AcceptInvitationResponse,
    InvitationResponse,
    InvitePayload,
    MessageResponse,
    ServerSummary,
    ShareResponse,
)
from marketplace.services import get_db
from marketplace.services.auth_service import get_current_user
from marketplace.services.split_billing_service import SplitBillingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["billing"])


@router.get("/servers/{server_id}/billing/shares", response_model=list[ShareResponse])
def get_server_shares(
    server_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ShareResponse]:
    """
    List the billing shares of a server.

    Returns:
        200: Share rows
        403: Caller neither owns nor collaborates on the server
        404: Unknown server
    """
    shares = SplitBillingService(db).get_server_shares(server_id, user)
    return [ShareResponse.model_validate(share) for share in shares]


@router.post("/servers/{server_id}/billing/invite", response_model=InvitationResponse)
def send_invitation(
    server_id: int,
    payload: InvitePayload,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> InvitationResponse:
    """
    Invite someone by email to split the server's billing 50/50.

    The invitation email is sent after the response.

    Returns:
        200: Created invitation
        400: Already sharing, invitation already pending, or invalid input
        403: Caller is not the server owner
    """
    service = SplitBillingService(db, dispatch=background_tasks.add_task)
    invitation = service.send_invitation(server_id, user, payload.email, payload.message)
    return InvitationResponse.model_validate(invitation)


@router.delete("/servers/{server_id}/billing/shares/{user_id}", response_model=MessageResponse)
def remove_share(
    server_id: int,
    user_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    """
    Remove a co-payer from the server. The owner goes back to 100%.

    Returns:
        200: Removed
        403: Caller is not the server owner
        404: No such share
    """
    SplitBillingService(db).remove_share(server_id, user_id, user)
    return MessageResponse(message="User removed from server billing")


@router.get("/billing/invitations", response_model=list[InvitationResponse])
def list_my_invitations(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[InvitationResponse]:
    """Pending invitations addressed to the caller's email."""
    invitations = SplitBillingService(db).list_invitations(user)
    return [InvitationResponse.model_validate(invitation) for invitation in invitations]


@router.post("/billing/invitations/{token}/accept", response_model=AcceptInvitationResponse)
def accept_invitation(
    token: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AcceptInvitationResponse:
    """
    Accept an invitation and join the server's billing.

    Returns:
        200: {server, share_percentage}
        400: Invitation no longer valid or expired
        403: Invitation was sent to another email
        404: Unknown token
    """
    result = SplitBillingService(db).accept_invitation(token, user)
    return AcceptInvitationResponse(
        server=ServerSummary.model_validate(result.server),
        share_percentage=result.share_percentage,
    )


@router.post("/billing/invitations/{token}/decline", response_model=MessageResponse)
def decline_invitation(
    token: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    """
    Decline an invitation.

    Returns:
        200: Declined
        400: Invitation no longer valid or expired
        403: Invitation was sent to another email
        404: Unknown token
    """
    SplitBillingService(db).decline_invitation(token, user)
    return MessageResponse(message="Invitation declined")


@router.delete("/billing/invitations/{invitation_uuid}", response_model=MessageResponse)
def cancel_invitation(
    invitation_uuid: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    """
    Cancel a pending invitation (inviter only).

    Returns:
        200: Cancelled
        400: Invitation is not pending
        403: Caller is not the inviter
        404: Unknown invitation
    """
    SplitBillingService(db).cancel_invitation(invitation_uuid, user)
    return MessageResponse(message="Invitation cancelled")
