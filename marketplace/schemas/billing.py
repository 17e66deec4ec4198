"""Pydantic schemas for the split-billing API."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from marketplace.models import InvitationStatus, ShareStatus


class InvitePayload(BaseModel):
    """Payload for POST /api/servers/{server_id}/billing/invite."""

    email: EmailStr = Field(..., description="Email address of the invitee")
    message: str | None = Field(None, description="Optional personal message (max 500 chars)")


class UserSummary(BaseModel):
    id: int
    username: str
    email: str
    full_name: str

    model_config = ConfigDict(from_attributes=True)


class ServerSummary(BaseModel):
    id: int
    uuid: str
    name: str

    model_config = ConfigDict(from_attributes=True)


class InvitationResponse(BaseModel):
    """A billing invitation. The token is only ever sent by email."""

    uuid: str
    server: ServerSummary
    inviter: UserSummary
    invitee_email: str
    share_percentage: Decimal
    message: str | None = None
    # Computed status, so stale "pending" rows read as expired
    status: InvitationStatus = Field(..., validation_alias="effective_status")
    expires_at: datetime
    accepted_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class ShareResponse(BaseModel):
    """One user's share of a server's cost."""

    user_id: int
    user: UserSummary
    share_percentage: Decimal
    status: ShareStatus
    has_server_access: bool

    model_config = ConfigDict(from_attributes=True)


class AcceptInvitationResponse(BaseModel):
    server: ServerSummary
    share_percentage: Decimal


class MessageResponse(BaseModel):
    message: str
