"""Server access management: the panel's subuser list, as billing uses it."""

import logging

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from marketplace.models import Server, Subuser

logger = logging.getLogger(__name__)

FULL_ACCESS = ["*"]


class ServerAccessService:
    """Grant and revoke operational access to a server.

    Methods only stage changes on the session; the caller owns the
    transaction so access changes commit together with share changes.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_server(self, server_id: int) -> Server | None:
        return self.db.get(Server, server_id)

    def is_collaborator(self, server_id: int, user_id: int) -> bool:
        return (
            self.db.execute(
                select(Subuser.id).where(Subuser.server_id == server_id, Subuser.user_id == user_id)
            ).first()
            is not None
        )

    def grant_access(
        self, server_id: int, user_id: int, permissions: list[str] | None = None
    ) -> Subuser:
        """Create or update the subuser row for user on server."""
        permissions = list(permissions or FULL_ACCESS)
        subuser = self.db.execute(
            select(Subuser).where(Subuser.server_id == server_id, Subuser.user_id == user_id)
        ).scalar_one_or_none()
        if subuser:
            subuser.permissions = permissions
        else:
            subuser = Subuser(server_id=server_id, user_id=user_id, permissions=permissions)
            self.db.add(subuser)
        logger.debug(f"Granted {permissions} on server {server_id} to user {user_id}")
        return subuser

    def revoke_access(self, server_id: int, user_id: int) -> None:
        self.db.execute(
            delete(Subuser).where(Subuser.server_id == server_id, Subuser.user_id == user_id)
        )
        logger.debug(f"Revoked access on server {server_id} for user {user_id}")


__all__ = ["ServerAccessService", "FULL_ACCESS"]
