"""Integration tests: the invite -> accept -> remove flow through the HTTP API."""

from datetime import timedelta
from decimal import Decimal

from sqlalchemy import select

from marketplace.models import BillingInvitation, InvitationStatus, ServerBillingShare, Subuser


def _share_map(db_session, server):
    db_session.expire_all()
    return {
        share.user_id: (Decimal(share.share_percentage), share.status.value)
        for share in db_session.execute(
            select(ServerBillingShare).where(ServerBillingShare.server_id == server.id)
        ).scalars()
    }


class TestSplitBillingFlow:
    """Full lifecycle of a two-party billing split."""

    def test_invite_accept_remove(
        self, client, db_session, server, owner, partner, headers_for, mail_transport
    ):
        # Owner invites the partner
        response = client.post(
            f"/api/servers/{server.id}/billing/invite",
            json={"email": partner.email, "message": "Half each?"},
            headers=headers_for(owner),
        )
        assert response.status_code == 200
        invitation_uuid = response.json()["uuid"]

        # The token only reaches the invitee through the email
        assert "token" not in response.json()
        [mail] = mail_transport.get_messages(partner.email)
        token = db_session.execute(
            select(BillingInvitation.token).where(BillingInvitation.uuid == invitation_uuid)
        ).scalar_one()
        assert f"/billing/invitations/{token}" in mail.body

        # The partner sees it and accepts
        listed = client.get("/api/billing/invitations", headers=headers_for(partner)).json()
        assert [i["uuid"] for i in listed] == [invitation_uuid]

        response = client.post(
            f"/api/billing/invitations/{token}/accept", headers=headers_for(partner)
        )
        assert response.status_code == 200
        assert response.json()["server"]["id"] == server.id
        assert Decimal(response.json()["share_percentage"]) == Decimal("50.00")

        assert _share_map(db_session, server) == {
            owner.id: (Decimal("50.00"), "active"),
            partner.id: (Decimal("50.00"), "active"),
        }
        assert client.get("/api/billing/invitations", headers=headers_for(partner)).json() == []

        # Both parties can read the shares
        for user in (owner, partner):
            response = client.get(
                f"/api/servers/{server.id}/billing/shares", headers=headers_for(user)
            )
            assert response.status_code == 200
            assert sum(Decimal(s["share_percentage"]) for s in response.json()) == Decimal("100")

        # Owner removes the partner
        response = client.delete(
            f"/api/servers/{server.id}/billing/shares/{partner.id}", headers=headers_for(owner)
        )
        assert response.status_code == 200
        assert _share_map(db_session, server) == {owner.id: (Decimal("100.00"), "active")}
        assert (
            db_session.execute(select(Subuser).where(Subuser.server_id == server.id)).first()
            is None
        )

        # The former partner lost read access with their subuser row
        response = client.get(
            f"/api/servers/{server.id}/billing/shares", headers=headers_for(partner)
        )
        assert response.status_code == 403

    def test_expired_invitation_cannot_be_accepted(
        self, client, db_session, server, owner, partner, headers_for
    ):
        client.post(
            f"/api/servers/{server.id}/billing/invite",
            json={"email": partner.email},
            headers=headers_for(owner),
        )
        invitation = db_session.execute(select(BillingInvitation)).scalar_one()
        invitation.expires_at = invitation.created_at - timedelta(seconds=1)
        db_session.commit()

        response = client.post(
            f"/api/billing/invitations/{invitation.token}/accept", headers=headers_for(partner)
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_state"
        db_session.refresh(invitation)
        assert invitation.status == InvitationStatus.PENDING
        assert _share_map(db_session, server) == {}

    def test_reinvite_after_removal(self, client, db_session, server, owner, partner, headers_for):
        for _ in range(2):
            response = client.post(
                f"/api/servers/{server.id}/billing/invite",
                json={"email": partner.email},
                headers=headers_for(owner),
            )
            assert response.status_code == 200
            token = db_session.execute(
                select(BillingInvitation.token).where(
                    BillingInvitation.uuid == response.json()["uuid"]
                )
            ).scalar_one()
            assert (
                client.post(
                    f"/api/billing/invitations/{token}/accept", headers=headers_for(partner)
                ).status_code
                == 200
            )
            assert (
                client.delete(
                    f"/api/servers/{server.id}/billing/shares/{partner.id}",
                    headers=headers_for(owner),
                ).status_code
                == 200
            )

        assert _share_map(db_session, server) == {owner.id: (Decimal("100.00"), "active")}
