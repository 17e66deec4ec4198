"""Initial migration - create users, servers, subusers, orders, credit ledger and split billing tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            onupdate=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("uuid", sa.String(36), nullable=False),
        sa.Column("username", sa.String(191), nullable=False),
        sa.Column("email", sa.String(191), nullable=False),
        sa.Column("name_first", sa.String(191), nullable=True),
        sa.Column("name_last", sa.String(191), nullable=True),
        sa.Column("credits", sa.Numeric(10, 2), nullable=False, server_default="0.00"),
        sa.Column("is_administrator", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("uuid", name="uq_users_uuid"),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("idx_users_credits", "users", ["credits"], unique=False)

    op.create_table(
        "servers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("uuid", sa.String(36), nullable=False),
        sa.Column("name", sa.String(191), nullable=False),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("uuid", name="uq_servers_uuid"),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index(op.f("ix_servers_owner_id"), "servers", ["owner_id"], unique=False)

    op.create_table(
        "subusers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("server_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("permissions", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["server_id"], ["servers.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("server_id", "user_id", name="uq_subuser_server_user"),
    )
    op.create_index(op.f("ix_subusers_server_id"), "subusers", ["server_id"], unique=False)
    op.create_index(op.f("ix_subusers_user_id"), "subusers", ["user_id"], unique=False)

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("uuid", sa.String(36), nullable=False),
        sa.Column("order_number", sa.String(32), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("subtotal", sa.Numeric(10, 2), nullable=False, server_default="0.00"),
        sa.Column("total", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(10), nullable=False, server_default="pending"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("uuid", name="uq_orders_uuid"),
        sa.UniqueConstraint("order_number", name="uq_orders_order_number"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index(op.f("ix_orders_user_id"), "orders", ["user_id"], unique=False)

    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("uuid", sa.String(36), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("admin_id", sa.Integer(), nullable=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("balance_after", sa.Numeric(10, 2), nullable=False),
        sa.Column("type", sa.String(11), nullable=False),
        sa.Column("reason", sa.String(8), nullable=True),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("uuid", name="uq_credit_transactions_uuid"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["admin_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="SET NULL"),
    )
    op.create_index(
        "idx_credit_transactions_user_created",
        "credit_transactions",
        ["user_id", "created_at"],
        unique=False,
    )
    op.create_index(
        "idx_credit_transactions_type_created",
        "credit_transactions",
        ["type", "created_at"],
        unique=False,
    )

    op.create_table(
        "billing_invitations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("uuid", sa.String(36), nullable=False),
        sa.Column("token", sa.String(64), nullable=False),
        sa.Column("server_id", sa.Integer(), nullable=False),
        sa.Column("inviter_id", sa.Integer(), nullable=False),
        sa.Column("invitee_email", sa.String(191), nullable=False),
        sa.Column("invitee_user_id", sa.Integer(), nullable=True),
        sa.Column("share_percentage", sa.Numeric(5, 2), nullable=False, server_default="50.00"),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("status", sa.String(9), nullable=False, server_default="pending"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("uuid", name="uq_billing_invitations_uuid"),
        sa.UniqueConstraint("token", name="uq_billing_invitations_token"),
        sa.ForeignKeyConstraint(["server_id"], ["servers.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["inviter_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["invitee_user_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index(
        op.f("ix_billing_invitations_server_id"), "billing_invitations", ["server_id"], unique=False
    )
    op.create_index(
        "idx_invitation_email_status",
        "billing_invitations",
        ["invitee_email", "status"],
        unique=False,
    )
    op.create_index(
        "idx_invitation_server_email",
        "billing_invitations",
        ["server_id", "invitee_email"],
        unique=False,
    )

    op.create_table(
        "server_billing_shares",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("server_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("share_percentage", sa.Numeric(5, 2), nullable=False, server_default="50.00"),
        sa.Column("status", sa.String(9), nullable=False, server_default="active"),
        sa.Column("has_server_access", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["server_id"], ["servers.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("server_id", "user_id", name="uq_share_server_user"),
    )
    op.create_index(
        op.f("ix_server_billing_shares_server_id"),
        "server_billing_shares",
        ["server_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_server_billing_shares_user_id"),
        "server_billing_shares",
        ["user_id"],
        unique=False,
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index(op.f("ix_server_billing_shares_user_id"), table_name="server_billing_shares")
    op.drop_index(op.f("ix_server_billing_shares_server_id"), table_name="server_billing_shares")
    op.drop_table("server_billing_shares")
    op.drop_index("idx_invitation_server_email", table_name="billing_invitations")
    op.drop_index("idx_invitation_email_status", table_name="billing_invitations")
    op.drop_index(op.f("ix_billing_invitations_server_id"), table_name="billing_invitations")
    op.drop_table("billing_invitations")
    op.drop_index("idx_credit_transactions_type_created", table_name="credit_transactions")
    op.drop_index("idx_credit_transactions_user_created", table_name="credit_transactions")
    op.drop_table("credit_transactions")
    op.drop_index(op.f("ix_orders_user_id"), table_name="orders")
    op.drop_table("orders")
    op.drop_index(op.f("ix_subusers_user_id"), table_name="subusers")
    op.drop_index(op.f("ix_subusers_server_id"), table_name="subusers")
    op.drop_table("subusers")
    op.drop_index(op.f("ix_servers_owner_id"), table_name="servers")
    op.drop_table("servers")
    op.drop_index("idx_users_credits", table_name="users")
    op.drop_table("users")
