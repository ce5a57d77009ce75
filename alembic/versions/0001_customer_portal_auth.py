"""Customer portal auth tables.

Businesses and customers are owned by the platform; this service adds
customer accounts, business links, bearer sessions and portal invites.

Revision ID: 0001_customer_portal_auth
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic
revision = "0001_customer_portal_auth"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.text("CURRENT_TIMESTAMP") if not nullable else None,
        nullable=nullable,
    )


def upgrade() -> None:
    op.create_table(
        "businesses",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("logo_url", sa.String(500), nullable=True),
        sa.Column("light_logo_url", sa.String(500), nullable=True),
        _timestamp("created_at"),
    )

    op.create_table(
        "customers",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "business_id",
            sa.Uuid(),
            sa.ForeignKey("businesses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("idx_customers_email", "customers", ["email"])
    op.create_index("idx_customers_business_id", "customers", ["business_id"])

    op.create_table(
        "customer_accounts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "customer_id",
            sa.Uuid(),
            sa.ForeignKey("customers.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
            comment="Originating customer record (fallback active context)",
        ),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("clerk_user_id", sa.String(255), nullable=True, unique=True),
        # Single-use token slot shared by magic-link and reset tokens
        sa.Column("token_kind", sa.String(30), nullable=True),
        sa.Column("token_hash", sa.String(64), nullable=True),
        _timestamp("token_expires_at", nullable=True),
        sa.Column(
            "auth_method",
            sa.String(30),
            nullable=True,
            comment="Most recent login method (informational)",
        ),
        _timestamp("last_login_at", nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("idx_customer_accounts_token_hash", "customer_accounts", ["token_hash"])

    op.create_table(
        "customer_account_links",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "customer_account_id",
            sa.Uuid(),
            sa.ForeignKey("customer_accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "customer_id",
            sa.Uuid(),
            sa.ForeignKey("customers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "business_id",
            sa.Uuid(),
            sa.ForeignKey("businesses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("created_at"),
        sa.UniqueConstraint("customer_account_id", "business_id", name="uq_account_link_business"),
    )
    op.create_index(
        "idx_customer_account_links_account", "customer_account_links", ["customer_account_id"]
    )

    op.create_table(
        "customer_sessions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "customer_account_id",
            sa.Uuid(),
            sa.ForeignKey("customer_accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "session_token_hash",
            sa.String(64),
            nullable=False,
            unique=True,
            comment="SHA256 hash of session token",
        ),
        sa.Column("auth_method", sa.String(30), nullable=False),
        sa.Column(
            "active_customer_id",
            sa.Uuid(),
            sa.ForeignKey("customers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "active_business_id",
            sa.Uuid(),
            sa.ForeignKey("businesses.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("ip_address", sa.String(45), nullable=True, comment="Masked client network"),
        sa.Column("user_agent", sa.String(500), nullable=True),
        _timestamp("created_at"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_customer_sessions_account", "customer_sessions", ["customer_account_id"])
    op.create_index("idx_customer_sessions_expires", "customer_sessions", ["expires_at"])

    op.create_table(
        "customer_portal_invites",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "customer_id",
            sa.Uuid(),
            sa.ForeignKey("customers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "business_id",
            sa.Uuid(),
            sa.ForeignKey("businesses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("invite_token", sa.String(100), nullable=False, unique=True),
        _timestamp("sent_at", nullable=True),
        _timestamp("expires_at", nullable=True),
        _timestamp("accepted_at", nullable=True),
        _timestamp("created_at"),
    )
    op.create_index(
        "idx_customer_portal_invites_customer", "customer_portal_invites", ["customer_id"]
    )


def downgrade() -> None:
    op.drop_table("customer_portal_invites")
    op.drop_table("customer_sessions")
    op.drop_table("customer_account_links")
    op.drop_table("customer_accounts")
    op.drop_table("customers")
    op.drop_table("businesses")
