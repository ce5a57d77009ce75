"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portal_auth.db.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Platform-owned records (read-only from this service)
# =============================================================================

class Business(Base):
    """A tenant business whose customers log into the portal."""

    __tablename__ = "businesses"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    logo_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    light_logo_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )


class Customer(Base):
    """
    A business's own CRM record for a customer.

    The same email may appear on customers of several unrelated businesses;
    all of them resolve to a single CustomerAccount.
    """

    __tablename__ = "customers"
    __table_args__ = (
        Index("idx_customers_email", "email"),
        Index("idx_customers_business_id", "business_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    business: Mapped["Business"] = relationship()


# =============================================================================
# Customer identity
# =============================================================================

class CustomerAccount(Base):
    """
    Login identity for an end customer.

    Created on the first successful login attempt of any kind and grows
    auth methods over time (magic link, password, Clerk). Holds a single
    single-use token slot: issuing a new token overwrites the previous one.
    Only the SHA256 digest of the token is stored.
    """

    __tablename__ = "customer_accounts"
    __table_args__ = (
        Index("idx_customer_accounts_token_hash", "token_hash"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("customers.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        comment="Originating customer record (fallback active context)",
    )
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    clerk_user_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)

    token_kind: Mapped[str | None] = mapped_column(String(30), nullable=True)
    token_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)

    auth_method: Mapped[str | None] = mapped_column(
        String(30), nullable=True, comment="Most recent login method (informational)"
    )
    last_login_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    customer: Mapped["Customer"] = relationship()


class CustomerAccountLink(Base):
    """
    "This login may act as this customer within this business."

    Provisioned by the invite flow; this service only reads it.
    """

    __tablename__ = "customer_account_links"
    __table_args__ = (
        UniqueConstraint("customer_account_id", "business_id", name="uq_account_link_business"),
        Index("idx_customer_account_links_account", "customer_account_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("customer_accounts.id", ondelete="CASCADE"), nullable=False
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False
    )
    business_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    account: Mapped["CustomerAccount"] = relationship()
    customer: Mapped["Customer"] = relationship()
    business: Mapped["Business"] = relationship()


class CustomerSession(Base):
    """
    Bearer session for the customer portal.

    The raw token is only ever returned to the client; the table keeps its
    SHA256 digest. Expired rows are never deleted eagerly: lookups filter on
    expires_at and the cleanup CLI purges them.
    """

    __tablename__ = "customer_sessions"
    __table_args__ = (
        Index("idx_customer_sessions_account", "customer_account_id"),
        Index("idx_customer_sessions_expires", "expires_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("customer_accounts.id", ondelete="CASCADE"), nullable=False
    )
    session_token_hash: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        comment="SHA256 hash of session token",
    )
    auth_method: Mapped[str] = mapped_column(String(30), nullable=False)
    active_customer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True
    )
    active_business_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("businesses.id", ondelete="SET NULL"), nullable=True
    )
    ip_address: Mapped[str | None] = mapped_column(
        String(45), nullable=True, comment="Masked client network"
    )
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(nullable=False)

    account: Mapped["CustomerAccount"] = relationship()


class CustomerPortalInvite(Base):
    """
    Portal invitation sent by a business.

    Created by the provisioning flow; this service only stamps accepted_at.
    """

    __tablename__ = "customer_portal_invites"
    __table_args__ = (
        Index("idx_customer_portal_invites_customer", "customer_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False
    )
    business_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    invite_token: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False, default=lambda: uuid.uuid4().hex
    )
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    accepted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
