"""Business-link resolver - which (business, customer) pairs an account may act as."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from portal_auth.db.models import CustomerAccountLink

UNKNOWN_BUSINESS_NAME = "Unknown Business"


@dataclass(frozen=True)
class BusinessContext:
    """One linked business as shown in the portal's business switcher."""

    business_id: UUID
    customer_id: UUID
    business_name: str
    logo_url: str | None
    light_logo_url: str | None
    customer_name: str | None
    is_primary: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.business_id),
            "name": self.business_name,
            "logo_url": self.logo_url,
            "light_logo_url": self.light_logo_url,
            "customer_id": str(self.customer_id),
            "customer_name": self.customer_name,
            "is_primary": self.is_primary,
        }


@dataclass(frozen=True)
class ActiveContext:
    """The (customer record, business) pair a session currently acts as."""

    customer_id: UUID | None
    business_id: UUID | None

    @property
    def is_complete(self) -> bool:
        return self.customer_id is not None and self.business_id is not None


def _to_context(link: CustomerAccountLink) -> BusinessContext:
    business = link.business
    customer = link.customer
    return BusinessContext(
        business_id=link.business_id,
        customer_id=link.customer_id,
        business_name=business.name if business else UNKNOWN_BUSINESS_NAME,
        logo_url=business.logo_url if business else None,
        light_logo_url=business.light_logo_url if business else None,
        customer_name=customer.name if customer else None,
        is_primary=link.is_primary,
    )


def available_contexts(db: Session, account_id: UUID) -> list[BusinessContext]:
    """List every linked business for an account, primary first."""
    stmt = (
        select(CustomerAccountLink)
        .options(
            joinedload(CustomerAccountLink.business),
            joinedload(CustomerAccountLink.customer),
        )
        .where(CustomerAccountLink.customer_account_id == account_id)
        .order_by(
            CustomerAccountLink.is_primary.desc(),
            CustomerAccountLink.created_at.asc(),
            CustomerAccountLink.id,
        )
    )
    return [_to_context(link) for link in db.scalars(stmt).all()]


def default_context(
    contexts: list[BusinessContext],
    fallback_customer_id: UUID,
    fallback_business_id: UUID,
) -> ActiveContext:
    """
    Pick the context a new session starts in.

    Primary link if one is flagged, else the first link. With no links at all
    (older accounts not yet backfilled) the customer record that started the
    login is used, so a session is never left without an active context.
    """
    if contexts:
        chosen = next((c for c in contexts if c.is_primary), contexts[0])
        return ActiveContext(customer_id=chosen.customer_id, business_id=chosen.business_id)
    return ActiveContext(customer_id=fallback_customer_id, business_id=fallback_business_id)


def find_context(db: Session, account_id: UUID, business_id: UUID) -> BusinessContext | None:
    """Return the link for one business, or None if the account isn't linked to it."""
    stmt = (
        select(CustomerAccountLink)
        .options(
            joinedload(CustomerAccountLink.business),
            joinedload(CustomerAccountLink.customer),
        )
        .where(
            CustomerAccountLink.customer_account_id == account_id,
            CustomerAccountLink.business_id == business_id,
        )
    )
    link = db.scalars(stmt).first()
    return _to_context(link) if link else None
