"""Portal invite acceptance (side effect of a customer's first login)."""

import logging
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from portal_auth.db.models import CustomerPortalInvite, utcnow

logger = logging.getLogger(__name__)


def accept_pending_invites(db: Session, customer_id: UUID) -> int:
    """Mark every unaccepted invite for a customer as accepted."""
    stmt = (
        update(CustomerPortalInvite)
        .where(
            CustomerPortalInvite.customer_id == customer_id,
            CustomerPortalInvite.accepted_at.is_(None),
        )
        .values(accepted_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    if result.rowcount:
        logger.info("Accepted %d portal invite(s) for customer %s", result.rowcount, customer_id)
    return result.rowcount


def accept_invite_token(db: Session, invite_token: str, customer_id: UUID) -> bool:
    """Mark a specific invite accepted, only if it belongs to this customer."""
    stmt = (
        update(CustomerPortalInvite)
        .where(
            CustomerPortalInvite.invite_token == invite_token,
            CustomerPortalInvite.customer_id == customer_id,
        )
        .values(accepted_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    return result.rowcount > 0
