"""Session service - customer portal bearer sessions with active business context."""

import ipaddress
import logging
from datetime import timedelta
from uuid import UUID

from fastapi import Request
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from portal_auth.core.config import settings
from portal_auth.core.rate_limit import client_key
from portal_auth.core.security import generate_opaque_token, hash_token
from portal_auth.db.models import CustomerAccount, CustomerSession, utcnow
from portal_auth.services import business_link_service
from portal_auth.services.business_link_service import ActiveContext

logger = logging.getLogger(__name__)


def mask_ip(ip_address: str | None) -> str | None:
    """Mask IP to its /24 (IPv4) or /64 (IPv6) network to avoid storing raw PII."""
    if not ip_address:
        return None
    try:
        ip_obj = ipaddress.ip_address(ip_address)
    except ValueError:
        return None
    if isinstance(ip_obj, ipaddress.IPv4Address):
        network = ipaddress.ip_network(f"{ip_address}/24", strict=False)
        return f"{network.network_address}/24"
    network = ipaddress.ip_network(f"{ip_address}/64", strict=False)
    return f"{network.network_address}/64"


def get_client_ip(request: Request | None) -> str | None:
    """Client IP as the rate limiter sees it (proxy-aware)."""
    if request is None or request.client is None:
        return None
    return client_key(request)


def create_session(
    db: Session,
    account: CustomerAccount,
    auth_method: str,
    context: ActiveContext,
    request: Request | None = None,
) -> tuple[str, CustomerSession]:
    """
    Create a new session record after a successful login.

    Args:
        db: Database session
        account: The authenticated customer account
        auth_method: How the customer authenticated (audit only)
        context: Active (customer, business) the session starts in
        request: Optional request for extracting device info

    Returns:
        (raw session token, CustomerSession). Only the token's hash is stored.
    """
    token = generate_opaque_token()
    user_agent = request.headers.get("User-Agent") if request else None

    session_record = CustomerSession(
        customer_account_id=account.id,
        session_token_hash=hash_token(token),
        auth_method=auth_method,
        active_customer_id=context.customer_id,
        active_business_id=context.business_id,
        ip_address=mask_ip(get_client_ip(request)),
        user_agent=user_agent[:500] if user_agent else None,
        expires_at=utcnow() + timedelta(days=settings.SESSION_TTL_DAYS),
    )
    db.add(session_record)
    db.flush()

    logger.info(
        "Created %s session for account %s (business: %s, customer: %s)",
        auth_method,
        account.id,
        context.business_id,
        context.customer_id,
    )
    return token, session_record


def get_valid_session(db: Session, token: str | None) -> CustomerSession | None:
    """
    Find an unexpired session by raw token.

    Unknown and expired tokens both return None; callers must not tell
    them apart.
    """
    if not token:
        return None
    stmt = select(CustomerSession).where(
        CustomerSession.session_token_hash == hash_token(token),
        CustomerSession.expires_at > utcnow(),
    )
    return db.scalars(stmt).first()


def delete_session_by_token(db: Session, token: str | None) -> bool:
    """
    Delete a session by its token (used during logout).

    Idempotent: an unknown or already-deleted token is not an error.

    Returns:
        True if a session row was deleted
    """
    if not token:
        return False
    stmt = delete(CustomerSession).where(CustomerSession.session_token_hash == hash_token(token))
    result = db.execute(stmt)
    db.commit()
    return result.rowcount > 0


def repair_context_if_missing(db: Session, session_record: CustomerSession) -> ActiveContext:
    """
    Return the session's active context, filling it in when null.

    Sessions created before the context columns existed have no context; the
    default is computed from the account's links (or its originating
    customer) and persisted, so the repair happens once per session.
    """
    current = ActiveContext(
        customer_id=session_record.active_customer_id,
        business_id=session_record.active_business_id,
    )
    if current.is_complete:
        return current

    account = session_record.account
    contexts = business_link_service.available_contexts(db, account.id)
    repaired = business_link_service.default_context(
        contexts,
        fallback_customer_id=account.customer_id,
        fallback_business_id=account.customer.business_id,
    )
    session_record.active_customer_id = repaired.customer_id
    session_record.active_business_id = repaired.business_id
    db.commit()

    logger.info(
        "Repaired missing context on session %s (business: %s)",
        session_record.id,
        repaired.business_id,
    )
    return repaired


def set_active_context(
    db: Session,
    session_record: CustomerSession,
    context: ActiveContext,
) -> None:
    """Switch the session to another linked business."""
    session_record.active_customer_id = context.customer_id
    session_record.active_business_id = context.business_id
    db.commit()
    logger.info("Switched session %s to business %s", session_record.id, context.business_id)


def revoke_all_account_sessions(db: Session, account_id: UUID) -> int:
    """
    Revoke every session for an account (e.g., after a password reset).

    Does not commit; callers own the transaction.

    Returns:
        Number of sessions revoked
    """
    stmt = delete(CustomerSession).where(CustomerSession.customer_account_id == account_id)
    result = db.execute(stmt)
    logger.info("Revoked %d sessions for account %s", result.rowcount, account_id)
    return result.rowcount


def cleanup_expired_sessions(db: Session) -> int:
    """
    Delete all expired sessions (scheduled job).

    Returns:
        Number of sessions deleted
    """
    stmt = delete(CustomerSession).where(CustomerSession.expires_at <= utcnow())
    result = db.execute(stmt)
    db.commit()

    count = result.rowcount
    if count > 0:
        logger.info("Cleaned up %d expired sessions", count)
    return count
