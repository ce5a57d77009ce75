"""Customer authentication flows.

Flows:
- Magic link: request -> verify (session issued)
- Registration with password (session issued)
- Password login (session issued)
- Clerk link / verify (no session: Clerk is the session authority)
- Password reset: request -> confirm
- Logout and session check
- Business switching for multi-business accounts

Every flow returns a result object or raises a CustomerAuthError subclass;
HTTP shaping happens in the router.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from urllib.parse import urlparse
from uuid import UUID

from fastapi import Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from portal_auth.core import security
from portal_auth.core.config import settings
from portal_auth.core.structured_logging import build_log_context, mask_email
from portal_auth.db.enums import AuthMethod, TokenKind
from portal_auth.db.models import Business, Customer, CustomerAccount, CustomerSession, utcnow
from portal_auth.services import (
    account_service,
    business_link_service,
    identity_link_service,
    invite_service,
    notification_service,
    session_service,
    token_service,
)
from portal_auth.services.business_link_service import ActiveContext, BusinessContext
from portal_auth.services.errors import (
    AlreadyHasPasswordError,
    BusinessAccessDeniedError,
    InvalidCredentialsError,
    InvalidOrExpiredTokenError,
    InvalidSessionError,
    ValidationFailedError,
)
from portal_auth.services.notification_service import NotificationSender, SendResult

logger = logging.getLogger(__name__)

MAGIC_LINK_SENT_MESSAGE = "Magic link sent to your email."
MAGIC_LINK_GENERIC_MESSAGE = "If an account exists, a magic link has been sent."
EMAIL_NOT_SENT_WARNING = "We could not send the email. Please try again."
RESET_GENERIC_MESSAGE = "If an account exists, a reset link has been sent."

MAGIC_LINK_PATH = "customer-magic"
RESET_LINK_PATH = "customer-reset-password"


@dataclass
class AuthResult:
    """Outcome of a successful authentication or session check."""

    account: CustomerAccount
    customer: Customer
    auth_method: str
    contexts: list[BusinessContext] = field(default_factory=list)
    active: ActiveContext | None = None
    session_token: str | None = None
    linked: bool = False


@dataclass(frozen=True)
class MagicLinkResult:
    """Outcome of a magic-link request. Never reveals whether the email matched."""

    email_sent: bool
    message: str
    warning: str | None = None


# =============================================================================
# Helpers
# =============================================================================

@lru_cache(maxsize=1)
def _timing_dummy_hash() -> str:
    """Hash verified against when no account exists, so misses cost the same as wrong passwords."""
    return security.hash_password("timing-equalizer-not-a-password")


def _portal_link(path: str, token: str, redirect_url: str | None = None) -> str:
    """Build a portal link; only absolute http(s) redirect bases are honoured."""
    base = settings.PORTAL_BASE_URL
    if redirect_url:
        parsed = urlparse(redirect_url)
        if parsed.scheme in ("http", "https") and parsed.netloc:
            base = redirect_url
    return f"{base.rstrip('/')}/{path}/{token}"


async def _dispatch(
    sender: NotificationSender,
    to: str,
    subject: str,
    html: str,
) -> SendResult:
    """Send, converting provider crashes into a failed result (token stays valid)."""
    try:
        return await sender.send(to=to, subject=subject, html=html)
    except Exception:
        logger.exception("Notification sender %s crashed sending to %s", sender.key, mask_email(to))
        return SendResult(success=False, error="Failed to send email")


def _start_session(
    db: Session,
    account: CustomerAccount,
    customer: Customer,
    auth_method: AuthMethod,
    request: Request | None,
) -> AuthResult:
    """Resolve the default context and issue a session bound to it."""
    contexts = business_link_service.available_contexts(db, account.id)
    active = business_link_service.default_context(
        contexts,
        fallback_customer_id=customer.id,
        fallback_business_id=customer.business_id,
    )
    token, _ = session_service.create_session(db, account, auth_method.value, active, request)
    db.commit()

    logger.info(
        "Customer login succeeded",
        extra=build_log_context(
            account_id=str(account.id),
            business_id=str(active.business_id),
            auth_method=auth_method.value,
        ),
    )
    return AuthResult(
        account=account,
        customer=customer,
        auth_method=auth_method.value,
        contexts=contexts,
        active=active,
        session_token=token,
    )


def _account_result(
    db: Session,
    account: CustomerAccount,
    customer: Customer,
    linked: bool,
) -> AuthResult:
    """Account data for the Clerk flows: contexts resolved, no session issued."""
    contexts = business_link_service.available_contexts(db, account.id)
    active = business_link_service.default_context(
        contexts,
        fallback_customer_id=customer.id,
        fallback_business_id=customer.business_id,
    )
    return AuthResult(
        account=account,
        customer=customer,
        auth_method=AuthMethod.CLERK.value,
        contexts=contexts,
        active=active,
        linked=linked,
    )


def _require_session(db: Session, session_token: str | None) -> CustomerSession:
    session_record = session_service.get_valid_session(db, session_token)
    if session_record is None:
        raise InvalidSessionError()
    return session_record


# =============================================================================
# Magic Link
# =============================================================================

def _prepare_magic_link(
    db: Session,
    email: str,
    redirect_url: str | None,
) -> tuple[UUID, str, str] | None:
    """Upsert the account, commit a fresh token and render the email. None for unknown emails."""
    customers = account_service.find_customers_by_email(db, email)
    if not customers:
        return None

    customer = customers[0]
    account = account_service.upsert_account(db, customer, email)
    token = token_service.issue_token(db, account, TokenKind.MAGIC_LINK)

    link = _portal_link(MAGIC_LINK_PATH, token.value, redirect_url)
    subject, html = notification_service.render_magic_link_email(
        customer.name,
        customer.business.name if customer.business else None,
        link,
    )
    return account.id, subject, html


async def request_magic_link(
    db: Session,
    sender: NotificationSender,
    email: str | None,
    redirect_url: str | None = None,
) -> MagicLinkResult:
    """
    Issue a magic-link token and email it.

    Unknown emails get the same body as a failed send. A failed send never
    revokes the token: it was committed before dispatch.
    """
    email = account_service.normalize_email(email)
    prepared = await run_in_threadpool(_prepare_magic_link, db, email, redirect_url)
    if prepared is None:
        logger.info("Magic link requested for unknown email %s", mask_email(email))
        return MagicLinkResult(
            email_sent=False,
            message=MAGIC_LINK_GENERIC_MESSAGE,
            warning=EMAIL_NOT_SENT_WARNING,
        )

    account_id, subject, html = prepared
    result = await _dispatch(sender, email, subject, html)

    if result.success:
        return MagicLinkResult(email_sent=True, message=MAGIC_LINK_SENT_MESSAGE)

    logger.warning("Magic link for account %s not delivered: %s", account_id, result.error)
    return MagicLinkResult(
        email_sent=False,
        message=MAGIC_LINK_GENERIC_MESSAGE,
        warning=EMAIL_NOT_SENT_WARNING,
    )


def verify_magic_link(
    db: Session,
    token: str | None,
    request: Request | None = None,
) -> AuthResult:
    """
    Redeem a magic-link token and start a session.

    Raises:
        ValidationFailedError: No token supplied
        InvalidOrExpiredTokenError: Unknown, used, or expired token
    """
    if not token:
        raise ValidationFailedError("Token is required")

    try:
        account = token_service.consume_token(db, token, TokenKind.MAGIC_LINK)
    except InvalidOrExpiredTokenError:
        raise InvalidOrExpiredTokenError("Invalid or expired magic link") from None

    account_service.record_login(db, account, AuthMethod.MAGIC_LINK.value)
    invite_service.accept_pending_invites(db, account.customer_id)
    return _start_session(db, account, account.customer, AuthMethod.MAGIC_LINK, request)


# =============================================================================
# Password
# =============================================================================

def register(
    db: Session,
    email: str | None,
    password: str | None,
    invite_token: str | None = None,
    request: Request | None = None,
) -> AuthResult:
    """
    Add a password to the customer's account (creating it if needed).

    Password changes for accounts that already have one must go through the
    reset flow.

    Raises:
        ValidationFailedError: Missing email/password or malformed email
        PasswordTooShortError: Password below minimum length
        NoCustomerFoundError: No business has a customer with this email
        AlreadyHasPasswordError: Account already has a password
    """
    if not email or not password:
        raise ValidationFailedError("Email and password are required")
    security.validate_password(password)
    email = account_service.normalize_email(email)

    customer = identity_link_service.find_latest_customer_by_email(db, email)

    existing = account_service.find_account_for_customer(db, customer, email)
    if existing is not None and existing.password_hash:
        raise AlreadyHasPasswordError()

    password_hash = security.hash_password(password)
    account = account_service.upsert_account(
        db,
        customer,
        email,
        auth_method=AuthMethod.PASSWORD.value,
        last_login_at=utcnow(),
    )
    if not account_service.set_initial_password(db, account, password_hash):
        db.rollback()
        raise AlreadyHasPasswordError()

    if invite_token:
        invite_service.accept_invite_token(db, invite_token, customer.id)

    return _start_session(db, account, customer, AuthMethod.PASSWORD, request)


def login(
    db: Session,
    email: str | None,
    password: str | None,
    request: Request | None = None,
) -> AuthResult:
    """
    Password login.

    Raises:
        ValidationFailedError: Missing email or password
        InvalidCredentialsError: Unknown email, no password, or wrong password
    """
    if not email or not password:
        raise ValidationFailedError("Email and password are required")

    account = account_service.get_account_by_email(db, email.strip())
    if account is None or not account.password_hash:
        security.verify_password(password, _timing_dummy_hash())
        raise InvalidCredentialsError()

    if not security.verify_password(password, account.password_hash):
        logger.info("Password mismatch for account %s", account.id)
        raise InvalidCredentialsError()

    account_service.record_login(db, account, AuthMethod.PASSWORD.value)
    invite_service.accept_pending_invites(db, account.customer_id)
    return _start_session(db, account, account.customer, AuthMethod.PASSWORD, request)


def _prepare_password_reset(db: Session, email: str) -> tuple[UUID, str, str] | None:
    account = account_service.get_account_by_email(db, email)
    if account is None:
        return None

    token = token_service.issue_token(db, account, TokenKind.PASSWORD_RESET)
    customer = account.customer
    subject, html = notification_service.render_password_reset_email(
        customer.name if customer else None,
        customer.business.name if customer and customer.business else None,
        _portal_link(RESET_LINK_PATH, token.value),
    )
    return account.id, subject, html


async def request_password_reset(
    db: Session,
    sender: NotificationSender,
    email: str | None,
) -> str:
    """
    Issue and email a reset token if the email has an account.

    Always returns the same generic message.
    """
    email = account_service.normalize_email(email)
    prepared = await run_in_threadpool(_prepare_password_reset, db, email)
    if prepared is None:
        logger.info("Password reset requested for unknown email %s", mask_email(email))
        return RESET_GENERIC_MESSAGE

    account_id, subject, html = prepared
    result = await _dispatch(sender, email, subject, html)
    if not result.success:
        logger.warning("Reset link for account %s not delivered: %s", account_id, result.error)
    return RESET_GENERIC_MESSAGE


def confirm_password_reset(db: Session, token: str | None, password: str | None) -> CustomerAccount:
    """
    Redeem a reset token and set a new password.

    Existing sessions stay valid unless RESET_REVOKES_SESSIONS is enabled.

    Raises:
        ValidationFailedError: Missing token or password
        PasswordTooShortError: Password below minimum length
        InvalidOrExpiredTokenError: Unknown, used, or expired token
    """
    if not token or not password:
        raise ValidationFailedError("Token and password are required")
    security.validate_password(password)
    password_hash = security.hash_password(password)

    try:
        account = token_service.consume_token(db, token, TokenKind.PASSWORD_RESET)
    except InvalidOrExpiredTokenError:
        raise InvalidOrExpiredTokenError("Invalid or expired reset link") from None

    account.password_hash = password_hash
    account.auth_method = AuthMethod.PASSWORD.value
    account.updated_at = utcnow()
    if settings.RESET_REVOKES_SESSIONS:
        session_service.revoke_all_account_sessions(db, account.id)
    db.commit()

    logger.info("Password reset for account %s", account.id)
    return account


# =============================================================================
# Clerk
# =============================================================================

def clerk_link(db: Session, clerk_user_id: str | None, email: str | None) -> AuthResult:
    """
    Bind a Clerk user to the customer account for an email.

    Raises:
        ValidationFailedError: Missing Clerk user id or email
        NoCustomerFoundError: No customer record matches the email
    """
    if not clerk_user_id or not email:
        raise ValidationFailedError("Clerk user ID and email are required")
    email = account_service.normalize_email(email)
    account, customer = identity_link_service.link_by_email(db, clerk_user_id, email)
    return _account_result(db, account, customer, linked=True)


def clerk_verify(
    db: Session,
    authorization: str | None,
    clerk_user_id: str | None,
    email: str | None = None,
) -> AuthResult | None:
    """
    Resolve a Clerk-authenticated caller to account data.

    Returns None when the caller isn't authenticated at all (no bearer, no
    user id, or a bearer that doesn't belong to the user id).

    Raises:
        NeedsLinkingError: Identity unbound and no email supplied
        NoCustomerFoundError: Email supplied but matches no customer
    """
    bearer = security.parse_bearer(authorization)
    if not bearer or not clerk_user_id:
        return None
    if not security.verify_clerk_bearer(bearer, clerk_user_id):
        logger.warning("Clerk bearer rejected for supplied user id")
        return None

    normalized = account_service.normalize_email(email) if email else None
    account, customer, linked = identity_link_service.verify_identity(db, clerk_user_id, normalized)
    return _account_result(db, account, customer, linked=linked)


# =============================================================================
# Sessions
# =============================================================================

def logout(db: Session, session_token: str | None) -> None:
    """Delete the session. Missing or unknown tokens are already logged out."""
    if session_service.delete_session_by_token(db, session_token):
        logger.info("Customer session logged out")


def check_session(db: Session, session_token: str | None) -> AuthResult | None:
    """
    Validate a session and return its stored active context.

    The context is not re-derived: a business the customer switched to stays
    active until they switch again. Null contexts are repaired once.
    """
    session_record = session_service.get_valid_session(db, session_token)
    if session_record is None:
        return None

    active = session_service.repair_context_if_missing(db, session_record)
    account = session_record.account
    return AuthResult(
        account=account,
        customer=account.customer,
        auth_method=session_record.auth_method,
        contexts=business_link_service.available_contexts(db, account.id),
        active=active,
        session_token=session_token,
    )


def list_businesses(
    db: Session,
    session_token: str | None,
) -> tuple[list[BusinessContext], ActiveContext]:
    """
    Businesses the session's account may switch between, plus the current one.

    Raises:
        InvalidSessionError: Missing, unknown, or expired session
    """
    session_record = _require_session(db, session_token)
    active = session_service.repair_context_if_missing(db, session_record)
    contexts = business_link_service.available_contexts(db, session_record.customer_account_id)
    return contexts, active


def switch_business(
    db: Session,
    session_token: str | None,
    business_id: UUID | None,
) -> tuple[BusinessContext, Customer | None, Business | None]:
    """
    Move the session's active context to another linked business.

    Returns:
        (context, customer record now active, business now active)

    Raises:
        InvalidSessionError: Missing, unknown, or expired session
        ValidationFailedError: No business_id
        BusinessAccessDeniedError: Account isn't linked to that business
    """
    session_record = _require_session(db, session_token)
    if business_id is None:
        raise ValidationFailedError("business_id is required")

    context = business_link_service.find_context(db, session_record.customer_account_id, business_id)
    if context is None:
        raise BusinessAccessDeniedError()

    session_service.set_active_context(
        db,
        session_record,
        ActiveContext(customer_id=context.customer_id, business_id=context.business_id),
    )
    return context, db.get(Customer, context.customer_id), db.get(Business, context.business_id)
