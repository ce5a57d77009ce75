"""Customer portal auth endpoints.

Magic link, password, Clerk linking, password reset and bearer sessions.
All failures are raised as CustomerAuthError subclasses and rendered by
`customer_auth_error_handler`.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from portal_auth.core.deps import get_authorization, get_db, get_session_token
from portal_auth.core.rate_limit import auth_limit, limiter
from portal_auth.db.models import Customer, CustomerAccount
from portal_auth.schemas.customer_auth import (
    AuthSessionResponse,
    AvailableBusinessRead,
    BusinessSummary,
    ClerkLinkRequest,
    ClerkVerifyRequest,
    CustomerAccountRead,
    CustomerRead,
    LoginRequest,
    MagicLinkRequest,
    MagicLinkResponse,
    MessageResponse,
    PasswordResetConfirmRequest,
    PasswordResetRequest,
    RegisterRequest,
    VerifyMagicLinkRequest,
)
from portal_auth.services import auth_flow_service
from portal_auth.services.auth_flow_service import AuthResult
from portal_auth.services.business_link_service import BusinessContext
from portal_auth.services.errors import CustomerAuthError, NeedsLinkingError
from portal_auth.services.notification_service import NotificationSender, get_notification_sender

logger = logging.getLogger(__name__)

router = APIRouter(tags=["customer-auth"])


# =============================================================================
# Error Handling
# =============================================================================


async def customer_auth_error_handler(request: Request, exc: CustomerAuthError) -> JSONResponse:
    """Render a CustomerAuthError as `{success: false, error, code}`."""
    if isinstance(exc, NeedsLinkingError):
        return JSONResponse(
            status_code=200,
            content={"authenticated": False, "needs_linking": True},
        )
    if exc.status_code >= 500:
        logger.error("Customer auth failure on %s: %s", request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message, "code": exc.code},
    )


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies are client errors (400), not 422."""
    logger.info("Rejected malformed request body on %s", request.url.path)
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Invalid request", "code": "validation_failed"},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error"},
    )


# =============================================================================
# Helpers
# =============================================================================


def customer_read(customer: Customer) -> CustomerRead:
    business = customer.business
    return CustomerRead(
        id=customer.id,
        name=customer.name,
        email=customer.email,
        phone=customer.phone,
        address=customer.address,
        business_id=customer.business_id,
        business=BusinessSummary(
            id=business.id,
            name=business.name,
            logo_url=business.logo_url,
        )
        if business
        else None,
    )


def _account_read(account: CustomerAccount, auth_method: str, include_clerk: bool = False) -> CustomerAccountRead:
    if include_clerk:
        return CustomerAccountRead(
            id=account.id,
            customer_id=account.customer_id,
            email=account.email,
            auth_method=auth_method,
            clerk_user_id=account.clerk_user_id,
        )
    return CustomerAccountRead(
        id=account.id,
        customer_id=account.customer_id,
        email=account.email,
        auth_method=auth_method,
    )


def business_reads(contexts: list[BusinessContext]) -> list[AvailableBusinessRead]:
    return [AvailableBusinessRead(**context.to_dict()) for context in contexts]


def _session_payload(result: AuthResult, **flags) -> AuthSessionResponse:
    """Session-bearing response for magic-link, register, login and session check."""
    return AuthSessionResponse(
        **flags,
        session_token=result.session_token,
        customer_account=_account_read(result.account, result.auth_method),
        customer=customer_read(result.customer),
        available_businesses=business_reads(result.contexts),
        active_business_id=result.active.business_id if result.active else None,
        active_customer_id=result.active.customer_id if result.active else None,
    )


def _clerk_payload(result: AuthResult, **flags) -> AuthSessionResponse:
    """Account response for the Clerk flows (Clerk owns the session)."""
    return AuthSessionResponse(
        **flags,
        customer_account=_account_read(result.account, result.auth_method, include_clerk=True),
        customer=customer_read(result.customer),
        available_businesses=business_reads(result.contexts),
        active_business_id=result.active.business_id if result.active else None,
        active_customer_id=result.active.customer_id if result.active else None,
    )


# =============================================================================
# Magic Link
# =============================================================================


@router.post("/magic-link", response_model=MagicLinkResponse, response_model_exclude_none=True)
@limiter.limit(auth_limit)
async def send_magic_link(
    request: Request,
    body: MagicLinkRequest,
    db: Session = Depends(get_db),
    sender: NotificationSender = Depends(get_notification_sender),
):
    """
    Email a passwordless login link.

    The response never reveals whether the email belongs to a customer.
    """
    result = await auth_flow_service.request_magic_link(db, sender, body.email, body.redirect_url)
    return MagicLinkResponse(
        success=True,
        email_sent=result.email_sent,
        message=result.message,
        warning=result.warning,
    )


@router.post("/verify-magic", response_model=AuthSessionResponse, response_model_exclude_unset=True)
@limiter.limit(auth_limit)
def verify_magic_link(
    request: Request,
    body: VerifyMagicLinkRequest,
    db: Session = Depends(get_db),
):
    """Redeem a magic-link token for a session."""
    result = auth_flow_service.verify_magic_link(db, body.token, request)
    return _session_payload(result, success=True)


# =============================================================================
# Password
# =============================================================================


@router.post("/register", response_model=AuthSessionResponse, response_model_exclude_unset=True)
@limiter.limit(auth_limit)
def register(
    request: Request,
    body: RegisterRequest,
    db: Session = Depends(get_db),
):
    """Set a password on the customer's account and start a session."""
    result = auth_flow_service.register(db, body.email, body.password, body.invite_token, request)
    return _session_payload(result, success=True)


@router.post("/login", response_model=AuthSessionResponse, response_model_exclude_unset=True)
@limiter.limit(auth_limit)
def login(
    request: Request,
    body: LoginRequest,
    db: Session = Depends(get_db),
):
    """Password login."""
    result = auth_flow_service.login(db, body.email, body.password, request)
    return _session_payload(result, success=True)


@router.post("/password-reset", response_model=MessageResponse)
@limiter.limit(auth_limit)
async def request_password_reset(
    request: Request,
    body: PasswordResetRequest,
    db: Session = Depends(get_db),
    sender: NotificationSender = Depends(get_notification_sender),
):
    """Email a reset link. Same response whether or not the email is known."""
    message = await auth_flow_service.request_password_reset(db, sender, body.email)
    return MessageResponse(success=True, message=message)


@router.post("/password-reset-confirm", response_model=MessageResponse, response_model_exclude_none=True)
@limiter.limit(auth_limit)
def confirm_password_reset(
    request: Request,
    body: PasswordResetConfirmRequest,
    db: Session = Depends(get_db),
):
    auth_flow_service.confirm_password_reset(db, body.token, body.password)
    return MessageResponse(success=True, message="Password updated successfully")


# =============================================================================
# Sessions
# =============================================================================


@router.post("/logout", response_model=MessageResponse, response_model_exclude_none=True)
def logout(
    db: Session = Depends(get_db),
    session_token: str | None = Depends(get_session_token),
):
    """End the session. Always succeeds."""
    auth_flow_service.logout(db, session_token)
    return MessageResponse(success=True)


@router.get("/session", response_model=AuthSessionResponse, response_model_exclude_unset=True)
def get_session(
    db: Session = Depends(get_db),
    session_token: str | None = Depends(get_session_token),
):
    """Validate the session token and return its account and active context."""
    result = auth_flow_service.check_session(db, session_token)
    if result is None:
        return AuthSessionResponse(authenticated=False)
    return _session_payload(result, authenticated=True)


# =============================================================================
# Clerk
# =============================================================================


@router.post("/clerk-link", response_model=AuthSessionResponse, response_model_exclude_unset=True)
@limiter.limit(auth_limit)
def clerk_link(
    request: Request,
    body: ClerkLinkRequest,
    db: Session = Depends(get_db),
):
    """Bind a Clerk user to the customer account for an email."""
    result = auth_flow_service.clerk_link(db, body.clerk_user_id, body.email)
    return _clerk_payload(result, success=True, linked=True)


@router.post("/clerk-verify", response_model=AuthSessionResponse, response_model_exclude_unset=True)
@limiter.limit(auth_limit)
def clerk_verify(
    request: Request,
    body: ClerkVerifyRequest | None = None,
    db: Session = Depends(get_db),
    authorization: str | None = Depends(get_authorization),
):
    """
    Resolve a Clerk-authenticated caller to account data.

    Unbound identities with an email are linked on the fly; without an email
    the response asks the client to link first.
    """
    body = body or ClerkVerifyRequest()
    result = auth_flow_service.clerk_verify(db, authorization, body.clerk_user_id, body.email)
    if result is None:
        return AuthSessionResponse(authenticated=False)
    if result.linked:
        return _clerk_payload(result, success=True, authenticated=True, linked=True)
    return _clerk_payload(result, authenticated=True)
