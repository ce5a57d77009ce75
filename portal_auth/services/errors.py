"""Typed failures raised by the customer auth flows.

Routers never build error responses themselves; the exception handler in
`portal_auth.routers.customer_auth` turns these into JSON bodies.
"""


class CustomerAuthError(Exception):
    """Base exception for customer auth errors."""

    code = "customer_auth_error"
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailedError(CustomerAuthError):
    """Missing or malformed input (email, token, password)."""

    code = "validation_failed"
    status_code = 400
    default_message = "Invalid request"


class PasswordTooShortError(ValidationFailedError):
    """Password below the configured minimum length."""

    code = "password_too_short"
    default_message = "Password must be at least 8 characters"


class InvalidCredentialsError(CustomerAuthError):
    """Unknown email, no password set, or wrong password. Never distinguished."""

    code = "invalid_credentials"
    status_code = 401
    default_message = "Invalid email or password"


class InvalidOrExpiredTokenError(CustomerAuthError):
    """Single-use token was unknown, already used, or past its expiry."""

    code = "invalid_or_expired"
    status_code = 401
    default_message = "Invalid or expired link"


class TokenNotFoundError(InvalidOrExpiredTokenError):
    """No account holds this token (never issued, replaced, or consumed)."""

    code = "token_not_found"


class TokenExpiredError(InvalidOrExpiredTokenError):
    """Token matched an account but its expiry has passed."""

    code = "token_expired"


class NoCustomerFoundError(CustomerAuthError):
    """No customer record anywhere matches the email."""

    code = "no_customer_found"
    status_code = 404
    default_message = "No customer account found with this email"


class AlreadyHasPasswordError(CustomerAuthError):
    """Registration attempted for an account that already has a password."""

    code = "already_has_password"
    status_code = 409
    default_message = "Account already has a password. Please login instead."


class BusinessAccessDeniedError(CustomerAuthError):
    """Account is not linked to the requested business."""

    code = "business_access_denied"
    status_code = 403
    default_message = "You do not have access to this business"


class NeedsLinkingError(CustomerAuthError):
    """Federated identity is not bound and no email was supplied to link it."""

    code = "needs_linking"
    status_code = 200
    default_message = "Identity is not linked to a customer account"


class InvalidSessionError(CustomerAuthError):
    """Missing, unknown or expired session token on a session-bound call."""

    code = "invalid_session"
    status_code = 401
    default_message = "Invalid or expired session"
