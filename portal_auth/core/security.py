"""Security utilities for opaque tokens, password hashing and Clerk bearer checks."""

import hashlib
import uuid

import bcrypt
import jwt

from portal_auth.core.config import settings
from portal_auth.services.errors import PasswordTooShortError


# =============================================================================
# Opaque Tokens (sessions, magic links, password resets)
# =============================================================================

def generate_opaque_token() -> str:
    """
    Generate an unguessable bearer value.

    Two random UUID4s joined by a hyphen: 244 random bits, URL-safe, and
    only hex digits and hyphens so it survives copy/paste out of emails.
    """
    return f"{uuid.uuid4()}-{uuid.uuid4()}"


def hash_token(token: str) -> str:
    """Create SHA256 hash of a token for storage and lookup."""
    return hashlib.sha256(token.encode()).hexdigest()


# =============================================================================
# Passwords (bcrypt)
# =============================================================================

def validate_password(password: str) -> None:
    """
    Enforce the minimum password length before any hashing happens.

    Raises:
        PasswordTooShortError: If shorter than PASSWORD_MIN_LENGTH
    """
    if len(password or "") < settings.PASSWORD_MIN_LENGTH:
        raise PasswordTooShortError(
            f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters"
        )


def hash_password(password: str) -> str:
    """Hash a password using bcrypt with the configured cost factor."""
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    """Verify a password against a stored bcrypt hash."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# =============================================================================
# Clerk Bearer Token
# =============================================================================

def parse_bearer(authorization: str | None) -> str | None:
    """Extract the token from an `Authorization: Bearer <token>` header."""
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer "):].strip()
    return token or None


def verify_clerk_bearer(token: str, clerk_user_id: str) -> bool:
    """
    Check that a Clerk session JWT belongs to clerk_user_id.

    Only enforced when CLERK_JWT_KEY is configured. Without a key the
    caller-supplied clerk_user_id is trusted (Clerk remains the session
    authority for the federated flow).
    """
    if not settings.CLERK_JWT_KEY:
        return True
    try:
        payload = jwt.decode(
            token,
            settings.CLERK_JWT_KEY,
            algorithms=settings.clerk_jwt_algorithms_list,
            options={"verify_aud": False},
        )
    except jwt.InvalidTokenError:
        return False
    return payload.get("sub") == clerk_user_id
