"""FastAPI dependencies for database access and customer session tokens."""

from typing import Generator

from fastapi import Header
from sqlalchemy.orm import Session

from portal_auth.core.config import settings
from portal_auth.db.session import SessionLocal


# Header carrying the opaque customer session token
SESSION_HEADER = settings.SESSION_HEADER


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_token(
    x_session_token: str | None = Header(default=None, alias=SESSION_HEADER),
) -> str | None:
    """Raw session token from the request header (None when absent)."""
    if x_session_token:
        return x_session_token.strip() or None
    return None


def get_authorization(
    authorization: str | None = Header(default=None),
) -> str | None:
    return authorization
