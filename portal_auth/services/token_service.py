"""Single-use token service - magic-link and password-reset tokens.

Both kinds share one slot on the customer account (kind, digest, expiry).
Everything that reads or writes that slot lives here, so the two kinds can
later move to separate columns without touching callers.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from portal_auth.core.config import settings
from portal_auth.core.security import generate_opaque_token, hash_token
from portal_auth.db.enums import TokenKind
from portal_auth.db.models import CustomerAccount, utcnow
from portal_auth.services.errors import TokenExpiredError, TokenNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SingleUseToken:
    """A freshly issued token. `value` is the raw secret sent to the customer."""

    kind: TokenKind
    value: str
    expires_at: datetime


def token_ttl(kind: TokenKind) -> timedelta:
    if kind == TokenKind.PASSWORD_RESET:
        return timedelta(hours=settings.RESET_TOKEN_TTL_HOURS)
    return timedelta(hours=settings.MAGIC_LINK_TTL_HOURS)


def token_digest(kind: TokenKind, raw_token: str) -> str:
    """
    Digest stored for a raw token.

    The kind is part of the hashed input, so a reset token can never match a
    magic-link lookup even if the kind column were ignored.
    """
    return hash_token(f"{kind.value}:{raw_token}")


def issue_token(db: Session, account: CustomerAccount, kind: TokenKind) -> SingleUseToken:
    """
    Issue a new single-use token and commit it.

    Overwrites whatever token the account held before, which invalidates it.
    The commit happens here so the token is durable before any email goes out.
    """
    raw_token = generate_opaque_token()
    expires_at = utcnow() + token_ttl(kind)

    account.token_kind = kind.value
    account.token_hash = token_digest(kind, raw_token)
    account.token_expires_at = expires_at
    db.commit()

    logger.info("Issued %s token for account %s (expires %s)", kind.value, account.id, expires_at)
    return SingleUseToken(kind=kind, value=raw_token, expires_at=expires_at)


def consume_token(db: Session, raw_token: str, kind: TokenKind) -> CustomerAccount:
    """
    Redeem a single-use token exactly once.

    The match, expiry check and clear happen in one conditional UPDATE, so of
    any number of concurrent callers presenting the same token only one sees
    a matched row; the rest get TokenNotFoundError.

    Raises:
        TokenNotFoundError: No account holds this token (or it was just used)
        TokenExpiredError: Token matched but is past its expiry
    """
    if not raw_token:
        raise TokenNotFoundError()

    digest = token_digest(kind, raw_token)
    holder_stmt = select(CustomerAccount.id).where(
        CustomerAccount.token_kind == kind.value,
        CustomerAccount.token_hash == digest,
    )
    account_id = db.scalars(holder_stmt).first()
    if account_id is None:
        raise TokenNotFoundError()

    clear_stmt = (
        update(CustomerAccount)
        .where(
            CustomerAccount.id == account_id,
            CustomerAccount.token_kind == kind.value,
            CustomerAccount.token_hash == digest,
            CustomerAccount.token_expires_at > utcnow(),
        )
        .values(token_kind=None, token_hash=None, token_expires_at=None)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(clear_stmt)

    if result.rowcount != 1:
        # Lost the race, or the token is stale. Only a stale token is still held.
        still_held = db.scalars(holder_stmt).first()
        db.rollback()
        if still_held is not None:
            logger.info("Rejected expired %s token for account %s", kind.value, account_id)
            raise TokenExpiredError()
        raise TokenNotFoundError()

    db.commit()
    account = db.get(CustomerAccount, account_id)
    logger.info("Consumed %s token for account %s", kind.value, account_id)
    return account
