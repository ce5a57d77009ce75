"""Customer account service - customer lookup and account find-or-create."""

import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from portal_auth.core.structured_logging import mask_email
from portal_auth.db.models import Customer, CustomerAccount, utcnow
from portal_auth.services.errors import ValidationFailedError

logger = logging.getLogger(__name__)

# Customers sharing one email across businesses; more than this is a data problem
MAX_CUSTOMER_MATCHES = 10


def normalize_email(email: str | None) -> str:
    """
    Validate format and lowercase an email.

    Raises:
        ValidationFailedError: Missing or malformed email
    """
    email = (email or "").strip()
    if not email:
        raise ValidationFailedError("Email is required")
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        raise ValidationFailedError("Invalid email address")
    return email.lower()


def find_customers_by_email(db: Session, email: str) -> list[Customer]:
    """
    Find customer records for an email, most recently updated first.

    The same email may belong to customers of several unrelated businesses.
    Callers that need a single record take the first one: the latest
    updated_at wins.
    """
    stmt = (
        select(Customer)
        .where(Customer.email == email.lower())
        .order_by(Customer.updated_at.desc(), Customer.id)
        .limit(MAX_CUSTOMER_MATCHES)
    )
    return list(db.scalars(stmt).all())


def get_account_by_email(db: Session, email: str) -> CustomerAccount | None:
    stmt = select(CustomerAccount).where(CustomerAccount.email == email.lower())
    return db.scalars(stmt).first()


def get_account_by_clerk_id(db: Session, clerk_user_id: str) -> CustomerAccount | None:
    stmt = select(CustomerAccount).where(CustomerAccount.clerk_user_id == clerk_user_id)
    return db.scalars(stmt).first()


def find_account_for_customer(
    db: Session,
    customer: Customer,
    email: str,
) -> CustomerAccount | None:
    """Existing account for this login email, else for this customer record."""
    account = get_account_by_email(db, email)
    if account:
        return account
    stmt = select(CustomerAccount).where(CustomerAccount.customer_id == customer.id)
    return db.scalars(stmt).first()


def _merge_email(
    db: Session,
    customer: Customer,
    account: CustomerAccount,
    email: str,
) -> CustomerAccount:
    """
    Move a customer's account to the customer's current email.

    Only reached when no account holds `email`; if one appears concurrently,
    the unique constraint rejects the UPDATE and that account is used.
    """
    try:
        with db.begin_nested():
            account.email = email
            db.flush()
    except IntegrityError:
        winner = get_account_by_email(db, email)
        if winner is None:
            raise
        logger.info("Email for account %s claimed concurrently by account %s", account.id, winner.id)
        return winner

    logger.info(
        "Customer account %s moved to customer %s's current email %s",
        account.id,
        customer.id,
        mask_email(email),
    )
    return account


def upsert_account(
    db: Session,
    customer: Customer,
    email: str,
    **fields,
) -> CustomerAccount:
    """
    Find-or-create the account for (customer, email), then merge fields.

    Uniqueness of email and customer_id is enforced by the database. When a
    concurrent request creates the row first, the INSERT fails inside a
    SAVEPOINT and the winner's row is re-read and merged into instead.
    An account found through customer_id takes over the new email, so the
    customer can log in with the address the business now has on file.

    Does not commit; callers own the transaction.
    """
    email = email.lower()
    account = find_account_for_customer(db, customer, email)

    if account is None:
        try:
            with db.begin_nested():
                account = CustomerAccount(customer_id=customer.id, email=email)
                db.add(account)
            logger.info(
                "Created customer account %s for customer %s (email: %s)",
                account.id,
                customer.id,
                mask_email(email),
            )
        except IntegrityError:
            account = find_account_for_customer(db, customer, email)
            if account is None:
                raise
            logger.info("Customer account %s created concurrently, merging", account.id)
    elif account.email != email:
        account = _merge_email(db, customer, account, email)

    for key, value in fields.items():
        setattr(account, key, value)
    account.updated_at = utcnow()
    db.flush()
    return account


def record_login(db: Session, account: CustomerAccount, auth_method: str | None = None) -> None:
    """Stamp last_login_at (and the informational auth method)."""
    account.last_login_at = utcnow()
    if auth_method:
        account.auth_method = auth_method
    db.flush()


def set_initial_password(db: Session, account: CustomerAccount, password_hash: str) -> bool:
    """
    Store a password hash only if the account has none yet.

    Conditional UPDATE, so two racing registrations cannot both set one.

    Returns:
        True if this call set the password
    """
    now = utcnow()
    stmt = (
        update(CustomerAccount)
        .where(
            CustomerAccount.id == account.id,
            CustomerAccount.password_hash.is_(None),
        )
        .values(password_hash=password_hash, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    if result.rowcount != 1:
        return False
    db.refresh(account)
    return True
