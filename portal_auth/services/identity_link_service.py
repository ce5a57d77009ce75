"""Federated identity linker - binds a Clerk user id to a customer account."""

import logging

from sqlalchemy.orm import Session

from portal_auth.core.structured_logging import mask_email
from portal_auth.db.enums import AuthMethod
from portal_auth.db.models import Customer, CustomerAccount, utcnow
from portal_auth.services import account_service
from portal_auth.services.errors import NeedsLinkingError, NoCustomerFoundError

logger = logging.getLogger(__name__)


def find_latest_customer_by_email(db: Session, email: str) -> Customer:
    """
    Most recently updated customer record for an email.

    Raises:
        NoCustomerFoundError: No business has a customer with this email
    """
    customers = account_service.find_customers_by_email(db, email)
    if not customers:
        raise NoCustomerFoundError()
    if len(customers) > 1:
        logger.info(
            "Found %d customers for %s, using %s from business %s",
            len(customers),
            mask_email(email),
            customers[0].id,
            customers[0].business_id,
        )
    return customers[0]


def link_by_email(
    db: Session,
    clerk_user_id: str,
    email: str,
) -> tuple[CustomerAccount, Customer]:
    """
    Bind clerk_user_id to the account for this email, creating it if needed.

    Never creates customer records: the email must already belong to a
    customer of some business.

    Raises:
        NoCustomerFoundError: No customer record matches the email
    """
    customer = find_latest_customer_by_email(db, email)

    # A Clerk user id binds to one account; relinking moves the binding.
    previous = account_service.get_account_by_clerk_id(db, clerk_user_id)
    if previous is not None and previous.email != email.lower():
        logger.warning("Moving Clerk binding off account %s", previous.id)
        previous.clerk_user_id = None
        db.flush()

    account = account_service.upsert_account(
        db,
        customer,
        email,
        clerk_user_id=clerk_user_id,
        auth_method=AuthMethod.CLERK.value,
        last_login_at=utcnow(),
    )
    db.commit()
    logger.info("Linked Clerk identity to account %s", account.id)
    return account, customer


def verify_identity(
    db: Session,
    clerk_user_id: str,
    email: str | None = None,
) -> tuple[CustomerAccount, Customer, bool]:
    """
    Resolve a Clerk user to a customer account.

    Falls back to link_by_email when the identity is unbound and an email was
    supplied.

    Returns:
        (account, customer, linked_now)

    Raises:
        NeedsLinkingError: Unbound identity and no email to link with
        NoCustomerFoundError: Email supplied but matches no customer
    """
    account = account_service.get_account_by_clerk_id(db, clerk_user_id)
    if account is not None:
        account_service.record_login(db, account)
        db.commit()
        return account, account.customer, False

    if not email:
        raise NeedsLinkingError()

    account, customer = link_by_email(db, clerk_user_id, email)
    return account, customer, True
