"""Tests for Clerk identity linking."""
import pytest

from portal_auth.db.models import CustomerAccount
from portal_auth.services import account_service, identity_link_service
from portal_auth.services.errors import NeedsLinkingError, NoCustomerFoundError


def test_link_by_email_creates_account(db, customer):
    account, matched = identity_link_service.link_by_email(db, "user_1", customer.email)

    assert matched.id == customer.id
    assert account.clerk_user_id == "user_1"
    assert account.auth_method == "clerk"
    assert account.customer_id == customer.id


def test_link_by_email_unknown_email(db, customer):
    with pytest.raises(NoCustomerFoundError):
        identity_link_service.link_by_email(db, "user_1", "stranger@example.com")
    assert db.query(CustomerAccount).count() == 0


def test_link_attaches_to_existing_password_account(db, customer):
    existing = account_service.upsert_account(db, customer, customer.email, password_hash="x")
    db.commit()

    account, _ = identity_link_service.link_by_email(db, "user_1", customer.email)

    assert account.id == existing.id
    assert account.password_hash == "x"
    assert db.query(CustomerAccount).count() == 1


def test_relinking_moves_clerk_binding(db, customer, business):
    from portal_auth.db.models import Customer

    other = Customer(business_id=business.id, name="Other", email="other@example.com")
    db.add(other)
    db.commit()

    first, _ = identity_link_service.link_by_email(db, "user_1", customer.email)
    second, _ = identity_link_service.link_by_email(db, "user_1", other.email)

    db.refresh(first)
    assert first.clerk_user_id is None
    assert second.clerk_user_id == "user_1"


def test_verify_identity_bound_account(db, customer):
    identity_link_service.link_by_email(db, "user_1", customer.email)

    account, matched, linked_now = identity_link_service.verify_identity(db, "user_1")

    assert linked_now is False
    assert matched.id == customer.id
    assert account.last_login_at is not None


def test_verify_identity_unbound_without_email(db, customer):
    with pytest.raises(NeedsLinkingError):
        identity_link_service.verify_identity(db, "user_1")


def test_verify_identity_links_with_email(db, customer):
    account, _, linked_now = identity_link_service.verify_identity(db, "user_1", customer.email)
    assert linked_now is True
    assert account.clerk_user_id == "user_1"
