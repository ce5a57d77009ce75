"""Tests for the magic-link endpoints."""
from datetime import timedelta

import pytest
from httpx import AsyncClient

from portal_auth.db.enums import TokenKind
from portal_auth.db.models import CustomerAccount, CustomerPortalInvite, CustomerSession, utcnow
from portal_auth.services import account_service, auth_flow_service, token_service
from portal_auth.services.errors import InvalidOrExpiredTokenError


@pytest.mark.asyncio
async def test_magic_link_round_trip(client: AsyncClient, db, customer, sender):
    response = await client.post("/customer-auth/magic-link", json={"email": "Jane@Example.com"})

    assert response.status_code == 200
    data = response.json()
    assert data == {
        "success": True,
        "emailSent": True,
        "message": auth_flow_service.MAGIC_LINK_SENT_MESSAGE,
    }
    assert sender.sent[-1].to == "jane@example.com"
    assert sender.sent[-1].subject == "Access your project portal - Acme Landscaping"

    token = sender.last_token()
    verify = await client.post("/customer-auth/verify-magic", json={"token": token})

    assert verify.status_code == 200
    body = verify.json()
    assert body["success"] is True
    assert body["session_token"]
    assert body["active_business_id"] == str(customer.business_id)
    assert body["active_customer_id"] == str(customer.id)
    assert body["customer_account"]["auth_method"] == "magic_link"
    assert body["customer"]["business"]["name"] == "Acme Landscaping"
    assert body["available_businesses"] == []

    again = await client.post("/customer-auth/verify-magic", json={"token": token})
    assert again.status_code == 401
    assert again.json() == {
        "success": False,
        "error": "Invalid or expired magic link",
        "code": "invalid_or_expired",
    }


@pytest.mark.asyncio
async def test_unknown_email_matches_send_failure_body(client: AsyncClient, db, customer, sender):
    """Unknown emails and failed sends are indistinguishable."""
    unknown = await client.post("/customer-auth/magic-link", json={"email": "stranger@example.com"})
    assert unknown.status_code == 200
    assert sender.sent == []

    sender.fail = True
    failed = await client.post("/customer-auth/magic-link", json={"email": customer.email})
    assert failed.status_code == 200

    assert unknown.json() == failed.json()
    assert failed.json()["emailSent"] is False
    assert failed.json()["warning"] == auth_flow_service.EMAIL_NOT_SENT_WARNING
    assert db.query(CustomerAccount).filter(CustomerAccount.email == "stranger@example.com").count() == 0


@pytest.mark.asyncio
async def test_failed_send_keeps_token_valid(client: AsyncClient, customer, sender):
    sender.fail = True
    response = await client.post("/customer-auth/magic-link", json={"email": customer.email})
    assert response.json()["emailSent"] is False

    verify = await client.post("/customer-auth/verify-magic", json={"token": sender.last_token()})
    assert verify.status_code == 200


@pytest.mark.asyncio
async def test_sender_crash_degrades_to_warning(client: AsyncClient, customer, sender):
    sender.raise_exc = RuntimeError("provider exploded")

    response = await client.post("/customer-auth/magic-link", json={"email": customer.email})

    assert response.status_code == 200
    assert response.json()["emailSent"] is False


@pytest.mark.asyncio
async def test_second_magic_link_invalidates_first(client: AsyncClient, customer, sender):
    await client.post("/customer-auth/magic-link", json={"email": customer.email})
    first = sender.last_token()
    await client.post("/customer-auth/magic-link", json={"email": customer.email})
    second = sender.last_token()

    stale = await client.post("/customer-auth/verify-magic", json={"token": first})
    assert stale.status_code == 401

    fresh = await client.post("/customer-auth/verify-magic", json={"token": second})
    assert fresh.status_code == 200


@pytest.mark.asyncio
async def test_redirect_url_must_be_http(client: AsyncClient, customer, sender):
    await client.post(
        "/customer-auth/magic-link",
        json={"email": customer.email, "redirect_url": "https://portal.example.com/"},
    )
    assert "https://portal.example.com/customer-magic/" in sender.sent[-1].html

    await client.post(
        "/customer-auth/magic-link",
        json={"email": customer.email, "redirect_url": "javascript:alert(1)"},
    )
    assert "https://servicegrid.app/customer-magic/" in sender.sent[-1].html


@pytest.mark.asyncio
async def test_magic_link_validation(client: AsyncClient):
    missing = await client.post("/customer-auth/magic-link", json={})
    assert missing.status_code == 400
    assert missing.json()["error"] == "Email is required"

    malformed = await client.post("/customer-auth/magic-link", json={"email": "nope"})
    assert malformed.status_code == 400

    no_token = await client.post("/customer-auth/verify-magic", json={})
    assert no_token.status_code == 400
    assert no_token.json()["error"] == "Token is required"


@pytest.mark.asyncio
async def test_verify_accepts_pending_invites(client: AsyncClient, db, customer, sender):
    invite = CustomerPortalInvite(
        customer_id=customer.id,
        business_id=customer.business_id,
        email=customer.email,
    )
    db.add(invite)
    db.commit()

    await client.post("/customer-auth/magic-link", json={"email": customer.email})
    await client.post("/customer-auth/verify-magic", json={"token": sender.last_token()})

    db.refresh(invite)
    assert invite.accepted_at is not None


@pytest.mark.asyncio
async def test_verify_records_masked_client_info(client: AsyncClient, db, customer, sender):
    await client.post("/customer-auth/magic-link", json={"email": customer.email})
    await client.post(
        "/customer-auth/verify-magic",
        json={"token": sender.last_token()},
        headers={"User-Agent": "portal-tests"},
    )

    record = db.query(CustomerSession).one()
    assert record.user_agent == "portal-tests"
    assert record.auth_method == "magic_link"


@pytest.mark.parametrize("expired", [False, True])
def test_rejected_token_hides_underlying_cause(db, customer, expired):
    account = account_service.upsert_account(db, customer, customer.email)
    raw = token_service.issue_token(db, account, TokenKind.MAGIC_LINK).value
    if expired:
        account.token_expires_at = utcnow() - timedelta(minutes=1)
        db.commit()
    else:
        raw = "not-a-real-token"

    with pytest.raises(InvalidOrExpiredTokenError) as exc_info:
        auth_flow_service.verify_magic_link(db, raw)

    assert exc_info.value.message == "Invalid or expired magic link"
    assert exc_info.value.__cause__ is None
    assert exc_info.value.__suppress_context__ is True
