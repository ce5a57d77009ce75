"""Tests for registration, password login and password reset."""
import pytest
from httpx import AsyncClient

from portal_auth.core.config import settings
from portal_auth.db.models import CustomerAccount, CustomerPortalInvite, CustomerSession
from portal_auth.services import auth_flow_service
from portal_auth.services.errors import InvalidOrExpiredTokenError

PASSWORD = "s3cret-pass"


async def _register(client: AsyncClient, email: str, password: str = PASSWORD, **extra):
    return await client.post(
        "/customer-auth/register", json={"email": email, "password": password, **extra}
    )


@pytest.mark.asyncio
async def test_register_then_login_gives_independent_sessions(client: AsyncClient, customer):
    registered = await _register(client, customer.email)
    assert registered.status_code == 200
    assert registered.json()["customer_account"]["auth_method"] == "password"

    logged_in = await client.post(
        "/customer-auth/login", json={"email": customer.email, "password": PASSWORD}
    )
    assert logged_in.status_code == 200

    first = registered.json()["session_token"]
    second = logged_in.json()["session_token"]
    assert first != second

    for token in (first, second):
        check = await client.get("/customer-auth/session", headers={"X-Session-Token": token})
        assert check.json()["authenticated"] is True

    await client.post("/customer-auth/logout", headers={"X-Session-Token": first})

    gone = await client.get("/customer-auth/session", headers={"X-Session-Token": first})
    assert gone.json() == {"authenticated": False}
    still = await client.get("/customer-auth/session", headers={"X-Session-Token": second})
    assert still.json()["authenticated"] is True


@pytest.mark.asyncio
async def test_short_password_creates_nothing(client: AsyncClient, db, customer):
    response = await _register(client, customer.email, password="abc")

    assert response.status_code == 400
    assert response.json()["code"] == "password_too_short"
    assert db.query(CustomerAccount).count() == 0
    assert db.query(CustomerSession).count() == 0


@pytest.mark.asyncio
async def test_register_requires_fields(client: AsyncClient):
    response = await client.post("/customer-auth/register", json={"email": "jane@example.com"})
    assert response.status_code == 400
    assert response.json()["error"] == "Email and password are required"


@pytest.mark.asyncio
async def test_register_unknown_email(client: AsyncClient, db, customer):
    response = await _register(client, "stranger@example.com")
    assert response.status_code == 404
    assert response.json()["error"] == "No customer account found with this email"


@pytest.mark.asyncio
async def test_register_twice_conflicts(client: AsyncClient, customer):
    await _register(client, customer.email)

    again = await _register(client, customer.email, password="another-pass")

    assert again.status_code == 409
    assert again.json()["code"] == "already_has_password"


@pytest.mark.asyncio
async def test_register_after_magic_link_keeps_account(client: AsyncClient, db, customer, sender):
    await client.post("/customer-auth/magic-link", json={"email": customer.email})

    response = await _register(client, customer.email)

    assert response.status_code == 200
    assert db.query(CustomerAccount).count() == 1


@pytest.mark.asyncio
async def test_register_after_customer_email_change_can_login(
    client: AsyncClient, db, customer, sender
):
    await client.post("/customer-auth/magic-link", json={"email": customer.email})
    customer.email = "jane.new@example.com"
    db.commit()

    registered = await _register(client, "jane.new@example.com")
    assert registered.status_code == 200

    logged_in = await client.post(
        "/customer-auth/login", json={"email": "jane.new@example.com", "password": PASSWORD}
    )
    assert logged_in.status_code == 200
    assert logged_in.json()["customer_account"]["email"] == "jane.new@example.com"
    assert db.query(CustomerAccount).count() == 1

    await client.post("/customer-auth/password-reset", json={"email": "jane.new@example.com"})
    assert sender.sent[-1].to == "jane.new@example.com"
    assert "/customer-reset-password/" in sender.sent[-1].html


@pytest.mark.asyncio
async def test_register_accepts_invite_token(client: AsyncClient, db, customer):
    invite = CustomerPortalInvite(
        customer_id=customer.id,
        business_id=customer.business_id,
        email=customer.email,
    )
    db.add(invite)
    db.commit()

    await _register(client, customer.email, invite_token=invite.invite_token)

    db.refresh(invite)
    assert invite.accepted_at is not None


@pytest.mark.asyncio
async def test_login_failures_are_indistinguishable(client: AsyncClient, customer, sender):
    await client.post("/customer-auth/magic-link", json={"email": customer.email})

    no_password = await client.post(
        "/customer-auth/login", json={"email": customer.email, "password": PASSWORD}
    )
    unknown = await client.post(
        "/customer-auth/login", json={"email": "stranger@example.com", "password": PASSWORD}
    )
    await _register(client, customer.email)
    wrong = await client.post(
        "/customer-auth/login", json={"email": customer.email, "password": "wrong-password"}
    )

    for response in (no_password, unknown, wrong):
        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "error": "Invalid email or password",
            "code": "invalid_credentials",
        }


@pytest.mark.asyncio
async def test_password_reset_flow(client: AsyncClient, customer, sender):
    await _register(client, customer.email)

    requested = await client.post("/customer-auth/password-reset", json={"email": customer.email})
    assert requested.status_code == 200
    assert requested.json()["message"] == auth_flow_service.RESET_GENERIC_MESSAGE
    assert sender.sent[-1].subject == "Reset your password - Acme Landscaping"
    token = sender.last_token("customer-reset-password")

    confirmed = await client.post(
        "/customer-auth/password-reset-confirm", json={"token": token, "password": "brand-new-pass"}
    )
    assert confirmed.status_code == 200
    assert confirmed.json()["success"] is True

    old = await client.post("/customer-auth/login", json={"email": customer.email, "password": PASSWORD})
    assert old.status_code == 401
    new = await client.post(
        "/customer-auth/login", json={"email": customer.email, "password": "brand-new-pass"}
    )
    assert new.status_code == 200

    reused = await client.post(
        "/customer-auth/password-reset-confirm", json={"token": token, "password": "another-pass"}
    )
    assert reused.status_code == 401
    assert reused.json()["error"] == "Invalid or expired reset link"


@pytest.mark.asyncio
async def test_password_reset_unknown_email_is_generic(client: AsyncClient, customer, sender):
    response = await client.post("/customer-auth/password-reset", json={"email": "stranger@example.com"})

    assert response.status_code == 200
    assert response.json()["message"] == auth_flow_service.RESET_GENERIC_MESSAGE
    assert sender.sent == []


@pytest.mark.asyncio
async def test_reset_token_cannot_be_used_as_magic_link(client: AsyncClient, customer, sender):
    await client.post("/customer-auth/magic-link", json={"email": customer.email})
    await client.post("/customer-auth/password-reset", json={"email": customer.email})
    reset_token = sender.last_token("customer-reset-password")

    response = await client.post("/customer-auth/verify-magic", json={"token": reset_token})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_reset_confirm_validates_before_consuming(client: AsyncClient, customer, sender):
    await client.post("/customer-auth/magic-link", json={"email": customer.email})
    await client.post("/customer-auth/password-reset", json={"email": customer.email})
    token = sender.last_token("customer-reset-password")

    short = await client.post(
        "/customer-auth/password-reset-confirm", json={"token": token, "password": "abc"}
    )
    assert short.status_code == 400

    ok = await client.post(
        "/customer-auth/password-reset-confirm", json={"token": token, "password": "long-enough"}
    )
    assert ok.status_code == 200


@pytest.mark.asyncio
async def test_reset_keeps_sessions_by_default(client: AsyncClient, customer, sender):
    session_token = (await _register(client, customer.email)).json()["session_token"]
    await client.post("/customer-auth/password-reset", json={"email": customer.email})

    await client.post(
        "/customer-auth/password-reset-confirm",
        json={"token": sender.last_token("customer-reset-password"), "password": "brand-new-pass"},
    )

    check = await client.get("/customer-auth/session", headers={"X-Session-Token": session_token})
    assert check.json()["authenticated"] is True


@pytest.mark.asyncio
async def test_reset_can_revoke_sessions(client: AsyncClient, customer, sender, monkeypatch):
    monkeypatch.setattr(settings, "RESET_REVOKES_SESSIONS", True)
    session_token = (await _register(client, customer.email)).json()["session_token"]
    await client.post("/customer-auth/password-reset", json={"email": customer.email})

    await client.post(
        "/customer-auth/password-reset-confirm",
        json={"token": sender.last_token("customer-reset-password"), "password": "brand-new-pass"},
    )

    check = await client.get("/customer-auth/session", headers={"X-Session-Token": session_token})
    assert check.json() == {"authenticated": False}


def test_rejected_reset_token_hides_underlying_cause(db, customer):
    with pytest.raises(InvalidOrExpiredTokenError) as exc_info:
        auth_flow_service.confirm_password_reset(db, "not-a-real-token", PASSWORD)

    assert exc_info.value.message == "Invalid or expired reset link"
    assert exc_info.value.__suppress_context__ is True
