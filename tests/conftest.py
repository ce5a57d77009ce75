"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database, tables recreated for each test
- Seeded businesses / customers sharing one email
- A notification sender that records instead of delivering
- HTTPX AsyncClient with get_db and the sender overridden
"""
import os
import re
from dataclasses import dataclass, field
from typing import AsyncGenerator, Generator

# Must be set before portal_auth.core.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TESTING"] = "1"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RESEND_API_KEY"] = ""
os.environ["CLERK_JWT_KEY"] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from portal_auth.core.deps import get_db
from portal_auth.db.base import Base
from portal_auth.db.models import Business, Customer, CustomerAccount, CustomerAccountLink
from portal_auth.db.session import SessionLocal, engine
from portal_auth.main import app
from portal_auth.services.notification_service import SendResult, get_notification_sender

SHARED_EMAIL = "jane@example.com"


# =============================================================================
# Notification Fixtures
# =============================================================================

@dataclass
class SentEmail:
    to: str
    subject: str
    html: str


@dataclass
class RecordingSender:
    """Records every send; can be told to fail or to raise."""

    key: str = "recording"
    sent: list[SentEmail] = field(default_factory=list)
    fail: bool = False
    raise_exc: Exception | None = None

    async def send(self, *, to: str, subject: str, html: str) -> SendResult:
        self.sent.append(SentEmail(to=to, subject=subject, html=html))
        if self.raise_exc is not None:
            raise self.raise_exc
        if self.fail:
            return SendResult(success=False, error="Email service temporarily unavailable")
        return SendResult(success=True, message_id=f"msg_{len(self.sent)}")

    def last_token(self, path: str = "customer-magic") -> str:
        """Raw token from the link in the most recent email."""
        assert self.sent, "no email was sent"
        match = re.search(rf"/{path}/([0-9a-f-]+)", self.sent[-1].html)
        assert match, "no link in email"
        return match.group(1)


@pytest.fixture(scope="function")
def sender() -> RecordingSender:
    return RecordingSender()


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Fresh schema per test.

    The in-memory database lives on a single StaticPool connection, so app
    code can commit freely; dropping the tables resets everything.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def business(db: Session) -> Business:
    business = Business(name="Acme Landscaping", logo_url="https://cdn.example.com/acme.png")
    db.add(business)
    db.flush()
    return business


@pytest.fixture(scope="function")
def second_business(db: Session) -> Business:
    business = Business(name="Bright Pools", light_logo_url="https://cdn.example.com/bright-light.png")
    db.add(business)
    db.flush()
    return business


@pytest.fixture(scope="function")
def customer(db: Session, business: Business) -> Customer:
    customer = Customer(
        business_id=business.id,
        name="Jane Doe",
        email=SHARED_EMAIL,
        phone="555-0100",
        address="1 Main St",
    )
    db.add(customer)
    db.commit()
    return customer


@pytest.fixture(scope="function")
def second_customer(db: Session, second_business: Business, customer: Customer) -> Customer:
    """Same person, as a customer of a second business."""
    second = Customer(
        business_id=second_business.id,
        name="Jane D.",
        email=SHARED_EMAIL,
    )
    db.add(second)
    db.commit()
    return second


@pytest.fixture(scope="function")
def link_account(db: Session):
    """Factory: link an account to a customer record of some business."""

    def _link(account: CustomerAccount, customer: Customer, is_primary: bool = False) -> CustomerAccountLink:
        link = CustomerAccountLink(
            customer_account_id=account.id,
            customer_id=customer.id,
            business_id=customer.business_id,
            is_primary=is_primary,
        )
        db.add(link)
        db.commit()
        return link

    return _link


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session, sender: RecordingSender) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient against the app with the test session and sender."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_sender] = lambda: sender

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
