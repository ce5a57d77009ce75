"""Customer auth request/response schemas.

Request fields are optional at the schema level so missing values surface as
the flows' own validation errors ("Email and password are required") rather
than a generic body-validation failure.
"""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Requests
# =============================================================================


class MagicLinkRequest(BaseModel):
    email: str | None = None
    redirect_url: str | None = None


class VerifyMagicLinkRequest(BaseModel):
    token: str | None = None


class RegisterRequest(BaseModel):
    email: str | None = None
    password: str | None = None
    invite_token: str | None = None


class LoginRequest(BaseModel):
    email: str | None = None
    password: str | None = None


class ClerkLinkRequest(BaseModel):
    clerk_user_id: str | None = None
    email: str | None = None


class ClerkVerifyRequest(BaseModel):
    clerk_user_id: str | None = None
    email: str | None = None


class PasswordResetRequest(BaseModel):
    email: str | None = None


class PasswordResetConfirmRequest(BaseModel):
    token: str | None = None
    password: str | None = None


class SwitchBusinessRequest(BaseModel):
    business_id: UUID | None = None


# =============================================================================
# Responses
# =============================================================================


class BusinessSummary(BaseModel):
    """Business embedded in a customer record."""

    id: UUID
    name: str
    logo_url: str | None = None
    light_logo_url: str | None = None


class CustomerRead(BaseModel):
    id: UUID
    name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    business_id: UUID
    business: BusinessSummary | None = None


class CustomerAccountRead(BaseModel):
    id: UUID
    customer_id: UUID
    email: str
    auth_method: str | None = None
    clerk_user_id: str | None = None


class AvailableBusinessRead(BaseModel):
    """One entry in the portal's business switcher."""

    id: UUID
    name: str
    logo_url: str | None = None
    light_logo_url: str | None = None
    customer_id: UUID
    customer_name: str | None = None
    is_primary: bool = False


class AuthSessionResponse(BaseModel):
    """
    Shared shape for login, session check and Clerk responses.

    Serialized with exclude_unset, so each endpoint only emits what it set.
    """

    success: bool | None = None
    authenticated: bool | None = None
    linked: bool | None = None
    needs_linking: bool | None = None
    session_token: str | None = None
    customer_account: CustomerAccountRead | None = None
    customer: CustomerRead | None = None
    available_businesses: list[AvailableBusinessRead] | None = None
    active_business_id: UUID | None = None
    active_customer_id: UUID | None = None


class MagicLinkResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    email_sent: bool = Field(alias="emailSent")
    message: str
    warning: str | None = None


class MessageResponse(BaseModel):
    success: bool = True
    message: str | None = None


class BusinessListResponse(BaseModel):
    businesses: list[AvailableBusinessRead]
    active_business_id: UUID | None = None
    active_customer_id: UUID | None = None


class SwitchBusinessResponse(BaseModel):
    success: bool = True
    active_business_id: UUID
    active_customer_id: UUID
    customer: CustomerRead | None = None
    business: BusinessSummary | None = None
