"""Business switcher for customers linked to more than one business."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from portal_auth.core.deps import get_db, get_session_token
from portal_auth.routers.customer_auth import business_reads, customer_read
from portal_auth.schemas.customer_auth import (
    BusinessListResponse,
    BusinessSummary,
    SwitchBusinessRequest,
    SwitchBusinessResponse,
)
from portal_auth.services import auth_flow_service

router = APIRouter(prefix="/customer-switch-business", tags=["customer-auth"])


@router.get("", response_model=BusinessListResponse)
def list_businesses(
    db: Session = Depends(get_db),
    session_token: str | None = Depends(get_session_token),
):
    """List the businesses this session may switch to, plus the active one."""
    contexts, active = auth_flow_service.list_businesses(db, session_token)
    return BusinessListResponse(
        businesses=business_reads(contexts),
        active_business_id=active.business_id,
        active_customer_id=active.customer_id,
    )


@router.post("", response_model=SwitchBusinessResponse)
def switch_business(
    body: SwitchBusinessRequest,
    db: Session = Depends(get_db),
    session_token: str | None = Depends(get_session_token),
):
    """Make another linked business the session's active context."""
    context, customer, business = auth_flow_service.switch_business(db, session_token, body.business_id)
    return SwitchBusinessResponse(
        success=True,
        active_business_id=context.business_id,
        active_customer_id=context.customer_id,
        customer=customer_read(customer) if customer else None,
        business=BusinessSummary(
            id=business.id,
            name=business.name,
            logo_url=business.logo_url,
            light_logo_url=business.light_logo_url,
        )
        if business
        else None,
    )
