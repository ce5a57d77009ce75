"""API routers."""

from portal_auth.routers.customer_auth import router as customer_auth_router
from portal_auth.routers.switch_business import router as switch_business_router
