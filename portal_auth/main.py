"""FastAPI application entry point."""
import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from portal_auth.core.config import settings
from portal_auth.core.structured_logging import build_log_context
from portal_auth.db.session import engine

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,  # 10% of requests for performance monitoring
        send_default_pii=False,  # Emails and tokens stay out of Sentry
    )
    logging.info("Sentry initialized for error tracking")

# ============================================================================
# Rate Limiting
# ============================================================================

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from portal_auth.core.rate_limit import limiter


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Customer Portal Auth API",
    description="Customer identity and sessions for the multi-business customer portal",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware - must be added before routers
# Portal clients send the session token in a header, never a cookie
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=[
        "authorization",
        "x-client-info",
        "apikey",
        "content-type",
        settings.SESSION_HEADER,
    ],
    expose_headers=[REQUEST_ID_HEADER],
)

# ============================================================================
# Routers
# ============================================================================

from portal_auth.routers import customer_auth, switch_business
from portal_auth.services.errors import CustomerAuthError

app.include_router(customer_auth.router, prefix="/customer-auth")
app.include_router(switch_business.router, prefix="/customer-auth")

app.add_exception_handler(CustomerAuthError, customer_auth.customer_auth_error_handler)
app.add_exception_handler(RequestValidationError, customer_auth.request_validation_error_handler)
app.add_exception_handler(Exception, customer_auth.unhandled_error_handler)


# ============================================================================
# Request Logging
# ============================================================================

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Tag each request with an id and log method, route and status (no bodies)."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "%s %s -> %s (%.1f ms)",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started) * 1000,
        extra=build_log_context(
            route=request.url.path,
            request_id=request_id,
            status_code=response.status_code,
        ),
    )
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
