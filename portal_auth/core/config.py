"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Proxy/Load Balancer Settings
    # Set to True when running behind nginx/Cloudflare to trust X-Forwarded-For
    TRUST_PROXY_HEADERS: bool = False

    # Database
    DATABASE_URL: str = "sqlite:///./portal_auth.db"

    # Customer sessions
    SESSION_TTL_DAYS: int = 30
    SESSION_HEADER: str = "x-session-token"

    # Single-use tokens
    MAGIC_LINK_TTL_HOURS: int = 24
    RESET_TOKEN_TTL_HOURS: int = 1

    # Passwords
    PASSWORD_MIN_LENGTH: int = 8
    BCRYPT_ROUNDS: int = 9  # ~45ms per verify (cost 12 measured ~350ms); each round doubles it

    # Password reset revokes every session of the account when enabled
    RESET_REVOKES_SESSIONS: bool = False

    # Portal links (magic link / reset link targets)
    PORTAL_BASE_URL: str = "https://servicegrid.app"
    PORTAL_BRAND_NAME: str = "ServiceGrid"

    # Resend (notification email)
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "ServiceGrid <noreply@servicegrid.app>"

    # Clerk bearer verification (optional; empty = trust request body)
    CLERK_JWT_KEY: str = ""
    CLERK_JWT_ALGORITHMS: str = "RS256"

    # CORS (comma-separated, "*" for any origin)
    CORS_ORIGINS: str = "*"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate limit storage (falls back to in-memory when unreachable)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Rate Limiting (requests per minute)
    RATE_LIMIT_AUTH: int = 10  # Credential-bearing endpoints
    RATE_LIMIT_API: int = 120  # General API

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def clerk_jwt_algorithms_list(self) -> list[str]:
        """Parse CLERK_JWT_ALGORITHMS into a list."""
        return [a.strip() for a in self.CLERK_JWT_ALGORITHMS.split(",") if a.strip()]

    @property
    def email_configured(self) -> bool:
        return bool(self.RESEND_API_KEY)


settings = Settings()
