"""Structured logging helpers (PII-safe)."""

from typing import Any


def mask_email(email: str | None) -> str | None:
    """Reduce an email to first letter + domain for log lines."""
    if not email:
        return None
    local, _, domain = email.partition("@")
    if not domain:
        return "***"
    return f"{local[:1]}***@{domain}"


def build_log_context(
    *,
    account_id: str | None = None,
    business_id: str | None = None,
    customer_id: str | None = None,
    auth_method: str | None = None,
    email: str | None = None,
    route: str | None = None,
    request_id: str | None = None,
    status_code: int | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict."""
    context: dict[str, Any] = {}
    if account_id:
        context["account_id"] = account_id
    if business_id:
        context["business_id"] = business_id
    if customer_id:
        context["customer_id"] = customer_id
    if auth_method:
        context["auth_method"] = auth_method
    if email:
        context["email"] = mask_email(email)
    if route:
        context["route"] = route
    if request_id:
        context["request_id"] = request_id
    if status_code is not None:
        context["status_code"] = status_code
    return context
