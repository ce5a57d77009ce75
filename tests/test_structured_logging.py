"""Tests for PII-safe log helpers."""
from portal_auth.core.structured_logging import build_log_context, mask_email


def test_mask_email():
    assert mask_email("jane@example.com") == "j***@example.com"
    assert mask_email("no-at-sign") == "***"
    assert mask_email(None) is None


def test_build_log_context_masks_email_and_drops_empty():
    context = build_log_context(account_id="acc-1", email="jane@example.com", route="/login")
    assert context == {
        "account_id": "acc-1",
        "email": "j***@example.com",
        "route": "/login",
    }
