"""Tests for the portal-auth CLI."""
from datetime import timedelta

from click.testing import CliRunner

from portal_auth import cli as cli_module
from portal_auth.db.models import CustomerSession, utcnow
from portal_auth.services import account_service, session_service
from portal_auth.services.business_link_service import ActiveContext
from portal_auth.services.notification_service import LogOnlyNotificationSender


def test_cleanup_sessions_command(db, customer):
    account = account_service.upsert_account(db, customer, customer.email)
    db.commit()
    _, record = session_service.create_session(
        db, account, "password", ActiveContext(customer.id, customer.business_id)
    )
    record.expires_at = utcnow() - timedelta(days=1)
    db.commit()

    result = CliRunner().invoke(cli_module.cli, ["cleanup-sessions"])

    assert result.exit_code == 0
    assert "Deleted 1 expired session(s)" in result.output
    assert db.query(CustomerSession).count() == 0


def test_send_magic_link_without_provider(db, customer, monkeypatch):
    monkeypatch.setattr(cli_module, "get_notification_sender", lambda: LogOnlyNotificationSender())

    result = CliRunner().invoke(cli_module.cli, ["send-magic-link", "--email", customer.email])

    assert result.exit_code == 0
    assert "Not sent" in result.output


def test_send_magic_link_rejects_bad_email(db):
    result = CliRunner().invoke(cli_module.cli, ["send-magic-link", "--email", "nope"])
    assert result.exit_code == 1
    assert "Invalid email address" in result.output


def test_init_db_command(db):
    result = CliRunner().invoke(cli_module.cli, ["init-db"])
    assert result.exit_code == 0
