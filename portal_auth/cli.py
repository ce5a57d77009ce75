"""CLI tools for customer portal auth administration."""

import asyncio

import click

from portal_auth.db.base import Base
from portal_auth.db.session import SessionLocal, engine
from portal_auth.services import auth_flow_service, session_service
from portal_auth.services.errors import CustomerAuthError
from portal_auth.services.notification_service import get_notification_sender


@click.group()
def cli():
    """Customer portal auth CLI tools."""
    pass


@cli.command()
def init_db():
    """
    Create all tables directly from the models.

    For local development and tests; deployed databases use Alembic.
    """
    import portal_auth.db.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    click.echo("✓ Created customer portal auth tables")


@cli.command()
def cleanup_sessions():
    """Delete expired customer sessions (run from cron)."""
    db = SessionLocal()
    try:
        count = session_service.cleanup_expired_sessions(db)
        click.echo(f"✓ Deleted {count} expired session(s)")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
        raise SystemExit(1)
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="Customer email address")
@click.option("--redirect-url", default=None, help="Portal base URL for the link")
def send_magic_link(email: str, redirect_url: str | None):
    """
    Send a magic link on behalf of a customer.

    Example:
        portal-auth send-magic-link --email "jane@example.com"
    """
    db = SessionLocal()
    try:
        result = asyncio.run(
            auth_flow_service.request_magic_link(
                db, get_notification_sender(), email, redirect_url
            )
        )
        if result.email_sent:
            click.echo(f"✓ {result.message}")
        else:
            click.echo(f"❌ Not sent: {result.warning or result.message}")
    except CustomerAuthError as e:
        click.echo(f"❌ {e.message}")
        raise SystemExit(1)
    finally:
        db.close()


if __name__ == "__main__":
    cli()
