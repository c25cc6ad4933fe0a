#!/usr/bin/env python3
"""CareLink Consent operator CLI.

Maintenance commands meant for schedulers and operators: the pending-request
expiry sweep, audit trail verification and schema creation for local runs.
"""

import sys

import click

from carelink.config import get_settings
from carelink.core.database import get_db, init_db
from carelink.gateway import AccessGateway
from carelink.services.audit_service import AuditLogger
from carelink.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


@click.group()
def cli() -> None:
    """CareLink Consent maintenance tools."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)


@cli.command("expire-requests")
def expire_requests() -> None:
    """Delete pending requests older than the configured TTL."""
    settings = get_settings()
    if settings.pending_request_ttl_minutes is None:
        click.echo("No TTL configured (PENDING_REQUEST_TTL_MINUTES); nothing to do.")
        return

    with get_db() as session:
        result = AccessGateway(session, settings).expire_stale_requests()

    if not result.succeeded:
        click.echo(f"Expiry sweep failed: {result.error.message}", err=True)
        sys.exit(1)
    click.echo(f"Expired {result.value} pending request(s).")


@cli.command("verify-audit")
@click.option("--limit", "-l", type=int, default=None, help="Check only the oldest N entries")
def verify_audit(limit: int) -> None:
    """Report audit entries whose checksum no longer matches."""
    with get_db() as session:
        tampered = AuditLogger(session, get_settings()).find_tampered(limit=limit)
        ids = [str(entry.id) for entry in tampered]

    if not ids:
        click.echo("Audit trail intact.")
        return
    click.echo(f"{len(ids)} tampered audit entr{'y' if len(ids) == 1 else 'ies'}:", err=True)
    for entry_id in ids[:20]:
        click.echo(f"  - {entry_id}", err=True)
    if len(ids) > 20:
        click.echo(f"  ... and {len(ids) - 20} more", err=True)
    sys.exit(1)


@cli.command("init-db")
def init_database() -> None:
    """Create all tables directly from the models (development only)."""
    settings = get_settings()
    if settings.environment in ("production", "staging"):
        click.echo("Use `alembic upgrade head` outside development.", err=True)
        sys.exit(1)
    init_db()
    click.echo("Database initialized.")


if __name__ == "__main__":
    cli()
