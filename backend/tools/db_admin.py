"""Database administration CLI for the Amali LMS backend.

Commands:
    apply-schema    Create enums and tables from `classroom/schema.sql` (idempotent).
    purge-sessions  Delete expired rows from the sessions table.

Usage example:

    python -m tools.db_admin apply-schema --db-dsn postgresql://...
    python -m tools.db_admin purge-sessions

`--db-dsn` defaults to DATABASE_URL.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path

import click

try:  # pragma: no cover - import guard for optional dependency
    import psycopg  # type: ignore
except ImportError:  # pragma: no cover
    psycopg = None  # type: ignore

SCHEMA_PATH = Path(__file__).resolve().parents[1] / "classroom" / "schema.sql"

logger = logging.getLogger("amali.tools.db_admin")


def _ensure_psycopg() -> None:
    if psycopg is None:  # pragma: no cover
        click.echo("psycopg is required for the database CLI.", err=True)
        raise click.Abort()


def _resolve_dsn(db_dsn: str | None) -> str:
    dsn = db_dsn or os.getenv("DATABASE_URL") or ""
    if not dsn:
        click.echo("No DSN given; pass --db-dsn or set DATABASE_URL.", err=True)
        raise click.Abort()
    return dsn


def load_schema_sql(path: Path = SCHEMA_PATH) -> str:
    return path.read_text(encoding="utf-8")


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Administer the Amali LMS database."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command("apply-schema")
@click.option("--db-dsn", required=False, help="Connection string (defaults to DATABASE_URL).")
@click.option("--dry-run", is_flag=True, default=False, help="Print the SQL instead of executing it.")
def apply_schema(db_dsn: str | None, dry_run: bool) -> None:
    """Apply the classroom schema in a single transaction."""
    sql = load_schema_sql()
    if dry_run:
        click.echo(sql)
        return
    _ensure_psycopg()
    dsn = _resolve_dsn(db_dsn)
    with psycopg.connect(dsn) as conn:  # type: ignore[union-attr]
        with conn.cursor() as cur:
            cur.execute(sql)
    logger.info("Schema applied from %s", SCHEMA_PATH.name)
    click.echo("Schema applied")


@cli.command("purge-sessions")
@click.option("--db-dsn", required=False, help="Connection string (defaults to DATABASE_URL).")
def purge_sessions(db_dsn: str | None) -> None:
    """Delete expired sessions and report how many were removed."""
    from identity_access.stores_db import DBSessionStore

    store = DBSessionStore(dsn=_resolve_dsn(db_dsn))
    removed = store.purge_expired()
    logger.info("Purged %d expired sessions", removed)
    click.echo(f"Removed {removed} expired sessions")


if __name__ == "__main__":  # pragma: no cover
    cli()
