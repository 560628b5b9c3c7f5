"""
Schema migrations for the secret store.

Migrations are numbered SQL files in ``secretvault/migrations``
(``001_name.sql``, ``002b_name.sql``). Each file runs in its own transaction
together with its ``schema_migrations`` row, so a failing file leaves nothing
behind. An applied file whose SHA-256 no longer matches the recorded one is
reported as DRIFT and is never re-run.

Usage:
    secretvault migrate status
    secretvault migrate apply [VERSION] [--dry-run]
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from pathlib import Path

import psycopg2
from psycopg2.extras import RealDictCursor

from secretvault.db.connection import get_connection

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"

_MIGRATION_RE = re.compile(r"^(\d+[a-z]?)_.+\.sql$")

_SCHEMA_MIGRATIONS_DDL = """
    CREATE TABLE IF NOT EXISTS schema_migrations (
        version     TEXT PRIMARY KEY,
        filename    TEXT NOT NULL,
        applied_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        checksum    TEXT
    )
"""


@dataclass(frozen=True)
class Migration:
    version: str
    path: Path

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.path.read_bytes()).hexdigest()


def discover(migrations_dir: Path | None = None) -> list[Migration]:
    """Migration files in version order. Non-matching names are skipped."""
    found: list[Migration] = []
    for f in sorted((migrations_dir or MIGRATIONS_DIR).glob("*.sql")):
        m = _MIGRATION_RE.match(f.name)
        if m:
            found.append(Migration(m.group(1), f))
    return found


def _applied() -> dict[str, dict]:
    """Ensure the bookkeeping table exists; return its rows keyed by version."""
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        cur.execute(_SCHEMA_MIGRATIONS_DDL)
        cur.execute("SELECT version, filename, applied_at, checksum FROM schema_migrations")
        return {r["version"]: dict(r) for r in cur.fetchall()}


def status(migrations_dir: Path | None = None) -> list[dict]:
    """One row per migration file: version, filename, status, applied_at."""
    applied = _applied()
    rows: list[dict] = []
    for mig in discover(migrations_dir):
        record = applied.get(mig.version)
        if record is None:
            state = "pending"
        elif record.get("checksum") and record["checksum"] != mig.checksum:
            state = "DRIFT"
        else:
            state = "applied"
        rows.append(
            {
                "version": mig.version,
                "filename": mig.filename,
                "status": state,
                "applied_at": record["applied_at"] if record else None,
            }
        )
    return rows


def apply(
    version: str | None = None,
    dry_run: bool = False,
    migrations_dir: Path | None = None,
) -> list[str]:
    """Apply pending migrations (or just *version*). Returns the versions applied."""
    applied = _applied()
    pending = [
        m
        for m in discover(migrations_dir)
        if m.version not in applied and (version is None or m.version == version)
    ]
    if not pending:
        logger.info("No pending migrations")
        return []

    if dry_run:
        for mig in pending:
            logger.info("[dry-run] Would apply %s", mig.filename)
        return [m.version for m in pending]

    done: list[str] = []
    for mig in pending:
        try:
            with get_connection() as conn:
                cur = conn.cursor()
                cur.execute(mig.path.read_text())
                cur.execute(
                    "INSERT INTO schema_migrations (version, filename, checksum) "
                    "VALUES (%s, %s, %s) ON CONFLICT (version) DO NOTHING",
                    (mig.version, mig.filename, mig.checksum),
                )
        except psycopg2.Error as e:
            logger.error("Migration %s failed, rolled back: %s", mig.filename, e)
            raise
        logger.info("Applied %s", mig.filename)
        done.append(mig.version)
    return done
