# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "asyncpg>=0.29.0",
#   "rich>=13.0.0",
# ]
# ///
"""
Database Migration Runner.

Applies pending SQL migrations from ``funnel_reminders/database/sql/`` and
tracks them in the ``schema_migrations`` table. Safe to run multiple times:
already-applied versions are skipped, each migration runs in its own
transaction.

Usage:
    from funnel_reminders.database.migrations import run_migrations
    applied = await run_migrations(config.database_url)

    # or from the command line
    funnel-reminders migrate
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple

import asyncpg

from funnel_reminders.core.errors import LedgerError

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "sql"


async def create_schema_migrations_table(conn: asyncpg.Connection) -> None:
    """Create the tracking table if it doesn't exist."""
    await conn.execute("""
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version VARCHAR(255) PRIMARY KEY,
            applied_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)


async def get_applied_migrations(conn: asyncpg.Connection) -> set[str]:
    rows = await conn.fetch("SELECT version FROM schema_migrations ORDER BY version")
    return {row["version"] for row in rows}


def get_pending_migrations(
    applied: set[str],
    migrations_dir: Path = MIGRATIONS_DIR,
) -> List[Tuple[str, Path]]:
    """
    List migration files not yet applied.

    Files are named ``<version>_<description>.sql`` with a numeric version;
    anything else is skipped with a warning.

    Args:
        applied: Versions already recorded in schema_migrations.
        migrations_dir: Directory holding the .sql files.

    Returns:
        (version, path) tuples sorted by version.

    Example:
        >>> get_pending_migrations({"001"})
        []
    """
    if not migrations_dir.exists():
        logger.warning("Migrations directory not found: %s", migrations_dir)
        return []

    pending: List[Tuple[str, Path]] = []
    for file_path in sorted(migrations_dir.glob("*.sql")):
        version = file_path.stem.split("_")[0]
        if not version.isdigit():
            logger.warning("Skipping non-numeric migration: %s", file_path.name)
            continue
        if version not in applied:
            pending.append((version, file_path))

    return sorted(pending, key=lambda x: x[0])


async def apply_migration(conn: asyncpg.Connection, version: str, file_path: Path) -> None:
    """
    Apply one migration file and record it, atomically.

    Raises:
        LedgerError: If the file is empty or unreadable. SQL errors propagate
            after the transaction is rolled back.
    """
    logger.info("Applying migration %s: %s", version, file_path.name)
    try:
        sql = file_path.read_text(encoding="utf-8")
    except OSError as e:
        raise LedgerError(f"Failed to read migration file {file_path}: {e}") from e

    if not sql.strip():
        raise LedgerError(f"Migration file is empty: {file_path}")

    async with conn.transaction():
        await conn.execute(sql)
        await conn.execute(
            "INSERT INTO schema_migrations (version, applied_at) VALUES ($1, NOW())",
            version,
        )


async def run_migrations(
    database_url: Optional[str],
    migrations_dir: Path = MIGRATIONS_DIR,
) -> list[str]:
    """
    Run all pending migrations.

    Args:
        database_url: Postgres DSN of the ledger database.
        migrations_dir: Directory holding the .sql files.

    Returns:
        Versions applied by this call, in order.

    Raises:
        LedgerError: If the DSN is missing or the database is unreachable.
    """
    if not database_url or database_url == "memory://":
        raise LedgerError("DATABASE_URL must point to a Postgres database to run migrations")

    try:
        conn = await asyncpg.connect(database_url, timeout=10)
    except (OSError, asyncpg.PostgresError) as e:
        raise LedgerError(f"Failed to connect to database: {e}") from e

    try:
        await create_schema_migrations_table(conn)
        applied = await get_applied_migrations(conn)
        pending = get_pending_migrations(applied, migrations_dir)
        if not pending:
            logger.info("No pending migrations")
            return []

        logger.info("Found %d pending migration(s)", len(pending))
        for version, file_path in pending:
            await apply_migration(conn, version, file_path)
        return [version for version, _ in pending]
    finally:
        await conn.close()
