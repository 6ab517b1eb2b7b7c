"""Ledger schema migrations."""

from funnel_reminders.database.migrations import MIGRATIONS_DIR, run_migrations

__all__ = [
    "MIGRATIONS_DIR",
    "run_migrations",
]
