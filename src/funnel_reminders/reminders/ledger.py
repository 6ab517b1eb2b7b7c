# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "asyncpg>=0.29.0",
#   "pydantic>=2.0.0",
# ]
# ///
"""
Deduplication Ledger - at-most-once bookkeeping for reminders.

Records ``(event_id, occurrence_key, kind)`` once a reminder has been sent.
The Postgres table carries a composite primary key and every insert uses
``ON CONFLICT DO NOTHING``, so concurrent writers for the same key collapse to
a single row and a second insert is a silent no-op.

Rows are never updated or deleted: a cancelled meeting keeps its rows, so a
resurrected event is not reminded twice.

Usage:
    from funnel_reminders.reminders.ledger import PostgresReminderLedger

    ledger = await PostgresReminderLedger.connect(database_url)
    if not await ledger.has_sent(event.id, event.occurrence_key, "24h"):
        ...
        await ledger.mark_sent(event.id, event.occurrence_key, "24h")
    await ledger.close()
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional, Protocol

import asyncpg

from funnel_reminders.core.errors import LedgerError
from funnel_reminders.core.models import ReminderRecord


class ReminderLedger(Protocol):
    """Storage contract shared by every ledger implementation."""

    async def has_sent(self, event_id: str, occurrence_key: str, kind: str) -> bool: ...

    async def mark_sent(self, event_id: str, occurrence_key: str, kind: str) -> bool: ...

    async def close(self) -> None: ...


class PostgresReminderLedger:
    """
    Ledger backed by the ``reminder_ledger`` table.

    Attributes:
        pool: asyncpg connection pool. Owned (and closed) by the ledger when
            created through connect().
    """

    def __init__(self, pool: asyncpg.Pool, owns_pool: bool = False):
        self.pool = pool
        self._owns_pool = owns_pool

    @classmethod
    async def connect(cls, database_url: str) -> "PostgresReminderLedger":
        """
        Create a ledger with its own connection pool.

        Raises:
            LedgerError: If the database cannot be reached.
        """
        try:
            pool = await asyncpg.create_pool(database_url, min_size=1, max_size=5)
        except (OSError, asyncpg.PostgresError) as e:
            raise LedgerError(f"cannot connect to ledger database: {e}") from e
        return cls(pool, owns_pool=True)

    @asynccontextmanager
    async def _connection(self):
        async with self.pool.acquire() as conn:
            yield conn

    async def has_sent(self, event_id: str, occurrence_key: str, kind: str) -> bool:
        try:
            async with self._connection() as conn:
                row = await conn.fetchrow(
                    """
                    SELECT 1 FROM reminder_ledger
                    WHERE event_id = $1 AND occurrence_key = $2 AND kind = $3
                    LIMIT 1
                    """,
                    event_id,
                    occurrence_key,
                    kind,
                )
        except (OSError, asyncpg.PostgresError) as e:
            raise LedgerError(f"ledger lookup failed for {event_id}/{kind}: {e}") from e
        return row is not None

    async def mark_sent(self, event_id: str, occurrence_key: str, kind: str) -> bool:
        """
        Insert the record if absent.

        Returns:
            True if this call created the row, False if it already existed.
        """
        try:
            async with self._connection() as conn:
                result = await conn.execute(
                    """
                    INSERT INTO reminder_ledger (event_id, occurrence_key, kind, sent_at)
                    VALUES ($1, $2, $3, NOW())
                    ON CONFLICT (event_id, occurrence_key, kind) DO NOTHING
                    """,
                    event_id,
                    occurrence_key,
                    kind,
                )
        except (OSError, asyncpg.PostgresError) as e:
            raise LedgerError(f"ledger write failed for {event_id}/{kind}: {e}") from e
        # asyncpg status string: "INSERT 0 <rows>"
        return result.split()[-1] == "1"

    async def records_for_event(self, event_id: str) -> list[ReminderRecord]:
        """All ledger rows for one event, oldest first."""
        try:
            async with self._connection() as conn:
                rows = await conn.fetch(
                    """
                    SELECT event_id, occurrence_key, kind, sent_at
                    FROM reminder_ledger
                    WHERE event_id = $1
                    ORDER BY sent_at ASC
                    """,
                    event_id,
                )
        except (OSError, asyncpg.PostgresError) as e:
            raise LedgerError(f"ledger history lookup failed for {event_id}: {e}") from e
        return [ReminderRecord(**dict(row)) for row in rows]

    async def close(self) -> None:
        if self._owns_pool:
            await self.pool.close()


class InMemoryReminderLedger:
    """Process-local ledger for tests and dry runs. Same semantics, no durability."""

    def __init__(self):
        self._records: dict[tuple[str, str, str], ReminderRecord] = {}
        self._lock = asyncio.Lock()

    async def has_sent(self, event_id: str, occurrence_key: str, kind: str) -> bool:
        return (event_id, occurrence_key, kind) in self._records

    async def mark_sent(self, event_id: str, occurrence_key: str, kind: str) -> bool:
        key = (event_id, occurrence_key, kind)
        async with self._lock:
            if key in self._records:
                return False
            self._records[key] = ReminderRecord(
                event_id=event_id,
                occurrence_key=occurrence_key,
                kind=kind,
                sent_at=datetime.now(timezone.utc),
            )
            return True

    async def records_for_event(self, event_id: str) -> list[ReminderRecord]:
        return sorted(
            (r for r in self._records.values() if r.event_id == event_id),
            key=lambda r: r.sent_at,
        )

    def __len__(self) -> int:
        return len(self._records)

    async def close(self) -> None:
        pass


async def open_ledger(database_url: Optional[str]) -> ReminderLedger:
    """Pick the ledger implementation for a DSN (``memory://`` for in-process)."""
    if not database_url:
        raise LedgerError("no database_url configured for the reminder ledger")
    if database_url == "memory://":
        return InMemoryReminderLedger()
    return await PostgresReminderLedger.connect(database_url)
