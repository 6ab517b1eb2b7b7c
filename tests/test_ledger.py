"""Deduplication ledger: in-memory semantics and the Postgres statements."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest

from funnel_reminders.core.errors import LedgerError
from funnel_reminders.reminders.ledger import (
    InMemoryReminderLedger,
    PostgresReminderLedger,
    open_ledger,
)

KEY = ("evt-1", "2026-03-10T17:00:00+00:00", "30m")


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


async def test_mark_sent_twice_keeps_one_record():
    ledger = InMemoryReminderLedger()

    assert await ledger.mark_sent(*KEY) is True
    assert await ledger.mark_sent(*KEY) is False

    assert len(ledger) == 1
    assert await ledger.has_sent(*KEY)


async def test_concurrent_marks_collapse_to_one_row():
    ledger = InMemoryReminderLedger()

    results = await asyncio.gather(*(ledger.mark_sent(*KEY) for _ in range(10)))

    assert results.count(True) == 1
    assert len(ledger) == 1


async def test_kind_and_occurrence_are_part_of_the_key():
    ledger = InMemoryReminderLedger()
    await ledger.mark_sent(*KEY)

    assert not await ledger.has_sent("evt-1", KEY[1], "24h")
    assert not await ledger.has_sent("evt-1", "2026-03-10T19:00:00+00:00", "30m")
    assert not await ledger.has_sent("evt-2", KEY[1], "30m")


async def test_records_for_event_lists_every_kind():
    ledger = InMemoryReminderLedger()
    await ledger.mark_sent(*KEY)
    await ledger.mark_sent("evt-1", KEY[1], "24h")
    await ledger.mark_sent("evt-2", KEY[1], "24h")

    records = await ledger.records_for_event("evt-1")

    assert {r.kind for r in records} == {"30m", "24h"}


async def test_open_ledger_memory_url():
    assert isinstance(await open_ledger("memory://"), InMemoryReminderLedger)


async def test_open_ledger_requires_url():
    with pytest.raises(LedgerError):
        await open_ledger(None)


# ---------------------------------------------------------------------------
# Postgres (pool mocked)
# ---------------------------------------------------------------------------


def _pool_with(conn: MagicMock) -> MagicMock:
    pool = MagicMock()
    pool.acquire.return_value.__aenter__ = AsyncMock(return_value=conn)
    pool.acquire.return_value.__aexit__ = AsyncMock(return_value=False)
    pool.close = AsyncMock()
    return pool


async def test_postgres_mark_sent_uses_on_conflict():
    conn = MagicMock()
    conn.execute = AsyncMock(return_value="INSERT 0 1")
    ledger = PostgresReminderLedger(_pool_with(conn))

    created = await ledger.mark_sent(*KEY)

    assert created is True
    sql, *params = conn.execute.call_args.args
    assert "ON CONFLICT (event_id, occurrence_key, kind) DO NOTHING" in sql
    assert params == list(KEY)


async def test_postgres_mark_sent_existing_row_returns_false():
    conn = MagicMock()
    conn.execute = AsyncMock(return_value="INSERT 0 0")
    ledger = PostgresReminderLedger(_pool_with(conn))

    assert await ledger.mark_sent(*KEY) is False


async def test_postgres_has_sent():
    conn = MagicMock()
    conn.fetchrow = AsyncMock(side_effect=[{"?column?": 1}, None])
    ledger = PostgresReminderLedger(_pool_with(conn))

    assert await ledger.has_sent(*KEY) is True
    assert await ledger.has_sent(*KEY) is False


@pytest.mark.parametrize(
    "method, call, args",
    [
        ("execute", "mark_sent", KEY),
        ("fetchrow", "has_sent", KEY),
        ("fetch", "records_for_event", ("evt-1",)),
    ],
)
@pytest.mark.parametrize("error", [asyncpg.PostgresError("read-only transaction"), OSError("connection reset")])
async def test_postgres_errors_become_ledger_errors(method, call, args, error):
    conn = MagicMock()
    setattr(conn, method, AsyncMock(side_effect=error))
    ledger = PostgresReminderLedger(_pool_with(conn))

    with pytest.raises(LedgerError):
        await getattr(ledger, call)(*args)


async def test_postgres_records_for_event():
    sent_at = datetime(2026, 3, 10, 16, 30, tzinfo=timezone.utc)
    conn = MagicMock()
    conn.fetch = AsyncMock(return_value=[
        {"event_id": KEY[0], "occurrence_key": KEY[1], "kind": KEY[2], "sent_at": sent_at},
    ])
    ledger = PostgresReminderLedger(_pool_with(conn))

    records = await ledger.records_for_event("evt-1")

    assert records[0].key == KEY
    assert records[0].sent_at == sent_at


async def test_postgres_close_only_owned_pool():
    pool = _pool_with(MagicMock())
    await PostgresReminderLedger(pool).close()
    pool.close.assert_not_awaited()

    await PostgresReminderLedger(pool, owns_pool=True).close()
    pool.close.assert_awaited_once()
