from __future__ import annotations

import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from ..records import UserRecord, parse_timestamp


def _sqlite_busy_timeout_ms() -> int:
    raw = os.getenv("STORE_SQLITE_BUSY_TIMEOUT_MS", "5000").strip()
    try:
        timeout = int(raw)
    except ValueError:
        timeout = 5000
    return max(0, min(timeout, 60000))


@asynccontextmanager
async def _sqlite_store_connection(db_path: str | Path) -> AsyncIterator[aiosqlite.Connection]:
    async with aiosqlite.connect(db_path) as db:
        timeout_ms = _sqlite_busy_timeout_ms()
        if timeout_ms > 0:
            await db.execute(f"PRAGMA busy_timeout={timeout_ms}")
        db.row_factory = aiosqlite.Row
        yield db


def row_to_record(row: aiosqlite.Row) -> UserRecord:
    return UserRecord(
        identity_id=str(row["identity_id"]),
        display_name=str(row["display_name"] or ""),
        claimed_address=row["claimed_address"],
        derived_address=row["derived_address"],
        merit_score=float(row["merit_score"] or 0.0),
        is_verified=bool(row["is_verified"]),
        last_verified_at=parse_timestamp(row["last_verified_at"]),
    )
