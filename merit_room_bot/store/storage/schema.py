from __future__ import annotations

import os
from pathlib import Path

import aiosqlite

from .utils import _sqlite_store_connection


class StoreSchemaMixin:
    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _allow_destructive_reset_on_mismatch() -> bool:
        raw = os.getenv("STORE_SQLITE_RESET_ON_SCHEMA_MISMATCH", "")
        return raw.strip().lower() in {"1", "true", "yes", "y", "on"}

    async def _has_user_tables(self, db: aiosqlite.Connection) -> bool:
        async with db.execute(
            """
            SELECT 1
            FROM sqlite_master
            WHERE type = 'table'
              AND name NOT LIKE 'sqlite_%'
            LIMIT 1
            """
        ) as cursor:
            row = await cursor.fetchone()
        return bool(row)

    async def init(self) -> None:
        async with _sqlite_store_connection(self.db_path) as db:
            await db.execute("PRAGMA journal_mode=WAL")
            async with db.execute("PRAGMA user_version") as cursor:
                row = await cursor.fetchone()
            version = int(row[0]) if row else 0
            has_tables = await self._has_user_tables(db)

            if version > self.SCHEMA_VERSION:
                if has_tables and self._allow_destructive_reset_on_mismatch():
                    await self._reset_schema(db)
                    await db.execute(f"PRAGMA user_version = {self.SCHEMA_VERSION}")
                    await db.commit()
                    return
                raise RuntimeError(
                    "SQLite schema version mismatch detected (database is newer than this bot build). "
                    f"Found user_version={version}, supported={self.SCHEMA_VERSION}. "
                    "Set STORE_SQLITE_RESET_ON_SCHEMA_MISMATCH=1 to allow destructive reset."
                )

            await self._create_schema(db)
            if version != self.SCHEMA_VERSION:
                await db.execute(f"PRAGMA user_version = {self.SCHEMA_VERSION}")
            await db.commit()

    async def _reset_schema(self, db: aiosqlite.Connection) -> None:
        await db.execute("DROP TABLE IF EXISTS user_records")
        await self._create_schema(db)

    async def _create_schema(self, db: aiosqlite.Connection) -> None:
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS user_records (
                identity_id TEXT PRIMARY KEY,
                display_name TEXT NOT NULL DEFAULT '',
                claimed_address TEXT,
                derived_address TEXT,
                merit_score REAL NOT NULL DEFAULT 0,
                is_verified INTEGER NOT NULL DEFAULT 0,
                last_verified_at TEXT,
                created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
                updated_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
                CHECK ((claimed_address IS NULL) = (derived_address IS NULL)),
                CHECK (merit_score >= 0)
            )
            """
        )
        # One owner per address; NULLs never collide.
        await db.execute(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS idx_user_records_claimed_address
            ON user_records(claimed_address)
            WHERE claimed_address IS NOT NULL
            """
        )
        await db.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_user_records_verified
            ON user_records(is_verified)
            """
        )
