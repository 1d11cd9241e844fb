from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

import asyncpg

from ..errors import AddressAlreadyClaimed, StoreFailure
from .records import UserRecord, parse_timestamp


logger = logging.getLogger("merit_room_bot")


_SELECT_COLUMNS = """
    SELECT identity_id, display_name, claimed_address, derived_address,
           merit_score, is_verified, last_verified_at
    FROM user_records
"""


def _row_to_record(row: "asyncpg.Record") -> UserRecord:
    return UserRecord(
        identity_id=str(row["identity_id"]),
        display_name=str(row["display_name"] or ""),
        claimed_address=row["claimed_address"],
        derived_address=row["derived_address"],
        merit_score=float(row["merit_score"] or 0.0),
        is_verified=bool(row["is_verified"]),
        last_verified_at=parse_timestamp(row["last_verified_at"]),
    )


class PostgresUserRecordStore:
    """Postgres-backed record store implementing the same API as UserRecordStore."""

    SCHEMA_VERSION = 1
    backend_name = "postgres"

    def __init__(self, dsn: str) -> None:
        self.dsn = dsn.strip()
        if not self.dsn:
            raise ValueError("STORE_POSTGRES_DSN cannot be empty")
        self._pool: "asyncpg.Pool | None" = None
        self._init_lock = asyncio.Lock()
        self._initialized = False

    async def _ensure_pool(self) -> "asyncpg.Pool":
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                dsn=self.dsn,
                min_size=1,
                max_size=6,
                command_timeout=30.0,
            )
        return self._pool

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
        self._initialized = False

    async def ping(self) -> None:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            await conn.execute("SELECT 1")

    async def init(self) -> None:
        async with self._init_lock:
            if self._initialized:
                return
            pool = await self._ensure_pool()
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(
                        """
                        CREATE TABLE IF NOT EXISTS schema_meta (
                            id SMALLINT PRIMARY KEY DEFAULT 1,
                            version INTEGER NOT NULL,
                            CHECK (id = 1)
                        )
                        """
                    )
                    version = await conn.fetchval("SELECT version FROM schema_meta WHERE id = 1")
                    version = int(version or 0)
                    if version > self.SCHEMA_VERSION:
                        raise RuntimeError(
                            f"Postgres store schema version {version} is newer than supported {self.SCHEMA_VERSION}. "
                            "Upgrade the bot before starting."
                        )
                    await self._create_schema(conn)
                    if version != self.SCHEMA_VERSION:
                        await conn.execute(
                            """
                            INSERT INTO schema_meta (id, version) VALUES (1, $1)
                            ON CONFLICT (id) DO UPDATE SET version = EXCLUDED.version
                            """,
                            self.SCHEMA_VERSION,
                        )
            self._initialized = True
            logger.info("Postgres record store ready (schema v%s)", self.SCHEMA_VERSION)

    async def _create_schema(self, conn: "asyncpg.Connection") -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS user_records (
                identity_id TEXT PRIMARY KEY,
                display_name TEXT NOT NULL DEFAULT '',
                claimed_address TEXT,
                derived_address TEXT,
                merit_score DOUBLE PRECISION NOT NULL DEFAULT 0 CHECK (merit_score >= 0),
                is_verified BOOLEAN NOT NULL DEFAULT FALSE,
                last_verified_at TIMESTAMPTZ,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                CHECK ((claimed_address IS NULL) = (derived_address IS NULL))
            );

            CREATE UNIQUE INDEX IF NOT EXISTS idx_user_records_claimed_address
            ON user_records(claimed_address)
            WHERE claimed_address IS NOT NULL;

            CREATE INDEX IF NOT EXISTS idx_user_records_verified
            ON user_records(is_verified);
            """
        )

    async def find_by_identity(self, identity_id: str) -> Optional[UserRecord]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(_SELECT_COLUMNS + " WHERE identity_id = $1", identity_id)
        return _row_to_record(row) if row is not None else None

    async def find_by_address(self, address: str) -> Optional[UserRecord]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(_SELECT_COLUMNS + " WHERE claimed_address = $1", address)
        return _row_to_record(row) if row is not None else None

    async def get_or_create(self, identity_id: str, display_name: str = "") -> tuple[UserRecord, bool]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            inserted = await conn.fetchval(
                """
                INSERT INTO user_records (identity_id, display_name)
                VALUES ($1, $2)
                ON CONFLICT (identity_id) DO NOTHING
                RETURNING identity_id
                """,
                identity_id,
                display_name or "",
            )
            row = await conn.fetchrow(_SELECT_COLUMNS + " WHERE identity_id = $1", identity_id)
        assert row is not None
        return _row_to_record(row), inserted is not None

    async def save(self, record: UserRecord) -> None:
        pool = await self._ensure_pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO user_records (
                        identity_id, display_name, claimed_address, derived_address,
                        merit_score, is_verified, last_verified_at, updated_at
                    )
                    VALUES ($1, $2, $3, $4, $5, $6, $7, NOW())
                    ON CONFLICT (identity_id) DO UPDATE SET
                        display_name = EXCLUDED.display_name,
                        claimed_address = EXCLUDED.claimed_address,
                        derived_address = EXCLUDED.derived_address,
                        merit_score = EXCLUDED.merit_score,
                        is_verified = EXCLUDED.is_verified,
                        last_verified_at = EXCLUDED.last_verified_at,
                        updated_at = NOW()
                    """,
                    record.identity_id,
                    record.display_name or "",
                    record.claimed_address,
                    record.derived_address,
                    max(0.0, float(record.merit_score)),
                    bool(record.is_verified),
                    record.last_verified_at,
                )
        except asyncpg.UniqueViolationError as exc:
            if record.claimed_address:
                raise AddressAlreadyClaimed(record.claimed_address) from exc
            raise StoreFailure(f"Could not save record {record.identity_id}: {exc}") from exc

    async def list_verified(self) -> List[UserRecord]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                _SELECT_COLUMNS + " WHERE is_verified = TRUE ORDER BY display_name, identity_id"
            )
        return [_row_to_record(row) for row in rows]
