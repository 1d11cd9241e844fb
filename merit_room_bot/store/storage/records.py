from __future__ import annotations

import sqlite3
from typing import List, Optional

from ...errors import AddressAlreadyClaimed, StoreFailure
from ..records import UserRecord, to_iso
from .utils import _sqlite_store_connection, row_to_record


_SELECT_COLUMNS = """
    SELECT identity_id, display_name, claimed_address, derived_address,
           merit_score, is_verified, last_verified_at
    FROM user_records
"""


class StoreRecordsMixin:
    async def find_by_identity(self, identity_id: str) -> Optional[UserRecord]:
        async with _sqlite_store_connection(self.db_path) as db:
            async with db.execute(
                _SELECT_COLUMNS + " WHERE identity_id = ?",
                (identity_id,),
            ) as cursor:
                row = await cursor.fetchone()
        return row_to_record(row) if row is not None else None

    async def find_by_address(self, address: str) -> Optional[UserRecord]:
        async with _sqlite_store_connection(self.db_path) as db:
            async with db.execute(
                _SELECT_COLUMNS + " WHERE claimed_address = ?",
                (address,),
            ) as cursor:
                row = await cursor.fetchone()
        return row_to_record(row) if row is not None else None

    async def get_or_create(self, identity_id: str, display_name: str = "") -> tuple[UserRecord, bool]:
        async with _sqlite_store_connection(self.db_path) as db:
            cursor = await db.execute(
                """
                INSERT INTO user_records (identity_id, display_name)
                VALUES (?, ?)
                ON CONFLICT(identity_id) DO NOTHING
                """,
                (identity_id, display_name or ""),
            )
            created = cursor.rowcount == 1
            await db.commit()
            async with db.execute(
                _SELECT_COLUMNS + " WHERE identity_id = ?",
                (identity_id,),
            ) as select_cursor:
                row = await select_cursor.fetchone()
        assert row is not None
        return row_to_record(row), created

    async def save(self, record: UserRecord) -> None:
        try:
            async with _sqlite_store_connection(self.db_path) as db:
                await db.execute(
                    """
                    INSERT INTO user_records (
                        identity_id, display_name, claimed_address, derived_address,
                        merit_score, is_verified, last_verified_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(identity_id) DO UPDATE SET
                        display_name = excluded.display_name,
                        claimed_address = excluded.claimed_address,
                        derived_address = excluded.derived_address,
                        merit_score = excluded.merit_score,
                        is_verified = excluded.is_verified,
                        last_verified_at = excluded.last_verified_at,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (
                        record.identity_id,
                        record.display_name or "",
                        record.claimed_address,
                        record.derived_address,
                        max(0.0, float(record.merit_score)),
                        1 if record.is_verified else 0,
                        to_iso(record.last_verified_at),
                    ),
                )
                await db.commit()
        except sqlite3.IntegrityError as exc:
            if record.claimed_address and "UNIQUE" in str(exc) and "claimed_address" in str(exc):
                raise AddressAlreadyClaimed(record.claimed_address) from exc
            raise StoreFailure(f"Could not save record {record.identity_id}: {exc}") from exc

    async def list_verified(self) -> List[UserRecord]:
        async with _sqlite_store_connection(self.db_path) as db:
            async with db.execute(
                _SELECT_COLUMNS + " WHERE is_verified = 1 ORDER BY display_name, identity_id",
            ) as cursor:
                rows = await cursor.fetchall()
        return [row_to_record(row) for row in rows]
