from __future__ import annotations

from .storage.records import StoreRecordsMixin
from .storage.schema import StoreSchemaMixin
from .storage.utils import _sqlite_store_connection


class UserRecordStore(
    StoreSchemaMixin,
    StoreRecordsMixin,
):
    """Persistent per-identity verification records backed by SQLite."""

    backend_name = "sqlite"

    async def ping(self) -> None:
        async with _sqlite_store_connection(self.db_path) as db:
            await db.execute("SELECT 1")

    async def close(self) -> None:
        return None
