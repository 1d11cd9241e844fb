from __future__ import annotations

from typing import Any

from ..config import Settings
from .store import UserRecordStore


def build_record_store(settings: Settings) -> Any:
    backend = settings.store_backend
    if backend == "sqlite":
        return UserRecordStore(settings.sqlite_path)
    if backend != "postgres":
        raise ValueError("STORE_BACKEND must be 'sqlite' or 'postgres'")
    if not settings.store_postgres_dsn:
        raise ValueError("STORE_POSTGRES_DSN is required when STORE_BACKEND=postgres")

    from .postgres_store import PostgresUserRecordStore

    return PostgresUserRecordStore(settings.store_postgres_dsn)
