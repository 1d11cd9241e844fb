
from .factory import build_record_store
from .postgres_store import PostgresUserRecordStore
from .records import UserRecord
from .store import UserRecordStore

__all__ = ["PostgresUserRecordStore", "UserRecord", "UserRecordStore", "build_record_store"]
