from .records import StoreRecordsMixin
from .schema import StoreSchemaMixin

__all__ = [
    "StoreSchemaMixin",
    "StoreRecordsMixin",
]
