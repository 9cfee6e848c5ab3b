from stockroom.store.base import RecordStore, Transaction
from stockroom.store.memory import MemoryRecordStore

__all__ = [
    "MemoryRecordStore",
    "RecordStore",
    "Transaction",
]
