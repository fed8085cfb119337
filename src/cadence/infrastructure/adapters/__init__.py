from .http_catalog import HttpFlashcardCatalog
from .memory import MemoryFlashcardCatalog, MemoryReviewStore, MemorySlotRepository
from .sqlite_store import SqliteStore

__all__ = [
    "HttpFlashcardCatalog",
    "MemoryFlashcardCatalog",
    "MemoryReviewStore",
    "MemorySlotRepository",
    "SqliteStore",
]
