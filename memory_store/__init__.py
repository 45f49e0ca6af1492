from .memory_store import MemoryRecord, MemoryStore, InMemoryMemoryStore
from .resilient_store import ResilientMemoryStore, ensure_resilient

__all__ = ["MemoryRecord", "MemoryStore", "InMemoryMemoryStore", "ResilientMemoryStore", "ensure_resilient"]
