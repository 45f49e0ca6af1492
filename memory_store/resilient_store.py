"""
Resilient Memory Store
======================

Wraps a memory store with a circuit breaker and the degradation policy:
reads return empty results when the store is unavailable, best-effort saves
log and continue, required saves raise ProviderUnavailableError.
"""

import logging
from typing import Any, Dict, List, Optional

from core.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from core.errors import ProviderUnavailableError
from memory_store.memory_store import MemoryRecord, MemoryStore

logger = logging.getLogger(__name__)


class ResilientMemoryStore(MemoryStore):
    """
    Memory store with circuit breaker protection.

    Example:
        >>> store = ResilientMemoryStore(InMemoryMemoryStore())
        >>> await store.save(record)                 # None on failure
        >>> await store.save(record, required=True)  # raises on failure
    """

    def __init__(self, store: MemoryStore, circuit_breaker: Optional[CircuitBreaker] = None):
        """
        Initialize resilient store.

        Args:
            store: Underlying store
            circuit_breaker: Circuit breaker instance
        """
        self.store = store
        self.circuit_breaker = circuit_breaker or CircuitBreaker(threshold=5, timeout=30.0, name="memory_store")

    async def _call(self, operation: str, func, *args, fallback: Any = None, **kwargs) -> Any:
        try:
            return await self.circuit_breaker.call(func, *args, **kwargs)
        except CircuitBreakerOpenError as e:
            logger.warning(f"⚠️ [MemoryStore] {operation} skipped: {e}")
            return fallback
        except Exception as e:
            logger.error(f"❌ [MemoryStore] {operation} failed: {e}")
            return fallback

    async def save(self, record: MemoryRecord, required: bool = False) -> Optional[MemoryRecord]:
        """
        Persist a record.

        Args:
            record: Record to save
            required: Propagate failures instead of logging them

        Returns:
            Stored record, or None when a best-effort save failed

        Raises:
            ProviderUnavailableError: If required and the save failed
        """
        if not required:
            return await self._call(f"save({record.type})", self.store.save, record)

        try:
            return await self.circuit_breaker.call(self.store.save, record)
        except Exception as e:
            logger.error(f"❌ [MemoryStore] Required save of {record.type} failed: {e}")
            raise ProviderUnavailableError(f"Memory store save failed: {e}") from e

    async def find_by_type(self, record_type: str, limit: Optional[int] = None) -> List[MemoryRecord]:
        return await self._call("find_by_type", self.store.find_by_type, record_type, limit, fallback=[])

    async def find(self, query: Dict[str, Any], limit: Optional[int] = None, sort_desc: bool = True) -> List[MemoryRecord]:
        return await self._call("find", self.store.find, query, limit, sort_desc, fallback=[])

    async def find_one(self, query: Dict[str, Any]) -> Optional[MemoryRecord]:
        return await self._call("find_one", self.store.find_one, query)

    async def update(self, record_id: str, patch: Dict[str, Any]) -> Optional[MemoryRecord]:
        return await self._call("update", self.store.update, record_id, patch)

    async def delete(self, query: Dict[str, Any]) -> int:
        return await self._call("delete", self.store.delete, query, fallback=0)

    async def search(self, text: str, limit: int = 10) -> List[MemoryRecord]:
        return await self._call("search", self.store.search, text, limit, fallback=[])


def ensure_resilient(store: Optional[MemoryStore]) -> Optional[ResilientMemoryStore]:
    """Wrap `store` unless it already degrades on failure."""
    if store is None or isinstance(store, ResilientMemoryStore):
        return store
    return ResilientMemoryStore(store)
