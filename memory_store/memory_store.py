"""
Memory Store
============

Typed record persistence used by the mediator for audit trails, persisted
transformation paths, monitoring events and validation inputs.

Queries are plain dicts whose keys are dotted paths into the dumped record:

    await store.find({"type": "semantic_transformation", "content.source_module": "clarifier"})

A list-valued field matches when it contains the queried scalar (useful for
tags).
"""

import asyncio
import json
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class MemoryRecord(BaseModel):
    """
    One stored record.

    Example:
        MemoryRecord(type="semantic_registry", content={"sourceId": "clarifier_ab12"},
                     tags=["registry", "clarifier"])
    """
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    type: str = Field(..., description="Record type used by find_by_type")
    content: Any = Field(default=None, description="Payload")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class MemoryStore(ABC):
    """Persistence collaborator interface."""

    @abstractmethod
    async def save(self, record: MemoryRecord) -> MemoryRecord:
        pass

    @abstractmethod
    async def find_by_type(self, record_type: str, limit: Optional[int] = None) -> List[MemoryRecord]:
        pass

    @abstractmethod
    async def find(self, query: Dict[str, Any], limit: Optional[int] = None, sort_desc: bool = True) -> List[MemoryRecord]:
        pass

    @abstractmethod
    async def find_one(self, query: Dict[str, Any]) -> Optional[MemoryRecord]:
        pass

    @abstractmethod
    async def update(self, record_id: str, patch: Dict[str, Any]) -> Optional[MemoryRecord]:
        pass

    @abstractmethod
    async def delete(self, query: Dict[str, Any]) -> int:
        pass

    @abstractmethod
    async def search(self, text: str, limit: int = 10) -> List[MemoryRecord]:
        """Records related to free text, best match first."""
        pass


def get_path(data: Any, path: str) -> Any:
    current = data
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


class _Missing:
    def __repr__(self):
        return "<missing>"


_MISSING = _Missing()


def matches(record: MemoryRecord, query: Dict[str, Any]) -> bool:
    dumped = record.model_dump()
    for key, expected in query.items():
        actual = get_path(dumped, key)
        if actual is _MISSING:
            return False
        if isinstance(actual, list) and not isinstance(expected, list):
            if expected not in actual:
                return False
        elif actual != expected:
            return False
    return True


class InMemoryMemoryStore(MemoryStore):
    """
    Process-local store.

    Good enough for tests and single-process deployments; all mutation
    happens under one asyncio.Lock.

    Records are bucketed by type. With `max_records_per_type` set, saving
    past the cap drops the oldest record of that type, so high-volume
    types (monitoring mirrors) cannot grow without bound or push out
    other types. Queries with a "type" key only scan that bucket.
    """

    def __init__(self, max_records_per_type: Optional[int] = None):
        if max_records_per_type is not None and max_records_per_type < 1:
            raise ValueError("max_records_per_type must be positive")
        self.max_records_per_type = max_records_per_type
        self._records: Dict[str, MemoryRecord] = {}
        # type -> ids in insertion order
        self._by_type: Dict[str, Dict[str, None]] = {}
        self._lock = asyncio.Lock()

    def _index(self, record: MemoryRecord):
        self._by_type.setdefault(record.type, {})[record.id] = None

    def _unindex(self, record: MemoryRecord):
        bucket = self._by_type.get(record.type)
        if bucket is not None:
            bucket.pop(record.id, None)
            if not bucket:
                del self._by_type[record.type]

    def _enforce_cap(self, record_type: str):
        bucket = self._by_type.get(record_type)
        if self.max_records_per_type is None or bucket is None:
            return
        while len(bucket) > self.max_records_per_type:
            oldest_id = next(iter(bucket))
            self._unindex(self._records.pop(oldest_id))
            logger.debug(f"♻️ [MemoryStore] Dropped oldest {record_type} record {oldest_id}")

    async def save(self, record: MemoryRecord) -> MemoryRecord:
        async with self._lock:
            stored = record.model_copy(deep=True)
            previous = self._records.get(stored.id)
            if previous is not None:
                self._unindex(previous)
            self._records[stored.id] = stored
            self._index(stored)
            self._enforce_cap(stored.type)
            logger.debug(f"💾 [MemoryStore] Saved {stored.type} record {stored.id}")
            return stored.model_copy(deep=True)

    def _candidates(self, query: Dict[str, Any]) -> List[MemoryRecord]:
        record_type = query.get("type")
        if isinstance(record_type, str):
            ids = list(self._by_type.get(record_type, {}))
            return [self._records[rid] for rid in ids if rid in self._records]
        return list(self._records.values())

    def _sorted(self, records: List[MemoryRecord], sort_desc: bool) -> List[MemoryRecord]:
        return sorted(records, key=lambda r: r.created_at, reverse=sort_desc)

    async def find_by_type(self, record_type: str, limit: Optional[int] = None) -> List[MemoryRecord]:
        return await self.find({"type": record_type}, limit=limit)

    async def find(self, query: Dict[str, Any], limit: Optional[int] = None, sort_desc: bool = True) -> List[MemoryRecord]:
        snapshot = self._candidates(query)
        found = self._sorted([r for r in snapshot if matches(r, query)], sort_desc)
        if limit is not None:
            found = found[:limit]
        return [r.model_copy(deep=True) for r in found]

    async def find_one(self, query: Dict[str, Any]) -> Optional[MemoryRecord]:
        found = await self.find(query, limit=1)
        return found[0] if found else None

    async def update(self, record_id: str, patch: Dict[str, Any]) -> Optional[MemoryRecord]:
        async with self._lock:
            current = self._records.get(record_id)
            if current is None:
                return None
            data = current.model_dump()
            for key, value in patch.items():
                if key in ("content", "metadata") and isinstance(value, dict) and isinstance(data.get(key), dict):
                    data[key] = {**data[key], **value}
                elif key != "id":
                    data[key] = value
            data["updated_at"] = datetime.now()
            updated = MemoryRecord(**data)
            self._unindex(current)
            self._records[record_id] = updated
            self._index(updated)
            self._enforce_cap(updated.type)
            return updated.model_copy(deep=True)

    async def delete(self, query: Dict[str, Any]) -> int:
        async with self._lock:
            doomed = [r.id for r in self._candidates(query) if matches(r, query)]
            for rid in doomed:
                self._unindex(self._records.pop(rid))
            return len(doomed)

    async def search(self, text: str, limit: int = 10) -> List[MemoryRecord]:
        terms = [t for t in text.lower().replace(":", " ").split() if len(t) > 1]
        if not terms:
            return []

        scored = []
        for record in list(self._records.values()):
            haystack = " ".join([
                record.type,
                json.dumps(record.content, default=str),
                json.dumps(record.metadata, default=str),
                " ".join(record.tags),
            ]).lower()
            hits = sum(1 for term in terms if term in haystack)
            if hits:
                scored.append((hits, record.created_at, record))

        scored.sort(key=lambda item: (item[0], item[1]), reverse=True)
        return [record.model_copy(deep=True) for _, _, record in scored[:limit]]

    def __len__(self) -> int:
        return len(self._records)
