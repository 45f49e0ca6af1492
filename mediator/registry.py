"""
Semantic Descriptor Registry
============================

Registers named data sources per owning module, each described by a
semantic descriptor, and discovers them by similarity to an intent.

Every register/update/remove appends an audit record to the memory store.
Audit failures are logged and never fail the primary operation.
"""

import inspect
import json
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from core.descriptors import DataSourceRecord, Descriptor, coerce_descriptor, describe_for_prompt, descriptor_key
from core.errors import ConfigurationError
from memory_store.memory_store import MemoryRecord, MemoryStore
from memory_store.resilient_store import ensure_resilient
from mediator import prompts
from providers.reasoning_client import ReasoningClient

logger = logging.getLogger(__name__)

AccessMethod = Callable[..., Any]


class SemanticRegistry:
    """
    Registry of data sources.

    Example:
        >>> registry = SemanticRegistry(reasoning, memory_store)
        >>> source_id = await registry.register_data_source(
        ...     "clarifier", SemanticDescriptor(entity="requirement"))
        >>> await registry.find_potential_sources({"query": "requirement"}, 0.5)
        ['clarifier_3f9a0c1b2d4e']
    """

    def __init__(
        self,
        reasoning: ReasoningClient,
        memory_store: Optional[MemoryStore] = None,
        default_threshold: float = 0.7
    ):
        self.reasoning = reasoning
        self.memory_store = ensure_resilient(memory_store)
        self.default_threshold = default_threshold

        self._sources: Dict[str, DataSourceRecord] = {}
        self._access_methods: Dict[str, AccessMethod] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def register_data_source(
        self,
        module_id: str,
        descriptor: Union[Descriptor, Dict[str, Any]],
        access_method: Optional[AccessMethod] = None
    ) -> str:
        """
        Register a data source.

        Args:
            module_id: Owning module
            descriptor: Descriptor or plain dict
            access_method: Optional callable (sync or async) fetching the data

        Returns:
            New source id

        Raises:
            ConfigurationError: Empty module id or invalid descriptor
        """
        if not module_id:
            raise ConfigurationError("module_id is required")
        descriptor = coerce_descriptor(descriptor)

        source_id = f"{module_id}_{uuid.uuid4().hex[:12]}"
        record = DataSourceRecord(
            id=source_id,
            module_id=module_id,
            descriptor=descriptor,
            has_access_method=access_method is not None
        )
        self._sources[source_id] = record
        if access_method is not None:
            self._access_methods[source_id] = access_method

        logger.info(f"✅ [Registry] Registered {descriptor_key(descriptor)} source {source_id} for {module_id}")
        await self._audit("semantic_registry", record, "registered")
        return source_id

    async def update_data_source(
        self,
        source_id: str,
        descriptor: Optional[Union[Descriptor, Dict[str, Any]]] = None,
        access_method: Optional[AccessMethod] = None
    ) -> bool:
        """Replace the descriptor and/or access method in place. False if unknown or removed."""
        record = self._sources.get(source_id)
        if record is None or record.is_removed:
            logger.warning(f"⚠️ [Registry] Cannot update unknown source {source_id}")
            return False

        if descriptor is not None:
            record.descriptor = coerce_descriptor(descriptor)
        if access_method is not None:
            self._access_methods[source_id] = access_method
            record.has_access_method = True
        record.updated_at = datetime.now()

        logger.info(f"🔄 [Registry] Updated source {source_id}")
        await self._audit("semantic_registry_updated", record, "updated")
        return True

    async def remove_data_source(self, source_id: str) -> bool:
        """Tombstone a source. It stays in memory but is invisible to reads."""
        record = self._sources.get(source_id)
        if record is None or record.is_removed:
            return False

        record.removed_at = datetime.now()
        self._access_methods.pop(source_id, None)

        logger.info(f"🗑️ [Registry] Removed source {source_id}")
        await self._audit("semantic_registry_deleted", record, "deleted")
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_data_source(self, source_id: str) -> Optional[DataSourceRecord]:
        record = self._sources.get(source_id)
        if record is None or record.is_removed:
            return None
        return record.model_copy(deep=True)

    def get_all_data_sources(self, module_id: Optional[str] = None) -> List[DataSourceRecord]:
        return [
            record.model_copy(deep=True)
            for record in list(self._sources.values())
            if not record.is_removed and (module_id is None or record.module_id == module_id)
        ]

    async def query_data_source(self, source_id: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Invoke a source's access method.

        Raises:
            ConfigurationError: If the source is unknown or has no access method
        """
        if self.get_data_source(source_id) is None:
            raise ConfigurationError(f"Unknown data source: {source_id}")
        method = self._access_methods.get(source_id)
        if method is None:
            raise ConfigurationError(f"Data source {source_id} has no access method")

        result = method(**(params or {}))
        if inspect.isawaitable(result):
            result = await result
        return result

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def find_potential_sources(self, intent: Any, threshold: Optional[float] = None) -> List[str]:
        """
        Ids of live sources whose similarity to `intent` is >= threshold.

        Args:
            intent: Free text, dict (e.g. {"query": "requirement"}) or descriptor
            threshold: Minimum similarity (defaults to 0.7)

        Returns:
            Matching source ids in registration order
        """
        threshold = self.default_threshold if threshold is None else threshold
        matches = []
        for record in self.get_all_data_sources():
            similarity = await self.calculate_semantic_similarity(record.descriptor, intent)
            logger.debug(f"🔍 [Registry] {record.id} similarity={similarity:.2f}")
            if similarity >= threshold:
                matches.append(record.id)
        return matches

    async def calculate_semantic_similarity(self, descriptor: Descriptor, intent_or_descriptor: Any) -> float:
        """
        Similarity in [0, 1] between a descriptor and an intent or another descriptor.

        Failed or non-numeric provider answers give 0.0; never raises.
        """
        try:
            prompt = prompts.SOURCE_SIMILARITY_PROMPT.format(
                descriptor=_to_json(describe_for_prompt(descriptor)),
                intent=_intent_text(intent_or_descriptor)
            )
        except Exception as e:
            logger.error(f"❌ [Registry] Could not build similarity prompt: {e}")
            return 0.0
        return await self.reasoning.score(prompt, system_prompt=prompts.SIMILARITY_SYSTEM_PROMPT)

    # ------------------------------------------------------------------

    async def _audit(self, record_type: str, record: DataSourceRecord, action: str):
        if self.memory_store is None:
            return
        stored = await self.memory_store.save(MemoryRecord(
            type=record_type,
            content={
                "sourceId": record.id,
                "moduleId": record.module_id,
                "action": action,
                "descriptor": record.descriptor.model_dump(),
                "hasAccessMethod": record.has_access_method,
            },
            tags=["registry", record.module_id, action]
        ))
        if stored is None:
            logger.warning(f"⚠️ [Registry] Audit record for {record.id} ({action}) not persisted")


def _intent_text(intent: Any) -> str:
    if isinstance(intent, str):
        return intent
    if hasattr(intent, "model_dump"):
        return _to_json(describe_for_prompt(intent))
    return _to_json(intent)


def _to_json(value: Any) -> str:
    return json.dumps(value, indent=2, default=str, ensure_ascii=False)
