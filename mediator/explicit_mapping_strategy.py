"""
Explicit Mapping Strategy
=========================

Hand-authored (source entity, target entity) -> mapping function pairs.
Composite descriptors match on their declared `type`.
"""

import inspect
import logging
from typing import Any, Callable, Dict, Optional, Tuple

from core.descriptors import Descriptor, descriptor_key
from core.resolution import ResolutionResult
from mediator.resolution_strategy import ResolutionStrategy

logger = logging.getLogger(__name__)

MappingFunction = Callable[[Any, Any], Any]


class ExplicitMappingStrategy(ResolutionStrategy):
    """
    Resolution through registered mapping functions.

    Example:
        >>> strategy = ExplicitMappingStrategy()
        >>> strategy.register_mapping("requirement", "prompt",
        ...     lambda source, target: {**target, "text": source["title"]})
    """

    name = "explicit_mapping"
    priority = 3

    def __init__(self):
        self._mappings: Dict[Tuple[str, str], MappingFunction] = {}

    def register_mapping(self, source_entity: str, target_entity: str, mapping_fn: MappingFunction):
        """Register (or overwrite) the mapping for an entity pair. Sync or async functions."""
        key = (source_entity, target_entity)
        if key in self._mappings:
            logger.info(f"🔁 [ExplicitMapping] Overwriting mapping {source_entity} -> {target_entity}")
        self._mappings[key] = mapping_fn

    def remove_mapping(self, source_entity: str, target_entity: str) -> bool:
        return self._mappings.pop((source_entity, target_entity), None) is not None

    def has_mapping(self, source_entity: str, target_entity: str) -> bool:
        return (source_entity, target_entity) in self._mappings

    async def can_resolve(
        self,
        source_descriptor: Descriptor,
        target_descriptor: Descriptor,
        context: Optional[Dict[str, Any]] = None
    ) -> bool:
        return self.has_mapping(descriptor_key(source_descriptor), descriptor_key(target_descriptor))

    async def resolve(
        self,
        source_data: Any,
        target_data: Any,
        source_descriptor: Descriptor,
        target_descriptor: Descriptor,
        context: Optional[Dict[str, Any]] = None
    ) -> ResolutionResult:
        source_entity = descriptor_key(source_descriptor)
        target_entity = descriptor_key(target_descriptor)
        mapping_fn = self._mappings.get((source_entity, target_entity))
        if mapping_fn is None:
            return ResolutionResult.failure(
                self.name, "missing_mapping", f"No mapping registered for {source_entity} -> {target_entity}"
            )

        try:
            resolved = mapping_fn(source_data, target_data)
            if inspect.isawaitable(resolved):
                resolved = await resolved
        except Exception as e:
            logger.warning(f"⚠️ [ExplicitMapping] {source_entity} -> {target_entity} failed: {e}")
            return ResolutionResult.failure(self.name, "mapping_error", str(e))

        logger.info(f"✅ [ExplicitMapping] Resolved {source_entity} -> {target_entity}")
        return ResolutionResult(
            success=True,
            resolved_data=resolved,
            strategy_used=self.name,
            confidence=1.0,
            metadata={"mapping": f"{source_entity}->{target_entity}"}
        )
