"""
Conflict Resolver
=================

Ordered strategy chain. Strategies are sorted by descending priority
(explicit mapping 3, pattern matching 2, LLM 1) and the first one whose
can_resolve() is true produces the result; strategy order is the tie-break
policy, the chain never runs every strategy to pick the best.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from core.descriptors import Descriptor, descriptor_key
from core.resolution import ResolutionResult
from memory_store.memory_store import MemoryRecord, MemoryStore
from memory_store.resilient_store import ensure_resilient
from mediator.explicit_mapping_strategy import ExplicitMappingStrategy
from mediator.llm_resolution_strategy import LLMResolutionStrategy
from mediator.pattern_matching_strategy import PatternMatchingStrategy
from mediator.resolution_strategy import ResolutionStrategy
from providers.reasoning_client import ReasoningClient

logger = logging.getLogger(__name__)


class Resolver:
    """
    Runs the resolution strategy chain.

    Example:
        >>> resolver = Resolver(reasoning, memory_store)
        >>> resolver.explicit_mappings.register_mapping("requirement", "prompt", fn)
        >>> result = await resolver.resolve(data_a, data_b, desc_a, desc_b)
    """

    def __init__(
        self,
        reasoning: ReasoningClient,
        memory_store: Optional[MemoryStore] = None,
        strategies: Optional[List[ResolutionStrategy]] = None
    ):
        self.memory_store = ensure_resilient(memory_store)
        self.explicit_mappings = ExplicitMappingStrategy()

        if strategies is None:
            strategies = [
                self.explicit_mappings,
                PatternMatchingStrategy(),
                LLMResolutionStrategy(reasoning),
            ]
        else:
            found = next((s for s in strategies if isinstance(s, ExplicitMappingStrategy)), None)
            if found is not None:
                self.explicit_mappings = found

        self._strategies: List[ResolutionStrategy] = []
        for strategy in strategies:
            self.register_strategy(strategy)

    @property
    def strategies(self) -> List[ResolutionStrategy]:
        return list(self._strategies)

    def register_strategy(self, strategy: ResolutionStrategy):
        """Add a strategy, replacing one with the same name, keeping priority order."""
        self._strategies = [s for s in self._strategies if s.name != strategy.name]
        self._strategies.append(strategy)
        self._strategies.sort(key=lambda s: s.priority, reverse=True)

    def register_mapping(self, source_entity: str, target_entity: str, mapping_fn):
        self.explicit_mappings.register_mapping(source_entity, target_entity, mapping_fn)

    def remove_mapping(self, source_entity: str, target_entity: str) -> bool:
        return self.explicit_mappings.remove_mapping(source_entity, target_entity)

    async def resolve(
        self,
        source_data: Any,
        target_data: Any,
        source_descriptor: Descriptor,
        target_descriptor: Descriptor,
        context: Optional[Dict[str, Any]] = None,
        force_strategy: Optional[str] = None
    ) -> ResolutionResult:
        """
        Reconcile two representations.

        Args:
            source_data: First representation
            target_data: Second representation
            source_descriptor: Descriptor of the first
            target_descriptor: Descriptor of the second
            context: Optional extra context for strategies
            force_strategy: Run this named strategy regardless of can_resolve

        Returns:
            ResolutionResult (success=False when nothing could resolve)
        """
        started = time.perf_counter()
        strategy = await self._select(source_descriptor, target_descriptor, context, force_strategy)

        if strategy is None:
            reason = (
                f"Unknown strategy '{force_strategy}'" if force_strategy
                else "No strategy can resolve this descriptor pair"
            )
            result = ResolutionResult.failure("none", "no_strategy", reason)
        else:
            logger.info(
                f"⚖️ [Resolver] {descriptor_key(source_descriptor)} vs "
                f"{descriptor_key(target_descriptor)} via {strategy.name}"
            )
            try:
                result = await strategy.resolve(source_data, target_data, source_descriptor, target_descriptor, context)
            except Exception as e:
                logger.error(f"❌ [Resolver] Strategy {strategy.name} raised: {e}")
                result = ResolutionResult.failure(strategy.name, "resolution_error", str(e))

        result.metadata["execution_time"] = time.perf_counter() - started
        result.metadata.setdefault("source_entity", descriptor_key(source_descriptor))
        result.metadata.setdefault("target_entity", descriptor_key(target_descriptor))

        if result.success:
            await self._record(result)
        return result

    async def _select(
        self,
        source_descriptor: Descriptor,
        target_descriptor: Descriptor,
        context: Optional[Dict[str, Any]],
        force_strategy: Optional[str]
    ) -> Optional[ResolutionStrategy]:
        if force_strategy:
            return next((s for s in self._strategies if s.name == force_strategy), None)

        for strategy in self._strategies:
            try:
                if await strategy.can_resolve(source_descriptor, target_descriptor, context):
                    return strategy
            except Exception as e:
                logger.warning(f"⚠️ [Resolver] {strategy.name}.can_resolve raised, skipping: {e}")
        return None

    async def _record(self, result: ResolutionResult):
        if self.memory_store is None:
            return
        await self.memory_store.save(MemoryRecord(
            type="conflict_resolution",
            content=result.to_plain(),
            tags=["resolution", result.strategy_used]
        ))
