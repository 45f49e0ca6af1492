"""
Intelligent Cache
=================

Stores transformation paths and finds them again by descriptor *similarity*
rather than exact equality.

Lookup scans live paths, scores the stored source against the queried
source and the stored target against the queried target, and returns the
best path whose mean score reaches the threshold. Ties go to the higher
usage_count, then the more recently used path.

Paths live in a SemanticCache (capacity, TTL, value-based eviction) and are
written through to the memory store so a fresh process can warm itself with
preload_cache_for_modules. Losing the in-memory cache only costs latency.
"""

import asyncio
import json
import logging
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

from core.config import MediatorConfig
from core.descriptors import Descriptor, describe_for_prompt, descriptor_key
from core.errors import MalformedResponseError, ProviderUnavailableError
from core.transformation import TransformationPath
from memory_store.memory_store import MemoryRecord, MemoryStore
from memory_store.resilient_store import ensure_resilient
from mediator import prompts
from mediator.semantic_cache import SemanticCache
from providers.reasoning_client import ReasoningClient

logger = logging.getLogger(__name__)

PATH_RECORD_TYPE = "semantic_transformation"


class PredictedPath(BaseModel):
    source_module: str = Field(..., description="Module the data comes from")
    target_module: str = Field(..., description="Module the data goes to")
    confidence: float = Field(..., ge=0.0, le=1.0)


class IntelligentCache:
    """
    Similarity-keyed cache of transformation paths.

    Example:
        >>> cache = IntelligentCache(reasoning, memory_store)
        >>> path_id = await cache.store_transformation_path(src, tgt, path, {"source_module": "clarifier"})
        >>> await cache.retrieve_transformation_path(src, tgt, 1.0)
    """

    def __init__(
        self,
        reasoning: ReasoningClient,
        memory_store: Optional[MemoryStore] = None,
        config: Optional[MediatorConfig] = None,
        store: Optional[SemanticCache] = None
    ):
        self.reasoning = reasoning
        self.memory_store = ensure_resilient(memory_store)
        self.config = config or MediatorConfig()
        # Paths leave only under capacity pressure or through clear_cache
        self._paths: SemanticCache = store if store is not None else SemanticCache(
            max_entries=self.config.cache_max_entries,
            default_ttl=None,
            min_semantic_relevance=self.config.cache_min_semantic_relevance,
            sweep_interval=self.config.cache_sweep_interval,
            name="IntelligentCache"
        )
        self._predictive_threshold = self.config.clamp_predictive_threshold(self.config.predictive_threshold)

    # ------------------------------------------------------------------
    # Threshold
    # ------------------------------------------------------------------

    @property
    def predictive_threshold(self) -> float:
        return self._predictive_threshold

    def set_predictive_threshold(self, value: float) -> float:
        """Set the predictive threshold, clamped to the configured bounds."""
        clamped = self.config.clamp_predictive_threshold(float(value))
        if clamped != self._predictive_threshold:
            logger.info(
                f"🎚️ [IntelligentCache] predictive_threshold {self._predictive_threshold:.2f} -> {clamped:.2f}"
            )
        self._predictive_threshold = clamped
        return clamped

    @property
    def store(self) -> SemanticCache:
        return self._paths

    # ------------------------------------------------------------------
    # Store / retrieve
    # ------------------------------------------------------------------

    async def store_transformation_path(
        self,
        source: Descriptor,
        target: Descriptor,
        path: TransformationPath,
        metadata: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Cache a path for a descriptor pair.

        Args:
            source: Source descriptor the path was built for
            target: Target descriptor
            path: Path to store
            metadata: source_module, target_module, semantic_relevance and extras

        Returns:
            Path id (also returned when the store rejects the entry)
        """
        metadata = dict(metadata or {})
        stored = path.model_copy(deep=True)
        stored.source = source
        stored.target = target

        now = datetime.now()
        meta = stored.metadata
        meta.source_module = metadata.pop("source_module", meta.source_module)
        meta.target_module = metadata.pop("target_module", meta.target_module)
        meta.semantic_relevance = float(metadata.pop("semantic_relevance", meta.semantic_relevance))
        meta.usage_count = max(meta.usage_count, 1)
        meta.last_used = meta.last_used or now
        meta.extra.update(metadata)

        accepted = self._paths.set(stored.id, stored, semantic_relevance=meta.semantic_relevance)
        if accepted:
            logger.info(
                f"💾 [IntelligentCache] Stored path {stored.id} "
                f"({descriptor_key(source)} -> {descriptor_key(target)})"
            )
        else:
            logger.info(f"🚫 [IntelligentCache] Path {stored.id} not admitted (relevance {meta.semantic_relevance:.2f})")

        await self._persist(stored)
        return stored.id

    async def retrieve_transformation_path(
        self,
        source: Descriptor,
        target: Descriptor,
        similarity_threshold: Optional[float] = None
    ) -> Optional[TransformationPath]:
        """
        Best cached path whose combined similarity >= threshold, else None.

        Never raises.
        """
        threshold = self.config.similarity_threshold if similarity_threshold is None else similarity_threshold
        candidates = self._paths.items()
        if not candidates:
            return None

        try:
            scored = await asyncio.gather(*[
                self._score_candidate(entry.data, source, target) for _, entry in candidates
            ])
        except Exception as e:
            logger.error(f"❌ [IntelligentCache] Retrieval failed: {e}")
            return None

        eligible = [(score, path) for score, path in scored if score >= threshold]
        if not eligible:
            logger.debug(f"🔍 [IntelligentCache] Miss ({len(candidates)} candidates, threshold {threshold:.2f})")
            return None

        best_score, best = max(eligible, key=lambda item: (
            item[0],
            item[1].metadata.usage_count,
            _timestamp(item[1].metadata.last_used or item[1].metadata.created_at),
        ))

        # Records the access for eviction scoring
        self._paths.get(best.id)
        logger.info(f"🎯 [IntelligentCache] Hit {best.id} (score {best_score:.2f})")
        return best.model_copy(deep=True)

    async def _score_candidate(
        self,
        path: TransformationPath,
        source: Descriptor,
        target: Descriptor
    ) -> Tuple[float, TransformationPath]:
        source_score, target_score = await asyncio.gather(
            self.calculate_descriptor_similarity(path.source, source),
            self.calculate_descriptor_similarity(path.target, target),
        )
        return (source_score + target_score) / 2.0, path

    async def calculate_descriptor_similarity(self, first: Descriptor, second: Descriptor) -> float:
        """Similarity in [0, 1]; identical descriptors score 1.0 without a provider call. Never raises."""
        try:
            if first == second:
                return 1.0
            prompt = prompts.DESCRIPTOR_SIMILARITY_PROMPT.format(
                first=_to_json(describe_for_prompt(first)),
                second=_to_json(describe_for_prompt(second))
            )
        except Exception as e:
            logger.error(f"❌ [IntelligentCache] Could not compare descriptors: {e}")
            return 0.0
        return await self.reasoning.score(prompt, system_prompt=prompts.SIMILARITY_SYSTEM_PROMPT)

    # ------------------------------------------------------------------
    # Usage
    # ------------------------------------------------------------------

    async def update_usage_statistics(self, path_id: str, metadata: Optional[Dict[str, Any]] = None) -> bool:
        """Increment usage_count and refresh last_used. False if the path is not cached."""
        entry = self._paths.peek(path_id)
        if entry is None:
            return False

        path: TransformationPath = entry.data
        path.metadata.usage_count += 1
        path.metadata.last_used = datetime.now()
        if metadata:
            path.metadata.extra.update(metadata)

        await self._persist(path)
        return True

    def get_most_used_paths(self, n: int = 10) -> List[TransformationPath]:
        paths = self._paths.values()
        paths.sort(key=lambda p: (p.metadata.usage_count, _timestamp(p.metadata.last_used)), reverse=True)
        return [p.model_copy(deep=True) for p in paths[:n]]

    def get_recently_used_paths(self, n: int = 10) -> List[TransformationPath]:
        paths = self._paths.values()
        paths.sort(key=lambda p: _timestamp(p.metadata.last_used or p.metadata.created_at), reverse=True)
        return [p.model_copy(deep=True) for p in paths[:n]]

    async def clear_cache(self, older_than: Optional[datetime] = None) -> int:
        """
        Evict every path, or only those last used before `older_than`.

        Persisted copies are deleted too, so a later preload does not
        resurrect them.

        Returns:
            Number of evicted paths
        """
        if older_than is None:
            count = self._paths.clear()
            if self.memory_store is not None:
                await self.memory_store.delete({"type": PATH_RECORD_TYPE})
            return count

        evicted = 0
        for key, entry in self._paths.items():
            last = entry.data.metadata.last_used or entry.data.metadata.created_at
            if last < older_than and self._paths.delete(key):
                evicted += 1
                if self.memory_store is not None:
                    await self.memory_store.delete({"type": PATH_RECORD_TYPE, "metadata.pathId": key})

        logger.info(f"🧹 [IntelligentCache] Evicted {evicted} paths older than {older_than.isoformat()}")
        return evicted

    def get_stats(self) -> Dict[str, Any]:
        stats = self._paths.get_stats()
        stats["predictive_threshold"] = self._predictive_threshold
        stats["total_usage"] = sum(p.metadata.usage_count for p in self._paths.values())
        return stats

    # ------------------------------------------------------------------
    # Adaptive behaviour
    # ------------------------------------------------------------------

    def _usage_data(self) -> List[Dict[str, Any]]:
        return [
            {
                "pathId": p.id,
                "sourceModule": p.metadata.source_module,
                "targetModule": p.metadata.target_module,
                "sourceEntity": descriptor_key(p.source),
                "targetEntity": descriptor_key(p.target),
                "usageCount": p.metadata.usage_count,
                "lastUsed": (p.metadata.last_used or p.metadata.created_at).isoformat(),
                "steps": len(p.steps),
            }
            for p in self._paths.values()
        ]

    async def analyze_usage_patterns(self) -> Dict[str, Any]:
        """
        Summarize usage with the provider and adapt the predictive threshold.

        Returns:
            {"patterns": [...], "insights": str, "recommendations": [...]}
        """
        usage = self._usage_data()
        if not usage:
            return {"patterns": [], "insights": "No usage data available for analysis", "recommendations": []}

        prompt = prompts.USAGE_ANALYSIS_PROMPT.format(usage=_to_json(usage), threshold=self._predictive_threshold)
        try:
            answer = await self.reasoning.generate_json(prompt, temperature=0.3, max_tokens=2000)
            if not isinstance(answer, dict):
                raise MalformedResponseError("Usage analysis is not an object")
        except (ProviderUnavailableError, MalformedResponseError) as e:
            logger.warning(f"⚠️ [IntelligentCache] Usage analysis degraded to local statistics: {e}")
            return self._local_usage_analysis(usage)

        result = {
            "patterns": answer.get("patterns") if isinstance(answer.get("patterns"), list) else [],
            "insights": answer.get("insights") or "",
            "recommendations": answer.get("recommendations") if isinstance(answer.get("recommendations"), list) else [],
        }
        self._adapt_threshold(result["recommendations"])
        return result

    def _local_usage_analysis(self, usage: List[Dict[str, Any]]) -> Dict[str, Any]:
        pairs = Counter()
        for item in usage:
            pairs[(item["sourceModule"], item["targetModule"])] += item["usageCount"]
        patterns = [
            {"description": f"{source} -> {target}", "frequency": count}
            for (source, target), count in pairs.most_common()
        ]
        total = sum(pairs.values())
        return {
            "patterns": patterns,
            "insights": f"{len(usage)} cached paths used {total} times across {len(pairs)} module pairs",
            "recommendations": [],
        }

    def _adapt_threshold(self, recommendations: List[Any]):
        direction = 0
        for recommendation in recommendations:
            text = recommendation if isinstance(recommendation, str) else _to_json(recommendation)
            text = text.lower()
            if "threshold" not in text:
                continue
            if "lower" in text or "decrease" in text or "reduce" in text:
                direction -= 1
            elif "raise" in text or "increase" in text or "higher" in text:
                direction += 1

        if direction < 0:
            self.set_predictive_threshold(self._predictive_threshold - self.config.adaptive_rate)
        elif direction > 0:
            self.set_predictive_threshold(self._predictive_threshold + self.config.adaptive_rate)

    async def predict_needed_transformations(self, module_context: Any) -> List[PredictedPath]:
        """
        Module pairs likely to need a path soon, with confidence >= predictive threshold.

        Falls back to cached usage shares when the provider is unavailable.
        """
        usage = self._usage_data()
        prompt = prompts.PREDICTION_PROMPT.format(context=_to_json(module_context), usage=_to_json(usage))

        predictions: List[PredictedPath] = []
        try:
            answer = await self.reasoning.generate_json(prompt, temperature=0.3, max_tokens=1000)
            raw = answer.get("predictedPaths", []) if isinstance(answer, dict) else answer
            for item in raw if isinstance(raw, list) else []:
                try:
                    predictions.append(PredictedPath(
                        source_module=item.get("sourceModule") or item.get("source_module"),
                        target_module=item.get("targetModule") or item.get("target_module"),
                        confidence=max(0.0, min(1.0, float(item.get("confidence", 0.0))))
                    ))
                except (AttributeError, TypeError, ValueError, ValidationError):
                    continue
        except (ProviderUnavailableError, MalformedResponseError) as e:
            logger.warning(f"⚠️ [IntelligentCache] Prediction degraded to usage shares: {e}")
            predictions = self._local_predictions(module_context, usage)

        selected = [p for p in predictions if p.confidence >= self._predictive_threshold]
        selected.sort(key=lambda p: p.confidence, reverse=True)
        return selected

    def _local_predictions(self, module_context: Any, usage: List[Dict[str, Any]]) -> List[PredictedPath]:
        current = _current_module(module_context)
        relevant = [u for u in usage if current is None or u["sourceModule"] == current]
        total = sum(u["usageCount"] for u in relevant)
        if not total:
            return []

        pairs = Counter()
        for item in relevant:
            if item["sourceModule"] and item["targetModule"]:
                pairs[(item["sourceModule"], item["targetModule"])] += item["usageCount"]
        return [
            PredictedPath(source_module=source, target_module=target, confidence=count / total)
            for (source, target), count in pairs.items()
        ]

    async def preload_cache_for_modules(self, module_ids: List[str]) -> int:
        """
        Warm the cache with persisted paths touching any of `module_ids`.

        Returns:
            Number of paths loaded (0 when the store is unavailable)
        """
        if self.memory_store is None or not module_ids:
            return 0

        wanted = set(module_ids)
        records = await self.memory_store.find_by_type(PATH_RECORD_TYPE)
        warmed = 0
        for record in records:
            try:
                path = TransformationPath.model_validate(record.content)
            except ValidationError as e:
                logger.warning(f"⚠️ [IntelligentCache] Skipping unreadable path record {record.id}: {e.error_count()} errors")
                continue
            if not {path.metadata.source_module, path.metadata.target_module} & wanted:
                continue
            if self._paths.has(path.id):
                continue
            if self._paths.set(path.id, path, semantic_relevance=path.metadata.semantic_relevance):
                warmed += 1

        logger.info(f"🔥 [IntelligentCache] Preloaded {warmed} paths for {sorted(wanted)}")
        return warmed

    async def recommend_cache_optimizations(self) -> Dict[str, Any]:
        """
        Returns:
            {"retainTypes", "purgeTypes", "thresholdAdjustments", "additionalSuggestions"}
        """
        usage = self._usage_data()
        stats = self._paths.get_stats()
        prompt = prompts.OPTIMIZATION_PROMPT.format(
            stats=_to_json(stats), usage=_to_json(usage), threshold=self._predictive_threshold
        )
        try:
            answer = await self.reasoning.generate_json(prompt, temperature=0.3, max_tokens=1500)
            if not isinstance(answer, dict):
                raise MalformedResponseError("Optimization answer is not an object")
        except (ProviderUnavailableError, MalformedResponseError) as e:
            logger.warning(f"⚠️ [IntelligentCache] Optimization advice degraded to local heuristics: {e}")
            return self._local_optimizations(usage, stats)

        result = {
            "retainTypes": _string_list(answer.get("retainTypes")),
            "purgeTypes": _string_list(answer.get("purgeTypes")),
            "thresholdAdjustments": answer.get("thresholdAdjustments") if isinstance(answer.get("thresholdAdjustments"), dict) else {},
            "additionalSuggestions": _string_list(answer.get("additionalSuggestions")),
        }

        adjusted = result["thresholdAdjustments"].get("predictiveThreshold")
        if isinstance(adjusted, (int, float)) and not isinstance(adjusted, bool):
            result["thresholdAdjustments"]["predictiveThreshold"] = self.set_predictive_threshold(adjusted)
        return result

    def _local_optimizations(self, usage: List[Dict[str, Any]], stats: Dict[str, Any]) -> Dict[str, Any]:
        by_type = Counter()
        for item in usage:
            by_type[f"{item['sourceEntity']}->{item['targetEntity']}"] += item["usageCount"]

        suggestions = []
        if stats.get("hit_rate", 0.0) < 0.5 and (stats.get("hits", 0) + stats.get("misses", 0)) > 0:
            suggestions.append("Hit rate below 50%: consider preloading paths for active modules")
        if stats.get("size", 0) >= stats.get("max_entries", 1):
            suggestions.append("Cache is at capacity: consider raising cache_max_entries")

        return {
            "retainTypes": [t for t, count in by_type.items() if count > 1],
            "purgeTypes": [t for t, count in by_type.items() if count <= 1],
            "thresholdAdjustments": {},
            "additionalSuggestions": suggestions,
        }

    # ------------------------------------------------------------------

    async def _persist(self, path: TransformationPath):
        if self.memory_store is None:
            return
        content = path.model_dump()
        existing = await self.memory_store.find_one({"type": PATH_RECORD_TYPE, "metadata.pathId": path.id})
        if existing is not None:
            await self.memory_store.update(existing.id, {"content": content})
            return
        await self.memory_store.save(MemoryRecord(
            type=PATH_RECORD_TYPE,
            content=content,
            metadata={"pathId": path.id},
            tags=[t for t in (path.metadata.source_module, path.metadata.target_module) if t]
        ))


def _current_module(module_context: Any) -> Optional[str]:
    if isinstance(module_context, str):
        return module_context
    if isinstance(module_context, dict):
        for key in ("currentModule", "current_module", "module", "moduleId"):
            if module_context.get(key):
                return module_context[key]
    return None


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


def _timestamp(value: Optional[datetime]) -> float:
    return value.timestamp() if value else 0.0


def _to_json(value: Any) -> str:
    return json.dumps(value, indent=2, default=str, ensure_ascii=False)
