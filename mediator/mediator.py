"""
Semantic Mediator
=================

Facade composing the registry, transformation engine, intelligent cache,
resolver and monitoring system into the operations consumers call:

- translate_between_modules / translate_to_schema
- enrich_with_context
- resolve_semantic_conflicts
- extract_semantic_insights
- track_semantic_transformation
- generate_validation_context
- evaluate_semantic_transformation

Every operation takes and returns plain data. The facade owns the wiring;
components never reference each other directly.

Failure policy:
- insight extraction never raises (degrades to an empty list)
- ConfigurationError propagates as-is
- other failures are reported to monitoring and re-raised as MediationError
  naming the operation and both endpoints
"""

import copy
import json
import logging
import time
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.config import MediatorConfig
from core.descriptors import Descriptor, SemanticDescriptor, coerce_descriptor, descriptor_key, infer_attributes
from core.errors import ConfigurationError, MalformedResponseError, MediationError
from core.transformation import PathMetadata, SynthesizeStep, TransformationPath
from memory_store.memory_store import InMemoryMemoryStore, MemoryRecord, MemoryStore
from memory_store.resilient_store import ensure_resilient
from mediator import prompts
from mediator.differences import compute_differences
from mediator.human_review import HumanReviewService
from mediator.intelligent_cache import IntelligentCache
from mediator.monitoring import MonitoringSystem
from mediator.registry import SemanticRegistry
from mediator.resolver import Resolver
from mediator.semantic_cache import SemanticCache
from mediator.transformation_engine import TransformationEngine
from providers.reasoning_client import ReasoningClient, create_reasoning_client
from providers.reasoning_provider import ReasoningProvider

logger = logging.getLogger("SemanticMediator")

VALIDATION_STRATEGIES = ("balanced", "strict", "lenient", "performance", "security", "custom")

STRATEGY_WEIGHTS: Dict[str, Dict[str, float]] = {
    "balanced": {"functionality": 0.3, "semantics": 0.3, "structure": 0.2, "performance": 0.1, "security": 0.1},
    "strict": {"functionality": 0.35, "semantics": 0.35, "structure": 0.2, "performance": 0.05, "security": 0.05},
    "lenient": {"functionality": 0.5, "semantics": 0.3, "structure": 0.1, "performance": 0.05, "security": 0.05},
    "performance": {"functionality": 0.25, "semantics": 0.2, "structure": 0.1, "performance": 0.4, "security": 0.05},
    "security": {"functionality": 0.25, "semantics": 0.2, "structure": 0.1, "performance": 0.05, "security": 0.4},
}

EVALUATION_DIMENSIONS = ("semanticPreservation", "structuralAdaptation", "informationCompleteness")

# Record types written by the mediator itself; never used as enrichment context
_INTERNAL_PREFIXES = ("monitoring_", "semantic_registry", "semantic_transformation", "transformation_path", "conflict_resolution")


def _to_json(value: Any) -> str:
    return json.dumps(value, indent=2, default=str, ensure_ascii=False)


def _score_100(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    """Numeric score clamped to [0, 100]; `default` for anything non-numeric."""
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(0.0, min(100.0, number))


def _option(options: Optional[Dict[str, Any]], snake: str, camel: str, default: Any = None) -> Any:
    if not options:
        return default
    if snake in options and options[snake] is not None:
        return options[snake]
    if camel in options and options[camel] is not None:
        return options[camel]
    return default


class SemanticMediator:
    """
    Facade over the mediation engine.

    Example:
        >>> mediator = SemanticMediator.from_config(MediatorConfig.from_env())
        >>> prompt_data = await mediator.translate_between_modules("validator", "llm", context)
        >>> result = await mediator.resolve_semantic_conflicts("clarifier", a, "generator", b)
    """

    def __init__(
        self,
        reasoning: ReasoningClient,
        memory_store: Optional[MemoryStore] = None,
        config: Optional[MediatorConfig] = None,
        registry: Optional[SemanticRegistry] = None,
        engine: Optional[TransformationEngine] = None,
        cache: Optional[IntelligentCache] = None,
        resolver: Optional[Resolver] = None,
        monitoring: Optional[MonitoringSystem] = None
    ):
        self.config = config or MediatorConfig()
        self.reasoning = reasoning
        self.memory_store = ensure_resilient(
            memory_store if memory_store is not None
            else InMemoryMemoryStore(self.config.memory_max_records_per_type)
        )

        self.registry = registry if registry is not None else SemanticRegistry(
            reasoning, self.memory_store, default_threshold=self.config.source_discovery_threshold
        )
        self.engine = engine if engine is not None else TransformationEngine(reasoning, self.memory_store)
        self.cache = cache if cache is not None else IntelligentCache(reasoning, self.memory_store, self.config)
        self.resolver = resolver if resolver is not None else Resolver(reasoning, self.memory_store)
        self.monitoring = monitoring if monitoring is not None else MonitoringSystem(self.memory_store)
        self.human_review = HumanReviewService(reasoning, self.memory_store, default_timeout=self.config.review_timeout)

        self.validation_cache: SemanticCache = SemanticCache(
            max_entries=max(1, self.config.cache_max_entries // 5),
            default_ttl=self.config.cache_default_ttl,
            min_semantic_relevance=0.0,
            sweep_interval=self.config.cache_sweep_interval,
            name="ValidationContextCache"
        )

        logger.info("✅ [SemanticMediator] Initialized")

    @classmethod
    def from_config(
        cls,
        config: Optional[MediatorConfig] = None,
        memory_store: Optional[MemoryStore] = None,
        provider: Optional[ReasoningProvider] = None
    ) -> "SemanticMediator":
        config = config or MediatorConfig.from_env()
        return cls(create_reasoning_client(config, provider), memory_store, config)

    async def start(self):
        """Start background sweeps of both caches."""
        self.cache.store.start_sweeper()
        self.validation_cache.start_sweeper()

    async def stop(self):
        await self.cache.store.stop_sweeper()
        await self.validation_cache.stop_sweeper()
        await self.human_review.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def module_descriptor(module: str, data: Any = None) -> SemanticDescriptor:
        """
        Lightweight descriptor for a module's representation.

        Raises:
            ConfigurationError: If the module name is empty
        """
        if not module or not str(module).strip():
            raise ConfigurationError("Module identifier is required")
        return SemanticDescriptor(
            entity=module,
            description=f"Data representation used by the {module} module",
            attributes=infer_attributes(data) if data is not None else {},
            metadata={"module": module}
        )

    async def _fail(
        self,
        operation: str,
        message: str,
        error: Exception,
        source: Optional[str],
        target: Optional[str]
    ):
        await self.monitoring.log_error(error, {"operation": operation, "sourceModule": source, "targetModule": target})
        if isinstance(error, (ConfigurationError, MediationError)):
            raise error
        raise MediationError(operation, f"{message}: {error}", source=source, target=target, cause=error) from error

    async def _emit(self, event: Dict[str, Any], started: float):
        duration = time.perf_counter() - started
        event["duration"] = duration
        await self.monitoring.log_transformation_event(event)
        await self.monitoring.record_performance_metrics(event["type"], {"duration": duration})

    # ------------------------------------------------------------------
    # Translate
    # ------------------------------------------------------------------

    async def translate_between_modules(self, source_module: str, target_module: str, data: Any) -> Any:
        """
        Translate `data` from one module's representation to another's.

        Cache hit: bump usage, execute. Miss: generate, validate, execute,
        and cache the path only if validation passed.

        Raises:
            ConfigurationError: Empty module identifiers
            MediationError: "Failed to translate data from A to B: ..."
        """
        started = time.perf_counter()
        event = {
            "type": "translation",
            "sourceModule": source_module,
            "targetModule": target_module,
            "status": "failed",
            "cacheHit": False,
        }
        try:
            source = self.module_descriptor(source_module)
            target = self.module_descriptor(target_module)
            result = await self._translate(source, target, data, source_module, target_module, event)
            event["status"] = "success"
            return result
        except Exception as e:
            await self._fail(
                "translate_between_modules",
                f"Failed to translate data from {source_module} to {target_module}",
                e, source_module, target_module
            )
        finally:
            await self._emit(event, started)

    async def translate_to_schema(self, data: Any, target_schema: Any, source_module: str = "memory") -> Any:
        """
        Translate `data` into the representation a descriptor describes.

        Args:
            data: Payload
            target_schema: SemanticDescriptor, CompositeDescriptor or plain dict
            source_module: Module the payload comes from

        Raises:
            ConfigurationError: Invalid descriptor or empty module
            MediationError: "Failed to translate data to schema X: ..."
        """
        started = time.perf_counter()
        event = {"type": "schema_translation", "sourceModule": source_module, "status": "failed", "cacheHit": False}
        target_name = "unknown"
        try:
            source = self.module_descriptor(source_module)
            target = coerce_descriptor(target_schema)
            target_name = descriptor_key(target)
            event["targetModule"] = target_name
            result = await self._translate(source, target, data, source_module, target_name, event)
            event["status"] = "success"
            return result
        except Exception as e:
            await self._fail(
                "translate_to_schema",
                f"Failed to translate data to schema {target_name}",
                e, source_module, target_name
            )
        finally:
            await self._emit(event, started)

    async def _translate(
        self,
        source: Descriptor,
        target: Descriptor,
        data: Any,
        source_module: str,
        target_module: str,
        event: Dict[str, Any]
    ) -> Any:
        context = {"source_module": source_module, "target_module": target_module}

        path = await self.cache.retrieve_transformation_path(source, target)
        if path is not None:
            event["cacheHit"] = True
            await self.cache.update_usage_statistics(path.id, {"last_translation": datetime.now().isoformat()})
            result = await self.engine.execute_transformation(data, path, context)
        else:
            if isinstance(data, dict):
                context["sample_keys"] = list(data.keys())
            path = await self.engine.generate_transformation_path(source, target, context)
            verdict = await self.engine.validate_transformation(path, sample_input=data)
            result = await self.engine.execute_transformation(data, path, context)
            if verdict["valid"]:
                await self.cache.store_transformation_path(source, target, path, {
                    "source_module": source_module,
                    "target_module": target_module,
                })
            else:
                logger.warning(f"⚠️ [SemanticMediator] Path {path.id} not cached: {verdict['issues']}")

        event["pathId"] = path.id
        return result

    # ------------------------------------------------------------------
    # Enrich
    # ------------------------------------------------------------------

    async def enrich_with_context(self, module: str, data: Any, context_query: str) -> Any:
        """
        Enrich `data` with records related to `context_query`.

        Returns `data` unchanged, without a provider call, when nothing
        related is found.
        """
        started = time.perf_counter()
        event = {"type": "context_enrichment", "sourceModule": module, "targetModule": module, "status": "failed"}
        try:
            records = await self.memory_store.search(context_query, limit=10)
            related = [r for r in records if not r.type.startswith(_INTERNAL_PREFIXES)]
            event["relatedRecords"] = len(related)
            if not related:
                event["status"] = "unchanged"
                return data

            descriptor = self.module_descriptor(module)
            path = TransformationPath(
                source=descriptor,
                target=descriptor,
                steps=[SynthesizeStep(
                    tag="context_enrichment",
                    instruction=prompts.ENRICHMENT_INSTRUCTION,
                    context=[{"type": r.type, "content": r.content, "tags": r.tags} for r in related]
                )],
                metadata=PathMetadata(source_module=module, target_module=module)
            )
            result = await self.engine.execute_transformation(data, path, {"query": context_query})
            event["status"] = "success"
            return result
        except Exception as e:
            await self._fail("enrich_with_context", "Failed to enrich data with context", e, module, module)
        finally:
            await self._emit(event, started)

    # ------------------------------------------------------------------
    # Resolve
    # ------------------------------------------------------------------

    async def resolve_semantic_conflicts(
        self,
        module_a: str,
        data_a: Any,
        module_b: str,
        data_b: Any,
        options: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Reconcile two modules' representations of the same entity.

        Options:
            force_strategy: run a named strategy
            context: extra context for strategies
            source_descriptor / target_descriptor: override derived descriptors

        Returns:
            Plain ResolutionResult (success=False when unresolved)
        """
        started = time.perf_counter()
        event = {"type": "conflict_resolution", "sourceModule": module_a, "targetModule": module_b, "status": "failed"}
        try:
            source_override = _option(options, "source_descriptor", "sourceDescriptor")
            target_override = _option(options, "target_descriptor", "targetDescriptor")
            source = coerce_descriptor(source_override) if source_override else self.module_descriptor(module_a, data_a)
            target = coerce_descriptor(target_override) if target_override else self.module_descriptor(module_b, data_b)

            result = await self.resolver.resolve(
                data_a,
                data_b,
                source,
                target,
                context=_option(options, "context", "context"),
                force_strategy=_option(options, "force_strategy", "forceStrategy")
            )
            event.update({
                "status": "success" if result.success else "unresolved",
                "strategyUsed": result.strategy_used,
                "confidence": result.confidence,
                "unresolvedConflicts": len(result.unresolved_conflicts),
            })
            return result.to_plain()
        except Exception as e:
            await self._fail(
                "resolve_semantic_conflicts",
                f"Failed to resolve semantic conflicts between {module_a} and {module_b}",
                e, module_a, module_b
            )
        finally:
            await self._emit(event, started)

    # ------------------------------------------------------------------
    # Insights
    # ------------------------------------------------------------------

    async def extract_semantic_insights(self, data: Any, query: str) -> Dict[str, Any]:
        """
        Insights about `data` from the perspective of `query`. Never raises.

        Returns:
            {"query": query, "insights": <provider result or []>}
        """
        started = time.perf_counter()
        event = {"type": "semantic_insights_extraction", "sourceModule": "data", "targetModule": "insights", "status": "degraded"}
        insights: Any = []
        try:
            path = TransformationPath(
                source=SemanticDescriptor(entity="data"),
                target=SemanticDescriptor(entity="semantic_insights"),
                steps=[SynthesizeStep(
                    tag="semantic_insights_extraction",
                    instruction=prompts.INSIGHTS_INSTRUCTION,
                    target="insights"
                )]
            )
            result = await self.engine.execute_transformation({"data": data, "query": query}, path)
            if isinstance(result, dict) and "insights" in result:
                insights = result["insights"]
                event["status"] = "success"
        except Exception as e:
            await self.monitoring.log_error(e, {"operation": "extract_semantic_insights"})
        finally:
            await self._emit(event, started)

        return {"query": query, "insights": insights}

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def evaluate_semantic_transformation(
        self,
        source_data: Any,
        transformed_data: Any,
        expected_outcome: str
    ) -> Dict[str, Any]:
        """
        Score a finished transformation against a description of the expected outcome.

        Returns:
            {"semanticPreservation", "structuralAdaptation", "informationCompleteness",
             "overallQuality"} on a 0-100 scale, plus "suggestions"

        Raises:
            MediationError: "Failed to evaluate semantic transformation: ..."
        """
        started = time.perf_counter()
        event = {"type": "transformation_evaluation", "sourceModule": "source", "targetModule": "transformed", "status": "failed"}
        try:
            prompt = prompts.EVALUATION_PROMPT.format(
                source=_to_json(source_data),
                transformed=_to_json(transformed_data),
                expected=expected_outcome
            )
            answer = await self.reasoning.generate_json(
                prompt, temperature=0.1, max_tokens=800, system_prompt=prompts.EVALUATION_SYSTEM_PROMPT
            )
            if not isinstance(answer, dict):
                raise MalformedResponseError("Evaluation is not a JSON object", raw=str(answer))

            scores = {key: _score_100(answer.get(key)) for key in EVALUATION_DIMENSIONS}
            overall = _score_100(answer.get("overallQuality"), default=None)
            if overall is None:
                overall = round(sum(scores.values()) / len(scores), 1)
            suggestions = answer.get("suggestions") or []
            if not isinstance(suggestions, list):
                suggestions = [suggestions]

            evaluation = {
                **scores,
                "overallQuality": overall,
                "suggestions": [str(s) for s in suggestions if s],
                "expectedOutcome": expected_outcome,
            }
            event.update({"status": "success", "overallQuality": overall})
            return evaluation
        except Exception as e:
            await self._fail("evaluate_semantic_transformation", "Failed to evaluate semantic transformation", e, None, None)
        finally:
            await self._emit(event, started)

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    async def track_semantic_transformation(
        self,
        source_module: str,
        target_module: str,
        source_data: Any,
        transformed_data: Any,
        options: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Record what changed between `source_data` and `transformed_data`.

        Options (all default on):
            track_differences: structural diff
            analyze_transformation: provider analysis (degrades to {})
            save_to_memory: persist the report; a failed save raises

        Raises:
            MediationError: "Failed to track semantic transformation: ..."
        """
        started = time.perf_counter()
        transformation_id = f"transformation_{uuid.uuid4().hex[:12]}"
        track_differences = _option(options, "track_differences", "trackDifferences", True)
        analyze = _option(options, "analyze_transformation", "analyzeTransformation", True)
        save = _option(options, "save_to_memory", "saveToMemory", True)

        await self.monitoring.log_transformation_event({
            "type": "transformation_tracking",
            "transformationId": transformation_id,
            "sourceModule": source_module,
            "targetModule": target_module,
            "status": "started",
        })

        report: Dict[str, Any] = {
            "transformationId": transformation_id,
            "sourceModule": source_module,
            "targetModule": target_module,
            "timestamp": datetime.now().isoformat(),
        }
        try:
            if track_differences:
                report["differences"] = compute_differences(source_data, transformed_data)

            if analyze:
                path = TransformationPath(
                    source=self.module_descriptor(source_module),
                    target=self.module_descriptor(target_module),
                    steps=[SynthesizeStep(
                        tag="transformation_analysis",
                        instruction=prompts.ANALYSIS_INSTRUCTION,
                        target="analysis"
                    )]
                )
                analyzed = await self.engine.execute_transformation(
                    {"sourceData": source_data, "transformedData": transformed_data}, path
                )
                report["analysis"] = analyzed.get("analysis", {}) if isinstance(analyzed, dict) else {}

            if save:
                await self.memory_store.save(MemoryRecord(
                    type="semantic_transformation_tracking",
                    content={**report, "sourceData": source_data, "transformedData": transformed_data},
                    tags=["tracking", source_module, target_module]
                ), required=True)
                report["saved"] = True

            await self.monitoring.record_performance_metrics(
                "transformation_tracking", {"duration": time.perf_counter() - started}
            )
            return report
        except Exception as e:
            await self._fail(
                "track_semantic_transformation",
                "Failed to track semantic transformation",
                e, source_module, target_module
            )

    # ------------------------------------------------------------------
    # Validation context
    # ------------------------------------------------------------------

    async def _load_record(self, record_type: str, record_id: str) -> MemoryRecord:
        record = await self.memory_store.find_one({"type": record_type, "id": record_id})
        if record is None:
            record = await self.memory_store.find_one({"type": record_type, "content.id": record_id})
        if record is None:
            raise ConfigurationError(f"{record_type.capitalize()} {record_id} not found")
        return record

    @staticmethod
    def resolve_weights(strategy: str, custom_weights: Optional[Dict[str, float]] = None) -> Dict[str, float]:
        """Weights for a validation strategy; custom weights are normalized to sum to 1."""
        if strategy == "custom" and custom_weights:
            positive = {k: float(v) for k, v in custom_weights.items() if float(v) > 0}
            total = sum(positive.values())
            if total > 0:
                return {k: v / total for k, v in positive.items()}
        return dict(STRATEGY_WEIGHTS.get(strategy, STRATEGY_WEIGHTS["balanced"]))

    async def generate_validation_context(
        self,
        expectation_id: str,
        code_id: str,
        previous_validations: Optional[List[Any]] = None,
        options: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Semantic context relating an expectation to generated code.

        Options:
            strategy: balanced | strict | lenient | performance | security | custom
                      (unknown values fall back to balanced)
            focus_areas: areas to emphasise
            custom_weights: weights for the custom strategy

        Raises:
            ConfigurationError: Expectation or code record not found
            MediationError: "Failed to generate validation context: ..."
        """
        started = time.perf_counter()
        previous_validations = previous_validations or []
        strategy = _option(options, "strategy", "strategy", "balanced")
        if strategy not in VALIDATION_STRATEGIES:
            logger.warning(f"⚠️ [SemanticMediator] Unknown validation strategy '{strategy}', using balanced")
            strategy = "balanced"
        focus_areas = list(_option(options, "focus_areas", "focusAreas", []) or [])
        weights = self.resolve_weights(strategy, _option(options, "custom_weights", "customWeights"))

        event = {"type": "validation_context", "sourceModule": "expectation", "targetModule": "code", "status": "failed"}
        cache_key = f"{expectation_id}:{code_id}:{strategy}:{','.join(sorted(map(str, focus_areas)))}:{len(previous_validations)}"
        try:
            cached = self.validation_cache.get(cache_key)
            if cached is not None:
                event["status"] = "cached"
                return {**copy.deepcopy(cached), "cached": True}

            expectation = await self._load_record("expectation", expectation_id)
            code = await self._load_record("code", code_id)

            path = TransformationPath(
                source=SemanticDescriptor(entity="expectation"),
                target=SemanticDescriptor(entity="validation_context"),
                steps=[SynthesizeStep(
                    tag="validation_context",
                    instruction=prompts.VALIDATION_CONTEXT_INSTRUCTION,
                    target="semanticContext"
                )],
                metadata=PathMetadata(source_module="expectation", target_module="validator")
            )
            produced = await self.engine.execute_transformation({
                "expectation": expectation.content,
                "code": code.content,
                "previousValidations": previous_validations,
                "strategy": strategy,
                "focusAreas": focus_areas,
                "weights": weights,
            }, path)

            synthesized = isinstance(produced.get("semanticContext"), dict)
            semantic_context = dict(produced["semanticContext"]) if synthesized else {}
            semantic_context.setdefault("codeFeatures", {})
            semantic_context.setdefault("semanticRelationship", {})
            semantic_context.setdefault("focusAreas", focus_areas)

            result = {
                "expectationId": expectation_id,
                "codeId": code_id,
                "strategy": strategy,
                "focusAreas": focus_areas,
                "weights": weights,
                "previousValidationCount": len(previous_validations),
                "semanticContext": semantic_context,
                "generatedAt": datetime.now().isoformat(),
                "cached": False,
            }
            if synthesized:
                self.validation_cache.set(cache_key, copy.deepcopy(result))
                event["status"] = "success"
            else:
                event["status"] = "degraded"
            return result
        except Exception as e:
            await self._fail("generate_validation_context", "Failed to generate validation context", e, expectation_id, code_id)
        finally:
            await self._emit(event, started)

    # ------------------------------------------------------------------

    def get_cache_stats(self) -> Dict[str, Any]:
        return {
            "transformationPaths": self.cache.get_stats(),
            "validationContexts": self.validation_cache.get_stats(),
        }
