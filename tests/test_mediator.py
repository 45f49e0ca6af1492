"""
Test Semantic Mediator
======================

End-to-end facade behaviour over a scripted provider and an in-memory store.
"""

import pytest

from core.config import MediatorConfig
from core.errors import ConfigurationError, MediationError
from memory_store.memory_store import InMemoryMemoryStore, MemoryRecord
from mediator.intelligent_cache import PATH_RECORD_TYPE, IntelligentCache
from mediator.mediator import SemanticMediator
from mediator.transformation_engine import TransformationEngine
from tests.conftest import FailingMemoryStore, FakeReasoningProvider, make_reasoning

PATH_REPLY = {"steps": [{"type": "map", "fields": {"title": "heading"}, "drop_source": True}]}


def routed(routes: dict, default="0"):
    """Handler answering by the first route whose marker appears in the prompt."""
    def handler(prompt, system_prompt):
        for marker, reply in routes.items():
            if marker in prompt:
                return reply
        return default
    return handler


def make_mediator(provider, memory_store=None, **kwargs) -> SemanticMediator:
    return SemanticMediator(make_reasoning(provider), memory_store if memory_store is not None else InMemoryMemoryStore(), **kwargs)


# ----------------------------------------------------------------------
# translate_between_modules
# ----------------------------------------------------------------------

async def test_translate_generates_then_reuses_cached_path():
    print("\n🧪 Test: translate miss then hit")
    print("=" * 60)
    provider = FakeReasoningProvider(handler=routed({"Create a transformation path": PATH_REPLY}))
    mediator = make_mediator(provider)

    first = await mediator.translate_between_modules("clarifier", "generator", {"title": "Login"})
    assert first == {"heading": "Login"}
    generation_calls = len(provider.prompts_containing("Create a transformation path"))
    assert generation_calls == 1

    second = await mediator.translate_between_modules("clarifier", "generator", {"title": "Logout"})
    assert second == {"heading": "Logout"}
    assert len(provider.prompts_containing("Create a transformation path")) == 1

    cached = mediator.cache.get_most_used_paths(1)[0]
    assert cached.metadata.usage_count == 2
    assert cached.metadata.source_module == "clarifier"

    events = mediator.monitoring.get_transformation_history({"type": "translation"})
    assert [e["cacheHit"] for e in events] == [True, False]
    assert all(e["status"] == "success" for e in events)
    print("✅ Second translation served from cache")


async def test_translate_with_garbage_provider_passes_data_through():
    mediator = make_mediator(FakeReasoningProvider(default="definitely not json"))

    result = await mediator.translate_between_modules("clarifier", "generator", {"title": "Login"})

    assert result == {"title": "Login"}
    assert len(mediator.cache.store) == 1


async def test_translate_scalar_payload():
    mediator = make_mediator(FakeReasoningProvider(default="nope"))
    assert await mediator.translate_between_modules("clarifier", "generator", "plain text") == "plain text"


async def test_translate_rejects_empty_module_names():
    mediator = make_mediator(FakeReasoningProvider())

    with pytest.raises(ConfigurationError):
        await mediator.translate_between_modules("", "generator", {})

    errors = mediator.monitoring.get_error_history()
    assert errors[0]["operation"] == "translate_between_modules"


class BrokenEngine(TransformationEngine):
    async def execute_transformation(self, data, path, context=None):
        raise RuntimeError("boom")


async def test_translate_failure_is_wrapped():
    print("\n🧪 Test: translate error wrapping")
    provider = FakeReasoningProvider()
    reasoning = make_reasoning(provider)
    mediator = SemanticMediator(reasoning, InMemoryMemoryStore(), engine=BrokenEngine(reasoning))

    with pytest.raises(MediationError) as excinfo:
        await mediator.translate_between_modules("clarifier", "generator", {"a": 1})

    error = excinfo.value
    assert str(error) == "Failed to translate data from clarifier to generator: boom"
    assert error.operation == "translate_between_modules"
    assert (error.source, error.target) == ("clarifier", "generator")
    assert isinstance(error.cause, RuntimeError)

    assert mediator.monitoring.get_error_history()[0]["message"] == "boom"
    assert mediator.monitoring.get_transformation_history()[0]["status"] == "failed"
    print(f"✅ {error}")


# ----------------------------------------------------------------------
# enrich_with_context
# ----------------------------------------------------------------------

async def test_enrich_without_related_records_is_a_noop():
    provider = FakeReasoningProvider()
    mediator = make_mediator(provider)
    data = {"title": "Login"}

    result = await mediator.enrich_with_context("clarifier", data, "authentication")

    assert result == data
    assert provider.calls == []


async def test_enrich_merges_synthesized_context(memory_store):
    print("\n🧪 Test: context enrichment")
    provider = FakeReasoningProvider(handler=routed({"Task: context_enrichment": {"constraints": ["SSO only"]}}))
    await memory_store.save(MemoryRecord(
        type="requirement_note",
        content={"text": "Authentication must go through SSO"},
        tags=["authentication"]
    ))
    mediator = make_mediator(provider, memory_store)

    result = await mediator.enrich_with_context("clarifier", {"title": "Login"}, "authentication")

    assert result == {"title": "Login", "constraints": ["SSO only"]}
    assert "Authentication must go through SSO" in provider.prompts_containing("Task: context_enrichment")[0]
    print(f"✅ Enriched: {result}")


async def test_enrich_keeps_data_when_provider_fails(memory_store):
    await memory_store.save(MemoryRecord(type="note", content={"text": "authentication"}))
    mediator = make_mediator(FakeReasoningProvider(default=RuntimeError("down")), memory_store)

    assert await mediator.enrich_with_context("clarifier", {"a": 1}, "authentication") == {"a": 1}


# ----------------------------------------------------------------------
# resolve_semantic_conflicts
# ----------------------------------------------------------------------

async def test_resolve_uses_explicit_mapping():
    mediator = make_mediator(FakeReasoningProvider())
    mediator.resolver.register_mapping("clarifier", "generator", lambda a, b: {**b, "text": a["title"]})

    result = await mediator.resolve_semantic_conflicts("clarifier", {"title": "Login"}, "generator", {"text": ""})

    assert result["success"] is True
    assert result["strategyUsed"] == "explicit_mapping"
    assert result["resolvedData"] == {"text": "Login"}
    event = mediator.monitoring.get_transformation_history({"type": "conflict_resolution"})[0]
    assert event["strategyUsed"] == "explicit_mapping"


async def test_resolve_derives_descriptors_from_data():
    provider = FakeReasoningProvider(default=RuntimeError("must not be called"))
    mediator = make_mediator(provider)

    result = await mediator.resolve_semantic_conflicts(
        "clarifier", {"userId": 1, "name": "Ana"}, "generator", {"user_id": "1", "name": "Ana"}
    )

    assert result["strategyUsed"] == "pattern_matching"
    assert result["resolvedData"] == {"user_id": "1", "name": "Ana"}
    assert provider.calls == []


async def test_resolve_unresolvable_reports_failure_twice():
    mediator = make_mediator(FakeReasoningProvider(default="no json"))

    for _ in range(2):
        result = await mediator.resolve_semantic_conflicts("clarifier", {"alpha": 1}, "generator", {"omega": 2})
        assert result["success"] is False
        assert result["strategyUsed"] == "llm_resolution"


async def test_resolve_force_strategy_option():
    provider = FakeReasoningProvider(default={"resolvedData": {"a": 1, "b": 2}})
    mediator = make_mediator(provider)

    result = await mediator.resolve_semantic_conflicts(
        "clarifier", {"a": 1}, "generator", {"a": 1}, {"forceStrategy": "llm_resolution"}
    )

    assert result["strategyUsed"] == "llm_resolution"
    assert len(provider.calls) == 1


async def test_resolve_rejects_invalid_descriptor_override():
    mediator = make_mediator(FakeReasoningProvider())

    with pytest.raises(ConfigurationError):
        await mediator.resolve_semantic_conflicts(
            "clarifier", {}, "generator", {}, {"source_descriptor": {"description": "no entity"}}
        )


# ----------------------------------------------------------------------
# extract_semantic_insights
# ----------------------------------------------------------------------

async def test_extract_insights_returns_provider_result():
    insights = [{"insight": "Mostly authentication requirements", "confidence": 0.8}]
    mediator = make_mediator(FakeReasoningProvider(handler=routed({"Task: semantic_insights_extraction": insights})))

    result = await mediator.extract_semantic_insights({"items": [1, 2]}, "What dominates?")

    assert result == {"query": "What dominates?", "insights": insights}


@pytest.mark.parametrize("reply", [RuntimeError("down"), "not json at all"])
async def test_extract_insights_never_raises(reply):
    print("\n🧪 Test: insights degrade to []")
    mediator = make_mediator(FakeReasoningProvider(default=reply))

    result = await mediator.extract_semantic_insights({"items": []}, "anything")

    assert result == {"query": "anything", "insights": []}
    event = mediator.monitoring.get_transformation_history({"type": "semantic_insights_extraction"})[0]
    assert event["status"] == "degraded"
    print("✅ Degraded without raising")


# ----------------------------------------------------------------------
# track_semantic_transformation
# ----------------------------------------------------------------------

async def test_track_records_differences_analysis_and_memory(memory_store):
    print("\n🧪 Test: transformation tracking")
    analysis = {"summary": "title renamed to heading"}
    mediator = make_mediator(FakeReasoningProvider(handler=routed({"Task: transformation_analysis": analysis})), memory_store)

    report = await mediator.track_semantic_transformation(
        "clarifier", "generator",
        {"title": "Login", "meta": {"v": 1}},
        {"heading": "Login", "meta": {"v": 2}}
    )

    assert report["differences"]["added"] == {"heading": "Login"}
    assert report["differences"]["removed"] == {"title": "Login"}
    assert report["differences"]["changed"] == {"meta.v": {"before": 1, "after": 2}}
    assert report["analysis"] == analysis
    assert report["saved"] is True

    saved = await memory_store.find_by_type("semantic_transformation_tracking")
    assert saved[0].content["transformationId"] == report["transformationId"]

    started = mediator.monitoring.get_transformation_history({"type": "transformation_tracking"})
    assert started[0]["transformationId"] == report["transformationId"]
    print(f"✅ Tracked {report['transformationId']}")


async def test_track_options_and_analysis_degradation():
    provider = FakeReasoningProvider(default=RuntimeError("down"))
    mediator = make_mediator(provider)

    minimal = await mediator.track_semantic_transformation(
        "a", "b", {"x": 1}, {"x": 1},
        {"track_differences": False, "analyzeTransformation": False, "save_to_memory": False}
    )
    assert "differences" not in minimal
    assert "analysis" not in minimal
    assert provider.calls == []

    degraded = await mediator.track_semantic_transformation("a", "b", {"x": 1}, {"x": 2}, {"save_to_memory": False})
    assert degraded["analysis"] == {}


async def test_track_save_failure_raises():
    mediator = make_mediator(FakeReasoningProvider(), FailingMemoryStore())

    with pytest.raises(MediationError) as excinfo:
        await mediator.track_semantic_transformation("a", "b", {}, {}, {"analyze_transformation": False})

    assert str(excinfo.value).startswith("Failed to track semantic transformation: ")


# ----------------------------------------------------------------------
# generate_validation_context
# ----------------------------------------------------------------------

async def seed_validation_records(memory_store):
    await memory_store.save(MemoryRecord(type="expectation", content={"id": "exp-1", "description": "Login with SSO"}))
    await memory_store.save(MemoryRecord(type="code", content={"id": "code-1", "source": "def login(): ..."}))


async def test_validation_context_generated_then_cached(memory_store):
    print("\n🧪 Test: validation context")
    await seed_validation_records(memory_store)
    provider = FakeReasoningProvider(handler=routed({
        "Task: validation_context": {"codeFeatures": {"functions": ["login"]}, "keyRequirements": ["SSO"]}
    }))
    mediator = make_mediator(provider, memory_store)

    first = await mediator.generate_validation_context("exp-1", "code-1", [], {"strategy": "security"})
    assert first["strategy"] == "security"
    assert first["weights"]["security"] == pytest.approx(0.4)
    assert first["semanticContext"]["codeFeatures"] == {"functions": ["login"]}
    assert first["semanticContext"]["semanticRelationship"] == {}
    assert first["cached"] is False

    calls = len(provider.calls)
    second = await mediator.generate_validation_context("exp-1", "code-1", [], {"strategy": "security"})
    assert second["cached"] is True
    assert second["semanticContext"] == first["semanticContext"]
    assert len(provider.calls) == calls
    print("✅ Second request served from cache")


async def test_validation_context_defaults_when_provider_fails(memory_store):
    await seed_validation_records(memory_store)
    provider = FakeReasoningProvider(default=RuntimeError("down"))
    mediator = make_mediator(provider, memory_store)

    result = await mediator.generate_validation_context("exp-1", "code-1", options={"strategy": "made-up"})
    assert result["strategy"] == "balanced"
    assert result["semanticContext"]["codeFeatures"] == {}
    assert result["semanticContext"]["semanticRelationship"] == {}

    again = await mediator.generate_validation_context("exp-1", "code-1", options={"strategy": "made-up"})
    assert again["cached"] is False


async def test_validation_context_custom_weights_are_normalized(memory_store):
    await seed_validation_records(memory_store)
    mediator = make_mediator(FakeReasoningProvider(default={}), memory_store)

    result = await mediator.generate_validation_context(
        "exp-1", "code-1", options={"strategy": "custom", "custom_weights": {"functionality": 3, "security": 1}}
    )

    assert result["weights"] == {"functionality": 0.75, "security": 0.25}


async def test_validation_context_missing_records():
    mediator = make_mediator(FakeReasoningProvider())

    with pytest.raises(ConfigurationError):
        await mediator.generate_validation_context("missing", "code-1")


# ----------------------------------------------------------------------

async def test_cache_stats_and_lifecycle():
    mediator = make_mediator(FakeReasoningProvider())
    await mediator.start()
    await mediator.stop()

    stats = mediator.get_cache_stats()
    assert stats["transformationPaths"]["size"] == 0
    assert "hit_rate" in stats["validationContexts"]


def test_module_descriptor_infers_attributes():
    descriptor = SemanticMediator.module_descriptor("clarifier", {"title": "Login", "priority": 1})

    assert descriptor.entity == "clarifier"
    assert descriptor.attributes["priority"].type == "number"
    with pytest.raises(ConfigurationError):
        SemanticMediator.module_descriptor("  ")


def test_empty_injected_collaborators_are_kept():
    """A fresh store or cache is empty (len 0) and must still be used as given."""
    store = InMemoryMemoryStore()
    reasoning = make_reasoning(FakeReasoningProvider())
    cache = IntelligentCache(reasoning, store)

    mediator = SemanticMediator(reasoning, store, cache=cache)

    assert len(store) == 0
    assert mediator.memory_store.store is store
    assert mediator.cache is cache


async def test_empty_failing_store_is_not_replaced():
    mediator = SemanticMediator(make_reasoning(FakeReasoningProvider()), FailingMemoryStore())

    with pytest.raises(MediationError):
        await mediator.track_semantic_transformation("a", "b", {}, {}, {"analyze_transformation": False})


async def test_default_store_is_bounded_per_record_type():
    print("\n🧪 Test: default store stays bounded")
    provider = FakeReasoningProvider(handler=routed({"Create a transformation path": PATH_REPLY}))
    mediator = SemanticMediator(make_reasoning(provider), config=MediatorConfig(memory_max_records_per_type=20))

    for i in range(60):
        assert await mediator.translate_between_modules("clarifier", "generator", {"title": f"t{i}"}) == {"heading": f"t{i}"}

    store = mediator.memory_store
    assert len(await store.find_by_type("monitoring_transformation_event")) == 20
    assert len(await store.find_by_type("monitoring_performance")) == 20
    assert len(await store.find_by_type(PATH_RECORD_TYPE)) == 1
    assert len(store.store) <= 20 * 3
    print(f"✅ {len(store.store)} records after 60 translations")


# ----------------------------------------------------------------------
# translate_to_schema
# ----------------------------------------------------------------------

async def test_translate_to_schema_uses_descriptor_dict():
    provider = FakeReasoningProvider(handler=routed({"Create a transformation path": PATH_REPLY}))
    mediator = make_mediator(provider)
    schema = {"entity": "ticket", "description": "Support ticket"}

    assert await mediator.translate_to_schema({"title": "Login"}, schema) == {"heading": "Login"}
    assert await mediator.translate_to_schema({"title": "Logout"}, schema) == {"heading": "Logout"}
    assert len(provider.prompts_containing("Create a transformation path")) == 1

    events = mediator.monitoring.get_transformation_history({"type": "schema_translation"})
    assert [e["targetModule"] for e in events] == ["ticket", "ticket"]
    assert events[0]["cacheHit"] is True


async def test_translate_to_schema_rejects_invalid_schema():
    mediator = make_mediator(FakeReasoningProvider())

    with pytest.raises(ConfigurationError):
        await mediator.translate_to_schema({"title": "Login"}, "not a schema")


# ----------------------------------------------------------------------
# evaluate_semantic_transformation
# ----------------------------------------------------------------------

async def test_evaluate_transformation_clamps_scores():
    print("\n🧪 Test: transformation evaluation")
    provider = FakeReasoningProvider(default={
        "semanticPreservation": 120,
        "structuralAdaptation": "80",
        "informationCompleteness": -5,
        "suggestions": "keep the id field",
    })
    mediator = make_mediator(provider)

    evaluation = await mediator.evaluate_semantic_transformation(
        {"title": "Login"}, {"heading": "Login"}, "title becomes heading"
    )

    assert evaluation["semanticPreservation"] == 100.0
    assert evaluation["structuralAdaptation"] == 80.0
    assert evaluation["informationCompleteness"] == 0.0
    assert evaluation["overallQuality"] == 60.0
    assert evaluation["suggestions"] == ["keep the id field"]
    assert "title becomes heading" in provider.calls[0]["prompt"]

    event = mediator.monitoring.get_transformation_history({"type": "transformation_evaluation"})[0]
    assert event["status"] == "success"
    print(f"✅ Overall quality {evaluation['overallQuality']}")


async def test_evaluate_transformation_keeps_reported_overall():
    provider = FakeReasoningProvider(default={
        "semanticPreservation": 90, "structuralAdaptation": 70, "informationCompleteness": 80, "overallQuality": 85,
    })
    evaluation = await make_mediator(provider).evaluate_semantic_transformation({}, {}, "anything")

    assert evaluation["overallQuality"] == 85.0
    assert evaluation["suggestions"] == []


@pytest.mark.parametrize("reply", [RuntimeError("provider down"), "no json here", [1, 2]])
async def test_evaluate_transformation_failure_is_wrapped(reply):
    mediator = make_mediator(FakeReasoningProvider(default=reply))

    with pytest.raises(MediationError) as excinfo:
        await mediator.evaluate_semantic_transformation({"a": 1}, {"b": 1}, "a becomes b")

    assert str(excinfo.value).startswith("Failed to evaluate semantic transformation: ")
    assert mediator.monitoring.get_error_history()[0]["operation"] == "evaluate_semantic_transformation"
