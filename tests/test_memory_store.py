"""
Test Memory Store and Monitoring
================================

In-memory store queries, resilient degradation and the monitoring sink.
"""

import pytest

from core.circuit_breaker import CircuitBreaker, CircuitState
from core.errors import ProviderUnavailableError
from memory_store.memory_store import InMemoryMemoryStore, MemoryRecord, get_path
from memory_store.resilient_store import ResilientMemoryStore, ensure_resilient
from mediator.monitoring import MonitoringSystem
from tests.conftest import FailingMemoryStore


async def test_find_by_dotted_path_and_tags(memory_store):
    await memory_store.save(MemoryRecord(type="code", content={"id": "c1", "lang": "py"}, tags=["generator"]))
    await memory_store.save(MemoryRecord(type="code", content={"id": "c2", "lang": "js"}, tags=["generator"]))
    await memory_store.save(MemoryRecord(type="expectation", content={"id": "e1"}))

    assert len(await memory_store.find_by_type("code")) == 2
    assert (await memory_store.find_one({"content.lang": "js"})).content["id"] == "c2"
    assert len(await memory_store.find({"tags": "generator"})) == 2
    assert await memory_store.find({"content.missing": "x"}) == []

    oldest_first = await memory_store.find({"type": "code"}, sort_desc=False)
    assert [r.content["id"] for r in oldest_first] == ["c1", "c2"]


async def test_update_merges_content_and_delete(memory_store):
    saved = await memory_store.save(MemoryRecord(type="note", content={"a": 1}, metadata={"k": "v"}))

    updated = await memory_store.update(saved.id, {"content": {"b": 2}, "tags": ["x"]})
    assert updated.content == {"a": 1, "b": 2}
    assert updated.tags == ["x"]
    assert updated.updated_at >= saved.updated_at
    assert await memory_store.update("unknown", {"content": {}}) is None

    assert await memory_store.delete({"type": "note"}) == 1
    assert len(memory_store) == 0


async def test_returned_records_are_copies(memory_store):
    saved = await memory_store.save(MemoryRecord(type="note", content={"a": 1}))
    saved.content["a"] = 99

    found = await memory_store.find_one({"type": "note"})
    found.content["a"] = 42

    assert (await memory_store.find_one({"type": "note"})).content == {"a": 1}


async def test_search_ranks_by_term_hits(memory_store):
    await memory_store.save(MemoryRecord(type="note", content={"text": "login flow"}))
    await memory_store.save(MemoryRecord(type="note", content={"text": "login with sso"}))

    results = await memory_store.search("sso login")

    assert results[0].content["text"] == "login with sso"
    assert await memory_store.search("x") == []


def test_get_path_missing_marker():
    assert get_path({"a": {"b": 1}}, "a.b") == 1
    assert repr(get_path({"a": 1}, "a.b")) == "<missing>"


async def test_resilient_store_degrades_reads_and_optional_saves():
    print("\n🧪 Test: resilient store degradation")
    store = ResilientMemoryStore(FailingMemoryStore(fail_saves=True, fail_reads=True))

    assert await store.save(MemoryRecord(type="note")) is None
    assert await store.find({"type": "note"}) == []
    assert await store.find_one({"type": "note"}) is None
    assert await store.find_by_type("note") == []
    assert await store.search("note") == []

    with pytest.raises(ProviderUnavailableError):
        await store.save(MemoryRecord(type="note"), required=True)
    print("✅ Reads empty, required save raised")


async def test_resilient_store_fails_fast_when_circuit_open():
    breaker = CircuitBreaker(threshold=2, timeout=60, name="store")
    inner = FailingMemoryStore(fail_saves=False, fail_reads=True)
    store = ResilientMemoryStore(inner, breaker)
    await inner.save(MemoryRecord(type="x"))

    await store.find({"type": "x"})
    await store.find({"type": "x"})
    assert breaker.get_state() == CircuitState.OPEN

    inner.fail_reads = False
    assert await store.find({"type": "x"}) == []


def test_ensure_resilient_wraps_once():
    store = InMemoryMemoryStore()
    wrapped = ensure_resilient(store)

    assert isinstance(wrapped, ResilientMemoryStore)
    assert ensure_resilient(wrapped) is wrapped
    assert ensure_resilient(None) is None


async def test_monitoring_histories_and_mirroring(memory_store):
    print("\n🧪 Test: monitoring")
    monitoring = MonitoringSystem(memory_store)

    await monitoring.log_transformation_event({"type": "translation", "sourceModule": "a", "status": "success"})
    await monitoring.log_transformation_event({"type": "conflict_resolution", "sourceModule": "b"})
    try:
        raise ValueError("bad input")
    except ValueError as e:
        error_id = await monitoring.log_error(e, {"operation": "translate_between_modules"})

    history = monitoring.get_transformation_history()
    assert [e["type"] for e in history] == ["conflict_resolution", "translation"]
    assert monitoring.get_transformation_history({"sourceModule": "a"}, limit=5)[0]["status"] == "success"

    error = monitoring.get_error_history()[0]
    assert error["id"] == error_id
    assert error["errorType"] == "ValueError"
    assert "bad input" in error["stack"]

    assert len(await memory_store.find_by_type("monitoring_transformation_event")) == 2
    assert len(await memory_store.find_by_type("monitoring_error")) == 1
    print("✅ Events, errors and mirrors recorded")


async def test_performance_report_aggregates():
    monitoring = MonitoringSystem(history_size=10)
    for duration in (0.1, 0.3, 0.2):
        await monitoring.record_performance_metrics("translation", {"duration": duration, "cacheHit": True})
    await monitoring.record_performance_metrics("enrichment", {"duration": 1.0})

    report = monitoring.get_performance_report()
    assert report["translation"]["count"] == 3
    assert report["translation"]["duration"]["avg"] == pytest.approx(0.2)
    assert report["translation"]["duration"]["min"] == pytest.approx(0.1)
    assert report["translation"]["duration"]["max"] == pytest.approx(0.3)
    assert "cacheHit" not in report["translation"]

    assert list(monitoring.get_performance_report("enrichment").keys()) == ["enrichment"]


async def test_monitoring_survives_store_outage():
    monitoring = MonitoringSystem(FailingMemoryStore())

    await monitoring.log_transformation_event({"type": "translation"})

    assert len(monitoring.get_transformation_history()) == 1


async def test_per_type_cap_drops_oldest_of_that_type_only():
    print("\n🧪 Test: per-type record cap")
    store = InMemoryMemoryStore(max_records_per_type=3)
    await store.save(MemoryRecord(type="expectation", content={"id": "e1"}))
    for i in range(10):
        await store.save(MemoryRecord(type="monitoring_transformation_event", content={"n": i}))

    events = await store.find({"type": "monitoring_transformation_event"}, sort_desc=False)
    assert [r.content["n"] for r in events] == [7, 8, 9]
    assert (await store.find_one({"type": "expectation"})).content["id"] == "e1"
    assert len(store) == 4
    print("✅ Monitoring flood kept to 3, expectation untouched")


async def test_resaving_a_record_does_not_count_twice():
    store = InMemoryMemoryStore(max_records_per_type=2)
    first = await store.save(MemoryRecord(type="note", content={"v": 1}))
    await store.save(MemoryRecord(type="note", content={"v": 2}))

    await store.save(first.model_copy(update={"content": {"v": 10}}))
    await store.update(first.id, {"tags": ["edited"]})

    assert sorted(r.content["v"] for r in await store.find_by_type("note")) == [2, 10]


async def test_type_change_on_update_moves_the_record():
    store = InMemoryMemoryStore()
    saved = await store.save(MemoryRecord(type="draft", content={"id": "d1"}))

    await store.update(saved.id, {"type": "final"})

    assert await store.find_by_type("draft") == []
    assert (await store.find_one({"type": "final"})).content["id"] == "d1"
    assert await store.delete({"type": "final"}) == 1
    assert len(store) == 0


@pytest.mark.parametrize("cap", [0, -1])
def test_cap_must_be_positive(cap):
    with pytest.raises(ValueError):
        InMemoryMemoryStore(max_records_per_type=cap)


# ----------------------------------------------------------------------
# Debug sessions
# ----------------------------------------------------------------------

async def test_debug_session_lifecycle(memory_store):
    print("\n🧪 Test: debug session lifecycle")
    monitoring = MonitoringSystem(memory_store)

    session_id = await monitoring.create_debug_session({"module": "generator"})
    assert session_id.startswith("debug_session_")
    assert await monitoring.log_debug_data(session_id, {"step": 1})
    assert await monitoring.log_debug_data(session_id, {"step": 2})

    session = await monitoring.get_debug_session_data(session_id)
    assert session["status"] == "active"
    assert session["context"] == {"module": "generator"}
    assert [e["data"] for e in session["data"]] == [{"step": 1}, {"step": 2}]

    assert await monitoring.end_debug_session(session_id)
    assert not await monitoring.end_debug_session(session_id)
    assert not await monitoring.log_debug_data(session_id, {"step": 3})
    assert not await monitoring.log_debug_data("debug_session_unknown", {})

    ended = await monitoring.get_debug_session_data(session_id)
    assert ended["status"] == "completed"
    assert "endTime" in ended
    assert len(ended["data"]) == 2
    print(f"✅ {session_id} ended with 2 entries")


async def test_debug_session_data_is_a_copy():
    monitoring = MonitoringSystem()
    session_id = await monitoring.create_debug_session()
    await monitoring.log_debug_data(session_id, {"step": 1})

    snapshot = await monitoring.get_debug_session_data(session_id)
    snapshot["data"].clear()

    assert len((await monitoring.get_debug_session_data(session_id))["data"]) == 1
    assert await monitoring.get_debug_session_data("debug_session_unknown") is None


async def test_debug_session_restored_from_store(memory_store):
    writer = MonitoringSystem(memory_store)
    session_id = await writer.create_debug_session({"run": 7})
    await writer.log_debug_data(session_id, "first")
    await writer.log_debug_data(session_id, "second")
    await writer.end_debug_session(session_id)

    reader = MonitoringSystem(memory_store)
    restored = await reader.get_debug_session_data(session_id)

    assert restored["id"] == session_id
    assert restored["status"] == "completed"
    assert restored["context"] == {"run": 7}
    assert [e["data"] for e in restored["data"]] == ["first", "second"]
    assert await MonitoringSystem().get_debug_session_data(session_id) is None


async def test_completed_debug_sessions_are_trimmed_first():
    monitoring = MonitoringSystem(history_size=2)
    active = await monitoring.create_debug_session()
    done = await monitoring.create_debug_session()
    await monitoring.end_debug_session(done)

    newest = await monitoring.create_debug_session()

    assert await monitoring.get_debug_session_data(done) is None
    assert (await monitoring.get_debug_session_data(active))["status"] == "active"
    assert (await monitoring.get_debug_session_data(newest))["status"] == "active"
