"""
Test Human Review
=================

Review lifecycle, timeouts, callbacks, history and feedback analysis.
"""

import asyncio

from mediator.human_review import REVIEW_RECORD_TYPE, HumanReviewService, ReviewStatus
from tests.conftest import FailingMemoryStore, FakeReasoningProvider, make_reasoning


def make_service(provider=None, memory_store=None, **kwargs) -> HumanReviewService:
    return HumanReviewService(make_reasoning(provider or FakeReasoningProvider()), memory_store, **kwargs)


async def test_review_request_and_feedback(memory_store):
    print("\n🧪 Test: review lifecycle")
    service = make_service(memory_store=memory_store)
    events = []
    service.register_review_callback(lambda event, review: events.append((event, review.status)))

    review_id = await service.request_human_review({"title": "Login"}, {"module": "clarifier"}, timeout=60)
    pending = service.get_pending_reviews()
    assert [r.id for r in pending] == [review_id]
    assert pending[0].expires_at is not None

    assert await service.submit_human_feedback(review_id, {"approved": True}, {"reviewer": "qa"})
    assert not await service.submit_human_feedback(review_id, {"approved": False})
    assert not await service.cancel_review(review_id)

    review = await service.get_review_status(review_id)
    assert review.status == ReviewStatus.COMPLETED
    assert review.feedback == {"approved": True}
    assert review.feedback_metadata == {"reviewer": "qa"}
    assert service.get_pending_reviews() == []
    assert events == [("requested", ReviewStatus.PENDING), ("completed", ReviewStatus.COMPLETED)]

    records = await memory_store.find_by_type(REVIEW_RECORD_TYPE)
    assert len(records) == 1
    assert records[0].content["status"] == "completed"
    await service.close()
    print(f"✅ {review_id} completed")


async def test_review_times_out():
    service = make_service()
    seen = []

    async def on_change(event, review):
        seen.append(event)

    service.register_review_callback(on_change)
    review_id = await service.request_human_review({"x": 1}, timeout=0.01)
    await asyncio.sleep(0.05)

    assert (await service.get_review_status(review_id)).status == ReviewStatus.TIMEOUT
    assert not await service.submit_human_feedback(review_id, "late")
    assert seen == ["requested", "timeout"]


async def test_cancel_review_and_no_timeout():
    service = make_service(default_timeout=0)
    review_id = await service.request_human_review({"x": 1})

    assert (await service.get_review_status(review_id)).expires_at is None
    assert await service.cancel_review(review_id)

    review = await service.get_review_status(review_id)
    assert review.status == ReviewStatus.CANCELLED
    assert review.cancel_reason == "Cancelled by system"
    assert await service.get_review_status("review_unknown") is None


async def test_pending_reviews_filtered_oldest_first():
    service = make_service()
    first = await service.request_human_review({}, {"module": "clarifier", "priority": {"level": "high"}})
    await service.request_human_review({}, {"module": "generator"})
    third = await service.request_human_review({}, {"module": "clarifier"})

    clarifier = service.get_pending_reviews({"context.module": "clarifier"})
    assert [r.id for r in clarifier] == [first, third]
    assert [r.id for r in service.get_pending_reviews({"context.priority.level": "high"})] == [first]
    assert len(service.get_pending_reviews(limit=1)) == 1
    await service.close()


async def test_failing_callback_does_not_block_others():
    service = make_service(default_timeout=0)
    calls = []

    def broken(event, review):
        raise RuntimeError("callback bug")

    service.register_review_callback(broken)
    callback_id = service.register_review_callback(lambda event, review: calls.append(event))

    review_id = await service.request_human_review({})
    assert calls == ["requested"]

    assert service.remove_review_callback(callback_id)
    assert not service.remove_review_callback(callback_id)
    await service.submit_human_feedback(review_id, "ok")
    assert calls == ["requested"]


async def test_feedback_history_from_process_and_store(memory_store):
    writer = make_service(memory_store=memory_store, default_timeout=0)
    older = await writer.request_human_review({}, {"module": "clarifier"})
    await writer.submit_human_feedback(older, "first")
    newer = await writer.request_human_review({}, {"module": "generator"})
    await writer.submit_human_feedback(newer, "second")
    await writer.request_human_review({}, {"module": "clarifier"})

    reader = make_service(memory_store=memory_store)
    history = await reader.get_feedback_history()
    assert [r.id for r in history] == [newer, older]
    assert [r.id for r in await reader.get_feedback_history({"context.module": "clarifier"})] == [older]
    assert (await reader.get_review_status(older)).feedback == "first"


async def test_analyze_feedback_patterns():
    print("\n🧪 Test: feedback pattern analysis")
    provider = FakeReasoningProvider(default={
        "patterns": [{"description": "titles too vague", "frequency": 2}],
        "insights": "Ask for concrete titles",
    })
    service = make_service(provider, default_timeout=0)
    assert (await service.analyze_feedback_patterns())["insights"] == "No feedback data available for analysis"
    assert provider.calls == []

    for answer in ("vague title", "vague title again"):
        review_id = await service.request_human_review({"title": "thing"})
        await service.submit_human_feedback(review_id, answer)

    analysis = await service.analyze_feedback_patterns()

    assert analysis["patterns"][0]["description"] == "titles too vague"
    assert analysis["insights"] == "Ask for concrete titles"
    assert analysis["sampleSize"] == 2
    assert provider.calls[0]["temperature"] == 0.3
    assert "vague title again" in provider.calls[0]["prompt"]
    print("✅ Patterns extracted")


async def test_analyze_feedback_patterns_provider_failure():
    service = make_service(FakeReasoningProvider(default=RuntimeError("down")), default_timeout=0)
    review_id = await service.request_human_review({})
    await service.submit_human_feedback(review_id, "fine")

    analysis = await service.analyze_feedback_patterns()

    assert analysis["patterns"] == []
    assert analysis["insights"] == "Failed to analyze feedback patterns"
    assert "down" in analysis["error"]


async def test_reviews_survive_store_outage():
    service = make_service(memory_store=FailingMemoryStore(fail_saves=True, fail_reads=True), default_timeout=0)

    review_id = await service.request_human_review({"x": 1})

    assert await service.submit_human_feedback(review_id, "ok")
    assert [r.id for r in await service.get_feedback_history()] == [review_id]
