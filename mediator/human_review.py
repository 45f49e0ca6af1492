"""
Human Review
============

Routes a payload to a human reviewer and tracks the review through

    pending -> completed | cancelled | timeout

Reviews live in this process (timers included) and are mirrored to the
memory store, which also answers status and history queries for reviews
this process no longer holds.
"""

import asyncio
import inspect
import json
import logging
import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from memory_store.memory_store import MemoryRecord, MemoryStore, get_path
from memory_store.resilient_store import ensure_resilient
from mediator import prompts
from providers.reasoning_client import ReasoningClient

logger = logging.getLogger("HumanReview")

REVIEW_RECORD_TYPE = "human_review"

ReviewCallback = Callable[[str, "HumanReview"], Union[None, Awaitable[None]]]


class ReviewStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"


class HumanReview(BaseModel):
    """
    One review request.

    Example:
        HumanReview(id="review_1a2b3c4d5e6f", data={"title": "Login"}, context={"module": "clarifier"})
    """
    id: str = Field(default_factory=lambda: f"review_{uuid.uuid4().hex[:12]}")
    status: ReviewStatus = Field(default=ReviewStatus.PENDING)
    data: Any = Field(default=None, description="Payload under review")
    context: Dict[str, Any] = Field(default_factory=dict, description="Why the review was requested")
    created_at: datetime = Field(default_factory=datetime.now)
    expires_at: Optional[datetime] = Field(default=None, description="None means the review never times out")
    feedback: Any = Field(default=None, description="Reviewer's answer")
    feedback_metadata: Dict[str, Any] = Field(default_factory=dict)
    completed_at: Optional[datetime] = Field(default=None)
    cancel_reason: Optional[str] = Field(default=None)


def _filters_match(review: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
    # Dotted keys reach into nested fields, e.g. {"context.module": "clarifier"}
    return all(get_path(review, key) == expected for key, expected in (filters or {}).items())


class HumanReviewService:
    """
    Human-in-the-loop review queue.

    Example:
        >>> reviews = HumanReviewService(reasoning, store)
        >>> review_id = await reviews.request_human_review(conflicts, {"module": "resolver"}, timeout=600)
        >>> await reviews.submit_human_feedback(review_id, {"approved": True})
    """

    def __init__(
        self,
        reasoning: Optional[ReasoningClient] = None,
        memory_store: Optional[MemoryStore] = None,
        default_timeout: float = 3600.0
    ):
        self.reasoning = reasoning
        self.memory_store = ensure_resilient(memory_store)
        self.default_timeout = default_timeout

        self._reviews: Dict[str, HumanReview] = {}
        self._timers: Dict[str, asyncio.Task] = {}
        self._callbacks: Dict[str, ReviewCallback] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def request_human_review(
        self,
        data: Any,
        context: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None
    ) -> str:
        """
        Open a pending review.

        Args:
            data: Payload for the reviewer
            context: Free-form context stored with the review
            timeout: Seconds until the review times out; default_timeout when
                omitted, no timeout when <= 0

        Returns:
            Review id
        """
        seconds = self.default_timeout if timeout is None else timeout
        review = HumanReview(data=data, context=dict(context or {}))
        if seconds and seconds > 0:
            review.expires_at = review.created_at + timedelta(seconds=seconds)
            self._timers[review.id] = asyncio.create_task(self._expire_after(review.id, seconds))

        self._reviews[review.id] = review
        logger.info(f"🙋 [HumanReview] Review {review.id} requested")
        await self._persist(review)
        await self._notify("requested", review)
        return review.id

    async def submit_human_feedback(
        self,
        review_id: str,
        feedback: Any,
        metadata: Optional[Dict[str, Any]] = None
    ) -> bool:
        """Complete a pending review. False when the review is unknown or no longer pending."""
        review = self._reviews.get(review_id)
        if review is None or review.status != ReviewStatus.PENDING:
            logger.warning(f"⚠️ [HumanReview] Review {review_id} is not pending, feedback ignored")
            return False

        review.status = ReviewStatus.COMPLETED
        review.feedback = feedback
        review.feedback_metadata = dict(metadata or {})
        review.completed_at = datetime.now()
        self._cancel_timer(review_id)

        logger.info(f"✅ [HumanReview] Feedback received for {review_id}")
        await self._persist(review)
        await self._notify("completed", review)
        return True

    async def cancel_review(self, review_id: str, reason: str = "Cancelled by system") -> bool:
        review = self._reviews.get(review_id)
        if review is None or review.status != ReviewStatus.PENDING:
            logger.warning(f"⚠️ [HumanReview] Review {review_id} is not pending, cannot cancel")
            return False

        review.status = ReviewStatus.CANCELLED
        review.cancel_reason = reason
        review.completed_at = datetime.now()
        self._cancel_timer(review_id)

        logger.info(f"🚫 [HumanReview] Review {review_id} cancelled: {reason}")
        await self._persist(review)
        await self._notify("cancelled", review)
        return True

    async def _expire_after(self, review_id: str, seconds: float):
        await asyncio.sleep(seconds)
        self._timers.pop(review_id, None)
        review = self._reviews.get(review_id)
        if review is None or review.status != ReviewStatus.PENDING:
            return
        review.status = ReviewStatus.TIMEOUT
        review.completed_at = datetime.now()
        logger.warning(f"⏰ [HumanReview] Review {review_id} timed out")
        await self._persist(review)
        await self._notify("timeout", review)

    def _cancel_timer(self, review_id: str):
        timer = self._timers.pop(review_id, None)
        if timer is not None and not timer.done():
            timer.cancel()

    async def close(self):
        """Cancel outstanding timeout timers."""
        timers = list(self._timers.values())
        self._timers.clear()
        for timer in timers:
            timer.cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_review_status(self, review_id: str) -> Optional[HumanReview]:
        review = self._reviews.get(review_id)
        if review is not None:
            return review.model_copy(deep=True)
        if self.memory_store is None:
            return None
        record = await self.memory_store.find_one({"type": REVIEW_RECORD_TYPE, "content.id": review_id})
        return HumanReview(**record.content) if record is not None else None

    def get_pending_reviews(self, filters: Optional[Dict[str, Any]] = None, limit: int = 10) -> List[HumanReview]:
        """Pending reviews held by this process, oldest first."""
        pending = [
            r for r in self._reviews.values()
            if r.status == ReviewStatus.PENDING and _filters_match(r.model_dump(mode="json"), filters)
        ]
        pending.sort(key=lambda r: r.created_at)
        return [r.model_copy(deep=True) for r in pending[:limit]]

    async def get_feedback_history(self, filters: Optional[Dict[str, Any]] = None, limit: int = 50) -> List[HumanReview]:
        """Completed reviews, newest first, from this process and the memory store."""
        completed: Dict[str, HumanReview] = {
            r.id: r.model_copy(deep=True) for r in self._reviews.values() if r.status == ReviewStatus.COMPLETED
        }
        if self.memory_store is not None:
            records = await self.memory_store.find({"type": REVIEW_RECORD_TYPE, "content.status": ReviewStatus.COMPLETED.value})
            for record in records:
                if record.content.get("id") not in completed:
                    review = HumanReview(**record.content)
                    completed[review.id] = review

        history = [r for r in completed.values() if _filters_match(r.model_dump(mode="json"), filters)]
        history.sort(key=lambda r: r.completed_at or r.created_at, reverse=True)
        return history[:limit]

    async def analyze_feedback_patterns(self, filters: Optional[Dict[str, Any]] = None, limit: int = 50) -> Dict[str, Any]:
        """
        Ask the provider for recurring patterns across completed reviews.

        Returns:
            {"patterns": [...], "insights": str, "sampleSize": n}; on provider
            failure "patterns" is empty and "error" carries the cause
        """
        history = await self.get_feedback_history(filters, limit)
        if not history:
            return {"patterns": [], "insights": "No feedback data available for analysis", "sampleSize": 0}
        if self.reasoning is None:
            return {"patterns": [], "insights": "No reasoning provider configured", "sampleSize": len(history)}

        reviews = [
            {
                "context": r.context,
                "feedback": r.feedback,
                "responseSeconds": (r.completed_at - r.created_at).total_seconds() if r.completed_at else None,
            }
            for r in history
        ]
        try:
            answer = await self.reasoning.generate_json(
                prompts.FEEDBACK_ANALYSIS_PROMPT.format(reviews=json.dumps(reviews, indent=2, default=str)),
                temperature=0.3,
                max_tokens=2000
            )
            if not isinstance(answer, dict):
                answer = {"patterns": answer if isinstance(answer, list) else []}
            patterns = answer.get("patterns") or []
            return {
                "patterns": patterns if isinstance(patterns, list) else [patterns],
                "insights": str(answer.get("insights") or ""),
                "sampleSize": len(history),
            }
        except Exception as e:
            logger.error(f"❌ [HumanReview] Feedback analysis failed: {e}")
            return {
                "patterns": [],
                "insights": "Failed to analyze feedback patterns",
                "sampleSize": len(history),
                "error": str(e),
            }

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def register_review_callback(self, callback: ReviewCallback) -> str:
        """
        Call `callback(event, review)` on every status change.

        Events: requested, completed, cancelled, timeout. Sync and async
        callables are both accepted.
        """
        callback_id = f"callback_{uuid.uuid4().hex[:12]}"
        self._callbacks[callback_id] = callback
        return callback_id

    def remove_review_callback(self, callback_id: str) -> bool:
        return self._callbacks.pop(callback_id, None) is not None

    async def _notify(self, event: str, review: HumanReview):
        for callback_id, callback in list(self._callbacks.items()):
            try:
                outcome = callback(event, review.model_copy(deep=True))
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"❌ [HumanReview] Callback {callback_id} failed on {event}: {e}")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _persist(self, review: HumanReview):
        if self.memory_store is None:
            return
        content = review.model_dump(mode="json")
        existing = await self.memory_store.find_one({"type": REVIEW_RECORD_TYPE, "content.id": review.id})
        if existing is not None:
            await self.memory_store.update(existing.id, {"content": content, "metadata": {"status": review.status.value}})
            return
        await self.memory_store.save(MemoryRecord(
            type=REVIEW_RECORD_TYPE,
            content=content,
            metadata={"status": review.status.value},
            tags=["human_review", review.id]
        ))
