"""
LLM Resolution Strategy
=======================

Universal fallback: sends both datasets and descriptors to the reasoning
provider and expects the merged entity back as JSON.

Engine doesn't see:
- Prompt engineering
- Temperature
- Token limits
"""

import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from core.descriptors import Descriptor, describe_for_prompt, descriptor_key
from core.errors import MalformedResponseError, ProviderUnavailableError
from core.resolution import Conflict, ResolutionResult
from mediator import prompts
from mediator.resolution_strategy import ResolutionStrategy
from providers.reasoning_client import ReasoningClient

logger = logging.getLogger(__name__)


def key_overlap_confidence(source_data: Any, target_data: Any, resolved: Any) -> Optional[float]:
    """
    Share of expected keys (union of both inputs) present in the resolved object.

    Returns None when neither input is an object (nothing to compare).
    """
    expected = set()
    for data in (source_data, target_data):
        if isinstance(data, dict):
            expected.update(data.keys())
    if not expected:
        return None
    if not isinstance(resolved, dict):
        return 0.0
    return min(1.0, len(expected & set(resolved.keys())) / len(expected))


class LLMResolutionStrategy(ResolutionStrategy):
    """
    LLM-driven conflict resolution.

    Always reports can_resolve=True.
    """

    name = "llm_resolution"
    priority = 1

    def __init__(self, reasoning: ReasoningClient, temperature: float = 0.2, max_tokens: int = 2000):
        """
        Args:
            reasoning: Reasoning client
            temperature: Sampling temperature
            max_tokens: Completion cap
        """
        self.reasoning = reasoning
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def can_resolve(
        self,
        source_descriptor: Descriptor,
        target_descriptor: Descriptor,
        context: Optional[Dict[str, Any]] = None
    ) -> bool:
        return True

    async def resolve(
        self,
        source_data: Any,
        target_data: Any,
        source_descriptor: Descriptor,
        target_descriptor: Descriptor,
        context: Optional[Dict[str, Any]] = None
    ) -> ResolutionResult:
        logger.info(
            f"🧠 [LLMResolution] Resolving {descriptor_key(source_descriptor)} vs {descriptor_key(target_descriptor)}"
        )
        prompt = prompts.RESOLUTION_PROMPT.format(
            source_entity=descriptor_key(source_descriptor),
            source_descriptor=_to_json(describe_for_prompt(source_descriptor)),
            source_data=_to_json(source_data),
            target_entity=descriptor_key(target_descriptor),
            target_descriptor=_to_json(describe_for_prompt(target_descriptor)),
            target_data=_to_json(target_data),
            context=_to_json(context or {})
        )

        try:
            answer = await self.reasoning.generate_json(
                prompt,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                system_prompt=prompts.RESOLUTION_SYSTEM_PROMPT
            )
        except (ProviderUnavailableError, MalformedResponseError) as e:
            logger.warning(f"⚠️ [LLMResolution] Failed: {e}")
            return ResolutionResult.failure(self.name, "llm_error", str(e))

        if not isinstance(answer, dict):
            return ResolutionResult.failure(self.name, "llm_error", "Response is not a JSON object")

        if answer.get("success") is False:
            unresolved = _conflicts(answer.get("unresolvedConflicts")) or [
                Conflict(type="llm_error", description="Model reported no resolution", reason=_text(answer.get("summary")) or "unresolved")
            ]
            return ResolutionResult(
                success=False,
                strategy_used=self.name,
                confidence=0.0,
                unresolved_conflicts=unresolved,
                metadata={"summary": answer.get("summary")}
            )

        resolved = answer["resolvedData"] if "resolvedData" in answer else answer
        confidence = key_overlap_confidence(source_data, target_data, resolved)
        if confidence is None:
            confidence = _reported_confidence(answer.get("confidence"))

        return ResolutionResult(
            success=True,
            resolved_data=resolved,
            strategy_used=self.name,
            confidence=confidence,
            resolved_conflicts=_conflicts(answer.get("resolvedConflicts")),
            unresolved_conflicts=_conflicts(answer.get("unresolvedConflicts")),
            metadata={
                "summary": answer.get("summary"),
                "reported_confidence": answer.get("confidence"),
            }
        )


def _conflicts(raw: Any) -> List[Conflict]:
    if not isinstance(raw, list):
        return []
    conflicts = []
    for item in raw:
        if isinstance(item, str):
            conflicts.append(Conflict(type="conflict", description=item))
            continue
        if not isinstance(item, dict):
            continue
        try:
            conflicts.append(Conflict(
                type=str(item.get("type") or "conflict"),
                description=str(item.get("description") or ""),
                reason=_text(item.get("reason")),
                resolution=_text(item.get("resolution")),
                path=_text(item.get("path") or item.get("field"))
            ))
        except ValidationError:
            continue
    return conflicts


def _text(value: Any) -> Optional[str]:
    """Model output as text; structured values are JSON-encoded."""
    if value is None or isinstance(value, str):
        return value
    return _to_json(value)


def _reported_confidence(value: Any) -> float:
    try:
        return max(0.0, min(1.0, float(value)))
    except (TypeError, ValueError):
        return 0.5


def _to_json(value: Any) -> str:
    return json.dumps(value, indent=2, default=str, ensure_ascii=False)
