"""
Pattern Matching Strategy
=========================

Structural reconciliation without the reasoning provider.

Field names are normalized (camelCase -> snake, lowercase, punctuation
stripped) and aligned exactly first, then fuzzily (difflib ratio). Aligned
fields are merged onto a copy of the target data:

- equal values agree
- a value missing on one side is filled from the other
- scalars that coerce to the same value (5 vs "5") adopt the target type
- anything else stays an unresolved value_conflict and the target value wins

Source-only fields are carried over unchanged.
"""

import copy
import logging
import re
from difflib import SequenceMatcher
from typing import Any, Dict, List, Optional, Tuple

from core.descriptors import Descriptor, attribute_names
from core.resolution import Conflict, ResolutionResult
from mediator.resolution_strategy import ResolutionStrategy

logger = logging.getLogger(__name__)

_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def normalize_field_name(name: str) -> str:
    """`userId`, `user_id` and `User-ID` all normalize to `userid`."""
    return _NON_ALNUM_RE.sub("", _CAMEL_RE.sub("_", str(name)).lower())


def align_fields(
    source_names: List[str],
    target_names: List[str],
    fuzzy_ratio: float = 0.85
) -> List[Tuple[str, str]]:
    """
    Pair source and target field names.

    Returns:
        (source_name, target_name) pairs, exact normalized matches first
    """
    pairs: List[Tuple[str, str]] = []
    remaining = list(target_names)
    normalized_targets = {name: normalize_field_name(name) for name in target_names}

    unmatched_sources = []
    for source_name in source_names:
        normalized = normalize_field_name(source_name)
        match = next((t for t in remaining if normalized_targets[t] == normalized), None)
        if match is None:
            unmatched_sources.append(source_name)
            continue
        pairs.append((source_name, match))
        remaining.remove(match)

    for source_name in unmatched_sources:
        normalized = normalize_field_name(source_name)
        best, best_ratio = None, 0.0
        for target_name in remaining:
            ratio = SequenceMatcher(None, normalized, normalized_targets[target_name]).ratio()
            if ratio > best_ratio:
                best, best_ratio = target_name, ratio
        if best is not None and best_ratio >= fuzzy_ratio:
            pairs.append((source_name, best))
            remaining.remove(best)

    return pairs


def _coerce_like(value: Any, reference: Any) -> Any:
    """Convert scalar `value` to the type of scalar `reference`; raises ValueError when impossible."""
    if isinstance(reference, bool):
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        raise ValueError("not a boolean")
    if isinstance(reference, (int, float)) and isinstance(value, str):
        number = float(value)
        if isinstance(reference, int) and number.is_integer():
            return int(number)
        return number
    if isinstance(reference, str) and isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise ValueError("not coercible")


class PatternMatchingStrategy(ResolutionStrategy):
    """
    Field-name and shape based resolution.

    Example:
        >>> strategy = PatternMatchingStrategy(min_overlap=0.6)
        >>> await strategy.resolve({"userId": 1}, {"user_id": "1"}, src, tgt)
    """

    name = "pattern_matching"
    priority = 2

    def __init__(self, min_overlap: float = 0.6, fuzzy_ratio: float = 0.85):
        """
        Args:
            min_overlap: Share of attributes that must align for can_resolve
            fuzzy_ratio: Minimum difflib ratio for a fuzzy name match
        """
        self.min_overlap = min_overlap
        self.fuzzy_ratio = fuzzy_ratio

    def _overlap(self, source_names: List[str], target_names: List[str]) -> Tuple[float, List[Tuple[str, str]]]:
        if not source_names or not target_names:
            return 0.0, []
        pairs = align_fields(source_names, target_names, self.fuzzy_ratio)
        union = len(source_names) + len(target_names) - len(pairs)
        return len(pairs) / union, pairs

    async def can_resolve(
        self,
        source_descriptor: Descriptor,
        target_descriptor: Descriptor,
        context: Optional[Dict[str, Any]] = None
    ) -> bool:
        overlap, _ = self._overlap(attribute_names(source_descriptor), attribute_names(target_descriptor))
        return overlap >= self.min_overlap

    async def resolve(
        self,
        source_data: Any,
        target_data: Any,
        source_descriptor: Descriptor,
        target_descriptor: Descriptor,
        context: Optional[Dict[str, Any]] = None
    ) -> ResolutionResult:
        if not isinstance(source_data, dict) or not isinstance(target_data, dict):
            return ResolutionResult.failure(self.name, "shape_mismatch", "Pattern matching needs two objects")

        overlap, pairs = self._overlap(list(source_data.keys()), list(target_data.keys()))
        if not pairs:
            return ResolutionResult.failure(self.name, "no_alignment", "No fields could be aligned")

        resolved = copy.deepcopy(target_data)
        resolved_conflicts: List[Conflict] = []
        unresolved_conflicts: List[Conflict] = []

        for source_key, target_key in pairs:
            source_value = source_data[source_key]
            target_value = target_data[target_key]

            if source_key != target_key:
                resolved_conflicts.append(Conflict(
                    type="naming",
                    description=f"'{source_key}' and '{target_key}' name the same field",
                    resolution=f"kept '{target_key}'",
                    path=target_key
                ))

            if source_value == target_value or source_value is None:
                continue

            if target_value is None:
                resolved[target_key] = copy.deepcopy(source_value)
                resolved_conflicts.append(Conflict(
                    type="missing_value",
                    description=f"'{target_key}' missing in target",
                    resolution="filled from source",
                    path=target_key
                ))
                continue

            try:
                coerced = _coerce_like(source_value, target_value)
            except (TypeError, ValueError):
                coerced = None
            else:
                if coerced == target_value:
                    resolved_conflicts.append(Conflict(
                        type="type_mismatch",
                        description=f"'{target_key}' has the same value with different types",
                        resolution=f"kept target type {type(target_value).__name__}",
                        path=target_key
                    ))
                    continue

            unresolved_conflicts.append(Conflict(
                type="value_conflict",
                description=f"'{target_key}' differs between representations",
                reason=f"source={source_value!r} target={target_value!r}",
                path=target_key
            ))

        aligned_sources = {source_key for source_key, _ in pairs}
        for key, value in source_data.items():
            if key not in aligned_sources and key not in resolved:
                resolved[key] = copy.deepcopy(value)

        agreement = 1.0 - len(unresolved_conflicts) / len(pairs)
        confidence = max(0.0, min(1.0, overlap * agreement))

        logger.info(
            f"🧩 [PatternMatching] {len(pairs)} aligned, "
            f"{len(unresolved_conflicts)} unresolved, confidence {confidence:.2f}"
        )
        return ResolutionResult(
            success=True,
            resolved_data=resolved,
            strategy_used=self.name,
            confidence=confidence,
            resolved_conflicts=resolved_conflicts,
            unresolved_conflicts=unresolved_conflicts,
            metadata={"aligned_fields": [list(p) for p in pairs], "overlap": overlap}
        )
