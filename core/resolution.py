"""
Conflict Resolution - Domain Models
===================================

Results produced fresh by each resolver invocation.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Conflict(BaseModel):
    """
    One conflict between two representations.

    Example:
        Conflict(type="value_conflict", description="status differs", path="status",
                 reason="'open' vs 'closed'")
    """
    type: str = Field(..., description="Conflict kind (mapping_error, llm_error, value_conflict, ...)")
    description: str = Field(default="", description="Human-readable description")
    reason: Optional[str] = Field(default=None, description="Why it stays unresolved")
    resolution: Optional[str] = Field(default=None, description="How it was resolved")
    path: Optional[str] = Field(default=None, description="Field the conflict is about")


class ResolutionResult(BaseModel):
    """
    Outcome of one resolution attempt.

    success=False with populated unresolved_conflicts is the normal way to say
    "no resolution"; it is never raised.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = Field(..., description="Whether the strategy produced resolved data")
    resolved_data: Any = Field(default=None, description="Merged/resolved entity")
    strategy_used: str = Field(..., description="Name of the strategy that ran")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    resolved_conflicts: List[Conflict] = Field(default_factory=list)
    unresolved_conflicts: List[Conflict] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def failure(cls, strategy: str, conflict_type: str, reason: str, **metadata) -> "ResolutionResult":
        return cls(
            success=False,
            resolved_data=None,
            strategy_used=strategy,
            confidence=0.0,
            unresolved_conflicts=[Conflict(type=conflict_type, description=reason, reason=reason)],
            metadata=metadata,
        )

    def to_plain(self) -> Dict[str, Any]:
        """camelCase plain dict for consumers."""
        return self.model_dump(by_alias=True)
