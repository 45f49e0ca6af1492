"""
Resolution Strategy Interface
=============================

Abstract interface for conflict-resolution strategies.
The resolver depends on this interface, never on implementations.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from core.descriptors import Descriptor
from core.resolution import ResolutionResult


class ResolutionStrategy(ABC):
    """
    One technique for reconciling two representations of overlapping data.

    Implementations can use:
    - Hand-authored mapping functions
    - Structural heuristics
    - The reasoning provider

    Strategies are tried by descending `priority`; the first whose
    can_resolve() is true produces the result.
    """

    name: str = "abstract"
    priority: int = 0

    @abstractmethod
    async def can_resolve(
        self,
        source_descriptor: Descriptor,
        target_descriptor: Descriptor,
        context: Optional[Dict[str, Any]] = None
    ) -> bool:
        """Whether this strategy applies to the descriptor pair."""
        pass

    @abstractmethod
    async def resolve(
        self,
        source_data: Any,
        target_data: Any,
        source_descriptor: Descriptor,
        target_descriptor: Descriptor,
        context: Optional[Dict[str, Any]] = None
    ) -> ResolutionResult:
        """
        Reconcile the two datasets.

        Returns:
            ResolutionResult; failures are reported with success=False,
            never raised.
        """
        pass
