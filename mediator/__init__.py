"""
Semantic Mediation Engine
"""
from .semantic_cache import SemanticCache, CacheEntry
from .registry import SemanticRegistry
from .transformation_engine import TransformationEngine
from .intelligent_cache import IntelligentCache, PredictedPath
from .resolution_strategy import ResolutionStrategy
from .explicit_mapping_strategy import ExplicitMappingStrategy
from .pattern_matching_strategy import PatternMatchingStrategy
from .llm_resolution_strategy import LLMResolutionStrategy
from .resolver import Resolver
from .monitoring import MonitoringSystem
from .differences import compute_differences
from .human_review import HumanReviewService, HumanReview, ReviewStatus
from .mediator import SemanticMediator
from .extension import SemanticMediatorExtension, SemanticConstraint, TransformationFeedback

__all__ = [
    'SemanticCache',
    'CacheEntry',
    'SemanticRegistry',
    'TransformationEngine',
    'IntelligentCache',
    'PredictedPath',
    'ResolutionStrategy',
    'ExplicitMappingStrategy',
    'PatternMatchingStrategy',
    'LLMResolutionStrategy',
    'Resolver',
    'MonitoringSystem',
    'compute_differences',
    'HumanReviewService',
    'HumanReview',
    'ReviewStatus',
    'SemanticMediator',
    'SemanticMediatorExtension',
    'SemanticConstraint',
    'TransformationFeedback',
]
