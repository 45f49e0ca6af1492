from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class TranslateRequest(BaseModel):
    """Request for module-to-module translation"""
    source_module: str = Field(..., description="Source module")
    target_module: str = Field(..., description="Target module")
    data: Any = Field(None, description="Data in the source module's representation")


class TranslateResponse(BaseModel):
    """Translation result"""
    source_module: str = Field(..., description="Source module")
    target_module: str = Field(..., description="Target module")
    data: Any = Field(None, description="Translated data")


class EnrichRequest(BaseModel):
    """Request for context enrichment"""
    module: str = Field(..., description="Module owning the data")
    data: Any = Field(None, description="Data to enrich")
    context_query: str = Field(..., description="Query used to find related context")


class ResolveConflictsRequest(BaseModel):
    """Request for semantic conflict resolution"""
    module_a: str = Field(..., description="First module")
    data_a: Any = Field(None, description="First module's data")
    module_b: str = Field(..., description="Second module")
    data_b: Any = Field(None, description="Second module's data")
    options: Optional[Dict[str, Any]] = Field(None, description="force_strategy, context, descriptor overrides")


class ExtractInsightsRequest(BaseModel):
    """Request for insight extraction"""
    data: Any = Field(None, description="Data to analyze")
    query: str = Field(..., description="Perspective of the analysis")


class TrackTransformationRequest(BaseModel):
    """Request for transformation tracking"""
    source_module: str = Field(..., description="Source module")
    target_module: str = Field(..., description="Target module")
    source_data: Any = Field(None, description="Data before the transformation")
    transformed_data: Any = Field(None, description="Data after the transformation")
    options: Optional[Dict[str, Any]] = Field(
        None, description="track_differences, analyze_transformation, save_to_memory"
    )


class ValidationContextRequest(BaseModel):
    """Request for a validation context"""
    expectation_id: str = Field(..., description="Expectation record id")
    code_id: str = Field(..., description="Code record id")
    previous_validations: List[Any] = Field(default_factory=list, description="Earlier validation results")
    options: Optional[Dict[str, Any]] = Field(None, description="strategy, focus_areas, custom_weights")


class EvaluateTransformationRequest(BaseModel):
    """Request for a transformation quality evaluation"""
    source_data: Any = Field(None, description="Data before the transformation")
    transformed_data: Any = Field(None, description="Data after the transformation")
    expected_outcome: str = Field(..., description="What the transformation should achieve")


class DebugSessionRequest(BaseModel):
    """Request to open a debug session"""
    context: Dict[str, Any] = Field(default_factory=dict, description="Free-form session context")


class DebugDataRequest(BaseModel):
    """Payload appended to a debug session"""
    data: Any = Field(None, description="Debug payload")


class ReviewRequest(BaseModel):
    """Request for human review"""
    data: Any = Field(None, description="Payload for the reviewer")
    context: Dict[str, Any] = Field(default_factory=dict, description="Why the review is needed")
    timeout: Optional[float] = Field(None, description="Seconds before the review times out")


class ReviewFeedbackRequest(BaseModel):
    """Reviewer's answer"""
    feedback: Any = Field(None, description="Feedback payload")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Reviewer, channel, ...")


class CancelReviewRequest(BaseModel):
    """Request to cancel a pending review"""
    reason: str = Field("Cancelled by system", description="Cancellation reason")


class StoreTransformedRequest(BaseModel):
    """Request to store data translated to a schema"""
    data: Any = Field(None, description="Payload")
    target_schema: Dict[str, Any] = Field(..., description="Target descriptor")


class TransformationFeedbackRequest(BaseModel):
    """Rating of a tracked transformation"""
    rating: int = Field(..., ge=1, le=5, description="1 (poor) to 5 (excellent)")
    comments: str = Field("", description="Free-text comments")
    suggested_improvements: List[str] = Field(default_factory=list, description="Suggested improvements")
    requires_human_review: bool = Field(False, description="Open a human review for this feedback")
    provided_by: str = Field("anonymous", description="Who rated the transformation")


class ConsistencyRequest(BaseModel):
    """Request for a semantic consistency check"""
    data: Any = Field(None, description="Payload to check")
    data_type: str = Field(..., description="Type whose constraints apply (requirement, expectation, ...)")
