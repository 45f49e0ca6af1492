"""
Semantic Mediator Extension
===========================

Memory-facing operations layered on the mediator: storing payloads
translated to a schema, exposing a record type as a data source,
feedback on tracked transformations and constraint-based consistency
checks.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from core.descriptors import SemanticDescriptor
from core.errors import ConfigurationError
from memory_store.memory_store import MemoryRecord
from mediator.mediator import SemanticMediator

logger = logging.getLogger("SemanticMediatorExtension")

SCHEMA_TRANSFORMATION_TYPE = "schema_transformation"
TRACKING_RECORD_TYPE = "semantic_transformation_tracking"
FEEDBACK_RECORD_TYPE = "semantic_feedback"
CONSTRAINT_RECORD_TYPE = "semantic_constraint"

# Evaluated constraints pass at this semantic preservation score
CONSTRAINT_PASS_SCORE = 70.0

REQUIREMENT_STATUSES = ("active", "completed", "pending", "cancelled")


class TransformationFeedback(BaseModel):
    """Human rating of a tracked transformation."""
    rating: int = Field(..., ge=1, le=5, description="1 (poor) to 5 (excellent)")
    comments: str = Field(default="")
    suggested_improvements: List[str] = Field(default_factory=list)
    requires_human_review: bool = Field(default=False)
    provided_by: str = Field(default="anonymous")


class SemanticConstraint(BaseModel):
    """
    Rule over one field of a payload.

    With `check` the rule runs locally on the field value; without it the
    provider judges the value against the `constraint` text.
    """
    field: str = Field(..., description="Dotted path into the payload")
    constraint: str = Field(..., description="Rule in plain words")
    check: Optional[Callable[[Any], bool]] = Field(default=None, exclude=True)
    error_message: Optional[str] = Field(default=None)
    severity: Literal["error", "warning", "info"] = Field(default="error")


def _is_text(min_exclusive: int, max_exclusive: Optional[int] = None) -> Callable[[Any], bool]:
    def check(value: Any) -> bool:
        if not isinstance(value, str) or len(value) <= min_exclusive:
            return False
        return max_exclusive is None or len(value) < max_exclusive
    return check


def default_constraints() -> Dict[str, List[SemanticConstraint]]:
    return {
        "requirement": [
            SemanticConstraint(
                field="title",
                constraint="Title must be descriptive and concise",
                check=_is_text(3, 100),
                error_message="Title must be between 3 and 100 characters"
            ),
            SemanticConstraint(
                field="status",
                constraint="Status must be a valid status value",
                check=lambda value: value in REQUIREMENT_STATUSES,
                error_message="Invalid status value"
            ),
        ],
        "expectation": [
            SemanticConstraint(
                field="requirementId",
                constraint="Must reference a valid requirement",
                check=lambda value: isinstance(value, str) and bool(value),
                error_message="Requirement ID is required"
            ),
            SemanticConstraint(
                field="title",
                constraint="Title must be descriptive",
                check=_is_text(3),
                error_message="Title must be longer than 3 characters"
            ),
        ],
        "semantic_transformation": [
            SemanticConstraint(
                field="sourceType",
                constraint="Source type must be specified",
                check=bool,
                error_message="Source type is required"
            ),
            SemanticConstraint(
                field="targetType",
                constraint="Target type must be specified",
                check=bool,
                error_message="Target type is required"
            ),
        ],
    }


def _field_value(data: Any, path: str) -> Any:
    current = data
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


class SemanticMediatorExtension:
    """
    Memory-facing operations over a SemanticMediator.

    Example:
        >>> extension = SemanticMediatorExtension(mediator)
        >>> report = await extension.validate_semantic_consistency({"title": "Login"}, "requirement")
    """

    def __init__(self, mediator: SemanticMediator):
        self.mediator = mediator
        self.memory_store = mediator.memory_store
        self._constraints: Dict[str, List[SemanticConstraint]] = default_constraints()
        logger.info("✅ [Extension] Initialized")

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    async def store_with_semantic_transformation(self, data: Any, target_schema: Any) -> Optional[MemoryRecord]:
        """
        Translate `data` to `target_schema` and store the result.

        The record type is the payload's own `type` when it has one.
        Returns None (and logs) when translation or storage fails.
        """
        original_type = data.get("type") if isinstance(data, dict) and isinstance(data.get("type"), str) else None
        try:
            transformed = await self.mediator.translate_to_schema(data, target_schema)
            schema_id = target_schema.get("id") if isinstance(target_schema, dict) else None
            return await self.memory_store.save(MemoryRecord(
                type=original_type or SCHEMA_TRANSFORMATION_TYPE,
                content=transformed,
                metadata={
                    "originalType": original_type or "unknown",
                    "transformationTimestamp": datetime.now().isoformat(),
                    "targetSchemaId": schema_id or "unknown",
                    "transformationStatus": "success",
                },
                tags=["semantic_transformation", "schema_based"]
            ), required=True)
        except Exception as e:
            logger.error(f"❌ [Extension] Storing with semantic transformation failed: {e}")
            return None

    async def register_as_data_source(self, memory_type: str, semantic_description: str) -> Optional[str]:
        """
        Register the records of `memory_type` as a queryable data source.

        The access method takes `limit` plus dotted-key filters and returns
        record contents, newest first. Returns the source id, or None when
        registration failed.
        """
        store = self.memory_store

        async def read_records(limit: int = 10, **filters) -> List[Any]:
            records = await store.find({"type": memory_type, **filters}, limit=limit)
            return [r.content for r in records]

        try:
            source_id = await self.mediator.registry.register_data_source(
                f"memory_{memory_type}",
                SemanticDescriptor(
                    entity=memory_type,
                    description=semantic_description,
                    capabilities=["query"],
                    metadata={"provider": "memory_system"}
                ),
                access_method=read_records
            )
            await store.save(MemoryRecord(
                type="system",
                content={
                    "action": "register_data_source",
                    "memoryType": memory_type,
                    "sourceId": source_id,
                    "semanticDescription": semantic_description,
                },
                metadata={"title": f"Registered {memory_type} as semantic data source"},
                tags=["data_source_registration", memory_type, source_id]
            ))
            logger.info(f"✅ [Extension] {memory_type} registered as data source {source_id}")
            return source_id
        except Exception as e:
            logger.error(f"❌ [Extension] Registering {memory_type} as data source failed: {e}")
            return None

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    async def record_transformation_feedback(self, transformation_id: str, feedback: Any) -> MemoryRecord:
        """
        Store a rating for a tracked transformation and flag the tracking record.

        Feedback asking for human review also opens a review.

        Raises:
            ConfigurationError: Invalid feedback or unknown transformation id
            ProviderUnavailableError: If the feedback record cannot be saved
        """
        try:
            feedback = feedback if isinstance(feedback, TransformationFeedback) else TransformationFeedback(**feedback)
        except (TypeError, ValidationError) as e:
            raise ConfigurationError(f"Invalid transformation feedback: {e}") from e

        tracked = await self.memory_store.find_one({
            "type": TRACKING_RECORD_TYPE,
            "content.transformationId": transformation_id
        })
        if tracked is None:
            raise ConfigurationError(f"Transformation with ID {transformation_id} not found")

        now = datetime.now().isoformat()
        content: Dict[str, Any] = {
            "transformationId": transformation_id,
            "feedback": feedback.model_dump(),
            "originalTransformation": tracked.content,
            "timestamp": now,
        }
        if feedback.requires_human_review:
            content["reviewId"] = await self.mediator.human_review.request_human_review(
                {"transformationId": transformation_id, "feedback": feedback.model_dump()},
                {"reason": "transformation_feedback", "transformationId": transformation_id}
            )

        saved = await self.memory_store.save(MemoryRecord(
            type=FEEDBACK_RECORD_TYPE,
            content=content,
            metadata={
                "transformationId": transformation_id,
                "rating": feedback.rating,
                "requiresHumanReview": feedback.requires_human_review,
                "providedBy": feedback.provided_by,
            },
            tags=["semantic_feedback", transformation_id, f"rating_{feedback.rating}"]
        ), required=True)

        await self.memory_store.update(tracked.id, {"metadata": {
            "hasFeedback": True,
            "lastFeedbackTimestamp": now,
            "lastFeedbackRating": feedback.rating,
        }})
        logger.info(f"📝 [Extension] Feedback {feedback.rating}/5 recorded for {transformation_id}")
        return saved

    # ------------------------------------------------------------------
    # Consistency
    # ------------------------------------------------------------------

    def register_constraints(self, data_type: str, constraints: List[Any]):
        """Replace the constraints checked for `data_type`."""
        self._constraints[data_type] = [
            c if isinstance(c, SemanticConstraint) else SemanticConstraint(**c) for c in constraints
        ]

    async def get_semantic_constraints(self, data_type: str) -> List[SemanticConstraint]:
        """Registered constraints first, then `semantic_constraint` records in the store."""
        if data_type in self._constraints:
            return list(self._constraints[data_type])

        records = await self.memory_store.find({"type": CONSTRAINT_RECORD_TYPE, "content.constraintType": data_type}, limit=10)
        constraints: List[SemanticConstraint] = []
        for record in records:
            for raw in record.content.get("constraints") or []:
                try:
                    constraints.append(SemanticConstraint(**raw))
                except (TypeError, ValidationError) as e:
                    logger.warning(f"⚠️ [Extension] Skipping stored constraint for {data_type}: {e}")
        return constraints

    async def validate_semantic_consistency(self, data: Any, data_type: str) -> Dict[str, Any]:
        """
        Check `data` against the constraints of its type.

        Returns:
            {"isValid", "messages", "score"} and "suggestedFixes" when invalid.
            Never raises; a failed validation reports score 0.
        """
        try:
            constraints = await self.get_semantic_constraints(data_type)
            if not constraints:
                return {
                    "isValid": True,
                    "messages": [{"type": "info", "message": f"No semantic constraints defined for type: {data_type}"}],
                    "score": 100,
                }

            messages: List[Dict[str, Any]] = []
            total = 0
            checked = 0
            for constraint in constraints:
                value = _field_value(data, constraint.field)
                try:
                    passed = await self._satisfies(constraint, value)
                except Exception as e:
                    logger.warning(f"⚠️ [Extension] Could not check {constraint.field}: {e}")
                    messages.append({
                        "type": "warning",
                        "message": f"Could not validate constraint for field '{constraint.field}': {e}",
                        "field": constraint.field,
                    })
                    continue

                checked += 1
                if passed:
                    total += 100
                else:
                    messages.append({
                        "type": constraint.severity,
                        "message": constraint.error_message
                        or f"Field '{constraint.field}' does not satisfy constraint: {constraint.constraint}",
                        "field": constraint.field,
                        "rule": constraint.constraint,
                    })

            is_valid = not any(m["type"] == "error" for m in messages)
            report: Dict[str, Any] = {
                "isValid": is_valid,
                "messages": messages,
                "score": round(total / checked) if checked else 0,
            }
            if not is_valid:
                report["suggestedFixes"] = _suggested_fixes(data, messages)
            return report
        except Exception as e:
            logger.error(f"❌ [Extension] Consistency validation failed: {e}")
            return {"isValid": False, "messages": [{"type": "error", "message": f"Validation error: {e}"}], "score": 0}

    async def _satisfies(self, constraint: SemanticConstraint, value: Any) -> bool:
        if constraint.check is not None:
            return bool(constraint.check(value))
        snapshot = {constraint.field: value}
        evaluation = await self.mediator.evaluate_semantic_transformation(snapshot, snapshot, constraint.constraint)
        return evaluation["semanticPreservation"] >= CONSTRAINT_PASS_SCORE


def _suggested_fixes(data: Any, messages: List[Dict[str, Any]]) -> Dict[str, Any]:
    fixes: Dict[str, Any] = {}
    for message in messages:
        if message["type"] == "error" and message.get("field"):
            fixes[message["field"]] = {
                "original": _field_value(data, message["field"]),
                "suggestion": f"Please correct this field to meet the constraint: {message.get('rule') or 'unspecified'}",
            }
    return fixes
