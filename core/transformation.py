"""
Transformation Paths - Domain Models
====================================

A transformation path is an ordered, reusable recipe for converting data
shaped for one descriptor into data shaped for another. Steps form a closed
tagged union discriminated by `type`.
"""

import uuid
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from core.descriptors import CompositeDescriptor, SemanticDescriptor


class ValueTransform(BaseModel):
    """
    Per-value transform applied by a map step.

    Example:
        ValueTransform(kind="format", format="uppercase")
        ValueTransform(kind="convert", to="number")
        ValueTransform(kind="llm", instruction="Summarize in one sentence")
    """
    kind: Literal["format", "convert", "llm"] = Field(..., description="Transform family")
    format: Optional[Literal["uppercase", "lowercase", "capitalize", "trim"]] = Field(default=None)
    to: Optional[Literal["string", "number", "boolean", "date", "array"]] = Field(default=None)
    instruction: Optional[str] = Field(default=None, description="Instruction for llm transforms")


class MapStep(BaseModel):
    """Copy (or rename, with drop_source) values between dotted paths. `{"*": "*"}` passes everything through."""
    type: Literal["map"] = "map"
    fields: Dict[str, str] = Field(default_factory=lambda: {"*": "*"}, description="source path -> target path")
    drop_source: bool = Field(default=False, description="Remove the source path after copying")
    transform: Optional[ValueTransform] = Field(default=None, description="Optional per-value transform")


class FilterStep(BaseModel):
    """Drop the listed dotted paths."""
    type: Literal["filter"] = "filter"
    paths: List[str] = Field(default_factory=list)


class MergeSource(BaseModel):
    path: Optional[str] = Field(default=None, description="Dotted path of the sub-object to merge")
    target: Optional[str] = Field(default=None, description="Key it is merged under")


class MergeStep(BaseModel):
    """Combine named sub-objects into the result under target keys."""
    type: Literal["merge"] = "merge"
    sources: List[MergeSource] = Field(default_factory=list)


class ComputeStep(BaseModel):
    """Ask the reasoning provider to derive `target` from named inputs."""
    type: Literal["compute"] = "compute"
    target: str = Field(..., description="Dotted path receiving the computed value")
    expression: str = Field(..., description="Natural-language expression")
    inputs: Dict[str, str] = Field(default_factory=dict, description="input name -> dotted path")


class SynthesizeStep(BaseModel):
    """
    Ask the reasoning provider for a JSON value derived from the whole working
    object plus extra context.

    The value is stored under `target`, or merged into the working object when
    `target` is empty and the value is an object.
    """
    type: Literal["synthesize"] = "synthesize"
    tag: str = Field(..., description="What the step is for (context_enrichment, ...)")
    instruction: str = Field(..., description="Natural-language instruction")
    context: Any = Field(default=None, description="Additional input (retrieved records, options, ...)")
    target: Optional[str] = Field(default=None, description="Dotted path receiving the value")


TransformationStep = Annotated[
    Union[MapStep, FilterStep, MergeStep, ComputeStep, SynthesizeStep],
    Field(discriminator="type")
]

step_adapter = TypeAdapter(TransformationStep)

PROVIDER_BACKED_STEPS = ("compute", "synthesize")


class PathMetadata(BaseModel):
    source_module: Optional[str] = Field(default=None)
    target_module: Optional[str] = Field(default=None)
    usage_count: int = Field(default=0, ge=0)
    last_used: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.now)
    semantic_relevance: float = Field(default=1.0, ge=0.0, le=1.0)
    extra: Dict[str, Any] = Field(default_factory=dict)


class TransformationPath(BaseModel):
    """
    Ordered steps from `source` to `target`.

    Example:
        TransformationPath(
            source=SemanticDescriptor(entity="requirement"),
            target=SemanticDescriptor(entity="prompt"),
            steps=[FilterStep(paths=["internal"])]
        )
    """
    id: str = Field(default_factory=lambda: f"path_{uuid.uuid4().hex[:12]}")
    source: Union[SemanticDescriptor, CompositeDescriptor]
    target: Union[SemanticDescriptor, CompositeDescriptor]
    steps: List[TransformationStep] = Field(default_factory=list)
    metadata: PathMetadata = Field(default_factory=PathMetadata)


def passthrough_step() -> MapStep:
    return MapStep(fields={"*": "*"})
