"""
Semantic Descriptors - Domain Models
====================================

Descriptors say what a piece of data *means* (entity, description, typed
attributes), independent of its concrete value. They are immutable values
shared by the registry, the transformation engine, the caches and the
resolver.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.errors import ConfigurationError


class AttributeSpec(BaseModel):
    """
    Typed attribute of a descriptor.

    Example:
        AttributeSpec(type="string", description="Requirement title", required=True)
    """
    model_config = ConfigDict(frozen=True)

    type: str = Field(default="any", description="Attribute type (string, number, object, ...)")
    description: str = Field(default="", description="What the attribute holds")
    format: Optional[str] = Field(default=None, description="Optional format hint (date, email, ...)")
    constraints: List[str] = Field(default_factory=list, description="Free-text constraints")
    required: bool = Field(default=False, description="Must be present in transformed output")


class SemanticDescriptor(BaseModel):
    """
    Atomic descriptor of one conceptual entity.

    Example:
        SemanticDescriptor(
            entity="requirement",
            description="Clarified user requirement",
            attributes={"title": AttributeSpec(type="string")}
        )
    """
    model_config = ConfigDict(frozen=True)

    entity: str = Field(..., description="Entity name, non-empty")
    description: str = Field(default="", description="Free-text meaning")
    attributes: Dict[str, AttributeSpec] = Field(default_factory=dict, description="Typed attributes")
    capabilities: List[str] = Field(default_factory=list, description="Operations the source supports")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Arbitrary metadata")

    @field_validator("entity")
    @classmethod
    def _entity_not_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("entity must be non-empty")
        return value


class CompositeDescriptor(BaseModel):
    """
    Several entities mediated together, matched by its declared `type`.

    Example:
        CompositeDescriptor(type="requirement_bundle", components=[req, code])
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    type: str = Field(default="composite", description="Declared composite type (match key)")
    components: List[SemanticDescriptor] = Field(default_factory=list, description="Component descriptors")
    description: str = Field(default="", description="Free-text meaning")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Arbitrary metadata")


Descriptor = Union[SemanticDescriptor, CompositeDescriptor]


class DataSourceRecord(BaseModel):
    """Registered data source owned by a module."""
    id: str = Field(..., description="Source id derived from module id plus a unique suffix")
    module_id: str = Field(..., description="Owning module")
    descriptor: Union[SemanticDescriptor, CompositeDescriptor] = Field(..., description="What the source provides")
    has_access_method: bool = Field(default=False, description="Whether an access method is registered")
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    removed_at: Optional[datetime] = Field(default=None, description="Tombstone timestamp")

    @property
    def is_removed(self) -> bool:
        return self.removed_at is not None


def descriptor_key(descriptor: Descriptor) -> str:
    """Entity name of an atomic descriptor, declared type of a composite."""
    if isinstance(descriptor, CompositeDescriptor):
        return descriptor.type
    return descriptor.entity


def coerce_descriptor(value: Any) -> Descriptor:
    """
    Build a descriptor from a descriptor instance or a plain dict.

    Dicts carrying `components` become CompositeDescriptor.

    Raises:
        ConfigurationError: If required descriptor fields are missing
    """
    if isinstance(value, (SemanticDescriptor, CompositeDescriptor)):
        return value
    if not isinstance(value, dict):
        raise ConfigurationError(f"Descriptor must be a mapping, got {type(value).__name__}")

    try:
        if "components" in value:
            return CompositeDescriptor(**value)
        return SemanticDescriptor(**value)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid descriptor: {e}") from e


def required_attributes(descriptor: Descriptor) -> List[str]:
    """Names of attributes flagged required, across composite components."""
    if isinstance(descriptor, CompositeDescriptor):
        names: List[str] = []
        for component in descriptor.components:
            for name in required_attributes(component):
                if name not in names:
                    names.append(name)
        return names
    return [name for name, spec in descriptor.attributes.items() if spec.required]


def attribute_names(descriptor: Descriptor) -> List[str]:
    if isinstance(descriptor, CompositeDescriptor):
        names: List[str] = []
        for component in descriptor.components:
            names.extend(n for n in component.attributes if n not in names)
        return names
    return list(descriptor.attributes.keys())


def describe_for_prompt(descriptor: Descriptor) -> Dict[str, Any]:
    """Compact plain-data view used when describing a descriptor to the model."""
    if isinstance(descriptor, CompositeDescriptor):
        return {
            "type": descriptor.type,
            "description": descriptor.description,
            "components": [describe_for_prompt(c) for c in descriptor.components],
        }
    return {
        "entity": descriptor.entity,
        "description": descriptor.description,
        "attributes": {
            name: {k: v for k, v in spec.model_dump().items() if v not in (None, [], "")}
            for name, spec in descriptor.attributes.items()
        },
    }


def infer_attributes(data: Any) -> Dict[str, AttributeSpec]:
    """Attribute specs derived from the top-level keys of a data sample."""
    if not isinstance(data, dict):
        return {"data": AttributeSpec(type=_json_type(data), description="Whole payload")}
    return {
        str(key): AttributeSpec(type=_json_type(value))
        for key, value in data.items()
    }


def _json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__
