from .descriptors import (
    AttributeSpec,
    SemanticDescriptor,
    CompositeDescriptor,
    Descriptor,
    DataSourceRecord,
    coerce_descriptor,
    descriptor_key,
)
from .transformation import (
    TransformationPath,
    PathMetadata,
    MapStep,
    FilterStep,
    MergeStep,
    MergeSource,
    ComputeStep,
    SynthesizeStep,
    ValueTransform,
)
from .resolution import Conflict, ResolutionResult
from .errors import (
    MediatorError,
    ProviderUnavailableError,
    MalformedResponseError,
    ConfigurationError,
    MediationError,
)
from .config import MediatorConfig

__all__ = [
    "AttributeSpec", "SemanticDescriptor", "CompositeDescriptor", "Descriptor", "DataSourceRecord",
    "coerce_descriptor", "descriptor_key",
    "TransformationPath", "PathMetadata", "MapStep", "FilterStep", "MergeStep", "MergeSource",
    "ComputeStep", "SynthesizeStep", "ValueTransform",
    "Conflict", "ResolutionResult",
    "MediatorError", "ProviderUnavailableError", "MalformedResponseError", "ConfigurationError",
    "MediationError", "MediatorConfig",
]
