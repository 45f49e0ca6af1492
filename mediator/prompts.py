"""
Prompt Templates
================

Every natural-language request the mediator sends to the reasoning provider.
Templates use str.format (JSON braces doubled); system prompts are used as-is.
"""

SIMILARITY_SYSTEM_PROMPT = (
    "You compare semantic descriptions of data. "
    "Answer with a single number between 0 and 1 and nothing else."
)

SOURCE_SIMILARITY_PROMPT = """Rate how well this data source satisfies the intent.

DATA SOURCE DESCRIPTOR:
{descriptor}

INTENT:
{intent}

Return only a number between 0 (unrelated) and 1 (exact match)."""

DESCRIPTOR_SIMILARITY_PROMPT = """Rate the semantic similarity of these two data descriptors.

DESCRIPTOR A:
{first}

DESCRIPTOR B:
{second}

Return only a number between 0 (unrelated) and 1 (identical meaning)."""

PATH_GENERATION_SYSTEM_PROMPT = """You design data transformations between module representations.

Respond with JSON only:
```json
{
  "steps": [
    {"type": "map", "fields": {"sourcePath": "targetPath"}, "drop_source": false},
    {"type": "filter", "paths": ["path.to.drop"]},
    {"type": "merge", "sources": [{"path": "nested.object", "target": "key"}]},
    {"type": "compute", "target": "key", "expression": "what to derive", "inputs": {"name": "path"}}
  ]
}
```
Use dotted paths. Use "*" -> "*" in a map step to keep every field."""

PATH_GENERATION_PROMPT = """Create a transformation path.

SOURCE DESCRIPTOR:
{source}

TARGET DESCRIPTOR:
{target}

CONTEXT:
{context}"""

PATH_OPTIMIZATION_PROMPT = """Improve this transformation path. Remove redundant steps and merge steps that can be combined.

CURRENT STEPS:
{steps}

OBSERVED METRICS:
{metrics}

Respond with JSON only: {{"steps": [...]}} using the same step format."""

COMPUTE_PROMPT = """Compute a value.

EXPRESSION:
{expression}

INPUTS:
{inputs}

Respond with the JSON value only (a number, string in quotes, boolean, array or object)."""

SYNTHESIZE_PROMPT = """Task: {tag}

INSTRUCTION:
{instruction}

DATA:
{data}

ADDITIONAL CONTEXT:
{context}

Respond with JSON only."""

VALUE_TRANSFORM_PROMPT = """Transform this value.

INSTRUCTION:
{instruction}

VALUE:
{value}

Respond with the transformed JSON value only."""

RESOLUTION_SYSTEM_PROMPT = """You reconcile two representations of the same conceptual entity.

Respond with JSON only:
```json
{
  "resolvedData": {},
  "confidence": 0.0,
  "resolvedConflicts": [{"type": "", "description": "", "resolution": ""}],
  "unresolvedConflicts": [{"type": "", "description": "", "reason": ""}],
  "summary": ""
}
```"""

RESOLUTION_PROMPT = """Resolve conflicts between these two representations.

SOURCE ({source_entity}) DESCRIPTOR:
{source_descriptor}

SOURCE DATA:
{source_data}

TARGET ({target_entity}) DESCRIPTOR:
{target_descriptor}

TARGET DATA:
{target_data}

CONTEXT:
{context}

Merge them into one object that keeps every field of both."""

USAGE_ANALYSIS_PROMPT = """Analyze how cached transformation paths are used.

USAGE DATA:
{usage}

CURRENT PREDICTIVE THRESHOLD: {threshold}

Respond with JSON only:
{{"patterns": [{{"description": "", "frequency": 0}}], "insights": "", "recommendations": [""]}}
If predictions are too conservative, include the recommendation "lower threshold"; if too noisy, "raise threshold"."""

PREDICTION_PROMPT = """Predict which module-to-module transformations will be needed next.

MODULE CONTEXT:
{context}

USAGE HISTORY:
{usage}

Respond with JSON only:
{{"predictedPaths": [{{"sourceModule": "", "targetModule": "", "confidence": 0.0}}]}}"""

OPTIMIZATION_PROMPT = """Recommend cache optimizations for transformation paths.

CACHE STATS:
{stats}

USAGE DATA:
{usage}

CURRENT PREDICTIVE THRESHOLD: {threshold}

Respond with JSON only:
{{"retainTypes": [""], "purgeTypes": [""], "thresholdAdjustments": {{"predictiveThreshold": 0.7}}, "additionalSuggestions": [""]}}"""

ENRICHMENT_INSTRUCTION = (
    "Enrich DATA with relevant facts from ADDITIONAL CONTEXT. "
    "Return the enriched object with every original field preserved."
)

INSIGHTS_INSTRUCTION = (
    "Extract insights from DATA.query's perspective. Return "
    '{"key_concepts": [], "relationships": [], "summary": ""}.'
)

ANALYSIS_INSTRUCTION = (
    "DATA holds sourceData and transformedData. Assess the transformation. Return "
    '{"semanticPreservation": 0.0, "informationLoss": [], "summary": ""}.'
)

VALIDATION_CONTEXT_INSTRUCTION = (
    "Build a semantic validation context relating the expectation to the code. Return "
    '{"codeFeatures": {}, "semanticRelationship": {}, "focusAreas": []}.'
)

EVALUATION_SYSTEM_PROMPT = (
    "You evaluate data transformations for semantic fidelity. Respond with JSON only."
)

EVALUATION_PROMPT = """Evaluate the quality of this semantic transformation.

SOURCE DATA:
{source}

TRANSFORMED DATA:
{transformed}

EXPECTED OUTCOME:
{expected}

Score each dimension from 0 to 100 and respond with JSON only:
{{"semanticPreservation": 0, "structuralAdaptation": 0, "informationCompleteness": 0, "overallQuality": 0, "suggestions": [""]}}"""

FEEDBACK_ANALYSIS_PROMPT = """Analyze these human review outcomes.

REVIEWS:
{reviews}

Describe the most common feedback types, response-time trends and improvements worth making.
Respond with JSON only:
{{"patterns": [{{"description": "", "frequency": 0}}], "insights": ""}}"""
