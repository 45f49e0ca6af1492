"""
Transformation Engine
=====================

Generates, executes and validates transformation paths.

- generate_transformation_path always returns a path; a provider failure or
  garbage answer yields a single pass-through map step.
- execute_transformation runs steps left to right on a deep copy of the
  input. Provider-backed steps (compute, synthesize, llm value transforms)
  that fail leave their target untouched instead of aborting the pipeline.
- validate_transformation returns a verdict and never raises.
"""

import copy
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from core.descriptors import Descriptor, describe_for_prompt, required_attributes
from core.errors import MalformedResponseError, ProviderUnavailableError
from core.transformation import (
    PROVIDER_BACKED_STEPS,
    ComputeStep,
    FilterStep,
    MapStep,
    MergeStep,
    PathMetadata,
    SynthesizeStep,
    TransformationPath,
    ValueTransform,
    passthrough_step,
    step_adapter,
)
from memory_store.memory_store import MemoryRecord, MemoryStore
from memory_store.resilient_store import ensure_resilient
from mediator import prompts
from providers.reasoning_client import ReasoningClient

logger = logging.getLogger(__name__)

_MISSING = object()
_WRAP_KEY = "value"
_EPOCH_MS_CUTOFF = 1e11


# ----------------------------------------------------------------------
# Dotted-path helpers
# ----------------------------------------------------------------------

def get_nested_value(data: Any, path: str, default: Any = None) -> Any:
    """Value at a dotted path ("a.b.0.c"), or default."""
    current = data
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return default
    return current


def set_nested_value(data: Dict[str, Any], path: str, value: Any):
    """Set a dotted path, creating intermediate dicts."""
    parts = path.split(".")
    current = data
    for part in parts[:-1]:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]
    current[parts[-1]] = value


def delete_nested_value(data: Dict[str, Any], path: str) -> bool:
    parts = path.split(".")
    current = data
    for part in parts[:-1]:
        if not isinstance(current, dict) or part not in current:
            return False
        current = current[part]
    if isinstance(current, dict) and parts[-1] in current:
        del current[parts[-1]]
        return True
    return False


def _to_json(value: Any) -> str:
    return json.dumps(value, indent=2, default=str, ensure_ascii=False)


class TransformationEngine:
    """
    Builds and runs transformation paths.

    Example:
        >>> engine = TransformationEngine(reasoning)
        >>> path = await engine.generate_transformation_path(src, tgt)
        >>> result = await engine.execute_transformation({"a": 1, "b": 2}, path)
    """

    def __init__(self, reasoning: ReasoningClient, memory_store: Optional[MemoryStore] = None):
        self.reasoning = reasoning
        self.memory_store = ensure_resilient(memory_store)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate_transformation_path(
        self,
        source: Descriptor,
        target: Descriptor,
        context: Optional[Dict[str, Any]] = None
    ) -> TransformationPath:
        """
        Ask the provider for a step sequence between two descriptors.

        Args:
            source: Source descriptor
            target: Target descriptor
            context: Optional hints (module names, sample keys, ...)

        Returns:
            TransformationPath (pass-through fallback on any failure)
        """
        context = context or {}
        prompt = prompts.PATH_GENERATION_PROMPT.format(
            source=_to_json(describe_for_prompt(source)),
            target=_to_json(describe_for_prompt(target)),
            context=_to_json(context)
        )

        steps = []
        try:
            answer = await self.reasoning.generate_json(
                prompt,
                temperature=0.2,
                max_tokens=1500,
                system_prompt=prompts.PATH_GENERATION_SYSTEM_PROMPT
            )
            steps = self._parse_steps(answer)
        except (ProviderUnavailableError, MalformedResponseError) as e:
            logger.warning(f"⚠️ [TransformationEngine] Path generation degraded to pass-through: {e}")

        generated = bool(steps)
        if not steps:
            steps = [passthrough_step()]

        path = TransformationPath(
            source=source,
            target=target,
            steps=steps,
            metadata=PathMetadata(
                source_module=context.get("source_module"),
                target_module=context.get("target_module"),
                extra={"generated": generated}
            )
        )
        logger.info(f"🧭 [TransformationEngine] Path {path.id} with {len(steps)} steps (generated={generated})")
        await self._audit_path(path)
        return path

    def _parse_steps(self, answer: Any) -> List[Any]:
        raw_steps = answer.get("steps") if isinstance(answer, dict) else answer
        if not isinstance(raw_steps, list):
            return []

        steps = []
        for raw in raw_steps:
            try:
                steps.append(step_adapter.validate_python(raw))
            except ValidationError as e:
                logger.warning(f"⚠️ [TransformationEngine] Dropping invalid step {raw!r}: {e.errors()[0]['msg']}")
        return steps

    async def optimize_transformation_path(
        self,
        path: TransformationPath,
        metrics: Optional[Dict[str, Any]] = None
    ) -> TransformationPath:
        """
        Ask the provider for a leaner step list.

        Returns the original path when the answer is unusable.
        """
        prompt = prompts.PATH_OPTIMIZATION_PROMPT.format(
            steps=_to_json([s.model_dump() for s in path.steps]),
            metrics=_to_json(metrics or {})
        )
        try:
            answer = await self.reasoning.generate_json(prompt, temperature=0.2, max_tokens=1500)
        except (ProviderUnavailableError, MalformedResponseError) as e:
            logger.warning(f"⚠️ [TransformationEngine] Optimization skipped: {e}")
            return path

        steps = self._parse_steps(answer)
        if not steps:
            return path

        optimized = path.model_copy(deep=True)
        optimized.steps = steps
        optimized.metadata.extra["optimized_at"] = datetime.now().isoformat()
        logger.info(f"⚡ [TransformationEngine] Path {path.id}: {len(path.steps)} -> {len(steps)} steps")
        return optimized

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute_transformation(
        self,
        data: Any,
        path: TransformationPath,
        context: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Apply the path's steps in order to a working copy of `data`.

        Non-mapping input is wrapped as {"value": data} while the steps run
        and unwrapped afterwards when nothing else was added.

        Args:
            data: Input data (never mutated)
            path: Path to run
            context: Optional context passed to provider-backed steps

        Returns:
            Transformed data
        """
        wrapped = not isinstance(data, dict)
        working = {_WRAP_KEY: copy.deepcopy(data)} if wrapped else copy.deepcopy(data)

        for index, step in enumerate(path.steps):
            await self._apply_step(step, working, context, trial=False)
            logger.debug(f"🔧 [TransformationEngine] Step {index} ({step.type}) applied")

        if wrapped and set(working.keys()) == {_WRAP_KEY}:
            return working[_WRAP_KEY]
        return working

    async def _apply_step(self, step: Any, working: Dict[str, Any], context: Optional[Dict[str, Any]], trial: bool):
        if isinstance(step, MapStep):
            await self._apply_map(step, working, trial)
        elif isinstance(step, FilterStep):
            for path in step.paths:
                delete_nested_value(working, path)
        elif isinstance(step, MergeStep):
            self._apply_merge(step, working)
        elif isinstance(step, ComputeStep):
            if not trial:
                await self._apply_compute(step, working)
        elif isinstance(step, SynthesizeStep):
            if not trial:
                await self._apply_synthesize(step, working, context)
        else:
            raise TypeError(f"Unknown transformation step: {step!r}")

    async def _apply_map(self, step: MapStep, working: Dict[str, Any], trial: bool):
        for source_path, target_path in step.fields.items():
            if source_path == "*":
                # Pass-through; only value transforms touch the data
                if step.transform is not None:
                    for key in list(working.keys()):
                        working[key] = await self._transform_value(working[key], step.transform, trial)
                continue

            value = get_nested_value(working, source_path, _MISSING)
            if value is _MISSING:
                continue
            if step.transform is not None:
                value = await self._transform_value(value, step.transform, trial)
            if step.drop_source and source_path != target_path:
                delete_nested_value(working, source_path)
            set_nested_value(working, target_path, copy.deepcopy(value))

    def _apply_merge(self, step: MergeStep, working: Dict[str, Any]):
        for source in step.sources:
            if not source.path or not source.target:
                continue
            value = get_nested_value(working, source.path, _MISSING)
            if value is _MISSING:
                continue

            existing = get_nested_value(working, source.target, _MISSING)
            if isinstance(existing, dict) and isinstance(value, dict):
                existing.update(copy.deepcopy(value))
            else:
                set_nested_value(working, source.target, copy.deepcopy(value))

    async def _apply_compute(self, step: ComputeStep, working: Dict[str, Any]):
        inputs = {name: get_nested_value(working, path) for name, path in step.inputs.items()}
        prompt = prompts.COMPUTE_PROMPT.format(expression=step.expression, inputs=_to_json(inputs))
        try:
            value = await self.reasoning.generate_value(prompt, temperature=0.1, max_tokens=500)
        except (ProviderUnavailableError, MalformedResponseError) as e:
            logger.warning(f"⚠️ [TransformationEngine] compute '{step.target}' skipped: {e}")
            return
        set_nested_value(working, step.target, value)

    async def _apply_synthesize(self, step: SynthesizeStep, working: Dict[str, Any], context: Optional[Dict[str, Any]]):
        extra = step.context if step.context is not None else (context or {})
        prompt = prompts.SYNTHESIZE_PROMPT.format(
            tag=step.tag,
            instruction=step.instruction,
            data=_to_json(working),
            context=_to_json(extra)
        )
        try:
            value = await self.reasoning.generate_json(prompt, temperature=0.3, max_tokens=2000)
        except (ProviderUnavailableError, MalformedResponseError) as e:
            logger.warning(f"⚠️ [TransformationEngine] {step.tag} skipped: {e}")
            return

        if step.target:
            set_nested_value(working, step.target, value)
        elif isinstance(value, dict):
            working.update(value)
        else:
            logger.warning(f"⚠️ [TransformationEngine] {step.tag} returned non-object without target, ignored")

    async def _transform_value(self, value: Any, transform: ValueTransform, trial: bool) -> Any:
        if transform.kind == "format":
            return _format_value(value, transform.format)
        if transform.kind == "convert":
            return _convert_value(value, transform.to)
        if trial or not transform.instruction:
            return value

        prompt = prompts.VALUE_TRANSFORM_PROMPT.format(instruction=transform.instruction, value=_to_json(value))
        try:
            return await self.reasoning.generate_value(prompt, temperature=0.2, max_tokens=500)
        except (ProviderUnavailableError, MalformedResponseError) as e:
            logger.warning(f"⚠️ [TransformationEngine] llm value transform kept original: {e}")
            return value

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def validate_transformation(
        self,
        path: TransformationPath,
        sample_input: Any = None,
        sample_output: Any = None
    ) -> Dict[str, Any]:
        """
        Light sanity check of a path.

        Checks: steps present; with a sample input, a trial run (provider-
        backed steps skipped, their targets counted as produced) must contain
        every required target attribute and every key of `sample_output`.

        Returns:
            {"valid": bool, "issues": [str]}
        """
        issues: List[str] = []
        if not path.steps:
            issues.append("Transformation path has no steps")
            return {"valid": False, "issues": issues}

        if sample_input is None:
            return {"valid": True, "issues": issues}

        try:
            trial_output = await self._trial_run(sample_input, path)
        except Exception as e:
            issues.append(f"Trial execution failed: {e}")
            return {"valid": False, "issues": issues}

        produced = self._produced_targets(path)
        for name in required_attributes(path.target):
            if name in produced:
                continue
            if get_nested_value(trial_output, name, _MISSING) is _MISSING:
                issues.append(f"Required target attribute '{name}' missing from output")

        if isinstance(sample_output, dict):
            for key in sample_output:
                if key not in produced and get_nested_value(trial_output, key, _MISSING) is _MISSING:
                    issues.append(f"Expected key '{key}' missing from output")

        return {"valid": not issues, "issues": issues}

    async def _trial_run(self, data: Any, path: TransformationPath) -> Dict[str, Any]:
        working = copy.deepcopy(data) if isinstance(data, dict) else {_WRAP_KEY: copy.deepcopy(data)}
        for step in path.steps:
            await self._apply_step(step, working, None, trial=True)
        return working

    def _produced_targets(self, path: TransformationPath) -> set:
        produced = set()
        for step in path.steps:
            if step.type in PROVIDER_BACKED_STEPS and getattr(step, "target", None):
                produced.add(step.target)
        return produced

    # ------------------------------------------------------------------

    async def _audit_path(self, path: TransformationPath):
        if self.memory_store is None:
            return
        await self.memory_store.save(MemoryRecord(
            type="transformation_path",
            content={
                "pathId": path.id,
                "sourceModule": path.metadata.source_module,
                "targetModule": path.metadata.target_module,
                "steps": [s.model_dump() for s in path.steps],
            },
            tags=["transformation", "path"]
        ))


def _format_value(value: Any, fmt: Optional[str]) -> Any:
    if not isinstance(value, str):
        return value
    if fmt == "uppercase":
        return value.upper()
    if fmt == "lowercase":
        return value.lower()
    if fmt == "capitalize":
        return value[:1].upper() + value[1:]
    if fmt == "trim":
        return value.strip()
    return value


def _convert_value(value: Any, to: Optional[str]) -> Any:
    if to == "string":
        if isinstance(value, str):
            return value
        if isinstance(value, (dict, list)):
            return json.dumps(value, default=str, ensure_ascii=False)
        return str(value)
    if to == "number":
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, (int, float)):
            return value
        try:
            number = float(str(value).strip())
        except ValueError:
            return value
        return int(number) if number.is_integer() else number
    if to == "boolean":
        if isinstance(value, str):
            return value.strip().lower() in ("true", "yes", "1", "y", "on")
        return bool(value)
    if to == "date":
        if isinstance(value, datetime):
            return value.isoformat()
        try:
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                # Epoch values above the cutoff are milliseconds
                seconds = value / 1000.0 if abs(value) > _EPOCH_MS_CUTOFF else value
                return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()
            return datetime.fromisoformat(str(value)).isoformat()
        except (ValueError, OverflowError, OSError):
            return value
    if to == "array":
        if isinstance(value, list):
            return value
        if value is None:
            return []
        return [value]
    return value
