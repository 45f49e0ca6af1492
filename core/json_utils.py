"""
Response Parsing
================

Helpers to pull structured values out of free-form model text.

Models wrap JSON in ```json fences, prepend prose, or answer "0.87 (high)"
when asked for a number; these helpers accept all of that and raise
MalformedResponseError when nothing usable is found.
"""

import json
import re
from typing import Any

from core.errors import MalformedResponseError

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?")


def _strip_fences(text: str) -> str:
    if "```json" in text:
        return text.split("```json")[1].split("```")[0].strip()
    if text.count("```") >= 2:
        return text.split("```")[1].split("```")[0].strip()
    return text.strip()


def extract_json(text: str) -> Any:
    """
    Extract a JSON object or array from model output.

    Args:
        text: Raw completion text

    Returns:
        Parsed JSON value (dict or list)

    Raises:
        MalformedResponseError: If no JSON object/array can be parsed
    """
    if not isinstance(text, str) or not text.strip():
        raise MalformedResponseError("Empty response", raw=text)

    candidate = _strip_fences(text)
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, (dict, list)):
        return parsed

    # Naive extraction of the outermost object, then array
    for open_char, close_char in (("{", "}"), ("[", "]")):
        start = candidate.find(open_char)
        end = candidate.rfind(close_char)
        if start != -1 and end > start:
            try:
                return json.loads(candidate[start:end + 1])
            except json.JSONDecodeError:
                continue

    raise MalformedResponseError("Response is not valid JSON", raw=text)


def parse_json_value(text: str) -> Any:
    """
    Parse any JSON value (object, array, string, number, bool, null).

    Unlike extract_json, bare scalars are accepted. Prose that is not JSON
    raises MalformedResponseError.
    """
    if not isinstance(text, str) or not text.strip():
        raise MalformedResponseError("Empty response", raw=text)

    candidate = _strip_fences(text)
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        return extract_json(text)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def parse_score(text: Any) -> float:
    """
    Parse a similarity score from model output and clamp it to [0, 1].

    Non-numeric output (including NaN) yields 0.0. Never raises.

    Example:
        >>> parse_score("0.92")
        0.92
        >>> parse_score("Score: 7")
        1.0
        >>> parse_score("no idea")
        0.0
    """
    if isinstance(text, bool):
        return 0.0
    if isinstance(text, (int, float)):
        value = float(text)
    else:
        match = _NUMBER_RE.search(str(text or ""))
        if not match:
            return 0.0
        try:
            value = float(match.group(0))
        except ValueError:
            return 0.0

    if value != value:  # NaN
        return 0.0
    return clamp(value)
