"""
Structural Differences
======================

Deterministic diff between two data snapshots, keyed by dotted path.
"""

from typing import Any, Dict

ROOT = "$"


def compute_differences(before: Any, after: Any) -> Dict[str, Any]:
    """
    Diff two values.

    Dicts are compared recursively; anything else (lists included) is
    compared as a whole.

    Example:
        >>> compute_differences({"a": 1, "b": {"c": 2}}, {"a": 1, "b": {"c": 3}, "d": 4})
        {'added': {'d': 4}, 'removed': {}, 'changed': {'b.c': {'before': 2, 'after': 3}}, 'unchanged': 1}

    Returns:
        {"added", "removed", "changed", "unchanged"}
    """
    report = {"added": {}, "removed": {}, "changed": {}, "unchanged": 0}
    _walk(before, after, "", report)
    return report


def _walk(before: Any, after: Any, prefix: str, report: Dict[str, Any]):
    if isinstance(before, dict) and isinstance(after, dict):
        for key in before:
            path = f"{prefix}.{key}" if prefix else str(key)
            if key not in after:
                report["removed"][path] = before[key]
            else:
                _walk(before[key], after[key], path, report)
        for key in after:
            if key not in before:
                path = f"{prefix}.{key}" if prefix else str(key)
                report["added"][path] = after[key]
        return

    if before == after:
        report["unchanged"] += 1
    else:
        report["changed"][prefix or ROOT] = {"before": before, "after": after}
