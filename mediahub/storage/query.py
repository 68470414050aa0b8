"""Evaluate the Mongo filter/update subset used by the local fallback store.

Only the operators the repositories and pipeline stages actually emit are
supported. Anything else raises ``ValueError`` so an unsupported query fails
loudly instead of silently matching nothing.
"""

from __future__ import annotations

import re
from typing import Any

_MISSING = object()


def get_path(doc: dict[str, Any], path: str) -> Any:
    """Resolve a dotted ``path``, returning ``None`` when it is absent."""
    value = _resolve(doc, path)
    return None if value is _MISSING else value


def _resolve(node: Any, path: str) -> Any:
    for key in path.split("."):
        if isinstance(node, list):
            collected = [_resolve(item, key) for item in node if isinstance(item, dict)]
            node = [item for item in collected if item is not _MISSING]
            continue
        if not isinstance(node, dict) or key not in node:
            return _MISSING
        node = node[key]
    return node


def _candidates(value: Any) -> list[Any]:
    if isinstance(value, list):
        return [value, *value]
    return [value]


def _regex_matches(value: Any, pattern: str, options: str) -> bool:
    flags = re.IGNORECASE if "i" in options else 0
    return any(
        isinstance(candidate, str) and re.search(pattern, candidate, flags) is not None
        for candidate in _candidates(value)
    )


def _condition_matches(value: Any, condition: Any) -> bool:
    if not isinstance(condition, dict) or not any(
        str(key).startswith("$") for key in condition
    ):
        present = None if value is _MISSING else value
        return condition in _candidates(present)

    for operator, operand in condition.items():
        present = None if value is _MISSING else value
        if operator == "$in":
            ok = any(candidate in operand for candidate in _candidates(present))
        elif operator == "$regex":
            ok = _regex_matches(present, str(operand), str(condition.get("$options", "")))
        elif operator == "$options":
            continue
        else:
            raise ValueError(f"Unsupported filter operator: {operator}")
        if not ok:
            return False
    return True


def matches(doc: dict[str, Any], criteria: dict[str, Any]) -> bool:
    """Return whether ``doc`` satisfies the filter ``criteria``."""
    for key, condition in criteria.items():
        if key == "$or":
            if not any(matches(doc, clause) for clause in condition):
                return False
        elif key.startswith("$"):
            raise ValueError(f"Unsupported filter operator: {key}")
        elif not _condition_matches(_resolve(doc, key), condition):
            return False
    return True


def apply_update(doc: dict[str, Any], update: dict[str, Any]) -> dict[str, Any]:
    """Apply ``$set``, ``$unset``, ``$inc`` or ``$addToSet`` to a copy of ``doc``."""
    result = dict(doc)
    for operator, fields in update.items():
        for key, operand in fields.items():
            if operator == "$set":
                result[key] = operand
            elif operator == "$unset":
                result.pop(key, None)
            elif operator == "$inc":
                result[key] = (result.get(key) or 0) + operand
            elif operator == "$addToSet":
                current = list(result.get(key) or [])
                if operand not in current:
                    current.append(operand)
                result[key] = current
            else:
                raise ValueError(f"Unsupported update operator: {operator}")
    return result


def exclude_fields(doc: dict[str, Any], projection: dict[str, int] | None) -> dict[str, Any]:
    """Apply an exclusion-only projection such as ``{"password_hash": 0}``."""
    if not projection:
        return dict(doc)
    if any(flag for flag in projection.values()):
        raise ValueError("Only exclusion projections are supported")
    return {key: value for key, value in doc.items() if key not in projection}
