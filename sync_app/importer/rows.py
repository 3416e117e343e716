"""
Helpers for the dynamic row shape produced by providers.

Rows are plain dicts mapping field names to scalars, lists, or nested dicts.
A field name containing ``.`` may address a value inside nested dicts; a
literal key always wins over the nested interpretation.
"""

from __future__ import annotations

from typing import Any, Mapping

_MISSING = object()


def is_nested_path(name: str | None) -> bool:
    return bool(name) and "." in name


def get_specific_value(row: Any, path: str, default: Any = None) -> Any:
    """
    Resolve ``path`` against ``row``, descending into nested mappings.

    Returns ``default`` when any segment is missing or a non-mapping value is
    reached before the path is exhausted.
    """
    value = _lookup(row, path)
    return default if value is _MISSING else value


def _lookup(node: Any, path: str) -> Any:
    if not isinstance(node, Mapping):
        return _MISSING
    if path in node:
        return node[path]
    if "." not in path:
        return _MISSING

    # Try every split point, shortest head first, so keys containing dots
    # themselves stay reachable.
    parts = path.split(".")
    for index in range(1, len(parts)):
        head = ".".join(parts[:index])
        if head in node:
            found = _lookup(node[head], ".".join(parts[index:]))
            if found is not _MISSING:
                return found
    return _MISSING


def has_specific_value(row: Any, path: str) -> bool:
    return _lookup(row, path) is not _MISSING


def is_sequence_value(value: Any) -> bool:
    """Lists and tuples are sequences; strings, bytes and mappings are not."""
    return isinstance(value, (list, tuple))
