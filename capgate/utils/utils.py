"""Misc cross-cutting helpers."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Sequence


def get_path(obj: Any, path: str | Sequence[str]) -> Any:
    """Read a nested value by dotted path (``"createdBy.login"``) or key sequence.

    Mappings are read by key, sequences by numeric index and anything else by
    attribute. Returns ``None`` as soon as a segment is missing.

    Examples:
        >>> get_path({"a": {"b": [1, 2]}}, "a.b.1")
        2
        >>> get_path({"a": None}, ["a", "b"]) is None
        True
    """
    keys = path.split(".") if isinstance(path, str) else list(path)
    current = obj
    for key in keys:
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(key)
        elif isinstance(current, (list, tuple)):
            if not str(key).isdigit() or int(key) >= len(current):
                return None
            current = current[int(key)]
        else:
            current = getattr(current, str(key), None)
    return current
