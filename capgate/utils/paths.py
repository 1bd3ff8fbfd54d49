"""Path-specs for ownership rules and field allow-lists.

``"createdBy.login"`` parses to ``(Field("createdBy"), Field("login"))`` and
``"members.*.login"`` to ``(Field("members"), WILDCARD, Field("login"))``; a
wildcard fans out over every member of a list or every value of a mapping.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Iterable, Sequence, Union


@dataclass(frozen=True)
class Field:
    name: str


@dataclass(frozen=True)
class Wildcard:
    pass


WILDCARD = Wildcard()

Segment = Union[Field, Wildcard]


def parse_path(spec: str | Sequence[str]) -> tuple[Segment, ...]:
    parts: list[str] = []
    for item in [spec] if isinstance(spec, str) else spec:
        parts.extend(p for p in str(item).split(".") if p)
    return tuple(WILDCARD if p == "*" else Field(p) for p in parts)


def _children(value: Any) -> Iterable[Any]:
    if isinstance(value, Mapping):
        return value.values()
    if isinstance(value, (list, tuple)):
        return value
    return ()


def _step(value: Any, segment: Segment) -> list[Any]:
    if isinstance(segment, Wildcard):
        return list(_children(value))
    if isinstance(value, Mapping):
        return [value.get(segment.name)]
    if isinstance(value, (list, tuple)):
        # Field access on a list reads the field of every member
        return [_step(item, segment)[0] for item in value if isinstance(item, Mapping)]
    return [getattr(value, segment.name, None)]


def resolve_path(record: Any, path: str | Sequence[str] | tuple[Segment, ...]) -> list[Any]:
    """Every non-empty value found at ``path`` (lists at the leaf are flattened)."""
    segments = path if isinstance(path, tuple) and all(isinstance(s, (Field, Wildcard)) for s in path) else parse_path(path)
    current = [record]
    for segment in segments:
        current = [nxt for value in current if value is not None for nxt in _step(value, segment)]

    found: list[Any] = []
    for value in current:
        for item in value if isinstance(value, (list, tuple)) else [value]:
            if item is not None and item != "":
                found.append(item)
    return found


def is_allowed(key: str, fields: Iterable[str]) -> bool:
    """``key`` is listed, or sits under a listed dotted prefix (``meta`` allows ``meta.tags``)."""
    return any(key == f or key.startswith(f + ".") for f in fields)
