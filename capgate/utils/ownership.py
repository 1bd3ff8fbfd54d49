"""Ownership / identity fallback and payload scrubbing.

When a caller lacks the required capabilities, ``login_pass`` rules can still
grant access to a record that names the caller (``createdBy.login``,
``members.*.login`` ...).  A rule whose method entry carries a field list
(``"patch/title,body"``) narrows the request payload to those fields.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from capgate.models import HookContext, LoginPass, UcanAuthOptions
from capgate.models.errors import InputError
from capgate.utils.core import load_exists
from capgate.utils.paths import is_allowed, resolve_path

READ_METHODS = frozenset({"get", "find", "remove"})
WRITE_METHODS = frozenset({"create", "patch", "update"})
OPERATORS = ("$set", "$unset", "$addToSet", "$pull", "$push")


@dataclass(frozen=True)
class MethodCoverage:
    fields: Optional[tuple[str, ...]] = None

    @property
    def restricted(self) -> bool:
        return self.fields is not None


def method_coverage(methods: Any, method: str) -> MethodCoverage | None:
    """Return how ``methods`` covers ``method`` or ``None`` if it does not."""
    if methods == "*":
        return MethodCoverage()
    for entry in [methods] if isinstance(methods, str) else methods or ():
        name, _, listed = entry.partition("/")
        if name.strip() in ("*", method):
            fields = tuple(f.strip() for f in listed.split(",") if f.strip())
            return MethodCoverage(fields=fields or None)
    return None


def identity_matches(record: Any, paths: Sequence[Any], identity: Any) -> bool:
    if record is None or identity is None:
        return False
    wanted = str(identity)
    return any(str(value) == wanted for path in paths for value in resolve_path(record, path))


def allowed_payload(data: Mapping[str, Any], fields: Iterable[str]) -> dict[str, Any]:
    """Copy of ``data`` holding only allow-listed keys, operators included."""
    fields = tuple(fields)
    allowed: dict[str, Any] = {}
    for key, value in data.items():
        if key in OPERATORS:
            if isinstance(value, Mapping):
                nested = {k: v for k, v in value.items() if is_allowed(k, fields)}
                if nested:
                    allowed[key] = nested
        elif is_allowed(key, fields):
            allowed[key] = value
    return allowed


def merge_payload(target: dict[str, Any], source: Mapping[str, Any]) -> dict[str, Any]:
    for key, value in source.items():
        if key in OPERATORS and isinstance(target.get(key), dict):
            target[key].update(value)
        else:
            target[key] = dict(value) if key in OPERATORS else value
    return target


def scrub_payload(data: Any, fields: Iterable[str]) -> Any:
    """Delete, in place, every key of ``data`` not covered by ``fields``."""
    if isinstance(data, list):
        raise InputError("Special change mode supports single-record payloads only")
    if not isinstance(data, dict):
        return data

    fields = tuple(fields)
    for key in list(data):
        if key in OPERATORS:
            nested = data[key]
            if isinstance(nested, dict):
                for sub in list(nested):
                    if not is_allowed(sub, fields):
                        del nested[sub]
            if not isinstance(nested, dict) or not nested:
                del data[key]
        elif not is_allowed(key, fields):
            del data[key]
    return data


async def login_pass_fallback(context: HookContext, options: UcanAuthOptions) -> bool:
    """Apply ``options.login_pass`` rules in order; True when one grants access.

    Narrowing is all-or-nothing: as soon as a matching rule allows the full
    payload, no field restriction from any rule is applied.
    """
    identity = context.login_id
    granted = False
    scrub = True
    narrowed: dict[str, Any] = {}
    narrowed_any = False

    rule: LoginPass
    for rule in options.login_pass:
        coverage = method_coverage(rule.methods, context.method)
        if coverage is None:
            continue
        record = await load_exists(context)
        if not identity_matches(record, rule.paths, identity):
            continue

        if not coverage.restricted or context.method not in WRITE_METHODS:
            granted = True
            scrub = False
            break
        if not isinstance(context.data, Mapping):
            continue
        granted = True
        merge_payload(narrowed, allowed_payload(context.data, coverage.fields or ()))
        narrowed_any = True

    if granted and scrub and narrowed_any:
        context.data = narrowed
    return granted
