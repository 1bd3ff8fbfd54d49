from __future__ import annotations

"""Unified models namespace – hook context, requirement types and API models.

Call-sites can simply::

    from capgate.models import HookContext, UcanAuthOptions, ANY_AUTH
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, Field

from capgate.models.capabilities import Ability, Capability, RequiredCapability, Resource
from capgate.settings import AuthConfig
from capgate.utils.utils import get_path

# ---------------------------------------------------------------------------
# Requirement sentinels
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Capabilities:
    """Concrete requirement list; an empty list is trivially satisfied."""

    specs: tuple = ()


@dataclass(frozen=True)
class AnyAuth:
    """Any caller with a resolved identity passes."""


@dataclass(frozen=True)
class NoThrow:
    """Best-effort authentication that never fails the operation."""


ANY_AUTH = AnyAuth()
NO_THROW = NoThrow()

Requirement = Union[Capabilities, AnyAuth, NoThrow]

# Legacy string markers accepted in per-method maps and configuration
_SENTINELS = {"*": ANY_AUTH, "$": NO_THROW}


def as_requirement(value: Any) -> Requirement | None:
    if value is None or isinstance(value, (Capabilities, AnyAuth, NoThrow)):
        return value
    if isinstance(value, str):
        if value in _SENTINELS:
            return _SENTINELS[value]
        raise ValueError(f"Unknown requirement marker: {value!r}")
    return Capabilities(specs=tuple(value))


# ---------------------------------------------------------------------------
# Verification results
# ---------------------------------------------------------------------------


@dataclass
class VerifyResult:
    """``ok=False`` is the normal "not yet authorized" signal, not an error."""

    ok: bool
    value: list = field(default_factory=list)
    err: list = field(default_factory=list)

    @classmethod
    def failure(cls, *messages: str) -> "VerifyResult":
        return cls(ok=False, err=list(messages))

    def summary(self) -> Dict[str, Any]:
        return {"ok": self.ok, "value": [str(v) for v in self.value], "err": [str(e) for e in self.err]}


# ---------------------------------------------------------------------------
# Hook options
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoginPass:
    """Ownership rule: identity paths on the stored record + the methods it covers.

    ``methods`` is ``"*"`` or entries like ``"patch"`` / ``"patch/title,body"``.
    """

    paths: tuple = ()
    methods: Union[str, tuple] = "*"

    @classmethod
    def coerce(cls, value: Any) -> "LoginPass":
        if isinstance(value, LoginPass):
            return value
        paths, methods = value
        if isinstance(paths, str):
            raise ValueError(f"login_pass paths must be a list of path-specs, got {paths!r}")
        return cls(
            paths=tuple(paths or ()),
            methods=methods if isinstance(methods, str) else tuple(methods or ()),
        )


def _is_methods(value: Any) -> bool:
    if isinstance(value, str):
        return True
    return isinstance(value, (list, tuple)) and all(isinstance(m, str) for m in value)


@dataclass
class UcanAuthOptions:
    login_pass: Sequence[Any] = ()
    or_methods: Union[str, Sequence[str]] = ()
    admin_pass: Sequence[str] = ()
    special_change: Union[str, Sequence[str], None] = None
    special_chain: bool = False
    cap_subjects: Sequence[str] = ()
    no_throw: bool = False
    log: bool = False

    def __post_init__(self) -> None:
        rules = self.login_pass
        # A single ``(paths, methods)`` pair is accepted as shorthand
        if isinstance(rules, (tuple, list)) and len(rules) == 2 and _is_methods(rules[1]):
            rules = [rules]
        self.login_pass = tuple(LoginPass.coerce(r) for r in rules or ())
        if isinstance(self.or_methods, str) and self.or_methods != "*":
            self.or_methods = (self.or_methods,)

    def uses_or(self, method: str) -> bool:
        return self.or_methods == "*" or method in (self.or_methods or ())


# ---------------------------------------------------------------------------
# Hook context
# ---------------------------------------------------------------------------


@dataclass
class HookParams:
    provider: Optional[str] = None
    entity: Optional[Dict[str, Any]] = None
    core: Dict[str, Any] = field(default_factory=dict)
    connection: Optional[Dict[str, Any]] = None
    authentication: Optional[Dict[str, Any]] = None
    admin_pass: bool = False
    authenticated: bool = False
    can_u: bool = False
    no_throw_error: Optional[Dict[str, Any]] = None
    exists: Dict[str, Any] = field(default_factory=dict)
    extras: Dict[str, Any] = field(default_factory=dict)


_PARAM_FIELDS = {f.name for f in fields(HookParams)}


@dataclass
class HookContext:
    """Per-operation context the authorization hooks read and transform."""

    method: str
    path: str
    config: AuthConfig
    authority: Any
    services: Any
    type: str = "before"
    id: Optional[str] = None
    data: Any = None
    params: HookParams = field(default_factory=HookParams)
    result: Any = None

    def lookup(self, path: str) -> Any:
        """Read a dotted location from params (``core.ucan_aud``, ``authentication.accessToken``)."""
        head, _, rest = path.partition(".")
        if head == self.config.core_path:
            base: Any = self.params.core
        elif head in _PARAM_FIELDS:
            base = getattr(self.params, head)
        else:
            base = self.params.extras.get(head)
        return get_path(base, rest) if rest else base

    def assign(self, path: str, value: Any) -> None:
        """Inverse of ``lookup``; intermediate mappings are created as needed."""
        head, _, rest = path.partition(".")
        if not rest:
            if head in _PARAM_FIELDS:
                setattr(self.params, head, value)
            else:
                self.params.extras[head] = value
            return

        if head == self.config.core_path:
            base = self.params.core
        elif head in _PARAM_FIELDS:
            base = getattr(self.params, head)
            if base is None:
                base = {}
                setattr(self.params, head, base)
        else:
            base = self.params.extras.setdefault(head, {})
        *parents, leaf = rest.split(".")
        for key in parents:
            base = base.setdefault(key, {})
        base[leaf] = value

    @property
    def login(self) -> Optional[Dict[str, Any]]:
        """Login attached to the operation: core bag, then params, then connection."""
        entity = self.config.entity
        return (
            self.params.core.get(entity)
            or self.params.entity
            or (self.params.connection or {}).get(entity)
        )

    @property
    def login_id(self) -> Any:
        return (self.login or {}).get(self.config.entity_id_field)

    def describe(self) -> Dict[str, Any]:
        return {"type": self.type, "method": self.method, "path": self.path}


# ---------------------------------------------------------------------------
# Enums – shareable across request / DB models
# ---------------------------------------------------------------------------


class AuditAction(str, Enum):
    """Standardized audit action types."""
    auth_success = "auth.success"
    auth_failure = "auth.failure"
    token_reissue = "auth.token_reissue"
    ucan_denied = "ucan.denied"
    ucan_update = "ucan.update"


class AuditStatus(str, Enum):
    """Status of audited operations."""
    success = "success"
    failure = "failure"
    denied = "denied"


# ---------------------------------------------------------------------------
# API Pydantic models
# ---------------------------------------------------------------------------


class AuthenticationRequest(BaseModel):
    model_config = {"populate_by_name": True}

    strategy: str = Field("ucan", description="Authentication strategy name")
    access_token: Optional[str] = Field(None, alias="accessToken", description="Encoded UCAN")
    did: Optional[str] = Field(None, description="Audience DID of the login")
    ucan: Optional[str] = Field(None, description="Encoded UCAN (alternative to accessToken)")


class AuthenticationResponse(BaseModel):
    model_config = {"populate_by_name": True}

    access_token: str = Field(..., alias="accessToken")
    authentication: Dict[str, Any]
    login: Optional[Dict[str, Any]] = None


class UcanUpdateRequest(BaseModel):
    add: List[Any] = Field(default_factory=list, description="Capability specs to stack onto the subject")
    remove: List[Any] = Field(default_factory=list, description="Capability specs to strip from the subject")
    service: Optional[str] = Field(None, description="Service holding the subject record (default: logins)")
    path: Optional[str] = Field(None, description="Field holding the subject's token (default: ucan)")


class UcanUpdateResponse(BaseModel):
    raw: Dict[str, Any]
    encoded: str
    subject: Optional[Dict[str, Any]] = None


class CapabilityError(BaseModel):
    """403 response when every authorization path is exhausted."""

    detail: str = Field(..., json_schema_extra={"example": "insufficient_capabilities"})


__all__ = [
    "ANY_AUTH",
    "NO_THROW",
    "Ability",
    "AnyAuth",
    "AuditAction",
    "AuditStatus",
    "AuthenticationRequest",
    "AuthenticationResponse",
    "Capabilities",
    "Capability",
    "CapabilityError",
    "HookContext",
    "HookParams",
    "LoginPass",
    "NoThrow",
    "RequiredCapability",
    "Requirement",
    "Resource",
    "UcanAuthOptions",
    "UcanUpdateRequest",
    "UcanUpdateResponse",
    "VerifyResult",
    "as_requirement",
]
