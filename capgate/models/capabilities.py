from __future__ import annotations

"""Capability value types: ``with`` a resource, ``can`` an ability.

String forms follow the token wire format::

    {"with": "svc:notes", "can": "notes/read"}
"""

from dataclasses import dataclass, replace
from typing import Any, Mapping

SUPERUSER = "*"
WILDCARD_SEGMENTS: tuple[str, ...] = ("*",)


@dataclass(frozen=True)
class Resource:
    scheme: str
    hier_part: str

    def __str__(self) -> str:
        return f"{self.scheme}:{self.hier_part}"

    @classmethod
    def parse(cls, value: str) -> "Resource":
        scheme, sep, hier_part = value.partition(":")
        if not sep or not scheme:
            raise ValueError(f"Invalid capability resource: {value!r}")
        return cls(scheme=scheme, hier_part=hier_part)

    def encompasses(self, other: "Resource") -> bool:
        if self.scheme.lower() != other.scheme.lower():
            return False
        return self.hier_part == SUPERUSER or self.hier_part == other.hier_part


@dataclass(frozen=True)
class Ability:
    namespace: str
    segments: tuple[str, ...] = ()

    @property
    def is_superuser(self) -> bool:
        return self.namespace == SUPERUSER

    @property
    def is_wildcard(self) -> bool:
        return self.segments == WILDCARD_SEGMENTS

    def __str__(self) -> str:
        if self.is_superuser:
            return SUPERUSER
        return "/".join((self.namespace, *self.segments))

    @classmethod
    def parse(cls, value: str) -> "Ability":
        if value == SUPERUSER:
            return cls(namespace=SUPERUSER)
        namespace, *segments = value.split("/")
        if not namespace:
            raise ValueError(f"Invalid capability ability: {value!r}")
        return cls(namespace=namespace, segments=tuple(segments))

    def widened(self) -> "Ability":
        """Return the namespace-wide form (``segments == ["*"]``)."""
        if self.is_superuser or self.is_wildcard:
            return self
        return replace(self, segments=WILDCARD_SEGMENTS)

    def satisfies(self, required: "Ability") -> bool:
        """Exact match: a held ability satisfies a requirement only for the same segments."""
        if self.is_superuser:
            return True
        if required.is_superuser:
            return False
        return (
            self.namespace.lower() == required.namespace.lower()
            and [s.lower() for s in self.segments] == [s.lower() for s in required.segments]
        )

    def encompasses(self, child: "Ability") -> bool:
        """Delegation rule: a namespace-wide ability may be attenuated to any segments."""
        if self.satisfies(child):
            return True
        return (
            not child.is_superuser
            and self.is_wildcard
            and self.namespace.lower() == child.namespace.lower()
        )


@dataclass(frozen=True)
class Capability:
    with_: Resource
    can: Ability

    def to_dict(self) -> dict[str, str]:
        return {"with": str(self.with_), "can": str(self.can)}

    def __str__(self) -> str:
        return f"{self.with_} -> {self.can}"

    @classmethod
    def from_dict(cls, value: Mapping[str, Any]) -> "Capability":
        try:
            return cls(with_=Resource.parse(value["with"]), can=Ability.parse(value["can"]))
        except (KeyError, TypeError, AttributeError) as exc:
            raise ValueError(f"Invalid capability: {value!r}") from exc

    def satisfies(self, required: "Capability") -> bool:
        return self.with_.encompasses(required.with_) and self.can.satisfies(required.can)

    def encompasses(self, child: "Capability") -> bool:
        return self.with_.encompasses(child.with_) and self.can.encompasses(child.can)


@dataclass(frozen=True)
class RequiredCapability:
    """A capability the caller must hold, anchored at the authority's root DID."""

    capability: Capability
    root_issuer: str

    def widened(self) -> "RequiredCapability":
        return replace(self, capability=replace(self.capability, can=self.capability.can.widened()))
