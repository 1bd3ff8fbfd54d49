from __future__ import annotations

"""Turn hook-level capability specs into rooted requirements."""

from typing import Any

from capgate.models.capabilities import Ability, Capability, RequiredCapability, Resource
from capgate.utils.tokens import generate_capability


def capability_from_spec(spec: Any, config: Any) -> Capability:
    """``("notes", "read")`` / ``("notes", ["read", "own"])`` or a capability dict."""
    if isinstance(spec, (tuple, list)) and len(spec) == 2 and isinstance(spec[0], str):
        namespace, segments = spec
        return Capability(
            with_=Resource(scheme=config.default_scheme, hier_part=config.default_hier_part),
            can=Ability(namespace=namespace, segments=(segments,) if isinstance(segments, str) else tuple(segments)),
        )
    return generate_capability(spec, config)


def model_capabilities(specs: Any, authority: Any, config: Any) -> list[RequiredCapability]:
    """Every produced requirement is rooted at the authority's DID.

    Anything other than a list/tuple of specs yields no requirements.
    """
    if not isinstance(specs, (list, tuple)):
        return []
    return [
        RequiredCapability(capability=capability_from_spec(spec, config), root_issuer=authority.root_issuer)
        for spec in specs
    ]
