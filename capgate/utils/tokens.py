"""Capability-token (UCAN) primitives: build, parse, validate and verify.

Tokens are compact JWS strings (``ES256``) whose payload carries::

    iss  issuer DID            aud  audience DID
    att  [{"with": "svc:notes", "can": "notes/read"}, ...]
    prf  [encoded proof token, ...]
    exp / nbf / nnc / fct      optional expiry, not-before, nonce, facts

A requirement is met when the token holds a capability that satisfies it
exactly and that capability can be traced through ``prf`` back to the
requirement's root issuer.
"""

from __future__ import annotations

import secrets
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from jose import jwt as jose_jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError, JWTError

from capgate.models import VerifyResult
from capgate.models.capabilities import Ability, Capability, RequiredCapability, Resource
from capgate.utils.keys import KeyPair, public_pem_from_did

ALGORITHM = "ES256"
UCAN_VERSION = "0.10.0"
DEFAULT_LIFETIME_SECONDS = 60 * 60 * 24 * 30
MAX_PROOF_DEPTH = 8


class TokenError(ValueError):
    """Base error for token parsing / validation."""


class MalformedTokenError(TokenError):
    """Not a token at all (bad structure, bad JSON, unknown DID)."""


class ExpiredTokenError(TokenError):
    pass


class InvalidSignatureError(TokenError):
    pass


class InvalidTokenError(TokenError):
    """Well-formed and signed, but not usable (not yet valid, bad proof chain)."""


@dataclass(frozen=True)
class Token:
    header: dict = field(default_factory=dict)
    payload: dict = field(default_factory=dict)
    signature: str = ""
    encoded: str = ""

    @property
    def issuer(self) -> str:
        return self.payload["iss"]

    @property
    def audience(self) -> str:
        return self.payload["aud"]

    @property
    def proofs(self) -> list[str]:
        return list(self.payload.get("prf") or [])

    @property
    def facts(self) -> list[Any]:
        return list(self.payload.get("fct") or [])

    @property
    def capabilities(self) -> list[Capability]:
        return [Capability.from_dict(a) for a in self.payload.get("att") or []]

    def to_dict(self) -> dict[str, Any]:
        return {
            "header": dict(self.header),
            "payload": dict(self.payload),
            "signature": self.signature,
            "encoded": self.encoded,
        }


# ---------------------------------------------------------------------------
# Capability helpers
# ---------------------------------------------------------------------------


def generate_capability(spec: Any, config: Any) -> Capability:
    """Build a Capability from a partial spec, filling the configured defaults.

    ``spec`` may be a ``Capability``, a wire dict (``{"with": "svc:x", "can":
    "x/read"}``) or a structured dict (``{"with": {"scheme", "hierPart"},
    "can": {"namespace", "segments"}}``).
    """
    if isinstance(spec, Capability):
        return spec
    if not isinstance(spec, Mapping):
        raise ValueError(f"Unsupported capability spec: {spec!r}")

    with_ = spec.get("with")
    if isinstance(with_, Resource):
        resource = with_
    elif isinstance(with_, str):
        resource = Resource.parse(with_)
    else:
        with_ = with_ or {}
        resource = Resource(
            scheme=with_.get("scheme") or config.default_scheme,
            hier_part=with_.get("hierPart") or with_.get("hier_part") or config.default_hier_part,
        )

    can = spec.get("can")
    if isinstance(can, Ability):
        ability = can
    elif isinstance(can, str):
        ability = Ability.parse(can)
    elif isinstance(can, Mapping) and can.get("namespace"):
        segments = can.get("segments") or ()
        ability = Ability(namespace=can["namespace"], segments=(segments,) if isinstance(segments, str) else tuple(segments))
    else:
        raise ValueError(f"Capability spec is missing 'can': {spec!r}")
    return Capability(with_=resource, can=ability)


def _as_capability(value: Any) -> Capability:
    return value if isinstance(value, Capability) else Capability.from_dict(value)


def stack_abilities(capabilities: Iterable[Any]) -> list[Capability]:
    """Ordered union; later duplicates of an earlier capability are dropped."""
    stacked: list[Capability] = []
    for cap in map(_as_capability, capabilities):
        if cap not in stacked:
            stacked.append(cap)
    return stacked


def reduce_abilities(remove: Iterable[Any], capabilities: Iterable[Any]) -> list[Capability]:
    removed = set(map(_as_capability, remove))
    return [cap for cap in map(_as_capability, capabilities) if cap not in removed]


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def token_to_string(token: Any) -> str:
    if isinstance(token, Token):
        return token.encoded
    if isinstance(token, Mapping) and isinstance(token.get("encoded"), str):
        return token["encoded"]
    if isinstance(token, str) and token.strip():
        return token.strip()
    raise MalformedTokenError(f"Cannot encode token of type {type(token).__name__}")


def parse_token(encoded: Any) -> Token:
    """Decode header and payload without checking the signature."""
    if isinstance(encoded, Token):
        return encoded
    if not isinstance(encoded, str) or encoded.count(".") != 2:
        raise MalformedTokenError("Invalid token format")
    try:
        header = jose_jwt.get_unverified_header(encoded)
        payload = jose_jwt.get_unverified_claims(encoded)
    except JWTError as exc:
        raise MalformedTokenError(f"Could not parse token: {exc}") from exc

    for claim in ("iss", "aud"):
        if not isinstance(payload.get(claim), str):
            raise MalformedTokenError(f"Token is missing the '{claim}' claim")
    token = Token(header=header, payload=payload, signature=encoded.rsplit(".", 1)[1], encoded=encoded)
    try:
        token.capabilities
    except ValueError as exc:
        raise MalformedTokenError(str(exc)) from exc
    return token


def build_token(
    *,
    issuer: KeyPair,
    audience: str,
    capabilities: Sequence[Any] = (),
    lifetime_seconds: int | None = DEFAULT_LIFETIME_SECONDS,
    expiration: int | None = None,
    not_before: int | None = None,
    proofs: Sequence[Any] = (),
    facts: Sequence[Any] | None = None,
    nonce: str | None = None,
) -> Token:
    now = int(time.time())
    payload: dict[str, Any] = {
        "iss": issuer.did(),
        "aud": audience,
        "att": [_as_capability(c).to_dict() for c in capabilities],
        "prf": [token_to_string(p) for p in proofs],
        "nnc": nonce or secrets.token_hex(8),
    }
    if expiration is None and lifetime_seconds is not None:
        expiration = now + lifetime_seconds
    if expiration is not None:
        payload["exp"] = int(expiration)
    if not_before is not None:
        payload["nbf"] = int(not_before)
    if facts:
        payload["fct"] = list(facts)

    encoded = jose_jwt.encode(payload, issuer.private_pem(), algorithm=ALGORITHM, headers={"ucv": UCAN_VERSION})
    return parse_token(encoded)


# ---------------------------------------------------------------------------
# Validation / verification
# ---------------------------------------------------------------------------


def validate_token(encoded: Any, *, check_time: bool = True, _depth: int = 0) -> Token:
    """Check signature, time bounds and every proof; return the parsed token."""
    token = parse_token(encoded)
    try:
        key = public_pem_from_did(token.issuer)
    except ValueError as exc:
        raise MalformedTokenError(str(exc)) from exc

    try:
        jose_jwt.decode(
            token.encoded,
            key,
            algorithms=[ALGORITHM],
            options={"verify_aud": False, "verify_exp": check_time, "verify_nbf": check_time},
        )
    except ExpiredSignatureError as exc:
        raise ExpiredTokenError("Expired.") from exc
    except JWTClaimsError as exc:
        raise InvalidTokenError(str(exc)) from exc
    except JWTError as exc:
        raise InvalidSignatureError(f"Invalid signature: {exc}") from exc

    if token.proofs and _depth >= MAX_PROOF_DEPTH:
        raise InvalidTokenError("Proof chain too deep")
    for proof in token.proofs:
        validate_token(proof, check_time=check_time, _depth=_depth + 1)
    return token


def _is_rooted(token: Token, capability: Capability, root_issuer: str, depth: int = 0) -> bool:
    if token.issuer == root_issuer:
        return True
    if depth >= MAX_PROOF_DEPTH:
        return False
    for raw in token.proofs:
        proof = parse_token(raw)
        if proof.audience != token.issuer:
            continue
        for parent in proof.capabilities:
            if parent.encompasses(capability) and _is_rooted(proof, parent, root_issuer, depth + 1):
                return True
    return False


def _held_capability(token: Token, required: RequiredCapability) -> Capability | None:
    for held in token.capabilities:
        if held.satisfies(required.capability) and _is_rooted(token, held, required.root_issuer):
            return held
    return None


def verify_token(
    token: Any,
    audience: str | None = None,
    required_capabilities: Sequence[RequiredCapability] = (),
) -> VerifyResult:
    """Verify ``token`` for ``audience`` against every required capability.

    Expired, badly signed or insufficient tokens produce ``ok=False``; only
    strings that are not tokens at all raise ``MalformedTokenError``.
    """
    try:
        decoded = validate_token(token_to_string(token))
    except MalformedTokenError:
        raise
    except TokenError as exc:
        return VerifyResult.failure(str(exc))

    if not audience or decoded.audience != audience:
        return VerifyResult.failure(f"Token audience {decoded.audience} does not match {audience}")

    held: list[Capability] = []
    missing: list[str] = []
    for required in required_capabilities:
        capability = _held_capability(decoded, required)
        if capability is None:
            missing.append(f"Missing capability {required.capability}")
        else:
            held.append(capability)
    return VerifyResult(ok=not missing, value=held, err=missing)
