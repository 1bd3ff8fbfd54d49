"""Verification adapter between the hooks and the token library.

Every entry point returns a ``VerifyResult``; token-library exceptions are
converted to ``ok=False`` so the caller can move on to the next fallback.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Sequence

from jose.exceptions import JWTError

from capgate.models import HookContext, RequiredCapability, UcanAuthOptions, VerifyResult
from capgate.utils import tokens
from capgate.utils.delegation import resolve_delegated
from capgate.utils.logger import logger


async def _call_verify(token: Any, audience: Any, required: Sequence[RequiredCapability]) -> VerifyResult:
    try:
        result: Any = tokens.verify_token(token, audience, list(required))
        if inspect.isawaitable(result):
            result = await result
    except (tokens.TokenError, JWTError, ValueError) as exc:
        return VerifyResult.failure(str(exc))
    return result


async def verify_one(token: Any, audience: Any, required: Sequence[RequiredCapability]) -> VerifyResult:
    """Verify once; on failure retry a single time with namespace-wide abilities."""
    result = await _call_verify(token, audience, required)
    if result.ok or not required:
        return result
    return await _call_verify(token, audience, [r.widened() for r in required])


@dataclass(frozen=True)
class VerifyCandidate:
    token: Any
    audience: Any
    required: tuple[RequiredCapability, ...]


async def or_verify_loop(candidates: Sequence[VerifyCandidate]) -> VerifyResult:
    """First success wins; otherwise the last failure."""
    result = VerifyResult.failure("No capabilities to verify")
    for candidate in candidates:
        result = await verify_one(candidate.token, candidate.audience, candidate.required)
        if result.ok:
            return result
    return result


async def _verify_mode(
    token: Any,
    audience: Any,
    reqs: Sequence[RequiredCapability],
    use_or: bool,
) -> VerifyResult:
    if use_or:
        return await or_verify_loop([VerifyCandidate(token, audience, (req,)) for req in reqs])
    return await verify_one(token, audience, reqs)


async def verify_against_reqs(
    reqs: Sequence[RequiredCapability],
    context: HookContext,
    options: UcanAuthOptions,
) -> VerifyResult:
    """AND / OR verification of the presented token, then delegated grants."""
    config = context.config
    token = context.lookup(config.client_ucan)
    audience = context.lookup(config.ucan_aud)
    use_or = bool(token and audience) and options.uses_or(context.method)

    result = await _verify_mode(token, audience, reqs, use_or)
    if options.log:
        logger.info(
            "ucan.verify",
            extra={"extra": {"stage": "token", "or": use_or, **context.describe(), **result.summary()}},
        )

    if not result.ok and options.cap_subjects:

        async def _verify(delegated_token: Any, delegated_audience: Any) -> VerifyResult:
            return await _verify_mode(delegated_token, delegated_audience, reqs, use_or)

        result = await resolve_delegated(context, options.cap_subjects, _verify)
        if options.log:
            logger.info(
                "ucan.verify",
                extra={"extra": {"stage": "delegated", **context.describe(), **result.summary()}},
            )
    return result
