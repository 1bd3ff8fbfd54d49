from __future__ import annotations

"""Authorization hook: decide whether an operation may run.

Order of evaluation once a requirement applies:

1. the presented token (AND / OR across requirements, then delegated grants)
2. ``special_change`` (grant, optionally narrowing the payload)
3. ``login_pass`` ownership rules
4. namespace-qualified requirements (``notes:archive``) retried as ``notes``

Anything left is denied: raised as 403, or recorded on the context when
``no_throw`` is set.

Usage::

    hook = ucan_auth([("notes", "write")], UcanAuthOptions(login_pass=(["createdBy.login"], "*")))
    context = await hook(context)
"""

from dataclasses import replace
from typing import Any, Awaitable, Callable, Mapping, Optional

from fastapi import HTTPException, status

from capgate.models import (
    AnyAuth,
    AuditAction,
    AuditStatus,
    HookContext,
    NoThrow,
    RequiredCapability,
    UcanAuthOptions,
    VerifyResult,
    as_requirement,
)
from capgate.models.errors import AuthorizationDenied
from capgate.utils import verifier
from capgate.utils.audit import log_audit_event
from capgate.utils.capabilities import model_capabilities
from capgate.utils.logger import logger
from capgate.utils.ownership import WRITE_METHODS, login_pass_fallback, scrub_payload
from capgate.utils.strategy import attach_connection_entity, bare_auth, no_throw_auth

Hook = Callable[[HookContext], Awaitable[HookContext]]


def _admin_pass(context: HookContext, options: UcanAuthOptions) -> bool:
    if context.method not in (options.admin_pass or ()):
        return False
    return bool(context.params.admin_pass or context.params.core.get("admin_pass"))


def _split_namespace(reqs: list[RequiredCapability]) -> list[RequiredCapability] | None:
    """``notes:archive`` → ``notes``; None when no requirement is qualified."""
    reduced: list[RequiredCapability] = []
    changed = False
    for req in reqs:
        base, sep, qualifier = req.capability.can.namespace.partition(":")
        if sep and qualifier:
            can = replace(req.capability.can, namespace=base)
            req = replace(req, capability=replace(req.capability, can=can))
            changed = True
        reduced.append(req)
    return reduced if changed else None


def _grant(context: HookContext, *, authenticated: bool = True) -> HookContext:
    if authenticated:
        context.params.authenticated = True
    context.params.can_u = True
    return context


def _storage_failure(context: HookContext, options: UcanAuthOptions, exc: HTTPException, stage: str) -> VerifyResult:
    """A storage outage counts as a failed stage when ``no_throw`` is set; otherwise it propagates."""
    if exc.status_code != status.HTTP_503_SERVICE_UNAVAILABLE or not options.no_throw:
        raise exc
    logger.warning(
        "ucan.storage_unavailable",
        extra={"extra": {"stage": stage, "detail": exc.detail, **context.describe()}},
    )
    return VerifyResult.failure(str(exc.detail))


async def _verify_stage(
    reqs: list[RequiredCapability], context: HookContext, options: UcanAuthOptions, stage: str
) -> VerifyResult:
    try:
        return await verifier.verify_against_reqs(reqs, context, options)
    except HTTPException as exc:
        return _storage_failure(context, options, exc, stage)


async def _deny(context: HookContext, options: UcanAuthOptions, result: VerifyResult) -> HookContext:
    logger.warning(
        "ucan.denied",
        extra={"extra": {**context.describe(), "login": context.login_id, **result.summary()}},
    )
    await log_audit_event(
        context.services.supabase,
        action=AuditAction.ucan_denied,
        actor_id=context.login_id,
        status=AuditStatus.denied,
        resource_type=context.path,
        resource_id=context.id,
        metadata={"method": context.method, "type": context.type, "err": result.summary()["err"]},
    )
    if options.no_throw:
        context.params.no_throw_error = context.describe()
        return context
    raise AuthorizationDenied(
        f"Missing proper capabilities for this action: {context.type}: {context.path} - {context.method}"
    )


async def _check_ucan(context: HookContext, required: Any, options: UcanAuthOptions) -> HookContext:
    if isinstance(required, AnyAuth):
        # No capabilities to prove; only special_change / login_pass can grant
        reqs: list[RequiredCapability] = []
        result = VerifyResult.failure("Any-auth requirement with special change")
    else:
        reqs = model_capabilities(list(required.specs), context.authority, context.config)
        if reqs:
            result = await _verify_stage(reqs, context, options, "token")
        else:
            result = VerifyResult(ok=True)

    if result.ok:
        return _grant(context)

    special = options.special_change
    if special == "*":
        return _grant(context, authenticated=False)
    if special and context.method in WRITE_METHODS:
        scrub_payload(context.data, [special] if isinstance(special, str) else special)
        return _grant(context, authenticated=False)

    passed = False
    if options.login_pass:
        try:
            passed = await login_pass_fallback(context, options)
        except HTTPException as exc:
            result = _storage_failure(context, options, exc, "login_pass")
    if passed:
        if options.log:
            logger.info("ucan.verify", extra={"extra": {"stage": "login_pass", "ok": True, **context.describe()}})
        return _grant(context)

    reduced = _split_namespace(reqs)
    if reduced is not None:
        result = await _verify_stage(reduced, context, options, "split_namespace")
        if options.log:
            logger.info(
                "ucan.verify",
                extra={"extra": {"stage": "split_namespace", **context.describe(), **result.summary()}},
            )
        if result.ok:
            return _grant(context)

    return await _deny(context, options, result)


def ucan_auth(required: Any = None, options: Optional[UcanAuthOptions] = None) -> Hook:
    """Return the authorization hook for ``required`` (specs, ``ANY_AUTH`` or ``NO_THROW``)."""
    requirement = as_requirement(required)
    options = options or UcanAuthOptions()

    async def _hook(context: HookContext) -> HookContext:
        has_login = bool(context.login)

        if isinstance(requirement, NoThrow):
            if has_login:
                context.params.authenticated = True
                return context
            return await no_throw_auth(context)

        if not has_login:
            presented = context.lookup(context.config.client_ucan)
            if not presented and (_admin_pass(context, options) or options.special_chain):
                context = await no_throw_auth(context)
            else:
                context = await bare_auth(context)

        if isinstance(requirement, AnyAuth) and not options.special_change:
            if context.login:
                context.params.authenticated = True
            return context

        if _admin_pass(context, options):
            return context

        if requirement is None:
            return context

        return await _check_ucan(context, requirement, options)

    return _hook


def all_ucan_auth(methods: Mapping[str, Any], options: Optional[UcanAuthOptions] = None) -> Hook:
    """Per-method requirements (``{"all": ..., "get": ..., "patch": ...}``) for a whole service."""
    hooks = {name: ucan_auth(spec, options) for name, spec in methods.items() if spec is not None}

    async def _hook(context: HookContext) -> HookContext:
        attach_connection_entity(context)
        if context.type != "before":
            return context
        hook = hooks.get(context.method) or hooks.get("all")
        if hook is None:
            return context
        return await hook(context)

    return _hook
