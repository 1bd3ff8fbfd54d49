"""Grant / revoke capabilities on a stored subject token.

A caller can only add or remove capabilities it already holds itself. The
subject's token is rebuilt (remove first, then add) and re-signed by the
authority.
"""

from __future__ import annotations

from fastapi import HTTPException, status

from capgate.models import AuditAction, AuditStatus, HookContext, RequiredCapability
from capgate.models.errors import AuthorizationDenied, InputError
from capgate.utils import tokens, verifier
from capgate.utils.audit import log_audit_event
from capgate.utils.capabilities import capability_from_spec
from capgate.utils.logger import logger


def _to_capabilities(specs, config):
    try:
        return [capability_from_spec(spec, config) for spec in specs]
    except ValueError as exc:
        raise InputError(str(exc)) from exc


async def update_ucan(context: HookContext) -> HookContext:
    """``context.data`` carries ``{add, remove, service?, path?}``; ``context.id`` the subject."""
    config = context.config
    data = context.data if isinstance(context.data, dict) else {}
    to_add = _to_capabilities(data.get("add") or [], config)
    to_remove = _to_capabilities(data.get("remove") or [], config)
    if not to_add and not to_remove:
        raise InputError("No capabilities passed to add or remove")

    service = data.get("service") or config.service
    path = data.get("path") or config.ucan_path

    login = context.login or {}
    caller_token = login.get(config.ucan_path) or context.lookup(config.client_ucan)
    audience = context.lookup(config.ucan_aud) or login.get(config.entity_did_field)
    required = [
        RequiredCapability(capability=cap, root_issuer=context.authority.root_issuer)
        for cap in tokens.stack_abilities(to_add + to_remove)
    ]
    check = await verifier.verify_one(caller_token, audience, required)
    if not check.ok:
        logger.info("ucan.update.denied", extra={"extra": {"login": context.login_id, **check.summary()}})
        raise AuthorizationDenied("You don't have sufficient capabilities to grant those capabilities")

    subjects = context.services.service(service)
    subject = await subjects.get(context.id)
    if not subject:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subject not found")

    current = subject.get(path)
    if current:
        try:
            parsed = tokens.parse_token(tokens.token_to_string(current))
        except tokens.TokenError as exc:
            raise InputError(f"Stored token could not be parsed: {exc}") from exc
        subject_audience, held = parsed.audience, parsed.capabilities
        proofs, facts = parsed.proofs, parsed.facts
    else:
        subject_audience, held, proofs, facts = subject.get(config.entity_did_field), [], [], []
        if not subject_audience:
            raise InputError("Subject has no token and no DID to issue one to")

    capabilities = tokens.stack_abilities(tokens.reduce_abilities(to_remove, held) + to_add)
    rebuilt = tokens.build_token(
        issuer=context.authority.keypair,
        audience=subject_audience,
        capabilities=capabilities,
        proofs=proofs,
        facts=facts,
        lifetime_seconds=config.token_lifetime_seconds,
    )
    try:
        tokens.validate_token(rebuilt.encoded)
    except tokens.TokenError as exc:
        raise RuntimeError(f"Rebuilt token failed validation: {exc}") from exc

    patched = await subjects.patch(context.id, {path: rebuilt.encoded})
    context.result = {"raw": rebuilt.to_dict(), "encoded": rebuilt.encoded, "subject": patched}

    logger.info(
        "ucan.update",
        extra={
            "extra": {
                "login": context.login_id,
                "subject": context.id,
                "service": service,
                "added": [str(c) for c in to_add],
                "removed": [str(c) for c in to_remove],
            }
        },
    )
    await log_audit_event(
        context.services.supabase,
        action=AuditAction.ucan_update,
        actor_id=context.login_id,
        status=AuditStatus.success,
        resource_type=service,
        resource_id=context.id,
        metadata={"add": [c.to_dict() for c in to_add], "remove": [c.to_dict() for c in to_remove]},
    )
    return context
