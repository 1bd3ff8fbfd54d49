"""Authentication endpoint: exchange a UCAN for an authenticated login."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status

# Rate limiter exported by main.py
from capgate.main import limiter

from capgate.models import (
    AuditAction,
    AuditStatus,
    AuthenticationRequest,
    AuthenticationResponse,
    HookContext,
    HookParams,
)
from capgate.models.errors import NotAuthenticated
from capgate.settings import AuthConfig
from capgate.utils.audit import log_audit_event
from capgate.utils.core import Services
from capgate.utils.dependencies import get_auth_config, get_authority, get_supabase_async
from capgate.utils.keys import AuthorityContext
from capgate.utils.logger import logger
from capgate.utils.strategy import authenticate, parse_authorization, reissue_token

router = APIRouter(prefix="/v1", tags=["authentication"])


@router.post(
    "/authentication",
    response_model=AuthenticationResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("30/minute")
async def create_authentication(
    payload: AuthenticationRequest,
    request: Request,
    response: Response,
    supabase=Depends(get_supabase_async),
    config: AuthConfig = Depends(get_auth_config),
    authority: AuthorityContext = Depends(get_authority),
):
    """Authenticate with ``{accessToken}`` or ``{did, ucan}``.

    An expired token the authority issued to ``did`` is re-signed, stored on
    the login and returned in place of the presented one.
    """
    if payload.strategy != "ucan":
        raise NotAuthenticated(f"Unsupported authentication strategy: {payload.strategy}")

    token = payload.access_token or payload.ucan or parse_authorization(request.headers.get(config.header), config)
    if not token:
        raise NotAuthenticated("Missing UCAN access token")

    context = HookContext(
        method="create",
        path="authentication",
        config=config,
        authority=authority,
        services=Services(supabase, id_field=config.entity_id_field),
        params=HookParams(provider="rest", authentication={"strategy": "ucan", "accessToken": token}),
    )
    if payload.did:
        context.assign(config.ucan_aud, payload.did)

    action = AuditAction.auth_success
    try:
        await authenticate(context)
    except NotAuthenticated as exc:
        if exc.detail != "Expired Ucan" or not payload.did:
            logger.info("auth.failure", extra={"extra": {"detail": exc.detail, "did": payload.did}})
            await log_audit_event(
                supabase,
                action=AuditAction.auth_failure,
                actor_id=None,
                status=AuditStatus.failure,
                resource_type=config.service,
                metadata={"detail": exc.detail, "did": payload.did},
            )
            raise
        await reissue_token(context, payload.did, token)
        action = AuditAction.token_reissue

    await log_audit_event(
        supabase,
        action=action,
        actor_id=context.login_id,
        resource_type=config.service,
        resource_id=context.login_id,
    )
    authentication = dict(context.params.authentication or {})
    return AuthenticationResponse(
        access_token=authentication["accessToken"],
        authentication=authentication,
        login=context.login,
    )
