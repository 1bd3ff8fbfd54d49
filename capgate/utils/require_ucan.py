from __future__ import annotations

"""FastAPI dependency factory that runs the UCAN authorization hook.

Usage:

    from capgate.utils.require_ucan import require_ucan

    @router.patch("/v1/notes/{id}")
    async def patch_note(context: HookContext = Depends(require_ucan([("notes", "write")], service="notes"))):
        ...  # context.data holds the (possibly narrowed) payload

The dependency returns the transformed ``HookContext``.
"""

from typing import Any, Optional

from fastapi import Depends, Request

from capgate.models import HookContext, HookParams, UcanAuthOptions
from capgate.settings import AuthConfig
from capgate.utils.core import Services
from capgate.utils.dependencies import get_auth_config, get_authority, get_supabase_async
from capgate.utils.keys import AuthorityContext
from capgate.utils.strategy import parse_authorization
from capgate.utils.ucan_auth import ucan_auth

AUDIENCE_HEADER = "X-Ucan-Aud"

_BODY_METHODS = {"POST", "PUT", "PATCH"}


def _operation(http_method: str, record_id: Any) -> str:
    if http_method == "GET":
        return "get" if record_id is not None else "find"
    return {"POST": "create", "PUT": "update", "PATCH": "patch", "DELETE": "remove"}.get(http_method, "find")


def require_ucan(  # noqa: D401 – factory function
    required: Any = None,
    options: Optional[UcanAuthOptions] = None,
    *,
    service: str,
    method: Optional[str] = None,
    id_param: str = "id",
):
    """Return a FastAPI dependency guarding the route with ``ucan_auth``."""

    hook = ucan_auth(required, options)

    async def _checker(
        request: Request,
        supabase=Depends(get_supabase_async),
        config: AuthConfig = Depends(get_auth_config),
        authority: AuthorityContext = Depends(get_authority),
    ) -> HookContext:
        record_id = request.path_params.get(id_param)

        data = None
        if request.method in _BODY_METHODS:
            try:
                data = await request.json()
            except ValueError:
                data = None

        context = HookContext(
            method=method or _operation(request.method, record_id),
            path=service,
            config=config,
            authority=authority,
            services=Services(supabase, id_field=config.entity_id_field),
            id=record_id,
            data=data,
            params=HookParams(provider="rest"),
        )

        token = parse_authorization(request.headers.get(config.header), config)
        if token:
            context.assign(config.client_ucan, token)
        audience = request.headers.get(AUDIENCE_HEADER)
        if audience:
            context.assign(config.ucan_aud, audience)

        context = await hook(context)
        request.state.login = context.login  # type: ignore[attr-defined]
        return context

    return _checker
