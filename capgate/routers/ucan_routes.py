"""Capability management endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from capgate.models import ANY_AUTH, CapabilityError, HookContext, UcanUpdateRequest, UcanUpdateResponse
from capgate.models.errors import NotAuthenticated
from capgate.utils.require_ucan import require_ucan
from capgate.utils.update_ucan import update_ucan

router = APIRouter(prefix="/v1/ucan", tags=["ucan"])


@router.patch(
    "/{id}",
    response_model=UcanUpdateResponse,
    responses={403: {"model": CapabilityError}},
)
async def patch_capabilities(
    payload: UcanUpdateRequest,
    context: HookContext = Depends(require_ucan(ANY_AUTH, service="logins", method="patch")),
):
    """Add and/or remove capabilities on the subject's stored token.

    The caller must already hold every capability it adds or removes.
    """
    if not context.params.authenticated:
        raise NotAuthenticated("Login required")

    context.data = payload.model_dump(exclude_none=True)
    context = await update_ucan(context)
    return UcanUpdateResponse(**context.result)
