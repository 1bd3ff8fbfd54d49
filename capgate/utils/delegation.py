from __future__ import annotations

"""Delegated-capability grants.

A grant record in the caps service looks like::

    {"subject": "team-1", "did": "did:key:z...",
     "caps": {"editors": {"logins": ["login-7"], "ucan": "<token>"}}}

Logins listed under an entry may act as if they held that entry's token,
with the record's ``did`` as audience.
"""

from typing import Any, Awaitable, Callable, Sequence

from capgate.models import HookContext, VerifyResult
from capgate.utils.logger import logger
from capgate.utils.tokens import TokenError, token_to_string

Verify = Callable[[Any, Any], Awaitable[VerifyResult]]


async def resolve_delegated(
    context: HookContext,
    cap_subjects: Sequence[str],
    verify: Verify,
) -> VerifyResult:
    subjects = list(cap_subjects)
    result = VerifyResult.failure("No delegated capabilities for this login")
    login_id = context.login_id
    if not subjects or login_id is None:
        return result

    found = await context.services.service(context.config.caps_service).find(
        {"subject": ("in", subjects)},
        limit=len(subjects),
    )
    for record in found.get("data") or []:
        for key, grant in (record.get("caps") or {}).items():
            logins = [str(login) for login in (grant or {}).get("logins") or []]
            if str(login_id) not in logins:
                continue
            try:
                token = token_to_string(grant.get("ucan"))
            except TokenError as exc:
                logger.warning(
                    "ucan.delegated.skip",
                    extra={"extra": {"subject": record.get("subject"), "key": key, "error": str(exc)}},
                )
                continue
            result = await verify(token, record.get("did"))
            if result.ok:
                return result
    return result
