"""UCAN authentication strategy: header parsing, login resolution, reissue."""

from __future__ import annotations

import re
from typing import Any, Optional

from fastapi import HTTPException

from capgate.models import HookContext
from capgate.models.errors import NotAuthenticated
from capgate.settings import AuthConfig
from capgate.utils import tokens
from capgate.utils.logger import logger

SPLIT_HEADER = re.compile(r"(\S+)\s+(\S+)")

_EMPTY_TOKENS = {"", "null", "undefined"}


def parse_authorization(header_value: Optional[str], config: AuthConfig) -> Optional[str]:
    """Return the token carried by an ``Authorization`` header, or None.

    ``Bearer <token>`` and ``JWT <token>`` (any configured scheme, case
    insensitive) and a bare token are accepted; other schemes are ignored.
    """
    if not header_value or not isinstance(header_value, str):
        return None

    match = SPLIT_HEADER.match(header_value.strip())
    scheme, value = match.groups() if match else (None, None)
    has_scheme = bool(scheme) and any(s.lower() == scheme.lower() for s in config.schemes)
    if scheme and not has_scheme:
        return None

    token = (value if has_scheme else header_value).strip()
    if token in _EMPTY_TOKENS:
        return None
    return token


def _presented_token(context: HookContext) -> str:
    auth = context.params.authentication or {}
    token: Any = auth.get("accessToken") or auth.get("ucan") or context.lookup(context.config.client_ucan)
    if token is not None and not isinstance(token, str):
        try:
            token = tokens.token_to_string(token)
        except tokens.TokenError:
            token = None
    return str(token or "").strip()


def _attach_entity(context: HookContext, entity: dict) -> None:
    context.params.entity = entity
    context.params.core[context.config.entity] = entity


def attach_connection_entity(context: HookContext) -> None:
    connection = context.params.connection or {}
    entity = connection.get(context.config.entity)
    if entity and not context.params.core.get(context.config.entity):
        context.params.core[context.config.entity] = entity


async def _find_login(context: HookContext, audience: Any) -> dict:
    config = context.config
    found = await context.services.service(config.service).find({config.entity_did_field: audience}, limit=1)
    if not found["total"]:
        raise NotAuthenticated("Could not find login associated with this ucan")
    return found["data"][0]


async def authenticate(context: HookContext) -> HookContext:
    """Validate the presented token and resolve the login it belongs to."""
    config = context.config
    token = _presented_token(context)
    if token in _EMPTY_TOKENS or token.count(".") != 2:
        raise NotAuthenticated("Invalid or missing UCAN in Authorization header or request payload")

    try:
        decoded = tokens.validate_token(token)
    except tokens.ExpiredTokenError as exc:
        raise NotAuthenticated("Expired Ucan") from exc
    except tokens.TokenError as exc:
        logger.info("auth.invalid", extra={"extra": {"error": str(exc), **context.describe()}})
        raise NotAuthenticated("Unknown Issue Validating Ucan") from exc

    entity = context.params.core.get(config.entity)
    if not entity:
        audience = context.lookup(config.ucan_aud) or decoded.audience
        entity = await _find_login(context, audience)

    _attach_entity(context, entity)
    context.params.authenticated = True
    context.params.authentication = {"strategy": "ucan", "accessToken": token}
    return context


async def bare_auth(context: HookContext) -> HookContext:
    attach_connection_entity(context)
    return await authenticate(context)


async def no_throw_auth(context: HookContext) -> HookContext:
    """Best-effort ``authenticate``: failures are logged, never raised."""
    attach_connection_entity(context)
    try:
        return await authenticate(context)
    except HTTPException as exc:
        logger.info(
            "auth.no_throw",
            extra={"extra": {"status_code": exc.status_code, "detail": exc.detail, **context.describe()}},
        )
        return context


async def reissue_token(context: HookContext, did: str, presented: str) -> tokens.Token:
    """Re-sign an expired token the authority issued to ``did``.

    Only the token currently stored on the login is renewed; capabilities,
    proofs and facts are carried over unchanged.
    """
    config = context.config
    try:
        decoded = tokens.validate_token(presented, check_time=False)
    except tokens.TokenError as exc:
        raise NotAuthenticated("Unknown Issue Validating Ucan") from exc

    if decoded.issuer != context.authority.root_issuer or decoded.audience != did:
        raise NotAuthenticated("Expired Ucan")

    login = await _find_login(context, did)
    if login.get(config.ucan_path) not in (None, presented):
        raise NotAuthenticated("Expired Ucan")

    fresh = tokens.build_token(
        issuer=context.authority.keypair,
        audience=decoded.audience,
        capabilities=decoded.capabilities,
        proofs=decoded.proofs,
        facts=decoded.facts,
        lifetime_seconds=config.token_lifetime_seconds,
    )
    patched = await context.services.service(config.service).patch(
        login[config.entity_id_field], {config.ucan_path: fresh.encoded}
    )
    _attach_entity(context, patched or {**login, config.ucan_path: fresh.encoded})
    context.params.authenticated = True
    context.params.authentication = {"strategy": "ucan", "accessToken": fresh.encoded}
    logger.info("auth.reissue", extra={"extra": {"did": did, "login": context.login_id}})
    return fresh
