"""Service access for the authorization hooks.

Hooks never talk to Supabase directly; they go through ``CoreCall`` so a
service name (``logins``, ``caps``, ``notes``) maps onto one table and every
failure surfaces as a 503 rather than an opaque 500.
"""

from __future__ import annotations

import inspect
from typing import Any

from fastapi import HTTPException, status

from capgate.models import HookContext
from capgate.utils import database
from capgate.utils.logger import logger


async def _safe_supabase_call(coro, *, detail: str):
    """Await a Supabase call and translate network/database errors into HTTP 503."""
    try:
        return await coro if inspect.isawaitable(coro) else coro  # type: ignore[misc]
    except HTTPException:
        raise
    except Exception as exc:  # pragma: no cover – network/database only
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail) from exc


class CoreCall:
    """Thin get/find/patch facade over one service table."""

    def __init__(self, service: str, supabase: Any, *, id_field: str = "id"):
        self.service = service
        self.supabase = supabase
        self.id_field = id_field

    async def get(self, id: Any, **params: Any) -> dict | None:
        # admin_pass / skip_joins are accepted for call-site parity; a table read has no joins
        row = await _safe_supabase_call(
            database.query_one(self.supabase, self.service, match={self.id_field: id}),
            detail=f"{self.service}_unavailable",
        )
        logger.debug(
            "core.get",
            extra={"extra": {"service": self.service, "id": id, "found": row is not None, **params}},
        )
        return row

    async def find(self, query: dict | None = None, *, limit: int | None = None) -> dict[str, Any]:
        rows = await _safe_supabase_call(
            database.query_many(self.supabase, self.service, match=query or {}, limit=limit),
            detail=f"{self.service}_unavailable",
        )
        return {"data": rows, "total": len(rows)}

    async def patch(self, id: Any, data: dict) -> dict | None:
        rows = await _safe_supabase_call(
            database.update_data(
                self.supabase,
                self.service,
                update_values=data,
                filters={self.id_field: id},
            ),
            detail=f"{self.service}_unavailable",
        )
        return rows[0] if rows else None


class Services:
    """Service registry handed to hooks as ``context.services``."""

    def __init__(self, supabase: Any, *, id_field: str = "id"):
        self.supabase = supabase
        self.id_field = id_field

    def service(self, name: str) -> CoreCall:
        return CoreCall(name, self.supabase, id_field=self.id_field)


async def load_exists(context: HookContext) -> dict | None:
    """Fetch the stored record an id-scoped operation targets, once per context.

    The result (including "not found") is memoized in ``params.exists``.
    """
    if context.id is None:
        return None

    key = f"{context.config.exists_path}:{context.path}"
    if key in context.params.exists:
        return context.params.exists[key]

    record = await context.services.service(context.path).get(context.id, admin_pass=True, skip_joins=True)
    context.params.exists[key] = record
    return record
