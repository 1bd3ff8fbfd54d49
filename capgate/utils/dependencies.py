"""FastAPI dependency providers for external clients and process-wide state."""

from __future__ import annotations

import asyncio
from functools import lru_cache
from typing import AsyncGenerator

# Real client factory
from supabase import acreate_client
from supabase import AsyncClient
from capgate import SUPABASE_URL, SUPABASE_KEY, UCAN_SECRET
from capgate.settings import AuthConfig, load_auth_config
from capgate.utils.keys import AuthorityContext


_cached_client: AsyncClient | None = None
_cached_loop: asyncio.AbstractEventLoop | None = None


async def _get_cached_client() -> AsyncClient:
    """Return a cached Supabase async client tied to the current event loop.

    In serverless environments each invocation may run on a fresh event loop
    even when the Python process is reused; a client created on another loop
    raises ``RuntimeError('Event loop is closed')`` on its next request, so the
    cache is per-loop rather than per-process.
    """

    global _cached_client, _cached_loop

    current_loop = asyncio.get_running_loop()

    if (
        _cached_client is None
        or _cached_loop is None
        or _cached_loop is not current_loop
        or _cached_loop.is_closed()
    ):
        _cached_client = await acreate_client(SUPABASE_URL, SUPABASE_KEY)  # type: ignore[arg-type]
        _cached_loop = current_loop

    return _cached_client


async def get_supabase_async() -> AsyncGenerator[AsyncClient, None]:
    """FastAPI dependency yielding the Supabase client.

    Tests that set ``SUPABASE_URL`` to a special ``https://test.`` endpoint
    receive the in-memory stub client instead.
    """

    if SUPABASE_URL and SUPABASE_URL.startswith("https://test."):
        from importlib import import_module

        try:
            SupabaseStub = getattr(import_module("tests.supabase_stub"), "SupabaseStub")  # type: ignore[assignment]
        except ModuleNotFoundError as exc:  # pragma: no cover – production safety guard
            raise RuntimeError(
                "Supabase test stub not found – ensure tests package contains supabase_stub.py"
            ) from exc

        client: AsyncClient = SupabaseStub()  # type: ignore[assignment]
        yield client
        return

    # Reuse one shared async client (connection pool) across requests
    client = await _get_cached_client()
    yield client


@lru_cache(maxsize=1)
def get_auth_config() -> AuthConfig:
    return load_auth_config()


@lru_cache(maxsize=1)
def get_authority() -> AuthorityContext:
    """The authority key pair, derived once from ``UCAN_SECRET``."""
    return AuthorityContext.from_secret(UCAN_SECRET)  # type: ignore[arg-type]
