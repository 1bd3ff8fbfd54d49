from __future__ import annotations

"""Pytest fixtures for the authorization hooks and the FastAPI app.

Supabase is replaced by the in-memory stub in ``tests/supabase_stub.py``;
tokens are minted for real with the test authority so the whole
verification path runs end-to-end.
"""

import os
import sys
import time
from pathlib import Path
from typing import Any, Iterable

import pytest
from fastapi import FastAPI
from starlette.testclient import TestClient

# ---------------------------------------------------------------------------
# Runtime env for the application
# ---------------------------------------------------------------------------

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test_key")
os.environ.setdefault("UCAN_SECRET", "test-authority-secret")
os.environ.setdefault("FRONTEND_ORIGIN", "https://dashboard.test")

# Ensure project root on PYTHONPATH so `import capgate` works when pytest is run
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Boot the app once
from capgate.main import create_app, limiter  # noqa: E402, WPS433
from capgate.models import Capability, HookContext  # noqa: E402
from capgate.settings import AuthConfig  # noqa: E402
from capgate.utils.core import Services  # noqa: E402
from capgate.utils.dependencies import get_authority  # noqa: E402
from capgate.utils.keys import KeyPair  # noqa: E402
from capgate.utils.tokens import Token, build_token  # noqa: E402
from tests.supabase_stub import SupabaseStub, reset_tables  # noqa: E402

app: FastAPI = create_app()
client = TestClient(app)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture(autouse=True)
def _reset_tables():
    reset_tables()
    yield
    reset_tables()


@pytest.fixture()
def api_client() -> TestClient:  # noqa: D401 – simple alias
    return client


@pytest.fixture()
def authority():
    return get_authority()


@pytest.fixture()
def notes_config() -> AuthConfig:
    """Default resource ``svc:notes`` for ``(namespace, segments)`` specs."""
    return AuthConfig(default_scheme="svc", default_hier_part="notes")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def new_login(login_id: str = "login-1", **extra: Any) -> dict:
    """Login row with a freshly generated DID."""
    return {"id": login_id, "did": KeyPair.generate().did(), **extra}


def caps(*pairs: tuple[str, str]) -> list[Capability]:
    """``caps(("svc:notes", "notes/read"))`` → capabilities."""
    return [Capability.from_dict({"with": w, "can": c}) for w, c in pairs]


def mint(
    audience: str,
    capabilities: Iterable[tuple[str, str]] = (),
    *,
    issuer: KeyPair | None = None,
    lifetime_seconds: int | None = 3600,
    expiration: int | None = None,
    proofs: Iterable[Any] = (),
) -> Token:
    """Token for ``audience`` signed by the test authority unless ``issuer`` is given."""
    return build_token(
        issuer=issuer or get_authority().keypair,
        audience=audience,
        capabilities=caps(*capabilities),
        lifetime_seconds=lifetime_seconds,
        expiration=expiration,
        proofs=list(proofs),
    )


def expired(audience: str, capabilities: Iterable[tuple[str, str]] = ()) -> Token:
    return mint(audience, capabilities, expiration=int(time.time()) - 60)


def make_context(
    method: str = "get",
    path: str = "notes",
    *,
    id: Any = None,
    data: Any = None,
    token: Token | str | None = None,
    audience: str | None = None,
    login: dict | None = None,
    config: AuthConfig | None = None,
    type: str = "before",
) -> HookContext:
    config = config or AuthConfig()
    context = HookContext(
        method=method,
        path=path,
        config=config,
        authority=get_authority(),
        services=Services(SupabaseStub()),
        type=type,
        id=id,
        data=data,
    )
    if token is not None:
        context.assign(config.client_ucan, token.encoded if isinstance(token, Token) else token)
    if audience is not None:
        context.assign(config.ucan_aud, audience)
    if login is not None:
        context.params.core[config.entity] = login
    return context
