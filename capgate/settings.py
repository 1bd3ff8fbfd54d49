from __future__ import annotations

"""Application-level configuration helpers (env → constants).

Only generic utilities that may be imported *anywhere* in the code-base
should live in this module.  Avoid importing heavy libraries to keep the
import cost near-zero even in cold-start environments (e.g. serverless).
"""

# Standard library
import os
from dataclasses import dataclass

__all__ = ["ALLOWED_ORIGINS", "AuthConfig", "ConfigurationError", "load_auth_config", "verify_configuration"]


class ConfigurationError(RuntimeError):
    """Missing or invalid authentication configuration."""


@dataclass(frozen=True)
class AuthConfig:
    """The ``authentication`` configuration block shared by every hook.

    Locations such as ``client_ucan`` and ``ucan_aud`` are dotted paths into
    the request params; a leading ``core_path`` segment addresses the core bag.
    """

    entity: str = "login"
    service: str = "logins"
    entity_did_field: str = "did"
    entity_id_field: str = "id"
    core_path: str = "core"
    client_ucan: str = "authentication.accessToken"
    ucan_aud: str = "core.ucan_aud"
    ucan_path: str = "ucan"
    default_scheme: str = "svc"
    default_hier_part: str = "*"
    caps_service: str = "caps"
    exists_path: str = "_exists"
    header: str = "Authorization"
    schemes: tuple[str, ...] = ("Bearer", "JWT")
    token_lifetime_seconds: int = 60 * 60 * 24 * 60


def _collect_origins() -> list[str]:
    """Collect allowed CORS origins from the environment.

    Falls back to the local dev-server when no explicit env vars are set.
    """
    origins: list[str] = []
    for name in ("FRONTEND_ORIGIN", "DOCS_ORIGIN", "EXTRA_ORIGIN"):
        if (val := os.getenv(name)):
            origins.append(val)

    if not origins:
        origins.append("http://localhost:5173")
    return origins


def verify_configuration(config: AuthConfig) -> AuthConfig:
    if not isinstance(config.header, str) or not config.header:
        raise ConfigurationError("The 'header' option for the ucan strategy must be a string")
    if not config.schemes or not all(isinstance(s, str) and s for s in config.schemes):
        raise ConfigurationError("The 'schemes' option for the ucan strategy must list at least one scheme")
    if not config.entity or not config.service:
        raise ConfigurationError("Both 'entity' and 'service' must be configured")
    return config


def load_auth_config() -> AuthConfig:
    """Build the authentication block from ``UCAN_*`` environment variables."""
    defaults = AuthConfig()
    schemes = os.getenv("UCAN_SCHEMES")
    config = AuthConfig(
        entity=os.getenv("UCAN_ENTITY", defaults.entity),
        service=os.getenv("UCAN_SERVICE", defaults.service),
        entity_did_field=os.getenv("UCAN_ENTITY_DID_FIELD", defaults.entity_did_field),
        entity_id_field=os.getenv("UCAN_ENTITY_ID_FIELD", defaults.entity_id_field),
        core_path=os.getenv("UCAN_CORE_PATH", defaults.core_path),
        client_ucan=os.getenv("UCAN_CLIENT_PATH", defaults.client_ucan),
        ucan_aud=os.getenv("UCAN_AUD_PATH", defaults.ucan_aud),
        ucan_path=os.getenv("UCAN_PATH", defaults.ucan_path),
        default_scheme=os.getenv("UCAN_DEFAULT_SCHEME", defaults.default_scheme),
        default_hier_part=os.getenv("UCAN_DEFAULT_HIER_PART", defaults.default_hier_part),
        caps_service=os.getenv("UCAN_CAPS_SERVICE", defaults.caps_service),
        header=os.getenv("UCAN_HEADER", defaults.header),
        schemes=tuple(s.strip() for s in schemes.split(",") if s.strip()) if schemes else defaults.schemes,
        token_lifetime_seconds=int(os.getenv("UCAN_LIFETIME_SECONDS", defaults.token_lifetime_seconds)),
    )
    return verify_configuration(config)


ALLOWED_ORIGINS: list[str] = _collect_origins()
