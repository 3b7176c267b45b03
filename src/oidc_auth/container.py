"""Service wiring.

Builds every collaborator of the login and administration services from an
AppConfig. The API server and the CLI both go through build_container().
"""

from __future__ import annotations

__all__ = [
    "ServiceContainer",
    "build_container",
]

from dataclasses import dataclass
from pathlib import Path

import httpx

from oidc_auth.auth.access_token import AccessTokenIssuer
from oidc_auth.auth.key_resolver import SigningKeyResolver
from oidc_auth.auth.token_verifier import TokenVerifier
from oidc_auth.config import AppConfig
from oidc_auth.permissions import (
    LicenseService,
    PermissionService,
    StaticLicenseService,
    StaticPermissionService,
)
from oidc_auth.security.vault import TrustMaterialVault
from oidc_auth.services.admin import OidcAuthAdminService
from oidc_auth.services.login import OidcLoginService
from oidc_auth.store import InMemoryStore, Store
from oidc_auth.telemetry.auth_logger import create_auth_logger
from oidc_auth.telemetry.system_logger import configure_system_logger_file, set_system_log_level


@dataclass
class ServiceContainer:
    """Everything a request handler needs, built once per process."""

    config: AppConfig
    store: Store
    resolver: SigningKeyResolver
    login_service: OidcLoginService
    admin_service: OidcAuthAdminService


def build_container(
    config: AppConfig,
    *,
    store: Store | None = None,
    permission_service: PermissionService | None = None,
    license_service: LicenseService | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ServiceContainer:
    """Wire the services for a configuration.

    Args:
        config: Validated process configuration.
        store: Persistence. Defaults to a fresh InMemoryStore.
        permission_service: Defaults to the role-table StaticPermissionService.
        license_service: Defaults to StaticLicenseService (no IP allow-listing).
        transport: httpx transport for the signing key resolver (tests).

    Returns:
        ServiceContainer ready to be attached to the API app.
    """
    set_system_log_level(config.log_level)

    audit_path = None
    if config.log_dir:
        log_dir = Path(config.log_dir).expanduser()
        configure_system_logger_file(log_dir / "system" / "system.jsonl")
        audit_path = log_dir / "audit" / "auth.jsonl"
    auth_logger = create_auth_logger(audit_path)

    store = store if store is not None else InMemoryStore()
    vault = TrustMaterialVault(config.root_key_bytes)
    resolver = SigningKeyResolver(
        timeout_seconds=config.http_timeout_seconds,
        cache_ttl_seconds=config.jwks_cache_ttl_seconds,
        cache_max_age_seconds=config.jwks_cache_max_age_seconds,
        transport=transport,
    )

    login_service = OidcLoginService(
        store,
        vault,
        resolver,
        TokenVerifier(),
        AccessTokenIssuer(store, config.auth_secret),
        auth_logger,
    )
    admin_service = OidcAuthAdminService(
        store,
        vault,
        permission_service or StaticPermissionService(store),
        license_service or StaticLicenseService(),
        auth_logger,
    )

    return ServiceContainer(
        config=config,
        store=store,
        resolver=resolver,
        login_service=login_service,
        admin_service=admin_service,
    )
