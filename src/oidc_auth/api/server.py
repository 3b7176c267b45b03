"""FastAPI server for OIDC login and trust policy administration.

Implements:
- Login (/api/v1/auth/oidc-auth/login): federated token -> access token
- Administration (/api/v1/auth/oidc-auth/identities/{identityId}):
  attach, update, get and revoke an identity's trust policy

Security:
- Administration endpoints require a bearer access token issued by login
- Login responses never reveal which verification check failed

Usage:
    container = build_container(AppConfig.from_env())
    app = create_api_app(container)

    Or via the CLI:
        oidc-auth serve --host 127.0.0.1 --port 8780
"""

from __future__ import annotations

__all__ = ["create_api_app"]

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from oidc_auth import __version__
from oidc_auth.container import ServiceContainer
from oidc_auth.exceptions import OIDCAuthError

from .errors import (
    APIError,
    api_error_handler,
    domain_error_handler,
    http_exception_handler,
    validation_error_handler,
)
from .routes import oidc_auth


def create_api_app(container: ServiceContainer | None = None) -> FastAPI:
    """Create the FastAPI application with all routes.

    Args:
        container: Wired services. Routes answer 503 until one is set on
            app.state.container.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="oidc-auth",
        description="OIDC workload identity login and trust policy administration",
        version=__version__,
        docs_url=None,
        redoc_url=None,
    )

    app.state.container = container

    # Register exception handlers for structured error responses
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(OIDCAuthError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    app.include_router(oidc_auth.router, prefix="/api/v1/auth/oidc-auth", tags=["oidc-auth"])

    return app
