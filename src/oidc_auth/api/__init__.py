"""HTTP API for oidc-auth."""

from oidc_auth.api.server import create_api_app

__all__ = ["create_api_app"]
