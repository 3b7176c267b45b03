"""Command-line interface for oidc-auth.

Provides commands for running the API server and troubleshooting an issuer's
discovery document and signing keys.
"""

from .main import cli, main

__all__ = ["cli", "main"]
