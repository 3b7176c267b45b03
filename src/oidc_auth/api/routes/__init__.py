"""API route modules.

Route organization:
- oidc_auth: OIDC login and trust policy administration
"""

from . import oidc_auth

__all__ = ["oidc_auth"]
