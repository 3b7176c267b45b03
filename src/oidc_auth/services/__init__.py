"""Login and administration services for OIDC workload identity."""

from oidc_auth.services.admin import OidcAuthAdminService
from oidc_auth.services.login import OidcLoginService

__all__ = [
    "OidcAuthAdminService",
    "OidcLoginService",
]
