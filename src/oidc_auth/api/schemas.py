"""API schemas (Pydantic models) for request/response validation.

Bodies use camelCase keys. TTL fields keep their upper-case suffix
(accessTokenTTL, accessTokenMaxTTL).
"""

from __future__ import annotations

__all__ = [
    "AttachOidcAuthRequest",
    "IdentityOidcAuthResponse",
    "LoginRequest",
    "LoginResponse",
    "OidcAuthResponse",
    "TrustedIpEntry",
    "UpdateOidcAuthRequest",
]

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from oidc_auth.constants import DEFAULT_ACCESS_TOKEN_MAX_TTL_SECONDS, DEFAULT_ACCESS_TOKEN_TTL_SECONDS
from oidc_auth.models import OidcAuthView, TrustedIp


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Login
# =============================================================================


class LoginRequest(_CamelModel):
    """Login body: the identity to log in as and the federated token."""

    identity_id: str = Field(min_length=1)
    jwt: str = Field(min_length=1)


class LoginResponse(_CamelModel):
    """Issued access token."""

    access_token: str
    expires_in: int
    access_token_max_ttl: int = Field(alias="accessTokenMaxTTL")
    token_type: str = "Bearer"


# =============================================================================
# Administration
# =============================================================================


class TrustedIpEntry(_CamelModel):
    """One trusted IP range as submitted by the client."""

    ip_address: str


def _default_trusted_ips() -> list[TrustedIpEntry]:
    return [TrustedIpEntry(ip_address="0.0.0.0/0"), TrustedIpEntry(ip_address="::/0")]


class AttachOidcAuthRequest(_CamelModel):
    """Attach body."""

    oidc_discovery_url: str = Field(min_length=1)
    ca_cert: str = ""
    bound_issuer: str = Field(min_length=1)
    bound_subject: str = ""
    bound_audiences: str = ""
    bound_claims: dict[str, str] = Field(default_factory=dict)
    access_token_trusted_ips: list[TrustedIpEntry] = Field(default_factory=_default_trusted_ips)
    access_token_ttl: int = Field(default=DEFAULT_ACCESS_TOKEN_TTL_SECONDS, ge=0, alias="accessTokenTTL")
    access_token_max_ttl: int = Field(
        default=DEFAULT_ACCESS_TOKEN_MAX_TTL_SECONDS, ge=0, alias="accessTokenMaxTTL"
    )
    access_token_num_uses_limit: int = Field(default=0, ge=0)


class UpdateOidcAuthRequest(_CamelModel):
    """Update body. Omitted fields are left unchanged."""

    oidc_discovery_url: str | None = None
    ca_cert: str | None = None
    bound_issuer: str | None = None
    bound_subject: str | None = None
    bound_audiences: str | None = None
    bound_claims: dict[str, str] | None = None
    access_token_trusted_ips: list[TrustedIpEntry] | None = None
    access_token_ttl: int | None = Field(default=None, ge=0, alias="accessTokenTTL")
    access_token_max_ttl: int | None = Field(default=None, ge=0, alias="accessTokenMaxTTL")
    access_token_num_uses_limit: int | None = Field(default=None, ge=0)


class IdentityOidcAuthResponse(_CamelModel):
    """Trust policy as returned to administrators."""

    id: str
    identity_id: str
    org_id: str
    oidc_discovery_url: str
    ca_cert: str
    bound_issuer: str
    bound_subject: str
    bound_audiences: str
    bound_claims: dict[str, str]
    access_token_ttl: int = Field(alias="accessTokenTTL")
    access_token_max_ttl: int = Field(alias="accessTokenMaxTTL")
    access_token_num_uses_limit: int
    access_token_trusted_ips: list[TrustedIp]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_view(cls, view: OidcAuthView) -> "IdentityOidcAuthResponse":
        policy = view.policy
        return cls(
            id=policy.id,
            identity_id=policy.identity_id,
            org_id=view.org_id,
            oidc_discovery_url=policy.oidc_discovery_url,
            ca_cert=view.ca_cert,
            bound_issuer=policy.bound_issuer,
            bound_subject=policy.bound_subject,
            bound_audiences=policy.bound_audiences,
            bound_claims=policy.bound_claims,
            access_token_ttl=policy.access_token_ttl,
            access_token_max_ttl=policy.access_token_max_ttl,
            access_token_num_uses_limit=policy.access_token_num_uses_limit,
            access_token_trusted_ips=policy.trusted_ips,
            created_at=policy.created_at,
            updated_at=policy.updated_at,
        )


class OidcAuthResponse(_CamelModel):
    """Envelope for administration responses."""

    identity_oidc_auth: IdentityOidcAuthResponse
