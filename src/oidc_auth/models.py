"""Domain models for oidc-auth.

Persisted records:
- TrustPolicy: one OIDC trust policy per identity
- TenantKeyMaterial: per-organization key pair and symmetric key ("org bot")
- IssuedAccessToken: bookkeeping row for every access token minted by login
- IdentityMembership: identity's membership in an organization

Request/response shapes used by the services:
- Actor, AttachOidcAuthInput, UpdateOidcAuthInput, OidcAuthView, LoginResult
"""

from __future__ import annotations

__all__ = [
    "ActorType",
    "Actor",
    "AttachOidcAuthInput",
    "AuthMethod",
    "AuthTokenType",
    "IdentityMembership",
    "IpType",
    "IssuedAccessToken",
    "LoginResult",
    "OidcAuthView",
    "Plan",
    "TenantKeyMaterial",
    "TrustPolicy",
    "TrustedIp",
    "UpdateOidcAuthInput",
    "new_id",
    "utc_now",
]

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


def new_id() -> str:
    """Generate a record identifier."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Current time in UTC."""
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================


class AuthMethod(str, Enum):
    """Authentication methods an identity can have attached."""

    OIDC_AUTH = "oidc-auth"
    UNIVERSAL_AUTH = "universal-auth"
    KUBERNETES_AUTH = "kubernetes-auth"


class ActorType(str, Enum):
    """Kinds of principals that can call administration operations."""

    USER = "user"
    IDENTITY = "identity"
    SERVICE = "service"


class AuthTokenType(str, Enum):
    """Type discriminator embedded in tokens signed by this service."""

    IDENTITY_ACCESS_TOKEN = "identityAccessToken"


class IpType(str, Enum):
    IPV4 = "ipv4"
    IPV6 = "ipv6"


# =============================================================================
# Persisted records
# =============================================================================


class TrustedIp(BaseModel):
    """Parsed trusted IP entry as stored on the policy.

    Serialized with camelCase keys: {"ipAddress", "prefix", "type"}.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    ip_address: str
    prefix: int | None = None
    type: IpType


_TRUSTED_IP_LIST = TypeAdapter(list[TrustedIp])


class TrustPolicy(BaseModel):
    """OIDC trust policy attached to one identity.

    An empty bound subject, bound audiences or bound claims means no
    restriction on that field. The CA certificate is stored encrypted under the
    tenant's symmetric key; a missing triplet means the system trust store.
    """

    id: str = Field(default_factory=new_id)
    identity_id: str
    oidc_discovery_url: str
    encrypted_ca_cert: str | None = None
    ca_cert_iv: str | None = None
    ca_cert_tag: str | None = None
    bound_issuer: str
    bound_subject: str = ""
    bound_audiences: str = ""
    bound_claims: dict[str, str] = Field(default_factory=dict)
    access_token_ttl: int = 0
    access_token_max_ttl: int = 0
    access_token_num_uses_limit: int = 0
    access_token_trusted_ips: str = "[]"
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def trusted_ips(self) -> list[TrustedIp]:
        """Trusted IP descriptors parsed from their serialized form."""
        return _TRUSTED_IP_LIST.validate_json(self.access_token_trusted_ips)

    @property
    def has_encrypted_ca_cert(self) -> bool:
        # An encrypted empty certificate has empty ciphertext but a real IV and tag
        return self.encrypted_ca_cert is not None and bool(self.ca_cert_iv and self.ca_cert_tag)

    @staticmethod
    def serialize_trusted_ips(trusted_ips: list[TrustedIp]) -> str:
        return _TRUSTED_IP_LIST.dump_json(trusted_ips, by_alias=True).decode("utf-8")


class TenantKeyMaterial(BaseModel):
    """Per-organization key material.

    The symmetric key is the key-encryption-key for all tenant secrets. It
    and the private key are encrypted under the process root key.
    """

    id: str = Field(default_factory=new_id)
    org_id: str
    name: str
    public_key: str
    encrypted_private_key: str
    private_key_iv: str
    private_key_tag: str
    private_key_algorithm: str
    private_key_key_encoding: str
    encrypted_symmetric_key: str
    symmetric_key_iv: str
    symmetric_key_tag: str
    symmetric_key_algorithm: str
    symmetric_key_key_encoding: str
    created_at: datetime = Field(default_factory=utc_now)


class IssuedAccessToken(BaseModel):
    """Bookkeeping row for an access token minted by login."""

    id: str = Field(default_factory=new_id)
    identity_id: str
    is_access_token_revoked: bool = False
    access_token_ttl: int
    access_token_max_ttl: int
    access_token_num_uses: int = 0
    access_token_num_uses_limit: int
    auth_method: AuthMethod
    created_at: datetime = Field(default_factory=utc_now)


class IdentityMembership(BaseModel):
    """An identity's membership in an organization."""

    id: str = Field(default_factory=new_id)
    identity_id: str
    org_id: str
    role: str
    auth_methods: list[AuthMethod] = Field(default_factory=list)


class Plan(BaseModel):
    """Subset of the organization's plan consulted by this service."""

    ip_allowlisting: bool = False


# =============================================================================
# Service inputs and outputs
# =============================================================================


class Actor(BaseModel):
    """Principal performing an administration operation."""

    actor_type: ActorType
    actor_id: str
    auth_method: AuthMethod | None = None
    org_id: str


class AttachOidcAuthInput(BaseModel):
    """Parameters for attaching an OIDC trust policy to an identity."""

    identity_id: str
    oidc_discovery_url: str
    ca_cert: str = ""
    bound_issuer: str
    bound_subject: str = ""
    bound_audiences: str = ""
    bound_claims: dict[str, str] = Field(default_factory=dict)
    access_token_ttl: int = Field(ge=0)
    access_token_max_ttl: int = Field(ge=0)
    access_token_num_uses_limit: int = Field(default=0, ge=0)
    access_token_trusted_ips: list[str] = Field(default_factory=lambda: ["0.0.0.0/0", "::/0"])


class UpdateOidcAuthInput(BaseModel):
    """Partial update of an OIDC trust policy. None means leave unchanged.

    An explicit empty ca_cert re-encrypts an empty certificate, which
    disables the custom CA.
    """

    identity_id: str
    oidc_discovery_url: str | None = None
    ca_cert: str | None = None
    bound_issuer: str | None = None
    bound_subject: str | None = None
    bound_audiences: str | None = None
    bound_claims: dict[str, str] | None = None
    access_token_ttl: int | None = Field(default=None, ge=0)
    access_token_max_ttl: int | None = Field(default=None, ge=0)
    access_token_num_uses_limit: int | None = Field(default=None, ge=0)
    access_token_trusted_ips: list[str] | None = None


class OidcAuthView(BaseModel):
    """Trust policy together with its organization and decrypted CA certificate."""

    policy: TrustPolicy
    org_id: str
    ca_cert: str = ""


class LoginResult(BaseModel):
    """Outcome of a successful login."""

    access_token: str
    policy: TrustPolicy
    issued_token: IssuedAccessToken
    membership: IdentityMembership
