"""Shared fixtures.

FakeIssuer plays the token issuer: it serves a discovery document and a key
set through httpx.MockTransport and mints RS256 tokens with its private key.
Records are seeded by writing straight into the InMemoryStore tables so
fixtures stay synchronous.
"""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import jwt
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID
from jwt.algorithms import RSAAlgorithm

from oidc_auth.auth.access_token import AccessTokenIssuer
from oidc_auth.auth.key_resolver import SigningKeyResolver
from oidc_auth.auth.token_verifier import TokenVerifier
from oidc_auth.config import AppConfig
from oidc_auth.models import AuthMethod, IdentityMembership, Plan
from oidc_auth.permissions import StaticLicenseService, StaticPermissionService
from oidc_auth.security.vault import TrustMaterialVault
from oidc_auth.services.admin import OidcAuthAdminService
from oidc_auth.services.login import OidcLoginService
from oidc_auth.store import InMemoryStore
from oidc_auth.telemetry.auth_logger import AuthLogger

ROOT_KEY = bytes(range(32))
ROOT_KEY_B64 = base64.b64encode(ROOT_KEY).decode("ascii")
AUTH_SECRET = "test-signing-secret-0123456789abcdef"

ISSUER = "https://idp.example"
ORG_ID = "org-1"
IDENTITY_ID = "identity-1"
ADMIN_USER_ID = "admin-user"
MEMBER_USER_ID = "member-user"


# ============================================================================
# Fake token issuer
# ============================================================================


class FakeIssuer:
    """Discovery document, JWKS endpoint and token minting for one issuer."""

    def __init__(self, base_url: str = ISSUER, kid: str = "key-1") -> None:
        self.base_url = base_url
        self.kid = kid
        self.private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        self.requests: list[str] = []
        self.status_code = 200
        self.discovery_override: Any = None
        self.extra_keys: list[dict[str, Any]] = []

    @property
    def jwks_uri(self) -> str:
        return f"{self.base_url}/jwks"

    def public_jwk(self) -> dict[str, Any]:
        jwk = json.loads(RSAAlgorithm.to_jwk(self.private_key.public_key()))
        jwk.update({"kid": self.kid, "use": "sig", "alg": "RS256"})
        return jwk

    def rotate(self, kid: str) -> None:
        """Replace the signing key with a new one under a new kid."""
        self.kid = kid
        self.private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request.url.path)
        if self.status_code != 200:
            return httpx.Response(self.status_code, text="unavailable")
        if request.url.path == "/.well-known/openid-configuration":
            document = self.discovery_override
            if document is None:
                document = {"issuer": self.base_url, "jwks_uri": self.jwks_uri}
            return httpx.Response(200, json=document)
        if request.url.path == "/jwks":
            return httpx.Response(200, json={"keys": [self.public_jwk(), *self.extra_keys]})
        return httpx.Response(404)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def mint(
        self,
        *,
        issuer: str | None = None,
        subject: str = "system:serviceaccount:ci:deployer",
        audience: str | list[str] | None = "svc-a",
        expires_in: int = 3600,
        headers: dict[str, Any] | None = None,
        **extra_claims: Any,
    ) -> str:
        now = datetime.now(timezone.utc)
        payload: dict[str, Any] = {
            "iss": issuer or self.base_url,
            "sub": subject,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=expires_in)).timestamp()),
            **extra_claims,
        }
        if audience is not None:
            payload["aud"] = audience
        return jwt.encode(
            payload,
            self.private_key,
            algorithm="RS256",
            headers={"kid": self.kid, **(headers or {})},
        )


def make_ca_pem(common_name: str = "Test Root CA") -> str:
    """Self-signed CA certificate in PEM form."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def fake_issuer() -> FakeIssuer:
    """Issuer at https://idp.example with one RSA signing key."""
    return FakeIssuer()


@pytest.fixture
def ca_pem() -> str:
    return make_ca_pem()


@pytest.fixture
def app_config(tmp_path) -> AppConfig:
    """Minimal valid configuration."""
    return AppConfig(auth_secret=AUTH_SECRET, root_encryption_key=ROOT_KEY_B64)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def vault() -> TrustMaterialVault:
    return TrustMaterialVault(ROOT_KEY)


@pytest.fixture
def seed_membership(store: InMemoryStore) -> Callable[..., IdentityMembership]:
    """Factory writing an IdentityMembership row directly into the store."""

    def _seed(
        identity_id: str = IDENTITY_ID,
        *,
        org_id: str = ORG_ID,
        role: str = "member",
        auth_methods: list[AuthMethod] | None = None,
    ) -> IdentityMembership:
        membership = IdentityMembership(
            identity_id=identity_id,
            org_id=org_id,
            role=role,
            auth_methods=auth_methods or [],
        )
        store.memberships.rows[membership.id] = membership
        return membership

    return _seed


@pytest.fixture
def audit_logger() -> AuthLogger:
    """Auth logger on a propagating logger so caplog sees its records."""
    logger = logging.getLogger("tests.audit.auth")
    logger.setLevel(logging.INFO)
    return AuthLogger(logger)


@pytest.fixture
def resolver(fake_issuer: FakeIssuer) -> SigningKeyResolver:
    return SigningKeyResolver(timeout_seconds=5, transport=fake_issuer.transport())


@pytest.fixture
def token_issuer(store: InMemoryStore) -> AccessTokenIssuer:
    return AccessTokenIssuer(store, AUTH_SECRET)


@pytest.fixture
def login_service(
    store: InMemoryStore,
    vault: TrustMaterialVault,
    resolver: SigningKeyResolver,
    token_issuer: AccessTokenIssuer,
    audit_logger: AuthLogger,
) -> OidcLoginService:
    return OidcLoginService(store, vault, resolver, TokenVerifier(), token_issuer, audit_logger)


@pytest.fixture
def plans() -> dict[str, Plan]:
    """Plan table; tests flip ip_allowlisting by mutating it."""
    return {}


@pytest.fixture
def admin_service(
    store: InMemoryStore,
    vault: TrustMaterialVault,
    plans: dict[str, Plan],
    audit_logger: AuthLogger,
) -> OidcAuthAdminService:
    permission_service = StaticPermissionService(
        store,
        user_roles={
            (ORG_ID, ADMIN_USER_ID): "admin",
            (ORG_ID, MEMBER_USER_ID): "member",
        },
    )
    return OidcAuthAdminService(
        store,
        vault,
        permission_service,
        StaticLicenseService(plans),
        audit_logger,
    )
