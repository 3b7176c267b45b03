"""Tests for the OIDC login flow.

Policies are attached through OidcAuthAdminService so every login runs
against encrypted trust material exactly as stored in production.
"""

from __future__ import annotations

import base64
import logging
from typing import Any

import jwt
import pytest

from oidc_auth.auth.access_token import decode_access_token
from oidc_auth.exceptions import (
    AccessDeniedError,
    CorruptedSecretError,
    IssuerMismatchError,
    NotFoundError,
    SigningKeyNotFoundError,
    TrustEndpointUnreachableError,
)
from oidc_auth.models import Actor, ActorType, AttachOidcAuthInput, AuthMethod
from oidc_auth.services.admin import OidcAuthAdminService
from oidc_auth.services.login import OidcLoginService
from oidc_auth.store import InMemoryStore

ISSUER = "https://idp.example"
SECRET = "test-signing-secret-0123456789abcdef"
ADMIN = Actor(actor_type=ActorType.USER, actor_id="admin-user", org_id="org-1")


@pytest.fixture
def attach(seed_membership, admin_service: OidcAuthAdminService):
    """Seed the identity's membership and attach a policy with the given overrides."""

    async def _attach(**overrides: Any):
        seed_membership()
        data: dict[str, Any] = {
            "identity_id": "identity-1",
            "oidc_discovery_url": ISSUER,
            "bound_issuer": ISSUER,
            "access_token_ttl": 3600,
            "access_token_max_ttl": 7200,
        }
        data.update(overrides)
        return await admin_service.attach(ADMIN, AttachOidcAuthInput(**data))

    return _attach


class TestLoginSucceeds:
    @pytest.mark.asyncio
    async def test_issuer_only_policy(self, attach, fake_issuer, login_service: OidcLoginService) -> None:
        """A correctly signed token from the bound issuer yields an access token with the policy TTL."""
        # Arrange
        await attach()

        # Act
        result = await login_service.login("identity-1", fake_issuer.mint())

        # Assert
        claims = decode_access_token(result.access_token, SECRET)
        assert claims.identity_id == "identity-1"
        assert claims.identity_access_token_id == result.issued_token.id
        assert claims.exp is not None
        assert claims.exp - claims.iat == 3600
        assert result.membership.org_id == "org-1"
        assert result.policy.bound_issuer == ISSUER
        assert result.issued_token.access_token_max_ttl == 7200

    @pytest.mark.asyncio
    async def test_records_issued_token(
        self, attach, fake_issuer, login_service: OidcLoginService, store: InMemoryStore
    ) -> None:
        await attach(access_token_num_uses_limit=3)

        result = await login_service.login("identity-1", fake_issuer.mint())

        tokens = await store.access_tokens.find(identity_id="identity-1")
        assert [t.id for t in tokens] == [result.issued_token.id]
        assert tokens[0].access_token_num_uses == 0
        assert tokens[0].access_token_num_uses_limit == 3
        assert tokens[0].auth_method == AuthMethod.OIDC_AUTH

    @pytest.mark.asyncio
    async def test_zero_ttl_issues_non_expiring_token(
        self, attach, fake_issuer, login_service: OidcLoginService
    ) -> None:
        await attach(access_token_ttl=0, access_token_max_ttl=0)

        result = await login_service.login("identity-1", fake_issuer.mint())

        payload = jwt.decode(result.access_token, SECRET, algorithms=["HS256"])
        assert "exp" not in payload

    @pytest.mark.asyncio
    async def test_custom_ca_certificate(
        self, attach, fake_issuer, login_service: OidcLoginService, ca_pem: str
    ) -> None:
        await attach(ca_cert=ca_pem)

        result = await login_service.login("identity-1", fake_issuer.mint())

        assert result.access_token

    @pytest.mark.asyncio
    async def test_logs_success(
        self, attach, fake_issuer, login_service: OidcLoginService, caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.INFO, logger="tests.audit.auth")
        await attach()

        result = await login_service.login("identity-1", fake_issuer.mint())

        event = caplog.records[-1].msg
        assert event["event_type"] == "login_succeeded"
        assert event["access_token_id"] == result.issued_token.id
        assert event["subject"].startswith("sha256:")


class TestIssuerBinding:
    @pytest.mark.asyncio
    async def test_wrong_issuer_is_denied_and_nothing_issued(
        self, attach, fake_issuer, login_service: OidcLoginService, store: InMemoryStore
    ) -> None:
        # Arrange
        await attach()

        # Act
        with pytest.raises(IssuerMismatchError):
            await login_service.login("identity-1", fake_issuer.mint(issuer="https://evil.example"))

        # Assert
        assert await store.access_tokens.find() == []

    @pytest.mark.asyncio
    async def test_denial_is_logged_with_reason(
        self, attach, fake_issuer, login_service: OidcLoginService, caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.INFO, logger="tests.audit.auth")
        await attach()

        with pytest.raises(AccessDeniedError):
            await login_service.login("identity-1", fake_issuer.mint(issuer="https://evil.example"))

        event = caplog.records[-1].msg
        assert event["event_type"] == "login_denied"
        assert event["error_type"] == "IssuerMismatchError"
        assert event["org_id"] == "org-1"


class TestAudienceBinding:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "audience, allowed",
        [
            (["svc-b"], True),
            ("svc-a", True),
            (["svc-c", "svc-a"], True),
            (["svc-c"], False),
            (None, False),
        ],
    )
    async def test_audience_alternatives(
        self, attach, fake_issuer, login_service: OidcLoginService, audience, allowed: bool
    ) -> None:
        await attach(bound_audiences="svc-a, svc-b")
        token = fake_issuer.mint(audience=audience)

        if allowed:
            assert (await login_service.login("identity-1", token)).access_token
        else:
            with pytest.raises(AccessDeniedError, match="audience not allowed"):
                await login_service.login("identity-1", token)


class TestSubjectAndClaimBinding:
    @pytest.mark.asyncio
    async def test_subject_wildcard(self, attach, fake_issuer, login_service: OidcLoginService) -> None:
        await attach(bound_subject="system:serviceaccount:ci:*")

        ok = await login_service.login("identity-1", fake_issuer.mint(subject="system:serviceaccount:ci:builder"))
        assert ok.access_token

        with pytest.raises(AccessDeniedError, match="subject not allowed"):
            await login_service.login("identity-1", fake_issuer.mint(subject="system:serviceaccount:prod:builder"))

    @pytest.mark.asyncio
    async def test_bound_claims_are_conjunctive(
        self, attach, fake_issuer, login_service: OidcLoginService
    ) -> None:
        # Arrange
        await attach(bound_claims={"repository": "org/*", "ref": "refs/heads/main, refs/heads/release"})

        # Act
        ok = await login_service.login(
            "identity-1", fake_issuer.mint(repository="org/app", ref="refs/heads/release")
        )

        # Assert
        assert ok.access_token
        with pytest.raises(AccessDeniedError, match="claim not allowed: ref"):
            await login_service.login("identity-1", fake_issuer.mint(repository="org/app", ref="refs/heads/dev"))
        with pytest.raises(AccessDeniedError, match="claim not allowed: repository"):
            await login_service.login("identity-1", fake_issuer.mint(ref="refs/heads/main"))

    @pytest.mark.asyncio
    async def test_list_valued_claim(self, attach, fake_issuer, login_service: OidcLoginService) -> None:
        await attach(bound_claims={"groups": "deployers"})

        result = await login_service.login("identity-1", fake_issuer.mint(groups=["readers", "deployers"]))

        assert result.access_token


class TestLoginFailures:
    @pytest.mark.asyncio
    async def test_no_policy_is_not_found(self, fake_issuer, login_service: OidcLoginService) -> None:
        with pytest.raises(NotFoundError, match="did you configure OIDC auth"):
            await login_service.login("identity-1", fake_issuer.mint())

    @pytest.mark.asyncio
    async def test_missing_membership_is_not_found(
        self, attach, fake_issuer, login_service: OidcLoginService, store: InMemoryStore
    ) -> None:
        await attach()
        store.memberships.rows.clear()

        with pytest.raises(NotFoundError, match="membership"):
            await login_service.login("identity-1", fake_issuer.mint())

    @pytest.mark.asyncio
    async def test_missing_key_material_is_org_bot_not_found(
        self, attach, fake_issuer, login_service: OidcLoginService, store: InMemoryStore
    ) -> None:
        await attach()
        store.tenant_keys.rows.clear()

        with pytest.raises(NotFoundError) as exc_info:
            await login_service.login("identity-1", fake_issuer.mint())

        assert exc_info.value.name == "OrgBotNotFound"

    @pytest.mark.asyncio
    async def test_tampered_ca_certificate_is_corrupted(
        self, attach, fake_issuer, login_service: OidcLoginService, store: InMemoryStore, ca_pem: str
    ) -> None:
        # Arrange
        view = await attach(ca_cert=ca_pem)
        policy = store.trust_policies.rows[view.policy.id]
        tag = bytearray(base64.b64decode(policy.ca_cert_tag or ""))
        tag[0] ^= 0x01
        policy.ca_cert_tag = base64.b64encode(bytes(tag)).decode("ascii")

        # Act / Assert
        with pytest.raises(CorruptedSecretError):
            await login_service.login("identity-1", fake_issuer.mint())

    @pytest.mark.asyncio
    async def test_unreachable_issuer(
        self, attach, fake_issuer, login_service: OidcLoginService, caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.INFO, logger="tests.audit.auth")
        await attach()
        fake_issuer.status_code = 503

        with pytest.raises(TrustEndpointUnreachableError):
            await login_service.login("identity-1", fake_issuer.mint())

        assert caplog.records[-1].msg["event_type"] == "login_failed"
        assert "HTTP 503" in caplog.records[-1].msg["reason"]

    @pytest.mark.asyncio
    async def test_unknown_kid(
        self, attach, fake_issuer, login_service: OidcLoginService, caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.INFO, logger="tests.audit.auth")
        await attach()

        with pytest.raises(SigningKeyNotFoundError):
            await login_service.login("identity-1", fake_issuer.mint(headers={"kid": "unknown"}))

        assert caplog.records[-1].msg["event_type"] == "login_failed"
        assert "unknown" in caplog.records[-1].msg["reason"]

    @pytest.mark.asyncio
    async def test_malformed_token(self, attach, login_service: OidcLoginService) -> None:
        await attach()

        with pytest.raises(AccessDeniedError):
            await login_service.login("identity-1", "not-a-jwt")

    @pytest.mark.asyncio
    async def test_expired_token(self, attach, fake_issuer, login_service: OidcLoginService) -> None:
        await attach()

        with pytest.raises(AccessDeniedError):
            await login_service.login("identity-1", fake_issuer.mint(expires_in=-10))
