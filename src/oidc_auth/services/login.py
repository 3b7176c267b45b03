"""OIDC login flow.

Exchanges a federated OIDC token for an access token. Steps run strictly in
order and the first failure aborts:

1. Load the identity's trust policy                    NotFoundError
2. Load the identity's organization membership         NotFoundError
3. Load the organization's key material                NotFoundError (OrgBotNotFound)
4. Unwrap the tenant key, then the CA certificate       CorruptedSecretError
5. Fetch discovery document and key set                TrustEndpointUnreachable / InvalidDiscoveryDocument
6. Decode the token header for 'kid'                   InvalidTokenError
7. Resolve the key, verify signature and issuer        SigningKeyNotFound / AccessDenied variants
8. Bound subject                                       AccessDeniedError
9. Bound audiences                                     AccessDeniedError
10. Bound claims                                       AccessDeniedError
11. Issue the access token (single transaction)
"""

from __future__ import annotations

__all__ = ["OidcLoginService"]

from oidc_auth.auth.access_token import AccessTokenIssuer
from oidc_auth.auth.claims import evaluate_bound_claims, match_audience, match_field
from oidc_auth.auth.key_resolver import SigningKeyResolver
from oidc_auth.auth.policy_values import PolicyValueList
from oidc_auth.auth.token_verifier import TokenVerifier
from oidc_auth.exceptions import AccessDeniedError, NotFoundError, OIDCAuthError
from oidc_auth.models import LoginResult, TrustPolicy
from oidc_auth.security.tenant_keys import load_tenant_key
from oidc_auth.security.vault import TrustMaterialVault
from oidc_auth.store import Store
from oidc_auth.telemetry.auth_logger import AuthLogger


class OidcLoginService:
    """Verifies federated tokens against trust policies and issues access tokens.

    Usage:
        service = OidcLoginService(store, vault, resolver, verifier, issuer, auth_logger)
        result = await service.login(identity_id, oidc_jwt)
        return {"accessToken": result.access_token}
    """

    def __init__(
        self,
        store: Store,
        vault: TrustMaterialVault,
        resolver: SigningKeyResolver,
        verifier: TokenVerifier,
        issuer: AccessTokenIssuer,
        auth_logger: AuthLogger,
    ) -> None:
        self._store = store
        self._vault = vault
        self._resolver = resolver
        self._verifier = verifier
        self._issuer = issuer
        self._auth_logger = auth_logger

    async def login(self, identity_id: str, token: str) -> LoginResult:
        """Log an identity in with a federated OIDC token.

        Args:
            identity_id: Identity the caller claims to be.
            token: OIDC JWT issued by the identity's trusted issuer.

        Returns:
            LoginResult with the signed access token, the policy, the
            bookkeeping row and the membership.

        Raises:
            NotFoundError: Policy, membership or key material missing.
            AccessDeniedError: Token rejected (clients see a uniform message).
            UpstreamIdentityProviderError: Discovery or key set problem.
            CorruptedSecretError: Stored secrets fail authentication.
        """
        org_id: str | None = None
        try:
            policy = await self._store.trust_policies.find_one(identity_id=identity_id)
            if policy is None:
                raise NotFoundError("OIDC auth method not found for identity, did you configure OIDC auth?")

            membership = await self._store.memberships.find_one(identity_id=policy.identity_id)
            if membership is None:
                raise NotFoundError(
                    f"Identity organization membership for identity with ID '{policy.identity_id}' not found"
                )
            org_id = membership.org_id

            ca_cert = await self._load_ca_cert(policy, membership.org_id)

            await self._resolver.get_key_set(policy.oidc_discovery_url, ca_cert)
            header = self._verifier.read_header(token)
            signing_key = await self._resolver.resolve(policy.oidc_discovery_url, header.kid, ca_cert)
            claims = self._verifier.verify(token, signing_key, policy.bound_issuer)

            self._check_bound_constraints(policy, claims)

            access_token, issued = await self._issuer.issue(policy)
        except AccessDeniedError as e:
            self._auth_logger.log_login_denied(identity_id=identity_id, error=e, org_id=org_id)
            raise
        except OIDCAuthError as e:
            self._auth_logger.log_login_failed(identity_id=identity_id, error=e, org_id=org_id)
            raise

        self._auth_logger.log_login_succeeded(
            identity_id=policy.identity_id,
            org_id=membership.org_id,
            subject=claims.get("sub") if isinstance(claims.get("sub"), str) else None,
            issuer=policy.bound_issuer,
            access_token_id=issued.id,
        )
        return LoginResult(access_token=access_token, policy=policy, issued_token=issued, membership=membership)

    async def _load_ca_cert(self, policy: TrustPolicy, org_id: str) -> str | None:
        """Decrypt the policy's CA certificate. None means use the system trust store."""
        tenant_key = await load_tenant_key(self._store, self._vault, org_id)
        if not policy.has_encrypted_ca_cert:
            return None
        ca_cert = self._vault.unwrap_text(
            tenant_key,
            policy.encrypted_ca_cert or "",
            policy.ca_cert_iv or "",
            policy.ca_cert_tag or "",
        )
        return ca_cert or None

    @staticmethod
    def _check_bound_constraints(policy: TrustPolicy, claims: dict) -> None:
        bound_subject = PolicyValueList.parse(policy.bound_subject)
        if bound_subject and not match_field(claims.get("sub"), bound_subject):
            raise AccessDeniedError("OIDC subject not allowed")

        bound_audiences = PolicyValueList.parse(policy.bound_audiences)
        if bound_audiences and not match_audience(claims.get("aud"), bound_audiences):
            raise AccessDeniedError("OIDC audience not allowed")

        if policy.bound_claims:
            failed_claim = evaluate_bound_claims(policy.bound_claims, claims)
            if failed_claim is not None:
                raise AccessDeniedError(f"OIDC claim not allowed: {failed_claim}")
