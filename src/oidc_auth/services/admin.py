"""OIDC trust policy administration.

Attach, update, get and revoke an identity's trust policy. Every operation
first resolves the identity's membership, then checks the actor's
organization permissions:

    attach  create identity
    update  edit identity
    get     read identity
    revoke  edit identity, and the actor must not be less privileged than
            the identity being revoked

Attach lazily creates the organization's key material in the same
transaction that encrypts the CA certificate and writes the policy. Revoke
deletes the policy and every OIDC-issued access token of the identity in one
transaction.
"""

from __future__ import annotations

__all__ = ["OidcAuthAdminService"]

from typing import Any

from cryptography import x509

from oidc_auth.constants import UNRESTRICTED_IP_RANGES
from oidc_auth.exceptions import BadRequestError, NotFoundError, PermissionBoundaryError
from oidc_auth.models import (
    Actor,
    ActorType,
    AttachOidcAuthInput,
    AuthMethod,
    IdentityMembership,
    OidcAuthView,
    TrustedIp,
    TrustPolicy,
    UpdateOidcAuthInput,
)
from oidc_auth.permissions import (
    LicenseService,
    OrgPermissionAction,
    OrgPermissionSubject,
    PermissionService,
    PermissionSet,
    throw_unless_can,
    validate_permission_boundary,
)
from oidc_auth.security.ip import extract_ip_details, is_valid_ip_or_cidr
from oidc_auth.security.tenant_keys import ensure_tenant_key_material, load_tenant_key
from oidc_auth.security.vault import TrustMaterialVault
from oidc_auth.store import Store
from oidc_auth.telemetry.auth_logger import AuthLogger
from oidc_auth.telemetry.events import AdminEvent


def _validate_ttls(access_token_ttl: int, access_token_max_ttl: int) -> None:
    if access_token_max_ttl > 0 and access_token_ttl > access_token_max_ttl:
        raise BadRequestError("Access token TTL cannot be greater than max TTL")


def _validate_ca_cert(ca_cert: str) -> None:
    """Reject a non-empty CA certificate that is not PEM."""
    if not ca_cert:
        return
    try:
        x509.load_pem_x509_certificates(ca_cert.encode("utf-8"))
    except ValueError as e:
        raise BadRequestError("The CA certificate is not a valid PEM certificate") from e


def _validate_discovery_url(url: str) -> None:
    if not url.startswith(("https://", "http://")):
        raise BadRequestError("The OIDC discovery URL must be an http(s) URL")


def _validate_issuer(bound_issuer: str) -> None:
    if not bound_issuer:
        raise BadRequestError("The bound issuer is required")


def _parse_trusted_ips(trusted_ips: list[str], ip_allowlisting: bool) -> list[TrustedIp]:
    """Validate trusted IP entries against syntax and the plan entitlement."""
    parsed = []
    for entry in trusted_ips:
        if not ip_allowlisting and entry not in UNRESTRICTED_IP_RANGES:
            raise BadRequestError(
                "Failed to add IP access range to access token due to plan restriction. "
                "Upgrade plan to add IP access range."
            )
        if not is_valid_ip_or_cidr(entry):
            raise BadRequestError("The IP is not a valid IPv4, IPv6, or CIDR block")
        parsed.append(extract_ip_details(entry))
    return parsed


class OidcAuthAdminService:
    """Manages the lifecycle of identities' OIDC trust policies."""

    def __init__(
        self,
        store: Store,
        vault: TrustMaterialVault,
        permission_service: PermissionService,
        license_service: LicenseService,
        auth_logger: AuthLogger,
    ) -> None:
        self._store = store
        self._vault = vault
        self._permissions = permission_service
        self._licenses = license_service
        self._auth_logger = auth_logger

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _get_membership(self, identity_id: str) -> IdentityMembership:
        membership = await self._store.memberships.find_one(identity_id=identity_id)
        if membership is None:
            raise NotFoundError(f"Failed to find identity with ID {identity_id}")
        return membership

    async def _get_attached_policy(self, membership: IdentityMembership) -> TrustPolicy:
        policy = None
        if AuthMethod.OIDC_AUTH in membership.auth_methods:
            policy = await self._store.trust_policies.find_one(identity_id=membership.identity_id)
        if policy is None:
            raise NotFoundError(f"The identity with ID {membership.identity_id} does not have OIDC auth attached")
        return policy

    async def _actor_permission(self, actor: Actor, org_id: str) -> PermissionSet:
        result = await self._permissions.get_org_permission(
            actor.actor_type, actor.actor_id, org_id, actor.auth_method, actor.org_id
        )
        return result.permission

    def _decrypt_ca_cert(self, policy: TrustPolicy, tenant_key: bytes) -> str:
        if not policy.has_encrypted_ca_cert:
            return ""
        return self._vault.unwrap_text(
            tenant_key,
            policy.encrypted_ca_cert or "",
            policy.ca_cert_iv or "",
            policy.ca_cert_tag or "",
        )

    def _log_change(self, event_type: Any, actor: Actor, identity_id: str, org_id: str, **extra: Any) -> None:
        self._auth_logger.log_admin_change(
            AdminEvent(
                event_type=event_type,
                identity_id=identity_id,
                org_id=org_id,
                actor_type=actor.actor_type.value,
                actor_id=actor.actor_id,
                **extra,
            )
        )

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def attach(self, actor: Actor, data: AttachOidcAuthInput) -> OidcAuthView:
        """Attach a trust policy to an identity that has none.

        Raises:
            NotFoundError: Identity has no membership.
            BadRequestError: Already attached, TTL ordering, invalid IP, plan
                restriction, invalid CA certificate or discovery URL.
            ForbiddenError: Actor cannot create identities.
        """
        membership = await self._get_membership(data.identity_id)
        existing = await self._store.trust_policies.find_one(identity_id=data.identity_id)
        if AuthMethod.OIDC_AUTH in membership.auth_methods or existing is not None:
            raise BadRequestError("Failed to add OIDC Auth to already configured identity")

        _validate_ttls(data.access_token_ttl, data.access_token_max_ttl)

        permission = await self._actor_permission(actor, membership.org_id)
        throw_unless_can(permission, OrgPermissionAction.CREATE, OrgPermissionSubject.IDENTITY)

        _validate_discovery_url(data.oidc_discovery_url)
        _validate_issuer(data.bound_issuer)
        _validate_ca_cert(data.ca_cert)

        plan = await self._licenses.get_plan(membership.org_id)
        trusted_ips = _parse_trusted_ips(data.access_token_trusted_ips, plan.ip_allowlisting)

        async with self._store.transaction():
            material = await ensure_tenant_key_material(self._store, self._vault, membership.org_id)
            tenant_key = self._vault.unwrap_tenant_key(material)
            encrypted = self._vault.wrap(tenant_key, data.ca_cert)

            policy = await self._store.trust_policies.create(
                TrustPolicy(
                    identity_id=membership.identity_id,
                    oidc_discovery_url=data.oidc_discovery_url,
                    encrypted_ca_cert=encrypted.ciphertext,
                    ca_cert_iv=encrypted.iv,
                    ca_cert_tag=encrypted.tag,
                    bound_issuer=data.bound_issuer,
                    bound_subject=data.bound_subject,
                    bound_audiences=data.bound_audiences,
                    bound_claims=data.bound_claims,
                    access_token_ttl=data.access_token_ttl,
                    access_token_max_ttl=data.access_token_max_ttl,
                    access_token_num_uses_limit=data.access_token_num_uses_limit,
                    access_token_trusted_ips=TrustPolicy.serialize_trusted_ips(trusted_ips),
                )
            )
            await self._store.memberships.update_by_id(
                membership.id, {"auth_methods": [*membership.auth_methods, AuthMethod.OIDC_AUTH]}
            )

        self._log_change("oidc_auth_attached", actor, membership.identity_id, membership.org_id)
        return OidcAuthView(policy=policy, org_id=membership.org_id, ca_cert=data.ca_cert)

    async def update(self, actor: Actor, data: UpdateOidcAuthInput) -> OidcAuthView:
        """Partially update an attached trust policy.

        Omitted (None) fields are left unchanged. A supplied ca_cert, even an
        empty one, replaces the stored certificate.

        Raises:
            NotFoundError: No membership, no attached policy, or no key material.
            BadRequestError: TTL ordering, invalid IP, plan restriction, invalid input.
            ForbiddenError: Actor cannot edit identities.
        """
        membership = await self._get_membership(data.identity_id)
        policy = await self._get_attached_policy(membership)

        effective_ttl = data.access_token_ttl if data.access_token_ttl is not None else policy.access_token_ttl
        effective_max_ttl = (
            data.access_token_max_ttl if data.access_token_max_ttl is not None else policy.access_token_max_ttl
        )
        _validate_ttls(effective_ttl, effective_max_ttl)

        permission = await self._actor_permission(actor, membership.org_id)
        throw_unless_can(permission, OrgPermissionAction.EDIT, OrgPermissionSubject.IDENTITY)

        changes: dict[str, Any] = data.model_dump(
            exclude={"identity_id", "ca_cert", "access_token_trusted_ips"},
            exclude_none=True,
        )
        if data.oidc_discovery_url is not None:
            _validate_discovery_url(data.oidc_discovery_url)
        if data.bound_issuer is not None:
            _validate_issuer(data.bound_issuer)

        if data.access_token_trusted_ips is not None:
            plan = await self._licenses.get_plan(membership.org_id)
            trusted_ips = _parse_trusted_ips(data.access_token_trusted_ips, plan.ip_allowlisting)
            changes["access_token_trusted_ips"] = TrustPolicy.serialize_trusted_ips(trusted_ips)

        tenant_key = await load_tenant_key(self._store, self._vault, membership.org_id)

        if data.ca_cert is not None:
            _validate_ca_cert(data.ca_cert)
            encrypted = self._vault.wrap(tenant_key, data.ca_cert)
            changes["encrypted_ca_cert"] = encrypted.ciphertext
            changes["ca_cert_iv"] = encrypted.iv
            changes["ca_cert_tag"] = encrypted.tag

        updated = await self._store.trust_policies.update_by_id(policy.id, changes)

        self._log_change("oidc_auth_updated", actor, membership.identity_id, membership.org_id)
        return OidcAuthView(
            policy=updated,
            org_id=membership.org_id,
            ca_cert=self._decrypt_ca_cert(updated, tenant_key),
        )

    async def get(self, actor: Actor, identity_id: str) -> OidcAuthView:
        """Return the trust policy with its CA certificate decrypted.

        Raises:
            NotFoundError: No membership, no attached policy, or no key material.
            ForbiddenError: Actor cannot read identities.
        """
        membership = await self._get_membership(identity_id)
        policy = await self._get_attached_policy(membership)

        permission = await self._actor_permission(actor, membership.org_id)
        throw_unless_can(permission, OrgPermissionAction.READ, OrgPermissionSubject.IDENTITY)

        tenant_key = await load_tenant_key(self._store, self._vault, membership.org_id)
        return OidcAuthView(
            policy=policy,
            org_id=membership.org_id,
            ca_cert=self._decrypt_ca_cert(policy, tenant_key),
        )

    async def revoke(self, actor: Actor, identity_id: str) -> OidcAuthView:
        """Delete the trust policy and every OIDC access token of the identity.

        Raises:
            NotFoundError: No membership or no attached policy.
            ForbiddenError: Actor cannot edit identities.
            PermissionBoundaryError: Identity holds privileges the actor lacks.
        """
        membership = await self._get_membership(identity_id)
        await self._get_attached_policy(membership)

        permission = await self._actor_permission(actor, membership.org_id)
        throw_unless_can(permission, OrgPermissionAction.EDIT, OrgPermissionSubject.IDENTITY)

        target = await self._permissions.get_org_permission(
            ActorType.IDENTITY, membership.identity_id, membership.org_id, actor.auth_method, actor.org_id
        )
        boundary = validate_permission_boundary(permission, target.permission)
        if not boundary.is_valid:
            raise PermissionBoundaryError(
                "Failed to revoke OIDC auth of identity with more privileged role",
                missing_permissions=boundary.missing_permissions,
            )

        async with self._store.transaction():
            deleted = await self._store.trust_policies.delete(identity_id=identity_id)
            revoked_tokens = await self._store.access_tokens.delete(
                identity_id=identity_id, auth_method=AuthMethod.OIDC_AUTH
            )
            await self._store.memberships.update_by_id(
                membership.id,
                {"auth_methods": [m for m in membership.auth_methods if m != AuthMethod.OIDC_AUTH]},
            )
            if not deleted:
                raise NotFoundError(f"The identity with ID {identity_id} does not have OIDC auth attached")

        self._log_change(
            "oidc_auth_revoked",
            actor,
            membership.identity_id,
            membership.org_id,
            revoked_tokens=len(revoked_tokens),
        )
        return OidcAuthView(policy=deleted[0], org_id=membership.org_id)
