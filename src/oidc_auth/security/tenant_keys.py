"""Tenant key material lifecycle.

ensure_tenant_key_material is the only place key material is created. It is
idempotent and runs inside a store transaction, so a concurrent attach for
the same organization either sees the committed record or creates it once.
"""

from __future__ import annotations

__all__ = [
    "ORG_BOT_NOT_FOUND",
    "ensure_tenant_key_material",
    "load_tenant_key",
]

from oidc_auth.exceptions import NotFoundError
from oidc_auth.models import TenantKeyMaterial
from oidc_auth.security.vault import TrustMaterialVault
from oidc_auth.store import Store
from oidc_auth.telemetry.system_logger import get_system_logger

ORG_BOT_NOT_FOUND = "OrgBotNotFound"


async def ensure_tenant_key_material(store: Store, vault: TrustMaterialVault, org_id: str) -> TenantKeyMaterial:
    """Return the organization's key material, creating it if absent.

    Args:
        store: Persistence collaborator.
        vault: Vault used to generate and wrap new keys.
        org_id: Organization that owns the key material.

    Returns:
        Existing or newly created TenantKeyMaterial.
    """
    async with store.transaction():
        existing = await store.tenant_keys.find_one(org_id=org_id)
        if existing is not None:
            return existing
        created = await store.tenant_keys.create(vault.create_tenant_key_material(org_id))

    get_system_logger().info(
        {"event": "tenant_key_material_created", "message": f"Created key material for organization {org_id}"}
    )
    return created


async def load_tenant_key(store: Store, vault: TrustMaterialVault, org_id: str) -> bytes:
    """Load the organization's key material and unwrap its symmetric key.

    Raises:
        NotFoundError: Named OrgBotNotFound if the organization has no key material.
        CorruptedSecretError: If the wrapped key fails authentication.
    """
    material = await store.tenant_keys.find_one(org_id=org_id)
    if material is None:
        raise NotFoundError(
            f"Organization bot not found for organization with ID '{org_id}'",
            name=ORG_BOT_NOT_FOUND,
        )
    return vault.unwrap_tenant_key(material)
