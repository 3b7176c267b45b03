"""OIDC auth API endpoints.

Login exchanges a federated token for an access token. The identity routes
manage the trust policy of one identity and require a bearer access token
issued by this service.

Routes mounted at: /api/v1/auth/oidc-auth
"""

from __future__ import annotations

__all__ = ["router"]

from fastapi import APIRouter

from oidc_auth.api.deps import ActorDep, ContainerDep
from oidc_auth.api.errors import to_api_error
from oidc_auth.api.schemas import (
    AttachOidcAuthRequest,
    IdentityOidcAuthResponse,
    LoginRequest,
    LoginResponse,
    OidcAuthResponse,
    UpdateOidcAuthRequest,
)
from oidc_auth.exceptions import OIDCAuthError
from oidc_auth.models import AttachOidcAuthInput, OidcAuthView, UpdateOidcAuthInput

router = APIRouter()


def _envelope(view: OidcAuthView) -> OidcAuthResponse:
    return OidcAuthResponse(identity_oidc_auth=IdentityOidcAuthResponse.from_view(view))


@router.post("/login")
async def login(body: LoginRequest, container: ContainerDep) -> LoginResponse:
    """Log in with a federated OIDC token.

    Raises:
        APIError: 401 AUTH_ACCESS_DENIED for any rejected token, 404 when the
            identity has no OIDC configuration, 502 when the issuer cannot be
            reached.
    """
    try:
        result = await container.login_service.login(body.identity_id, body.jwt)
    except OIDCAuthError as e:
        raise to_api_error(e) from e

    return LoginResponse(
        access_token=result.access_token,
        expires_in=result.policy.access_token_ttl,
        access_token_max_ttl=result.policy.access_token_max_ttl,
    )


@router.post("/identities/{identity_id}")
async def attach_oidc_auth(
    identity_id: str,
    body: AttachOidcAuthRequest,
    actor: ActorDep,
    container: ContainerDep,
) -> OidcAuthResponse:
    """Attach OIDC auth to an identity."""
    data = AttachOidcAuthInput(
        identity_id=identity_id,
        oidc_discovery_url=body.oidc_discovery_url,
        ca_cert=body.ca_cert,
        bound_issuer=body.bound_issuer,
        bound_subject=body.bound_subject,
        bound_audiences=body.bound_audiences,
        bound_claims=body.bound_claims,
        access_token_ttl=body.access_token_ttl,
        access_token_max_ttl=body.access_token_max_ttl,
        access_token_num_uses_limit=body.access_token_num_uses_limit,
        access_token_trusted_ips=[entry.ip_address for entry in body.access_token_trusted_ips],
    )
    try:
        view = await container.admin_service.attach(actor, data)
    except OIDCAuthError as e:
        raise to_api_error(e) from e
    return _envelope(view)


@router.patch("/identities/{identity_id}")
async def update_oidc_auth(
    identity_id: str,
    body: UpdateOidcAuthRequest,
    actor: ActorDep,
    container: ContainerDep,
) -> OidcAuthResponse:
    """Update an identity's OIDC auth. Omitted fields are left unchanged."""
    changes = body.model_dump(exclude_unset=True, exclude={"access_token_trusted_ips"})
    if body.access_token_trusted_ips is not None:
        changes["access_token_trusted_ips"] = [entry.ip_address for entry in body.access_token_trusted_ips]
    data = UpdateOidcAuthInput(identity_id=identity_id, **changes)
    try:
        view = await container.admin_service.update(actor, data)
    except OIDCAuthError as e:
        raise to_api_error(e) from e
    return _envelope(view)


@router.get("/identities/{identity_id}")
async def get_oidc_auth(identity_id: str, actor: ActorDep, container: ContainerDep) -> OidcAuthResponse:
    """Get an identity's OIDC auth with its CA certificate decrypted."""
    try:
        view = await container.admin_service.get(actor, identity_id)
    except OIDCAuthError as e:
        raise to_api_error(e) from e
    return _envelope(view)


@router.delete("/identities/{identity_id}")
async def revoke_oidc_auth(identity_id: str, actor: ActorDep, container: ContainerDep) -> OidcAuthResponse:
    """Revoke an identity's OIDC auth and every access token it issued."""
    try:
        view = await container.admin_service.revoke(actor, identity_id)
    except OIDCAuthError as e:
        raise to_api_error(e) from e
    return _envelope(view)
