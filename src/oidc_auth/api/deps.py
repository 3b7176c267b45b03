"""Shared dependencies for API routes.

FastAPI convention: deps.py contains reusable request dependencies.
All route files should import dependencies from here rather than
defining their own helper functions.

Usage with Annotated:
    from oidc_auth.api.deps import ActorDep, ContainerDep

    @router.get("/identities/{identity_id}")
    async def get_oidc_auth(identity_id: str, actor: ActorDep, container: ContainerDep):
        ...
"""

from __future__ import annotations

__all__ = [
    "get_actor",
    "get_container",
    "ActorDep",
    "ContainerDep",
]

from typing import Annotated

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from oidc_auth.api.errors import APIError, ErrorCode, to_api_error
from oidc_auth.auth.access_token import decode_access_token
from oidc_auth.container import ServiceContainer
from oidc_auth.exceptions import AccessDeniedError
from oidc_auth.models import Actor, ActorType

_bearer = HTTPBearer(auto_error=False)


def get_container(request: Request) -> ServiceContainer:
    """Get the ServiceContainer from app.state.

    Raises:
        HTTPException: 503 if the services are not wired.
    """
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=503, detail="Services not available. Server may still be starting.")
    return container


ContainerDep = Annotated[ServiceContainer, Depends(get_container)]


async def get_actor(
    container: ContainerDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)],
) -> Actor:
    """Resolve the calling identity from its access token.

    The token must have been issued by this service, must not be expired, and
    its bookkeeping row must still exist and not be revoked.

    Raises:
        APIError: 401 AUTH_REQUIRED without a bearer token, 401
            AUTH_ACCESS_DENIED for any token that does not check out.
    """
    if credentials is None:
        raise APIError(status_code=401, code=ErrorCode.AUTH_REQUIRED, message="Missing bearer token")

    store = container.store
    try:
        claims = decode_access_token(credentials.credentials, container.config.auth_secret)
        record = await store.access_tokens.find_one(id=claims.identity_access_token_id)
        if record is None or record.is_access_token_revoked or record.identity_id != claims.identity_id:
            raise AccessDeniedError("Access token revoked")
        membership = await store.memberships.find_one(identity_id=claims.identity_id)
        if membership is None:
            raise AccessDeniedError("Access token identity has no organization membership")
    except AccessDeniedError as e:
        raise to_api_error(e) from e

    return Actor(
        actor_type=ActorType.IDENTITY,
        actor_id=claims.identity_id,
        auth_method=record.auth_method,
        org_id=membership.org_id,
    )


ActorDep = Annotated[Actor, Depends(get_actor)]
