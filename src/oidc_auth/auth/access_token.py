"""Access tokens minted after a successful login.

Each login creates an IssuedAccessToken bookkeeping row (use counter at zero)
and signs an HS256 bearer token carrying the identity ID, the row ID and a
type discriminator. A TTL of zero means the token never expires: the 'exp'
claim is omitted entirely rather than set to zero.
"""

from __future__ import annotations

__all__ = [
    "AccessTokenClaims",
    "AccessTokenIssuer",
    "decode_access_token",
    "sign_access_token",
]

from datetime import datetime, timezone

import jwt
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from oidc_auth.constants import ACCESS_TOKEN_ALGORITHM
from oidc_auth.exceptions import InvalidTokenError
from oidc_auth.models import AuthMethod, AuthTokenType, IssuedAccessToken, TrustPolicy
from oidc_auth.store import Store


class AccessTokenClaims(BaseModel):
    """Claims of an access token signed by this service."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    identity_id: str
    identity_access_token_id: str
    auth_token_type: AuthTokenType
    iat: int
    exp: int | None = None


def sign_access_token(record: IssuedAccessToken, secret: str, now: datetime | None = None) -> str:
    """Sign the bearer token for an IssuedAccessToken row.

    Args:
        record: Bookkeeping row created for this login.
        secret: Process-wide signing secret.
        now: Issue time (defaults to the current time).

    Returns:
        Compact-serialized HS256 JWT.
    """
    issued_at = int((now or datetime.now(timezone.utc)).timestamp())
    payload: dict[str, object] = {
        "identityId": record.identity_id,
        "identityAccessTokenId": record.id,
        "authTokenType": AuthTokenType.IDENTITY_ACCESS_TOKEN.value,
        "iat": issued_at,
    }
    if record.access_token_ttl > 0:
        payload["exp"] = issued_at + record.access_token_ttl
    return jwt.encode(payload, secret, algorithm=ACCESS_TOKEN_ALGORITHM)


def decode_access_token(token: str, secret: str, now: datetime | None = None) -> AccessTokenClaims:
    """Verify an access token signed by this service.

    Args:
        token: Bearer token.
        secret: Process-wide signing secret.
        now: Time to check expiry against (defaults to the current time).

    Returns:
        Parsed claims.

    Raises:
        InvalidTokenError: Bad signature, wrong type, malformed, or expired.
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[ACCESS_TOKEN_ALGORITHM],
            # Expiry is checked below against the injectable clock
            options={"verify_exp": False, "verify_iat": False, "verify_nbf": False},
        )
    except jwt.PyJWTError as e:
        raise InvalidTokenError(f"Invalid access token: {e}") from e

    try:
        claims = AccessTokenClaims.model_validate(payload)
    except ValidationError as e:
        raise InvalidTokenError("Access token has unexpected claims") from e

    current = int((now or datetime.now(timezone.utc)).timestamp())
    if claims.exp is not None and current >= claims.exp:
        raise InvalidTokenError("Access token has expired")
    return claims


class AccessTokenIssuer:
    """Creates the bookkeeping row and signs the bearer token for a login."""

    def __init__(self, store: Store, signing_secret: str) -> None:
        self._store = store
        self._secret = signing_secret

    async def issue(
        self,
        policy: TrustPolicy,
        auth_method: AuthMethod = AuthMethod.OIDC_AUTH,
        now: datetime | None = None,
    ) -> tuple[str, IssuedAccessToken]:
        """Issue an access token under the policy's TTL, max TTL and use limit.

        The row is created in its own transaction; the token is signed only
        after it commits.

        Returns:
            (signed token, created row)
        """
        async with self._store.transaction():
            record = await self._store.access_tokens.create(
                IssuedAccessToken(
                    identity_id=policy.identity_id,
                    is_access_token_revoked=False,
                    access_token_ttl=policy.access_token_ttl,
                    access_token_max_ttl=policy.access_token_max_ttl,
                    access_token_num_uses=0,
                    access_token_num_uses_limit=policy.access_token_num_uses_limit,
                    auth_method=auth_method,
                )
            )
        return sign_access_token(record, self._secret, now), record
