"""Federated token verification with PyJWT.

Verification order:
1. Parse the header for 'alg' and 'kid'
2. Reject any algorithm outside the asymmetric allow-list ('none' and HS*
   included), and any key whose type cannot produce that algorithm
3. Verify the signature
4. Verify 'iss' equals the bound issuer exactly (case-sensitive)
5. Enforce 'exp' and 'nbf' when present

Audience is not checked here; it is evaluated against the trust policy's
bound audiences by the login flow.
"""

from __future__ import annotations

__all__ = [
    "TokenHeader",
    "TokenVerifier",
]

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

import jwt
from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, rsa
from jwt import PyJWK

from oidc_auth.constants import ALLOWED_SIGNING_ALGORITHMS
from oidc_auth.exceptions import InvalidTokenError, IssuerMismatchError, SignatureMismatchError


@dataclass(frozen=True)
class TokenHeader:
    """Unverified JOSE header fields used to pick the verification key."""

    alg: str
    kid: str | None


def _key_supports(algorithm: str, key: Any) -> bool:
    """Check that a public key type can verify signatures of the algorithm."""
    if algorithm.startswith(("RS", "PS")):
        return isinstance(key, rsa.RSAPublicKey)
    if algorithm.startswith("ES"):
        return isinstance(key, ec.EllipticCurvePublicKey)
    if algorithm == "EdDSA":
        return isinstance(key, (ed25519.Ed25519PublicKey, ed448.Ed448PublicKey))
    return False


class TokenVerifier:
    """Verifies federated OIDC tokens against a resolved public key.

    Usage:
        verifier = TokenVerifier()
        header = verifier.read_header(token)
        claims = verifier.verify(token, signing_key, expected_issuer="https://idp.example")
    """

    def __init__(
        self,
        *,
        allowed_algorithms: Iterable[str] = ALLOWED_SIGNING_ALGORITHMS,
        leeway_seconds: float = 0,
    ) -> None:
        """Initialize the verifier.

        Args:
            allowed_algorithms: Accepted signing algorithms. Symmetric
                algorithms and 'none' are removed even if listed.
            leeway_seconds: Clock skew tolerated on exp/nbf.
        """
        self._allowed = frozenset(alg for alg in allowed_algorithms if alg in ALLOWED_SIGNING_ALGORITHMS)
        self._leeway = leeway_seconds

    @staticmethod
    def read_header(token: str) -> TokenHeader:
        """Decode the header without verifying anything.

        Raises:
            InvalidTokenError: If the token is not a decodable JWT.
        """
        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as e:
            raise InvalidTokenError(f"Invalid JWT: {e}") from e

        alg = header.get("alg")
        if not isinstance(alg, str):
            raise InvalidTokenError("Invalid JWT: header has no algorithm")
        kid = header.get("kid")
        return TokenHeader(alg=alg, kid=kid if isinstance(kid, str) else None)

    def verify(self, token: str, public_key: PyJWK | Any, expected_issuer: str) -> dict[str, Any]:
        """Verify signature, issuer and validity window.

        Args:
            token: Compact-serialized JWT.
            public_key: Key from the signing key resolver (PyJWK) or a
                cryptography public key object.
            expected_issuer: Bound issuer of the trust policy.

        Returns:
            Verified claims.

        Raises:
            InvalidTokenError: Malformed, disallowed algorithm, expired or not yet valid.
            SignatureMismatchError: Signature does not verify with the key.
            IssuerMismatchError: 'iss' missing or not equal to expected_issuer.
        """
        header = self.read_header(token)
        if header.alg not in self._allowed:
            raise InvalidTokenError(f"Signing algorithm '{header.alg}' is not allowed")

        key = public_key.key if isinstance(public_key, PyJWK) else public_key
        if not _key_supports(header.alg, key):
            raise SignatureMismatchError(f"Resolved key cannot verify '{header.alg}' signatures")

        try:
            claims: dict[str, Any] = jwt.decode(
                token,
                key,
                algorithms=[header.alg],
                issuer=expected_issuer,
                leeway=self._leeway,
                options={
                    "require": ["iss"],
                    "verify_signature": True,
                    "verify_exp": True,
                    "verify_nbf": True,
                    "verify_iss": True,
                    "verify_aud": False,
                },
            )
        except jwt.InvalidSignatureError as e:
            raise SignatureMismatchError("Token signature is invalid") from e
        except jwt.InvalidIssuerError as e:
            raise IssuerMismatchError("Token issuer does not match the bound issuer") from e
        except jwt.MissingRequiredClaimError as e:
            if e.claim == "iss":
                raise IssuerMismatchError("Token has no issuer claim") from e
            raise InvalidTokenError(f"Token is missing the '{e.claim}' claim") from e
        except jwt.ExpiredSignatureError as e:
            raise InvalidTokenError("Token has expired") from e
        except jwt.ImmatureSignatureError as e:
            raise InvalidTokenError("Token is not yet valid") from e
        except jwt.PyJWTError as e:
            raise InvalidTokenError(f"Token validation error: {e}") from e

        # Exact string match; a partial match must never pass
        if claims.get("iss") != expected_issuer:
            raise IssuerMismatchError("Token issuer does not match the bound issuer")

        return claims
