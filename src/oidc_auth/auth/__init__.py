"""Federated trust verification: key resolution, token verification, claim policies, access tokens."""

from oidc_auth.auth.access_token import AccessTokenIssuer, decode_access_token
from oidc_auth.auth.claims import evaluate_bound_claims, match_audience, match_claim, match_field
from oidc_auth.auth.key_resolver import SigningKeyResolver
from oidc_auth.auth.policy_values import PolicyValueList
from oidc_auth.auth.token_verifier import TokenHeader, TokenVerifier

__all__ = [
    # Claim policies
    "PolicyValueList",
    "evaluate_bound_claims",
    "match_audience",
    "match_claim",
    "match_field",
    # Signing keys and verification
    "SigningKeyResolver",
    "TokenHeader",
    "TokenVerifier",
    # Access tokens
    "AccessTokenIssuer",
    "decode_access_token",
]
