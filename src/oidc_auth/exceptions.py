"""Custom exceptions for oidc-auth.

This module contains all custom exceptions used throughout the package.
The taxonomy is closed: every failure the service reports is one of the
classes below, and each carries only the fields it needs.

Client errors (caller can fix by reconfiguring or retrying with other input):
    - NotFoundError: Policy, membership or tenant key material absent
    - BadRequestError: Invalid TTL ordering, IP syntax, plan restriction, duplicate attach
    - ForbiddenError: Actor lacks the required capability
    - PermissionBoundaryError: Actor is less privileged than the target identity
    - AccessDeniedError: Token or claim policy rejected the login

Upstream identity provider failures:
    - TrustEndpointUnreachableError: Network or TLS failure
    - InvalidDiscoveryDocumentError: Discovery document malformed or has no jwks_uri
    - SigningKeyNotFoundError: No key in the JWKS matches the token's kid

Server-side failures:
    - CorruptedSecretError: Authenticated decryption failed
    - ConfigurationError: Process configuration invalid or incomplete

Usage:
    from oidc_auth.exceptions import AccessDeniedError, NotFoundError
"""

from __future__ import annotations

__all__ = [
    "ACCESS_DENIED_MESSAGE",
    "AccessDeniedError",
    "BadRequestError",
    "ConfigurationError",
    "CorruptedSecretError",
    "ForbiddenError",
    "InvalidDiscoveryDocumentError",
    "InvalidTokenError",
    "IssuerMismatchError",
    "NotFoundError",
    "OIDCAuthError",
    "PermissionBoundaryError",
    "SignatureMismatchError",
    "SigningKeyNotFoundError",
    "TokenVerificationError",
    "TrustEndpointUnreachableError",
    "UPSTREAM_FAILURE_MESSAGE",
    "UpstreamIdentityProviderError",
]

# Message shown to clients for every access-denied variant
ACCESS_DENIED_MESSAGE = "Access denied"

# Message shown to clients when the token issuer's endpoints fail
UPSTREAM_FAILURE_MESSAGE = "Token issuer could not be used to verify the token"


class OIDCAuthError(Exception):
    """Base class for all errors raised by the service.

    Attributes:
        message: Human-readable description.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


# =============================================================================
# Client errors
# =============================================================================


class NotFoundError(OIDCAuthError):
    """A required record does not exist.

    Attributes:
        name: Error name for programmatic handling (e.g., "OrgBotNotFound").
    """

    def __init__(self, message: str, *, name: str = "NotFound") -> None:
        super().__init__(message)
        self.name = name


class BadRequestError(OIDCAuthError):
    """The request is invalid (TTL ordering, IP syntax, plan restriction, duplicate)."""


class ForbiddenError(OIDCAuthError):
    """The actor is not allowed to perform the action.

    Attributes:
        action: Action that was attempted.
        subject: Subject the action targeted.
    """

    def __init__(self, message: str, *, action: str | None = None, subject: str | None = None) -> None:
        super().__init__(message)
        self.action = action
        self.subject = subject


class PermissionBoundaryError(ForbiddenError):
    """The actor tried to act on an identity holding privileges the actor lacks.

    Attributes:
        missing_permissions: Capabilities of the target the actor does not have,
            as "action:subject" strings.
    """

    def __init__(self, message: str, *, missing_permissions: list[str]) -> None:
        super().__init__(message)
        self.missing_permissions = missing_permissions


class AccessDeniedError(OIDCAuthError):
    """Login rejected.

    The reason is kept for internal logging. Clients only ever see
    ACCESS_DENIED_MESSAGE so responses do not reveal which check failed.

    Attributes:
        reason: Internal description of the failed check.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(f"{ACCESS_DENIED_MESSAGE}: {reason}")
        self.reason = reason

    @property
    def public_message(self) -> str:
        """Message safe to return to the client."""
        return ACCESS_DENIED_MESSAGE


class TokenVerificationError(AccessDeniedError):
    """Base for failures while verifying the federated token itself."""


class InvalidTokenError(TokenVerificationError):
    """Token is malformed, uses a disallowed algorithm, or is expired/not yet valid."""


class SignatureMismatchError(TokenVerificationError):
    """Token signature does not verify against the resolved key."""


class IssuerMismatchError(TokenVerificationError):
    """Token issuer claim is missing or differs from the bound issuer."""


# =============================================================================
# Upstream identity provider failures
# =============================================================================


class UpstreamIdentityProviderError(OIDCAuthError):
    """Base for failures talking to the token issuer's endpoints.

    Attributes:
        url: Endpoint involved in the failure, if known.
    """

    def __init__(self, message: str, *, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url

    @property
    def public_message(self) -> str:
        """Message safe to return to the client; url and transport details stay in logs."""
        return UPSTREAM_FAILURE_MESSAGE


class TrustEndpointUnreachableError(UpstreamIdentityProviderError):
    """Discovery or JWKS endpoint could not be reached (network, TLS, HTTP status)."""


class InvalidDiscoveryDocumentError(UpstreamIdentityProviderError):
    """Discovery document or key set is malformed, or jwks_uri is missing."""


class SigningKeyNotFoundError(UpstreamIdentityProviderError):
    """No key in the issuer's key set matches the token's key identifier.

    Attributes:
        kid: Key identifier taken from the token header.
    """

    def __init__(self, message: str, *, kid: str | None, url: str | None = None) -> None:
        super().__init__(message, url=url)
        self.kid = kid


# =============================================================================
# Server-side failures
# =============================================================================


class CorruptedSecretError(OIDCAuthError):
    """Authenticated decryption failed: ciphertext, IV, tag or key is wrong."""


class ConfigurationError(OIDCAuthError):
    """Process configuration is invalid or incomplete.

    Raised when:
    - Required environment variables are missing
    - Config file does not exist or contains invalid JSON
    - Config fails pydantic validation (e.g., root key is not 32 bytes)
    """
