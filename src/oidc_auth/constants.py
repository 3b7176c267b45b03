"""Application-wide constants for oidc-auth.

Constants that define application behavior.
For settings configurable per deployment, see config.py.
"""

__all__ = [
    # Application identity
    "APP_NAME",
    # Discovery / JWKS
    "OIDC_DISCOVERY_PATH",
    "DEFAULT_HTTP_TIMEOUT_SECONDS",
    "MIN_HTTP_TIMEOUT_SECONDS",
    "MAX_HTTP_TIMEOUT_SECONDS",
    "JWKS_CACHE_TTL_SECONDS",
    "JWKS_CACHE_MAX_AGE_SECONDS",
    "MAX_DISCOVERY_RESPONSE_BYTES",
    "ALLOWED_SIGNING_ALGORITHMS",
    # Access tokens
    "ACCESS_TOKEN_ALGORITHM",
    "DEFAULT_ACCESS_TOKEN_TTL_SECONDS",
    "DEFAULT_ACCESS_TOKEN_MAX_TTL_SECONDS",
    # Trusted IPs
    "UNRESTRICTED_IP_RANGES",
    # Encryption
    "SYMMETRIC_KEY_BYTES",
    "GCM_IV_BYTES",
    "GCM_TAG_BYTES",
    # Policy language
    "POLICY_VALUE_SEPARATOR",
    # Tenant key material
    "TENANT_BOT_NAME",
    # API server
    "DEFAULT_API_HOST",
    "DEFAULT_API_PORT",
]

APP_NAME = "oidc-auth"

# =============================================================================
# Discovery / JWKS
# =============================================================================

OIDC_DISCOVERY_PATH = "/.well-known/openid-configuration"

DEFAULT_HTTP_TIMEOUT_SECONDS = 10.0
MIN_HTTP_TIMEOUT_SECONDS = 1.0
MAX_HTTP_TIMEOUT_SECONDS = 60.0

# Key sets are refetched after the TTL; a cached set is never used past max age
JWKS_CACHE_TTL_SECONDS = 300
JWKS_CACHE_MAX_AGE_SECONDS = 3600

# Discovery documents and key sets larger than this are rejected
MAX_DISCOVERY_RESPONSE_BYTES = 1024 * 1024

# Asymmetric algorithms only: "none" and HS* are rejected before verification
ALLOWED_SIGNING_ALGORITHMS: frozenset[str] = frozenset(
    {
        "RS256",
        "RS384",
        "RS512",
        "PS256",
        "PS384",
        "PS512",
        "ES256",
        "ES384",
        "ES512",
        "EdDSA",
    }
)

# =============================================================================
# Access tokens
# =============================================================================

ACCESS_TOKEN_ALGORITHM = "HS256"

DEFAULT_ACCESS_TOKEN_TTL_SECONDS = 2592000  # 30 days
DEFAULT_ACCESS_TOKEN_MAX_TTL_SECONDS = 2592000

# =============================================================================
# Trusted IPs
# =============================================================================

# Always permitted regardless of plan: they mean "no restriction"
UNRESTRICTED_IP_RANGES: frozenset[str] = frozenset({"0.0.0.0/0", "::/0"})

# =============================================================================
# Encryption (AES-256-GCM)
# =============================================================================

SYMMETRIC_KEY_BYTES = 32
GCM_IV_BYTES = 12
GCM_TAG_BYTES = 16

# =============================================================================
# Policy language
# =============================================================================

# Alternatives inside a bound subject/audience/claim value are joined with ", "
POLICY_VALUE_SEPARATOR = ", "

TENANT_BOT_NAME = "oidc-auth org bot"

# =============================================================================
# API server
# =============================================================================

DEFAULT_API_HOST = "127.0.0.1"
DEFAULT_API_PORT = 8780
