"""Key hierarchy, encryption at rest, and trusted IP parsing."""

from oidc_auth.security.ip import extract_ip_details, is_valid_ip_or_cidr
from oidc_auth.security.vault import (
    EncryptedBlob,
    TrustMaterialVault,
    decrypt_symmetric,
    encrypt_symmetric,
)

__all__ = [
    "EncryptedBlob",
    "TrustMaterialVault",
    "decrypt_symmetric",
    "encrypt_symmetric",
    "extract_ip_details",
    "is_valid_ip_or_cidr",
]
