"""Encryption at rest for tenant secrets.

Two-level key hierarchy:
    root key (process config) -> tenant symmetric key (TenantKeyMaterial)
                              -> tenant secrets (e.g., trust policy CA certificate)

Every layer uses AES-256-GCM. Ciphertext, IV and tag are stored as separate
base64 strings. Tag verification failure always raises CorruptedSecretError;
decryption never returns unauthenticated plaintext.
"""

from __future__ import annotations

__all__ = [
    "ENCRYPTION_ALGORITHM",
    "KEY_ENCODING",
    "EncryptedBlob",
    "TrustMaterialVault",
    "decrypt_symmetric",
    "encrypt_symmetric",
    "generate_asymmetric_key_pair",
    "generate_symmetric_key",
]

import base64
import binascii
import os
from typing import NamedTuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from oidc_auth.constants import GCM_IV_BYTES, GCM_TAG_BYTES, SYMMETRIC_KEY_BYTES, TENANT_BOT_NAME
from oidc_auth.exceptions import CorruptedSecretError
from oidc_auth.models import TenantKeyMaterial

ENCRYPTION_ALGORITHM = "aes-256-gcm"
KEY_ENCODING = "base64"


class EncryptedBlob(NamedTuple):
    """AES-GCM output, each part base64 encoded."""

    ciphertext: str
    iv: str
    tag: str


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _unb64(value: str, what: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CorruptedSecretError(f"Stored {what} is not valid base64") from e


def generate_symmetric_key() -> bytes:
    """Generate a random 256-bit AES key."""
    return AESGCM.generate_key(bit_length=SYMMETRIC_KEY_BYTES * 8)


def generate_asymmetric_key_pair() -> tuple[str, str]:
    """Generate an X25519 key pair.

    Returns:
        (public_key, private_key), raw key bytes base64 encoded.
    """
    private_key = X25519PrivateKey.generate()
    private_raw = private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_raw = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return _b64(public_raw), _b64(private_raw)


def encrypt_symmetric(plaintext: str | bytes, key: bytes) -> EncryptedBlob:
    """Encrypt with AES-256-GCM under a fresh random IV.

    Args:
        plaintext: Data to encrypt. Strings are encoded as UTF-8.
        key: 32-byte AES key.

    Returns:
        EncryptedBlob with ciphertext, IV and tag.
    """
    data = plaintext.encode("utf-8") if isinstance(plaintext, str) else plaintext
    iv = os.urandom(GCM_IV_BYTES)
    sealed = AESGCM(key).encrypt(iv, data, None)
    # cryptography appends the tag to the ciphertext
    return EncryptedBlob(
        ciphertext=_b64(sealed[:-GCM_TAG_BYTES]),
        iv=_b64(iv),
        tag=_b64(sealed[-GCM_TAG_BYTES:]),
    )


def decrypt_symmetric(ciphertext: str, iv: str, tag: str, key: bytes) -> bytes:
    """Decrypt and authenticate an AES-256-GCM blob.

    Args:
        ciphertext: Base64 ciphertext (may be empty).
        iv: Base64 IV.
        tag: Base64 authentication tag.
        key: 32-byte AES key.

    Returns:
        Plaintext bytes.

    Raises:
        CorruptedSecretError: If any part is malformed or the tag does not verify.
    """
    raw_iv = _unb64(iv, "IV")
    raw_tag = _unb64(tag, "tag")
    raw_ciphertext = _unb64(ciphertext, "ciphertext")
    if len(raw_iv) != GCM_IV_BYTES or len(raw_tag) != GCM_TAG_BYTES:
        raise CorruptedSecretError("Stored IV or tag has the wrong length")
    try:
        return AESGCM(key).decrypt(raw_iv, raw_ciphertext + raw_tag, None)
    except InvalidTag as e:
        raise CorruptedSecretError("Secret failed authentication; ciphertext, tag or key is wrong") from e
    except ValueError as e:
        # Wrong key length
        raise CorruptedSecretError(f"Secret could not be decrypted: {e}") from e


class TrustMaterialVault:
    """Wraps tenant secrets under tenant keys, and tenant keys under the root key.

    Usage:
        vault = TrustMaterialVault(config.root_key_bytes)
        material = vault.create_tenant_key_material(org_id)
        tenant_key = vault.unwrap_tenant_key(material)
        blob = vault.wrap(tenant_key, ca_cert_pem)
        pem = vault.unwrap_text(tenant_key, *blob)
    """

    def __init__(self, root_key: bytes) -> None:
        if len(root_key) != SYMMETRIC_KEY_BYTES:
            raise ValueError(f"Root key must be {SYMMETRIC_KEY_BYTES} bytes")
        self._root_key = root_key

    # -------------------------------------------------------------------------
    # Tenant secrets
    # -------------------------------------------------------------------------

    def wrap(self, tenant_key: bytes, plaintext: str | bytes) -> EncryptedBlob:
        """Encrypt a tenant secret under the tenant key."""
        return encrypt_symmetric(plaintext, tenant_key)

    def unwrap(self, tenant_key: bytes, ciphertext: str, iv: str, tag: str) -> bytes:
        """Decrypt a tenant secret. Raises CorruptedSecretError on tampering."""
        return decrypt_symmetric(ciphertext, iv, tag, tenant_key)

    def unwrap_text(self, tenant_key: bytes, ciphertext: str, iv: str, tag: str) -> str:
        """Decrypt a tenant secret that was stored as UTF-8 text."""
        plaintext = self.unwrap(tenant_key, ciphertext, iv, tag)
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CorruptedSecretError("Decrypted secret is not valid UTF-8") from e

    # -------------------------------------------------------------------------
    # Tenant keys
    # -------------------------------------------------------------------------

    def create_tenant_key_material(self, org_id: str) -> TenantKeyMaterial:
        """Generate a new key pair and symmetric key for an organization.

        Both private parts are encrypted under the root key. The result is not
        persisted; see ensure_tenant_key_material.
        """
        public_key, private_key = generate_asymmetric_key_pair()
        symmetric_key = _b64(generate_symmetric_key())

        private_blob = encrypt_symmetric(private_key, self._root_key)
        symmetric_blob = encrypt_symmetric(symmetric_key, self._root_key)

        return TenantKeyMaterial(
            org_id=org_id,
            name=TENANT_BOT_NAME,
            public_key=public_key,
            encrypted_private_key=private_blob.ciphertext,
            private_key_iv=private_blob.iv,
            private_key_tag=private_blob.tag,
            private_key_algorithm=ENCRYPTION_ALGORITHM,
            private_key_key_encoding=KEY_ENCODING,
            encrypted_symmetric_key=symmetric_blob.ciphertext,
            symmetric_key_iv=symmetric_blob.iv,
            symmetric_key_tag=symmetric_blob.tag,
            symmetric_key_algorithm=ENCRYPTION_ALGORITHM,
            symmetric_key_key_encoding=KEY_ENCODING,
        )

    def unwrap_tenant_key(self, material: TenantKeyMaterial) -> bytes:
        """Recover the tenant's symmetric key using the root key.

        Raises:
            CorruptedSecretError: If the wrapped key fails authentication or
                does not decode to a 32-byte key.
        """
        encoded = decrypt_symmetric(
            material.encrypted_symmetric_key,
            material.symmetric_key_iv,
            material.symmetric_key_tag,
            self._root_key,
        )
        key = _unb64(encoded.decode("ascii", errors="replace"), "tenant key")
        if len(key) != SYMMETRIC_KEY_BYTES:
            raise CorruptedSecretError("Tenant key has the wrong length")
        return key
