"""Tests for the AES-256-GCM vault and the root -> tenant key hierarchy."""

from __future__ import annotations

import base64

import pytest

from oidc_auth.exceptions import CorruptedSecretError
from oidc_auth.security.vault import (
    ENCRYPTION_ALGORITHM,
    EncryptedBlob,
    TrustMaterialVault,
    decrypt_symmetric,
    encrypt_symmetric,
    generate_symmetric_key,
)


def _flip_bit(value: str, byte_index: int = 0) -> str:
    raw = bytearray(base64.b64decode(value))
    raw[byte_index] ^= 0x01
    return base64.b64encode(bytes(raw)).decode("ascii")


@pytest.fixture
def tenant_key() -> bytes:
    return generate_symmetric_key()


class TestSymmetricEncryption:
    @pytest.mark.parametrize(
        "plaintext",
        [b"", b"\x00\xff" * 100, "-----BEGIN CERTIFICATE-----\nMIIB...\n".encode(), "ünïcode".encode()],
    )
    def test_round_trip(self, tenant_key: bytes, plaintext: bytes) -> None:
        blob = encrypt_symmetric(plaintext, tenant_key)

        assert decrypt_symmetric(blob.ciphertext, blob.iv, blob.tag, tenant_key) == plaintext

    def test_blob_parts_have_gcm_sizes(self, tenant_key: bytes) -> None:
        blob = encrypt_symmetric("secret", tenant_key)

        assert len(base64.b64decode(blob.iv)) == 12
        assert len(base64.b64decode(blob.tag)) == 16
        assert len(base64.b64decode(blob.ciphertext)) == len("secret")

    def test_fresh_iv_per_encryption(self, tenant_key: bytes) -> None:
        first = encrypt_symmetric("same", tenant_key)
        second = encrypt_symmetric("same", tenant_key)

        assert first.iv != second.iv
        assert first.ciphertext != second.ciphertext

    @pytest.mark.parametrize("byte_index", [0, 5, 9])
    def test_flipped_ciphertext_bit_raises(self, tenant_key: bytes, byte_index: int) -> None:
        blob = encrypt_symmetric("0123456789", tenant_key)

        with pytest.raises(CorruptedSecretError):
            decrypt_symmetric(_flip_bit(blob.ciphertext, byte_index), blob.iv, blob.tag, tenant_key)

    @pytest.mark.parametrize("byte_index", [0, 15])
    def test_flipped_tag_bit_raises(self, tenant_key: bytes, byte_index: int) -> None:
        blob = encrypt_symmetric("0123456789", tenant_key)

        with pytest.raises(CorruptedSecretError):
            decrypt_symmetric(blob.ciphertext, blob.iv, _flip_bit(blob.tag, byte_index), tenant_key)

    def test_tampered_empty_plaintext_raises(self, tenant_key: bytes) -> None:
        blob = encrypt_symmetric(b"", tenant_key)

        with pytest.raises(CorruptedSecretError):
            decrypt_symmetric(blob.ciphertext, blob.iv, _flip_bit(blob.tag), tenant_key)

    def test_wrong_key_raises(self, tenant_key: bytes) -> None:
        blob = encrypt_symmetric("secret", tenant_key)

        with pytest.raises(CorruptedSecretError):
            decrypt_symmetric(blob.ciphertext, blob.iv, blob.tag, generate_symmetric_key())

    @pytest.mark.parametrize(
        "iv, tag",
        [
            ("not base64!", None),
            (base64.b64encode(b"short").decode(), None),
            (None, base64.b64encode(b"short").decode()),
        ],
    )
    def test_malformed_parts_raise(self, tenant_key: bytes, iv: str | None, tag: str | None) -> None:
        blob = encrypt_symmetric("secret", tenant_key)

        with pytest.raises(CorruptedSecretError):
            decrypt_symmetric(blob.ciphertext, iv or blob.iv, tag or blob.tag, tenant_key)


class TestTrustMaterialVault:
    def test_root_key_must_be_32_bytes(self) -> None:
        with pytest.raises(ValueError):
            TrustMaterialVault(b"short")

    def test_tenant_key_material_unwraps_to_32_byte_key(self, vault: TrustMaterialVault) -> None:
        # Act
        material = vault.create_tenant_key_material("org-1")
        key = vault.unwrap_tenant_key(material)

        # Assert
        assert material.org_id == "org-1"
        assert material.symmetric_key_algorithm == ENCRYPTION_ALGORITHM
        assert material.private_key_algorithm == ENCRYPTION_ALGORITHM
        assert len(base64.b64decode(material.public_key)) == 32
        assert len(key) == 32

    def test_each_tenant_gets_its_own_key(self, vault: TrustMaterialVault) -> None:
        first = vault.unwrap_tenant_key(vault.create_tenant_key_material("org-1"))
        second = vault.unwrap_tenant_key(vault.create_tenant_key_material("org-2"))

        assert first != second

    def test_tenant_material_from_another_root_is_rejected(self, vault: TrustMaterialVault) -> None:
        material = TrustMaterialVault(b"\xff" * 32).create_tenant_key_material("org-1")

        with pytest.raises(CorruptedSecretError):
            vault.unwrap_tenant_key(material)

    def test_wrap_unwrap_text_round_trip(self, vault: TrustMaterialVault, ca_pem: str) -> None:
        # Arrange
        tenant_key = vault.unwrap_tenant_key(vault.create_tenant_key_material("org-1"))

        # Act
        blob = vault.wrap(tenant_key, ca_pem)

        # Assert
        assert isinstance(blob, EncryptedBlob)
        assert vault.unwrap_text(tenant_key, *blob) == ca_pem

    def test_secret_of_one_tenant_cannot_be_read_with_another(self, vault: TrustMaterialVault) -> None:
        key_a = vault.unwrap_tenant_key(vault.create_tenant_key_material("org-a"))
        key_b = vault.unwrap_tenant_key(vault.create_tenant_key_material("org-b"))
        blob = vault.wrap(key_a, "secret of a")

        with pytest.raises(CorruptedSecretError):
            vault.unwrap(key_b, *blob)
