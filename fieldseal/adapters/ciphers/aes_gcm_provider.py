"""AES-256-GCM Cipher Provider Adapter.

Fallback provider: depends only on `cryptography`, which is always
installed, so it is available in every process.
"""
import logging
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from fieldseal.domain.encryption.models import ALGORITHM_AES_256_GCM, CipherResult
from fieldseal.domain.encryption.ports import CipherProvider, KeyBuffer
from fieldseal.errors import DecryptionError

logger = logging.getLogger(__name__)

HKDF_SALT = b"FieldSealEncryption"


class AESGCMProvider(CipherProvider):
    """AES-256-GCM with HKDF-SHA256 key derivation."""

    algorithm = ALGORITHM_AES_256_GCM
    nonce_size = 12
    auth_tag_size = 16
    priority = 50

    def generate_nonce(self) -> bytes:
        return os.urandom(self.nonce_size)

    def derive_key(self, master_key: Optional[KeyBuffer], context: str,
                   personalization: Optional[str] = None) -> bytearray:
        self._validate_key_length(master_key)
        self.validate_personalization(personalization)

        info = f"{context}:{personalization}" if personalization else context
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=self.key_size,
            salt=HKDF_SALT,
            info=info.encode("utf-8"),
        )
        return bytearray(hkdf.derive(bytes(master_key)))

    def encrypt(self, plaintext: bytes, key: KeyBuffer, aad: Optional[bytes] = None) -> CipherResult:
        self._validate_key_length(key)
        nonce = self.generate_nonce()
        ct_and_tag = AESGCM(bytes(key[:self.key_size])).encrypt(nonce, plaintext, aad)

        return CipherResult(
            nonce=nonce,
            ciphertext=ct_and_tag[:-self.auth_tag_size],
            auth_tag=ct_and_tag[-self.auth_tag_size:],
        )

    def decrypt(self, ciphertext: bytes, key: KeyBuffer, nonce: bytes, auth_tag: bytes,
                aad: Optional[bytes] = None) -> bytes:
        self._validate_key_length(key)
        try:
            return AESGCM(bytes(key[:self.key_size])).decrypt(nonce, ciphertext + auth_tag, aad)
        except (InvalidTag, ValueError) as e:
            # Mask internal error to avoid leaking details
            logger.debug(f"AES-GCM authentication failed: {type(e).__name__}")
            raise DecryptionError() from None
