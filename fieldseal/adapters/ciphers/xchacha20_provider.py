"""XChaCha20-Poly1305 Cipher Provider Adapter.

Primary provider. Uses pycryptodome's ChaCha20_Poly1305, which switches to
the XChaCha20 construction when given a 24-byte nonce. When pycryptodome is
not importable the provider reports itself unavailable and the registry
falls back to AES-256-GCM.

Key derivation is keyed BLAKE2b-256 with the personalization string as the
BLAKE2b `person` parameter, so identical master keys and contexts still give
unrelated keys across applications with different personalizations.
"""
import hashlib
import logging
import os
from typing import Optional

from fieldseal.domain.encryption.models import ALGORITHM_XCHACHA20_POLY1305, CipherResult
from fieldseal.domain.encryption.ports import CipherProvider, KeyBuffer
from fieldseal.errors import DecryptionError, InvalidKeyError
from fieldseal.settings import DEFAULT_PERSONALIZATION

try:
    from Crypto.Cipher import ChaCha20_Poly1305

    HAS_PYCRYPTODOME = True
except ImportError:
    HAS_PYCRYPTODOME = False

logger = logging.getLogger(__name__)

# BLAKE2b limits
BLAKE2B_MAX_KEY = 64
BLAKE2B_PERSON_SIZE = 16


class XChaCha20Poly1305Provider(CipherProvider):
    """XChaCha20-Poly1305 (24-byte nonce) with BLAKE2b key derivation."""

    algorithm = ALGORITHM_XCHACHA20_POLY1305
    nonce_size = 24
    auth_tag_size = 16
    priority = 100

    @classmethod
    def available(cls) -> bool:
        return HAS_PYCRYPTODOME

    def generate_nonce(self) -> bytes:
        return os.urandom(self.nonce_size)

    def validate_personalization(self, personalization: Optional[str]) -> None:
        super().validate_personalization(personalization)
        if personalization is not None and len(personalization.encode("utf-8")) > BLAKE2B_PERSON_SIZE:
            raise InvalidKeyError(f"Personalization string must be at most {BLAKE2B_PERSON_SIZE} bytes")

    def derive_key(self, master_key: Optional[KeyBuffer], context: str,
                   personalization: Optional[str] = None) -> bytearray:
        self._validate_key_length(master_key)
        raw_personal = DEFAULT_PERSONALIZATION if personalization is None else personalization
        self.validate_personalization(raw_personal)

        person = raw_personal.encode("utf-8").ljust(BLAKE2B_PERSON_SIZE, b"\0")

        key = bytes(master_key)
        if len(key) > BLAKE2B_MAX_KEY:
            key = hashlib.blake2b(key, digest_size=BLAKE2B_MAX_KEY).digest()

        digest = hashlib.blake2b(
            context.encode("utf-8"),
            key=key,
            digest_size=self.key_size,
            person=person,
        )
        return bytearray(digest.digest())

    def _cipher(self, key: KeyBuffer, nonce: bytes):
        if not HAS_PYCRYPTODOME:
            raise RuntimeError("XChaCha20-Poly1305 requires pycryptodome")
        return ChaCha20_Poly1305.new(key=bytes(key[:self.key_size]), nonce=nonce)

    def encrypt(self, plaintext: bytes, key: KeyBuffer, aad: Optional[bytes] = None) -> CipherResult:
        self._validate_key_length(key)
        nonce = self.generate_nonce()
        cipher = self._cipher(key, nonce)
        if aad:
            cipher.update(aad)
        ciphertext, tag = cipher.encrypt_and_digest(plaintext)

        return CipherResult(nonce=nonce, ciphertext=ciphertext, auth_tag=tag)

    def decrypt(self, ciphertext: bytes, key: KeyBuffer, nonce: bytes, auth_tag: bytes,
                aad: Optional[bytes] = None) -> bytes:
        self._validate_key_length(key)
        try:
            cipher = self._cipher(key, nonce)
            if aad:
                cipher.update(aad)
            return cipher.decrypt_and_verify(ciphertext, auth_tag)
        except (ValueError, KeyError) as e:
            logger.debug(f"XChaCha20-Poly1305 authentication failed: {type(e).__name__}")
            raise DecryptionError() from None
