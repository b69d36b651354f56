"""Encryption Domain Ports (Interfaces)."""
from abc import ABC, abstractmethod
from typing import ClassVar, Optional, Union

from fieldseal.domain.encryption.models import CipherResult
from fieldseal.errors import InvalidKeyError

KEY_SIZE = 32

KeyBuffer = Union[bytes, bytearray, memoryview]


class CipherProvider(ABC):
    """Abstract Port for an authenticated cipher.

    Providers are stateless: every input is passed explicitly, so a single
    instance can be shared across threads.
    """

    algorithm: ClassVar[str]
    nonce_size: ClassVar[int]
    auth_tag_size: ClassVar[int] = 16
    key_size: ClassVar[int] = KEY_SIZE
    priority: ClassVar[int] = 0

    @classmethod
    def available(cls) -> bool:
        """Whether the backing library can be used in this process."""
        return True

    @abstractmethod
    def generate_nonce(self) -> bytes:
        """Fresh random nonce of `nonce_size` bytes."""
        ...

    @abstractmethod
    def derive_key(self, master_key: Optional[KeyBuffer], context: str,
                   personalization: Optional[str] = None) -> bytearray:
        """Derive a 32-byte key bound to `context`."""
        ...

    @abstractmethod
    def encrypt(self, plaintext: bytes, key: KeyBuffer, aad: Optional[bytes] = None) -> CipherResult:
        """Encrypt with a freshly generated nonce."""
        ...

    @abstractmethod
    def decrypt(self, ciphertext: bytes, key: KeyBuffer, nonce: bytes, auth_tag: bytes,
                aad: Optional[bytes] = None) -> bytes:
        """Verify and decrypt; raises DecryptionError on any mismatch."""
        ...

    def secure_wipe(self, key: Optional[KeyBuffer]) -> None:
        """Best-effort zeroing of key material.

        Only mutable buffers can be wiped. Immutable `bytes` (and any copy a
        crypto library made internally) stay in memory until collected.
        """
        if key is None:
            return
        if isinstance(key, memoryview):
            if key.readonly:
                return
            key[:] = bytes(len(key))
        elif isinstance(key, bytearray):
            key[:] = bytes(len(key))

    def _validate_key_length(self, key: Optional[KeyBuffer]) -> None:
        if key is None:
            raise InvalidKeyError("Key cannot be nil")
        if len(key) < self.key_size:
            raise InvalidKeyError(f"Key must be at least {self.key_size} bytes")

    def validate_personalization(self, personalization: Optional[str]) -> None:
        """Raise InvalidKeyError if derive_key would reject `personalization`."""
        if personalization is not None and "\0" in personalization:
            raise InvalidKeyError("Personalization string must not contain null bytes")
