"""Versioned master key store.

Built once from an `EncryptionConfig` snapshot and read-only afterwards;
rotation replaces the whole registry.
"""
import base64
import binascii
import logging
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from fieldseal.errors import EncryptionError, InvalidKeyError
from fieldseal.settings import EncryptionConfig, normalize_version

logger = logging.getLogger(__name__)


def decode_master_key(encoded: str) -> bytes:
    """Strict base64 decode of a configured master key."""
    return base64.b64decode(encoded, validate=True)


class MasterKeyRegistry:
    """Version id -> base64 master key, plus the current version pointer."""

    def __init__(self, keys: Mapping[Any, str], current_version: Any = None,
                 personalization: Optional[str] = None):
        self._keys: Mapping[str, str] = MappingProxyType(
            {normalize_version(k): v for k, v in (keys or {}).items()}
        )
        self._current_version = normalize_version(current_version)
        self._personalization = personalization

    @classmethod
    def from_config(cls, config: EncryptionConfig) -> "MasterKeyRegistry":
        return cls(
            config.encryption_keys,
            current_version=config.current_key_version,
            personalization=config.encryption_personalization,
        )

    @property
    def current_version(self) -> Optional[str]:
        return self._current_version

    @property
    def personalization(self) -> Optional[str]:
        return self._personalization

    @property
    def versions(self) -> List[str]:
        return list(self._keys.keys())

    def __contains__(self, version: Any) -> bool:
        return normalize_version(version) in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def __repr__(self) -> str:
        return f"MasterKeyRegistry(versions={self.versions!r}, current={self._current_version!r})"

    def resolve_version(self, version: Any = None) -> str:
        """Explicit version if given, else the current one."""
        if not self._keys:
            raise EncryptionError("No encryption keys configured")
        if version is None:
            if not self._current_version:
                raise EncryptionError("No current key version set")
            return self._current_version
        resolved = normalize_version(version)
        if not resolved:
            raise EncryptionError("Key version cannot be nil")
        return resolved

    def master_key(self, version: Any = None) -> bytearray:
        """Decoded master key for `version` as a wipeable buffer."""
        resolved = self.resolve_version(version)
        encoded = self._keys.get(resolved)
        if encoded is None:
            raise EncryptionError(f"No key for version: {resolved}")
        try:
            return bytearray(decode_master_key(encoded))
        except (binascii.Error, ValueError):
            raise EncryptionError(f"Encryption key is not valid Base64: {resolved}") from None

    def validate(self) -> None:
        """Startup validation; independent of any encrypt/decrypt call."""
        if not self._keys:
            raise EncryptionError("No encryption keys configured")
        if not self._current_version:
            raise EncryptionError("No current key version set")

        current_key = self._keys.get(self._current_version)
        if current_key is None:
            raise EncryptionError(f"Current key version not found: {self._current_version}")
        try:
            decode_master_key(current_key)
        except (binascii.Error, ValueError):
            raise EncryptionError("Current encryption key is not valid Base64") from None

        if self._personalization is not None and "\0" in self._personalization:
            raise InvalidKeyError("Personalization string must not contain null bytes")

    def describe(self) -> Dict[str, Any]:
        """Metadata only; never key material."""
        return {"key_versions": self.versions, "current_version": self._current_version}
