"""Encryption Manager.

Engine entry points used by the record layer: `encrypt_for` turns plaintext
into an envelope, `decrypt_for` turns an envelope back into plaintext.
Derived keys live only for the duration of one call unless a request cache
is active.
"""
import logging
from typing import Any, Dict, Iterable, Optional, Type, Union

from fieldseal.domain.encryption.derivation import ContextLike, KeyDerivationService
from fieldseal.domain.encryption.instrumentation import derivation_counter
from fieldseal.domain.encryption.keyring import MasterKeyRegistry
from fieldseal.domain.encryption.models import EncryptedEnvelope
from fieldseal.domain.encryption.ports import CipherProvider
from fieldseal.domain.encryption.registry import ProviderRegistry
from fieldseal.errors import DecryptionError, EncryptionError
from fieldseal.settings import EncryptionConfig

logger = logging.getLogger(__name__)


def _to_bytes(plaintext: Union[str, bytes]) -> bytes:
    if isinstance(plaintext, (bytes, bytearray)):
        return bytes(plaintext)
    return str(plaintext).encode("utf-8")


class EncryptionManager:
    """Stateless engine bound to one immutable configuration snapshot."""

    def __init__(self, config: EncryptionConfig,
                 provider_classes: Optional[Iterable[Type[CipherProvider]]] = None):
        self.config = config
        self.keyring = MasterKeyRegistry.from_config(config)
        self.registry = ProviderRegistry(provider_classes, config.default_algorithm)
        self.derivation = KeyDerivationService(self.keyring)

    @property
    def provider(self) -> CipherProvider:
        return self.registry.default_provider

    @property
    def current_key_version(self) -> Optional[str]:
        return self.keyring.current_version

    def encrypt_for(self, context: ContextLike, plaintext: Union[str, bytes, None],
                    aad: Optional[bytes] = None, algorithm: Optional[str] = None) -> Optional[EncryptedEnvelope]:
        """Encrypt `plaintext` for a derivation context.

        Empty input yields None without touching any key material.
        """
        if plaintext is None or (isinstance(plaintext, (str, bytes, bytearray)) and len(plaintext) == 0):
            return None

        provider = self.registry.get(algorithm)
        derived = None
        try:
            derived = self.derivation.derive(provider, context)
            result = provider.encrypt(_to_bytes(plaintext), derived.key, aad)
            return EncryptedEnvelope.from_cipher_result(provider.algorithm, result, derived.version)
        finally:
            self.derivation.release(provider, derived)

    def decrypt_for(self, context: ContextLike, envelope: Union[EncryptedEnvelope, str, None],
                    aad: Optional[bytes] = None) -> Optional[str]:
        """Decrypt an envelope (object or stored JSON) to text.

        Binary plaintext that is not UTF-8 raises EncryptionError; read it
        with decrypt_bytes_for() instead.
        """
        plaintext = self.decrypt_bytes_for(context, envelope, aad=aad)
        if plaintext is None:
            return None
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise EncryptionError("Decrypted data is not valid UTF-8 text") from None

    def decrypt_bytes_for(self, context: ContextLike, envelope: Union[EncryptedEnvelope, str, None],
                          aad: Optional[bytes] = None) -> Optional[bytes]:
        """Decrypt an envelope (object or stored JSON) to raw bytes."""
        if envelope is None or envelope == "":
            return None
        if isinstance(envelope, str):
            envelope = EncryptedEnvelope.from_json(envelope)

        nonce, ciphertext, auth_tag = envelope.decoded()
        provider = self.registry.get(envelope.algorithm)

        derived = None
        try:
            derived = self.derivation.derive(provider, context, version=envelope.key_version)
            return provider.decrypt(ciphertext, derived.key, nonce, auth_tag, aad)
        except EncryptionError:
            raise
        except Exception as e:
            logger.debug(f"Decryption failed: {type(e).__name__}")
            raise DecryptionError() from None
        finally:
            self.derivation.release(provider, derived)

    def validate_configuration(self) -> None:
        self.keyring.validate()
        if not self.registry.available_algorithms:
            raise EncryptionError("No encryption provider available")
        self.provider.validate_personalization(self.keyring.personalization)

    def status(self) -> Dict[str, Any]:
        """Configuration summary safe to log or print."""
        try:
            self.validate_configuration()
            valid, error = True, None
        except EncryptionError as e:
            valid, error = False, str(e)

        info = {
            "valid": valid,
            "default_algorithm": self.provider.algorithm,
            "available_algorithms": self.registry.available_algorithms,
            "derivation_count": derivation_counter.value,
        }
        info.update(self.keyring.describe())
        if error:
            info["error"] = error
        return info

    def encryption_info(self, algorithm: Optional[str] = None) -> Dict[str, Any]:
        provider = self.registry.get(algorithm)
        return {
            "algorithm": provider.algorithm,
            "key_size": provider.key_size,
            "nonce_size": provider.nonce_size,
            "tag_size": provider.auth_tag_size,
        }
