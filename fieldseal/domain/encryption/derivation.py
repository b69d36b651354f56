"""Key Derivation Service.

Turns (master key version, derivation context) into a per-field,
per-record key. Nothing is cached unless the caller opened a
`request_cache()` scope.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from fieldseal.domain.encryption.instrumentation import active_key_cache, derivation_counter
from fieldseal.domain.encryption.keyring import MasterKeyRegistry
from fieldseal.domain.encryption.ports import CipherProvider
from fieldseal.errors import EncryptionError
from fieldseal.settings import normalize_version

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DerivationContext:
    """Domain separation input: one key per (model, field, record)."""
    model_name: str
    field_name: str
    identifier: Optional[str] = None
    personalization: Optional[str] = None

    def __str__(self) -> str:
        identifier = "" if self.identifier is None else self.identifier
        return f"{self.model_name}:{self.field_name}:{identifier}"

    @classmethod
    def for_record(cls, record: Any, field_name: str) -> "DerivationContext":
        identifier = getattr(record, "identifier", None)
        return cls(
            model_name=type(record).__name__,
            field_name=field_name,
            identifier=None if identifier is None else str(identifier),
        )


ContextLike = Union[DerivationContext, str]


@dataclass
class DerivedKey:
    """A derived key plus whether the holder must wipe it after use."""
    key: bytearray
    version: str
    owned: bool = True


class KeyDerivationService:
    def __init__(self, keyring: MasterKeyRegistry):
        self.keyring = keyring

    def _personalization(self, context: ContextLike) -> Optional[str]:
        if isinstance(context, DerivationContext) and context.personalization is not None:
            return context.personalization
        return self.keyring.personalization

    def derive(self, provider: CipherProvider, context: ContextLike, version: Any = None) -> DerivedKey:
        """Derive the key for `context` under `version` (default: current).

        Every real derivation bumps the process-wide counter, even when it
        fails. Cache hits inside a request_cache() scope do not.
        """
        context_str = str(context)
        personalization = self._personalization(context)

        cache = active_key_cache()
        if cache is not None:
            # Only successful derivations are stored, so an unresolvable
            # version always misses and is counted below.
            lookup_version = self.keyring.current_version if version is None else normalize_version(version)
            cached = cache.get((provider.algorithm, lookup_version, context_str, personalization))
            if cached is not None:
                return DerivedKey(key=cached, version=lookup_version, owned=False)

        derivation_counter.increment()

        master_key = None
        try:
            resolved = self.keyring.resolve_version(version)
            master_key = self.keyring.master_key(resolved)
            derived = provider.derive_key(master_key, context_str, personalization)
        except EncryptionError as e:
            logger.debug(f"Key derivation failed for {provider.algorithm}: {e}")
            raise
        finally:
            provider.secure_wipe(master_key)

        if cache is not None:
            cache[(provider.algorithm, resolved, context_str, personalization)] = derived
            return DerivedKey(key=derived, version=resolved, owned=False)
        return DerivedKey(key=derived, version=resolved)

    def release(self, provider: CipherProvider, derived: Optional[DerivedKey]) -> None:
        """Wipe a derived key unless a request cache owns it."""
        if derived is not None and derived.owned:
            provider.secure_wipe(derived.key)
