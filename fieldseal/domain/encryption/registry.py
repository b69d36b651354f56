"""Cipher provider registry.

Selection is a pure function of (registered provider classes, forced
algorithm): no global state is consulted or mutated.
"""
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Type

from fieldseal.adapters.ciphers.aes_gcm_provider import AESGCMProvider
from fieldseal.adapters.ciphers.xchacha20_provider import XChaCha20Poly1305Provider
from fieldseal.domain.encryption.ports import CipherProvider
from fieldseal.errors import EncryptionError

logger = logging.getLogger(__name__)

DEFAULT_PROVIDERS: Sequence[Type[CipherProvider]] = (
    XChaCha20Poly1305Provider,
    AESGCMProvider,
)


def rank_providers(provider_classes: Iterable[Type[CipherProvider]]) -> List[Type[CipherProvider]]:
    """Available providers, highest priority first."""
    available = [p for p in provider_classes if p.available()]
    return sorted(available, key=lambda p: p.priority, reverse=True)


def select_provider(provider_classes: Iterable[Type[CipherProvider]],
                    algorithm: Optional[str] = None) -> CipherProvider:
    """Resolve the provider to use.

    A forced `algorithm` bypasses ranking entirely; otherwise the highest
    priority available provider wins.
    """
    classes = list(provider_classes)
    if algorithm is not None:
        for provider_cls in classes:
            if provider_cls.algorithm == algorithm:
                if not provider_cls.available():
                    raise EncryptionError(f"Algorithm not available: {algorithm}")
                return provider_cls()
        raise EncryptionError(f"Unsupported algorithm: {algorithm}")

    ranked = rank_providers(classes)
    if not ranked:
        raise EncryptionError("No encryption provider available")
    return ranked[0]()


class ProviderRegistry:
    """Holds one instance per registered provider class."""

    def __init__(self, provider_classes: Optional[Iterable[Type[CipherProvider]]] = None,
                 default_algorithm: Optional[str] = None):
        self._classes: List[Type[CipherProvider]] = list(provider_classes or DEFAULT_PROVIDERS)
        self._instances: Dict[str, CipherProvider] = {}
        self._default = select_provider(self._classes, default_algorithm)
        self._instances[self._default.algorithm] = self._default
        logger.debug(f"Default encryption provider: {self._default.algorithm}")

    @property
    def default_provider(self) -> CipherProvider:
        return self._default

    def get(self, algorithm: Optional[str] = None) -> CipherProvider:
        """Provider for `algorithm`, or the default one when None."""
        if algorithm is None:
            return self._default
        provider = self._instances.get(algorithm)
        if provider is None:
            provider = select_provider(self._classes, algorithm)
            self._instances[algorithm] = provider
        return provider

    @property
    def algorithms(self) -> List[str]:
        """Every registered algorithm name, available or not."""
        return [p.algorithm for p in self._classes]

    @property
    def available_algorithms(self) -> List[str]:
        return [p.algorithm for p in rank_providers(self._classes)]

    def is_supported(self, algorithm: str) -> bool:
        return algorithm in self.algorithms
