"""Process-wide access to the active encryption manager.

The active manager is swapped wholesale when the configuration changes
(key rotation); it is never mutated in place.
"""
import logging
import threading
from typing import Optional

from fieldseal.domain.encryption.manager import EncryptionManager
from fieldseal.settings import EncryptionConfig, EncryptionSettings

logger = logging.getLogger(__name__)

_manager: Optional[EncryptionManager] = None
_lock = threading.Lock()


def configure(config: EncryptionConfig) -> EncryptionManager:
    """Install a new configuration snapshot and return its manager."""
    global _manager
    manager = EncryptionManager(config)
    with _lock:
        _manager = manager
    logger.info(
        f"Encryption configured: versions={manager.keyring.versions} "
        f"current={manager.current_key_version} provider={manager.provider.algorithm}"
    )
    return manager


def get_manager() -> EncryptionManager:
    """Factory for the active manager; loads FIELDSEAL_* settings on first use."""
    global _manager
    with _lock:
        if _manager is not None:
            return _manager
    return configure(EncryptionSettings().to_config())


def reset() -> None:
    """Drop the active manager (next get_manager() reloads from the environment)."""
    global _manager
    with _lock:
        _manager = None
