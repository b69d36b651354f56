"""Derivation instrumentation and the optional scoped key cache.

The counter exists so tests can prove how many key derivations happened
("no caching occurred"). The cache is opt-in, lives in a ContextVar so it is
private to one thread or asyncio task, and is wiped on scope exit.
"""
import logging
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Tuple

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str, str, Optional[str]]


@dataclass
class DerivationCounter:
    """Thread-safe monotonically increasing counter."""
    _value: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def value(self) -> int:
        with self.lock:
            return self._value

    def increment(self) -> int:
        with self.lock:
            self._value += 1
            return self._value

    def reset(self) -> None:
        with self.lock:
            self._value = 0


derivation_counter = DerivationCounter()


def derivation_count() -> int:
    return derivation_counter.value


def reset_derivation_count() -> None:
    derivation_counter.reset()


_key_cache: ContextVar[Optional[Dict[CacheKey, bytearray]]] = ContextVar("fieldseal_key_cache", default=None)


def active_key_cache() -> Optional[Dict[CacheKey, bytearray]]:
    """The cache of the enclosing request_cache() scope, if any."""
    return _key_cache.get()


def _wipe_cache(cache: Dict[CacheKey, bytearray]) -> None:
    for key in cache.values():
        key[:] = bytes(len(key))
    cache.clear()


@contextmanager
def request_cache() -> Iterator[Dict[CacheKey, bytearray]]:
    """Reuse derived keys for the duration of the block.

    Nested scopes share the outermost cache; only the outermost scope wipes
    it, and it does so on every exit path.
    """
    existing = _key_cache.get()
    if existing is not None:
        yield existing
        return

    cache: Dict[CacheKey, bytearray] = {}
    token = _key_cache.set(cache)
    try:
        yield cache
    finally:
        _key_cache.reset(token)
        logger.debug(f"Clearing request key cache ({len(cache)} entries)")
        _wipe_cache(cache)


def clear_request_cache() -> None:
    """Wipe the active scope's cache early, if one is active."""
    cache = _key_cache.get()
    if cache is not None:
        _wipe_cache(cache)
