"""Key Rotation Service.

This module re-encrypts record fields still sealed under an older master key
version once the current version has moved on.
"""
import json
import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, TypeVar

from fieldseal.dependencies import get_manager
from fieldseal.domain.encryption.manager import EncryptionManager
from fieldseal.domain.fields.record import EncryptedFieldsMixin
from fieldseal.errors import EncryptionError

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=EncryptedFieldsMixin)


@dataclass
class RotationResult:
    rotated: int = 0
    skipped: int = 0
    failed: int = 0
    scanned: int = 0


def _batches(records: Iterable[R], batch_size: int) -> Iterator[List[R]]:
    batch: List[R] = []
    for record in records:
        batch.append(record)
        if len(batch) >= batch_size:
            yield batch
            batch = []
    if batch:
        yield batch


class RotationService:
    """Service for moving encrypted fields to the current key version."""

    def __init__(self, manager: Optional[EncryptionManager] = None):
        self.manager = manager or get_manager()

    def stale_fields(self, record: EncryptedFieldsMixin) -> List[str]:
        """Names of populated fields whose envelope uses a non-current version."""
        current = self.manager.current_key_version
        stale = []
        for name in record.encrypted_fields():
            value = record.__dict__.get(name)
            if value is None or value.cleared:
                continue
            key_version = json.loads(value.encrypted_value).get("key_version")
            if key_version != current:
                stale.append(name)
        return stale

    def rotate_record(self, record: EncryptedFieldsMixin, result: Optional[RotationResult] = None) -> RotationResult:
        result = result or RotationResult()
        stale = set(self.stale_fields(record))
        for name in record.encrypted_fields():
            if record.__dict__.get(name) is None:
                continue
            result.scanned += 1
            if name not in stale:
                result.skipped += 1
                continue
            try:
                record.__dict__[name].reveal(lambda plaintext: setattr(record, name, plaintext))
                result.rotated += 1
            except EncryptionError as e:
                result.failed += 1
                logger.error(f"Failed to rotate {type(record).__name__}.{name} ({record.identifier}): {e}")
        return result

    def rotate(self, records: Iterable[EncryptedFieldsMixin], batch_size: int = 100) -> RotationResult:
        """Rotate every stale field across `records`, logging per batch."""
        result = RotationResult()
        current = self.manager.current_key_version
        for batch in _batches(records, batch_size):
            before = result.rotated
            for record in batch:
                self.rotate_record(record, result)
            logger.info(f"Rotated {result.rotated - before} field(s) to key version {current}")

        if result.failed:
            logger.warning(f"Rotation finished with {result.failed} failure(s)")
        return result
