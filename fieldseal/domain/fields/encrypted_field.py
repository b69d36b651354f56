"""EncryptedField descriptor.

Declares one encrypted attribute on a record class:

    class User(EncryptedFieldsMixin):
        identifier_field = "id"
        ssn = EncryptedField()
        api_key = EncryptedField(aad_fields=["email"], algorithm="aes-256-gcm")

Assigning plaintext encrypts immediately; reading returns the stored
ConcealedString and never decrypts.
"""
import logging
from typing import Any, Optional, Sequence

from fieldseal.domain.encryption.aad import build_record_aad
from fieldseal.domain.encryption.derivation import DerivationContext
from fieldseal.domain.encryption.manager import EncryptionManager
from fieldseal.domain.fields.concealed import ConcealedString
from fieldseal.errors import SecurityError

logger = logging.getLogger(__name__)


class EncryptedField:
    def __init__(self, aad_fields: Sequence[str] = (), algorithm: Optional[str] = None,
                 manager: Optional[EncryptionManager] = None):
        self.aad_fields = tuple(aad_fields)
        self.algorithm = algorithm
        self._manager = manager
        self.name: Optional[str] = None

    def __set_name__(self, owner, name):
        self.name = name

    def __repr__(self) -> str:
        return f"EncryptedField(name={self.name!r}, aad_fields={list(self.aad_fields)!r}, algorithm={self.algorithm!r})"

    @property
    def manager(self) -> EncryptionManager:
        if self._manager is not None:
            return self._manager
        from fieldseal.dependencies import get_manager
        return get_manager()

    def __get__(self, record, owner=None):
        if record is None:
            return self
        return record.__dict__.get(self.name)

    def __set__(self, record, value):
        if value is None or (isinstance(value, (str, bytes)) and len(value) == 0):
            record.__dict__[self.name] = None
            return

        if isinstance(value, ConcealedString):
            if value.cleared or not value.belongs_to_context(record, self.name):
                raise SecurityError("ConcealedString belongs to a different record or field")
            record.__dict__[self.name] = value
            return

        encrypted = self.encrypt_value(record, value)
        record.__dict__[self.name] = ConcealedString(encrypted, record, self)

    def context_for(self, record: Any) -> DerivationContext:
        return DerivationContext.for_record(record, self.name)

    def aad_for(self, record: Any) -> Optional[bytes]:
        return build_record_aad(record, self.aad_fields)

    def encrypt_value(self, record: Any, value: Any) -> str:
        """Encrypt `value` for this field of `record`; returns envelope JSON."""
        envelope = self.manager.encrypt_for(
            self.context_for(record),
            value,
            aad=self.aad_for(record),
            algorithm=self.algorithm,
        )
        return envelope.to_json()

    def decrypt_value(self, record: Any, encrypted: str) -> str:
        """Decrypt stored envelope JSON using the record's current state."""
        return self.manager.decrypt_for(self.context_for(record), encrypted, aad=self.aad_for(record))

    def load(self, record: Any, encrypted: Optional[str]) -> Optional[ConcealedString]:
        """Wrap a persisted envelope without re-encrypting it."""
        if encrypted is None or encrypted == "":
            record.__dict__[self.name] = None
            return None
        concealed = ConcealedString(encrypted, record, self)
        record.__dict__[self.name] = concealed
        return concealed
