"""Record-level helpers for classes declaring EncryptedField attributes."""
import json
import logging
from typing import Any, Dict, List

from fieldseal.domain.fields.concealed import CONCEALED, ConcealedString
from fieldseal.domain.fields.encrypted_field import EncryptedField

logger = logging.getLogger(__name__)


class EncryptedFieldsMixin:
    """Adds encrypted-field introspection and maintenance to a record class.

    The record identifier is read from the attribute named by
    `identifier_field`. A record without an identifier is treated as
    unsaved: its encrypted fields get no AAD binding.
    """

    identifier_field = "id"

    def __init__(self, **attrs: Any):
        # Identifier and plain fields first so AAD sees them during encryption.
        encrypted = set(self.encrypted_fields())
        for name, value in attrs.items():
            if name not in encrypted:
                setattr(self, name, value)
        for name, value in attrs.items():
            if name in encrypted:
                setattr(self, name, value)

    @property
    def identifier(self) -> Any:
        return getattr(self, self.identifier_field, None)

    @classmethod
    def _encrypted_descriptors(cls) -> Dict[str, EncryptedField]:
        found: Dict[str, EncryptedField] = {}
        for klass in reversed(cls.__mro__):
            for name, attr in vars(klass).items():
                if isinstance(attr, EncryptedField):
                    found[name] = attr
        return found

    @classmethod
    def encrypted_fields(cls) -> List[str]:
        return list(cls._encrypted_descriptors())

    @classmethod
    def is_encrypted_field(cls, name: str) -> bool:
        return name in cls._encrypted_descriptors()

    @classmethod
    def field_definition(cls, name: str) -> EncryptedField:
        return cls._encrypted_descriptors()[name]

    @classmethod
    def encryption_info(cls) -> Dict[str, Any]:
        from fieldseal.dependencies import get_manager
        return get_manager().encryption_info()

    def load_encrypted(self, name: str, encrypted: Any) -> Any:
        """Attach a stored envelope to field `name` without re-encrypting."""
        return self.field_definition(name).load(self, encrypted)

    def has_encrypted_data(self) -> bool:
        return any(self.__dict__.get(name) is not None for name in self.encrypted_fields())

    def clear_encrypted_fields(self) -> None:
        for name in self.encrypted_fields():
            value = self.__dict__.get(name)
            if isinstance(value, ConcealedString):
                value.clear()

    def encrypted_fields_cleared(self) -> bool:
        for name in self.encrypted_fields():
            value = self.__dict__.get(name)
            if value is not None and not value.cleared:
                return False
        return True

    def encrypted_fields_status(self) -> Dict[str, Dict[str, Any]]:
        """Per-field metadata. Reads only the envelope header, never decrypts."""
        status: Dict[str, Dict[str, Any]] = {}
        for name in self.encrypted_fields():
            value = self.__dict__.get(name)
            if value is None:
                status[name] = {"encrypted": False, "value": None}
            elif value.cleared:
                status[name] = {"encrypted": True, "cleared": True}
            else:
                header = json.loads(value.encrypted_value)
                status[name] = {
                    "encrypted": True,
                    "cleared": False,
                    "algorithm": header.get("algorithm"),
                    "key_version": header.get("key_version"),
                }
        return status

    def re_encrypt_fields(self) -> bool:
        """Decrypt and re-encrypt every populated field under the current key."""
        for name in self.encrypted_fields():
            value = self.__dict__.get(name)
            if value is None:
                continue
            value.reveal(lambda plaintext: setattr(self, name, plaintext))
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Public attributes, with encrypted fields rendered as "[CONCEALED]"."""
        result: Dict[str, Any] = {}
        for name, value in vars(self).items():
            if name.startswith("_"):
                continue
            result[name] = CONCEALED if isinstance(value, ConcealedString) else value
        return result
