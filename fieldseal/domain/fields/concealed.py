"""ConcealedString: the only value callers ever see for an encrypted field.

It holds the envelope JSON (never plaintext) together with its owning
record and field definition. Plaintext is reachable only through
`reveal(fn)`, which decrypts afresh on every call.

Every display and serialization path yields "[CONCEALED]". There is no
`__add__`/`__radd__`, so `"prefix" + value` raises
TypeError instead of quietly building a string with a placeholder in it.

Plain `json.dumps` fails with its own TypeError ("not JSON serializable");
pass `cls=ConcealedJSONEncoder` to emit the placeholder instead.
"""
import json
from typing import Any, Callable, List, Optional, TypeVar

from pydantic_core import core_schema

from fieldseal.errors import SecurityError, SerializerError

CONCEALED = "[CONCEALED]"

T = TypeVar("T")


def _looks_like_envelope(data: str) -> bool:
    try:
        parsed = json.loads(data)
    except (TypeError, ValueError):
        return False
    return isinstance(parsed, dict) and "algorithm" in parsed


class ConcealedString:
    __slots__ = ("_encrypted_data", "_record", "_field", "_cleared")

    def __init__(self, encrypted_data: str, record: Any, field: Any):
        if not isinstance(encrypted_data, str) or not _looks_like_envelope(encrypted_data):
            raise ValueError(f"ConcealedString requires encrypted JSON data, got: {type(encrypted_data).__name__}")
        self._encrypted_data: Optional[str] = encrypted_data
        self._record = record
        self._field = field
        self._cleared = False

    def reveal(self, fn: Callable[[str], T]) -> T:
        """Decrypt and pass the plaintext to `fn`; return what `fn` returns.

        The plaintext is not kept anywhere after `fn` returns. Avoid making
        copies of it inside `fn` (interpolation, logging, globals).

            user.api_token.reveal(lambda token: client.post(url, token=token))
        """
        if fn is None or not callable(fn):
            raise TypeError("Block required for reveal")
        if self._cleared:
            raise SecurityError("Encrypted data already cleared")
        if self._encrypted_data is None:
            raise SecurityError("No encrypted data to reveal")

        plaintext = self._field.decrypt_value(self._record, self._encrypted_data)
        return fn(plaintext)

    @property
    def encrypted_value(self) -> Optional[str]:
        """Envelope JSON for the persistence layer."""
        return self._encrypted_data

    @property
    def cleared(self) -> bool:
        return self._cleared

    def belongs_to_context(self, record: Any, field_name: str) -> bool:
        """True if this value was created for `record`'s `field_name`."""
        if self._record is None or self._field is None:
            return False
        return (
            type(self._record).__name__ == type(record).__name__
            and getattr(self._record, "identifier", None) == getattr(record, "identifier", None)
            and self._field.name == field_name
        )

    def clear(self) -> None:
        """Drop the envelope and back-references. Safe to call repeatedly."""
        if self._cleared:
            return
        self._encrypted_data = None
        self._record = None
        self._field = None
        self._cleared = True

    # Display

    def concealed_display(self) -> str:
        return CONCEALED

    def __str__(self) -> str:
        return CONCEALED

    def __repr__(self) -> str:
        return CONCEALED

    def __format__(self, format_spec: str) -> str:
        return format(CONCEALED, format_spec)

    # Serialization

    def to_json(self) -> str:
        return json.dumps(CONCEALED)

    def as_json(self) -> str:
        return CONCEALED

    def to_dict(self) -> str:
        return CONCEALED

    def to_list(self) -> List[str]:
        return [CONCEALED]

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any) -> core_schema.CoreSchema:
        return core_schema.is_instance_schema(
            cls,
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda value: CONCEALED, when_used="always"
            ),
        )

    def __reduce_ex__(self, protocol):
        raise SerializerError("ConcealedString cannot be pickled")

    def __copy__(self):
        raise SerializerError("ConcealedString cannot be copied")

    def __deepcopy__(self, memo):
        raise SerializerError("ConcealedString cannot be copied")

    # Identity semantics

    def __eq__(self, other: object) -> bool:
        return self is other

    def __ne__(self, other: object) -> bool:
        return self is not other

    def __hash__(self) -> int:
        # Constant across instances.
        return hash(ConcealedString)

    # Length semantics of the concealed representation

    def __len__(self) -> int:
        return len(CONCEALED)

    def __bool__(self) -> bool:
        return True

    def is_empty(self) -> bool:
        return False

    def is_present(self) -> bool:
        return True


class ConcealedJSONEncoder(json.JSONEncoder):
    """json encoder that renders concealed values as "[CONCEALED]"."""

    def default(self, o):
        if isinstance(o, ConcealedString):
            return CONCEALED
        return super().default(o)
