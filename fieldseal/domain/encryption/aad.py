"""Additional Authenticated Data builder.

AAD binds a ciphertext to the record identifier and, optionally, to the
values of other fields on the record. It is rebuilt from the record's
current values at reveal time, so changing a bound field after encryption
makes the stored ciphertext undecryptable.
"""
import hashlib
from typing import Any, Iterable, Optional, Sequence


def build_aad(identifier: Any, aad_fields: Sequence[str] = (), values: Iterable[Any] = ()) -> Optional[bytes]:
    """Deterministic AAD bytes, or None for a record without an identifier."""
    if identifier is None or identifier == "":
        return None

    if not aad_fields:
        return str(identifier).encode("utf-8")

    parts = [str(identifier)] + [str(v) for v in values if v is not None]
    return hashlib.sha256(":".join(parts).encode("utf-8")).hexdigest().encode("ascii")


def build_record_aad(record: Any, aad_fields: Sequence[str] = ()) -> Optional[bytes]:
    """AAD for a record object exposing `identifier` and the bound fields."""
    identifier = getattr(record, "identifier", None)
    values = [getattr(record, name, None) for name in aad_fields]
    return build_aad(identifier, aad_fields, values)
