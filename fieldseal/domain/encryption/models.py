"""Encryption Domain Models."""
import base64
import binascii
import json
from typing import Any, Dict, NamedTuple, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from fieldseal.errors import EncryptionError

ALGORITHM_XCHACHA20_POLY1305 = "xchacha20poly1305"
ALGORITHM_AES_256_GCM = "aes-256-gcm"

# algorithm -> (nonce size, auth tag size)
ALGORITHM_SIZES: Dict[str, Tuple[int, int]] = {
    ALGORITHM_XCHACHA20_POLY1305: (24, 16),
    ALGORITHM_AES_256_GCM: (12, 16),
}

REQUIRED_FIELDS = ("algorithm", "nonce", "ciphertext", "auth_tag", "key_version")
BINARY_FIELDS = ("nonce", "ciphertext", "auth_tag")


class CipherResult(NamedTuple):
    """Raw output of a provider encrypt call."""
    nonce: bytes
    ciphertext: bytes
    auth_tag: bytes


def b64_encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64_decode(value: str) -> bytes:
    """Strict standard base64 (rejects whitespace and foreign characters)."""
    return base64.b64decode(value, validate=True)


class EncryptedEnvelope(BaseModel):
    """
    Serialized result of one encryption operation.

    Binary fields are standard base64 strings. The envelope is what gets
    persisted (as JSON) in place of the plaintext; it is consumed on
    decrypt and never cached.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    algorithm: str = Field(..., min_length=1)
    nonce: str
    ciphertext: str
    auth_tag: str
    key_version: str = Field(..., min_length=1)

    @classmethod
    def from_cipher_result(cls, algorithm: str, result: CipherResult, key_version: str) -> "EncryptedEnvelope":
        return cls(
            algorithm=algorithm,
            nonce=b64_encode(result.nonce),
            ciphertext=b64_encode(result.ciphertext),
            auth_tag=b64_encode(result.auth_tag),
            key_version=key_version,
        )

    def to_dict(self) -> Dict[str, str]:
        return {field: getattr(self, field) for field in REQUIRED_FIELDS}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @staticmethod
    def _parse(json_string: Any) -> Dict[str, Any]:
        if not isinstance(json_string, str):
            raise EncryptionError(f"Expected JSON string, got {type(json_string).__name__}")
        try:
            parsed = json.loads(json_string)
        except json.JSONDecodeError as e:
            raise EncryptionError(f"Invalid JSON structure: {e.msg}") from None
        if not isinstance(parsed, dict):
            raise EncryptionError(f"Expected JSON object, got {type(parsed).__name__}")

        missing = [f for f in REQUIRED_FIELDS if parsed.get(f) in (None, "")]
        if missing:
            raise EncryptionError(f"Missing required fields: {', '.join(missing)}")
        for f in REQUIRED_FIELDS:
            if not isinstance(parsed[f], str):
                raise EncryptionError(f"Invalid {f} field: expected string")
        return parsed

    @classmethod
    def from_json(cls, json_string: str) -> "EncryptedEnvelope":
        """Parse and fully validate a stored envelope.

        Raises EncryptionError before any decryption is attempted if the
        JSON, the algorithm, the base64 encoding or the nonce/tag sizes are
        wrong.
        """
        envelope = cls(**{f: v for f, v in cls._parse(json_string).items() if f in REQUIRED_FIELDS})
        envelope.validate_decryptable()
        return envelope

    @classmethod
    def is_valid(cls, json_string: Optional[str]) -> bool:
        """Shape check only: JSON object carrying every required field."""
        if json_string is None:
            return True
        try:
            cls._parse(json_string)
        except EncryptionError:
            return False
        return True

    @classmethod
    def validate_shape(cls, json_string: Optional[str]) -> Optional["EncryptedEnvelope"]:
        """Raising variant of is_valid(); returns the parsed envelope."""
        if json_string is None:
            return None
        return cls(**{f: v for f, v in cls._parse(json_string).items() if f in REQUIRED_FIELDS})

    def decoded(self) -> Tuple[bytes, bytes, bytes]:
        """Return (nonce, ciphertext, auth_tag) after full validation."""
        self.validate_decryptable()
        return b64_decode(self.nonce), b64_decode(self.ciphertext), b64_decode(self.auth_tag)

    def validate_decryptable(self) -> "EncryptedEnvelope":
        sizes = ALGORITHM_SIZES.get(self.algorithm)
        if sizes is None:
            raise EncryptionError(f"Unsupported algorithm: {self.algorithm}")

        decoded = {}
        for field in BINARY_FIELDS:
            try:
                decoded[field] = b64_decode(getattr(self, field))
            except (binascii.Error, ValueError):
                raise EncryptionError(f"Invalid Base64 encoding in {field} field") from None

        nonce_size, tag_size = sizes
        if len(decoded["nonce"]) != nonce_size:
            raise EncryptionError("Invalid nonce size")
        if len(decoded["auth_tag"]) != tag_size:
            raise EncryptionError("Invalid auth_tag size")
        return self

    def is_decryptable(self) -> bool:
        try:
            self.validate_decryptable()
        except EncryptionError:
            return False
        return True

    def __repr__(self) -> str:
        return f"EncryptedEnvelope(algorithm={self.algorithm!r}, key_version={self.key_version!r})"

    __str__ = __repr__
