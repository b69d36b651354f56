"""Settings and configuration.

`EncryptionSettings` reads the process environment (and `.env`) once;
`EncryptionConfig` is the immutable snapshot the engine actually runs on.
Rotating keys means building a new snapshot, never mutating one.
"""
import json
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file if it exists
try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass

DEFAULT_PERSONALIZATION = "FieldSeal"


def normalize_version(version: Any) -> Optional[str]:
    """Key versions may be given as enums or plain values; store them as str."""
    if version is None:
        return None
    if isinstance(version, Enum):
        version = version.value
    return str(version)


class EncryptionConfig(BaseModel):
    """Immutable encryption configuration snapshot."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    encryption_keys: Dict[str, str] = Field(default_factory=dict)
    current_key_version: Optional[str] = None
    encryption_personalization: str = DEFAULT_PERSONALIZATION
    default_algorithm: Optional[str] = None

    @field_validator("encryption_keys", mode="before")
    @classmethod
    def normalize_keys(cls, v):
        if v is None:
            return {}
        if isinstance(v, Mapping):
            return {normalize_version(k): val for k, val in v.items()}
        return v

    @field_validator("current_key_version", mode="before")
    @classmethod
    def normalize_current(cls, v):
        return normalize_version(v)

    @field_validator("encryption_personalization", mode="before")
    @classmethod
    def default_personalization(cls, v):
        return DEFAULT_PERSONALIZATION if v is None else v

    def with_current_version(self, version: Any) -> "EncryptionConfig":
        """Return a new snapshot pointing at another key version."""
        return self.model_copy(update={"current_key_version": normalize_version(version)})

    def with_keys(self, keys: Mapping[Any, str], current_version: Any = None) -> "EncryptionConfig":
        """Return a new snapshot with a wholesale replacement of the key map."""
        update: Dict[str, Any] = {
            "encryption_keys": {normalize_version(k): v for k, v in keys.items()},
        }
        if current_version is not None:
            update["current_key_version"] = normalize_version(current_version)
        return self.model_copy(update=update)


class EncryptionSettings(BaseSettings):
    """Environment-driven settings (FIELDSEAL_* variables)."""

    # JSON object: {"v1": "<base64 key>", ...}
    encryption_keys: Dict[str, str] = {}
    current_key_version: Optional[str] = None
    encryption_personalization: str = DEFAULT_PERSONALIZATION
    default_algorithm: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="FIELDSEAL_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("encryption_keys", mode="before")
    @classmethod
    def parse_keys(cls, v):
        if isinstance(v, str):
            v = json.loads(v) if v.strip() else {}
        return v

    def to_config(self) -> EncryptionConfig:
        return EncryptionConfig(
            encryption_keys=self.encryption_keys,
            current_key_version=self.current_key_version,
            encryption_personalization=self.encryption_personalization,
            default_algorithm=self.default_algorithm,
        )
