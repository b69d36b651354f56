import base64
import json
from enum import Enum

import pytest
from pydantic import ValidationError

from fieldseal.settings import DEFAULT_PERSONALIZATION, EncryptionConfig, EncryptionSettings

KEY_V1 = base64.b64encode(b"a" * 32).decode()
KEY_V2 = base64.b64encode(b"b" * 32).decode()


class KeyVersion(Enum):
    V1 = "v1"


def test_config_defaults():
    config = EncryptionConfig()

    assert config.encryption_keys == {}
    assert config.current_key_version is None
    assert config.encryption_personalization == DEFAULT_PERSONALIZATION
    assert config.default_algorithm is None


def test_config_normalizes_versions():
    config = EncryptionConfig(encryption_keys={KeyVersion.V1: KEY_V1, 2: KEY_V2}, current_key_version=KeyVersion.V1)

    assert set(config.encryption_keys) == {"v1", "2"}
    assert config.current_key_version == "v1"


def test_config_is_immutable():
    config = EncryptionConfig(encryption_keys={"v1": KEY_V1}, current_key_version="v1")

    with pytest.raises(ValidationError):
        config.current_key_version = "v2"


def test_config_rejects_unknown_options():
    with pytest.raises(ValidationError):
        EncryptionConfig(encryption_key="oops")


def test_rotation_builds_new_snapshots():
    config = EncryptionConfig(encryption_keys={"v1": KEY_V1}, current_key_version="v1")

    rotated = config.with_keys({"v1": KEY_V1, "v2": KEY_V2}, current_version="v2")
    pinned = rotated.with_current_version("v1")

    assert config.current_key_version == "v1"
    assert list(config.encryption_keys) == ["v1"]
    assert rotated.current_key_version == "v2"
    assert set(rotated.encryption_keys) == {"v1", "v2"}
    assert pinned.current_key_version == "v1"


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("FIELDSEAL_ENCRYPTION_KEYS", json.dumps({"v1": KEY_V1, "v2": KEY_V2}))
    monkeypatch.setenv("FIELDSEAL_CURRENT_KEY_VERSION", "v2")
    monkeypatch.setenv("FIELDSEAL_ENCRYPTION_PERSONALIZATION", "MyApp")
    monkeypatch.setenv("FIELDSEAL_DEFAULT_ALGORITHM", "aes-256-gcm")

    config = EncryptionSettings(_env_file=None).to_config()

    assert config.encryption_keys == {"v1": KEY_V1, "v2": KEY_V2}
    assert config.current_key_version == "v2"
    assert config.encryption_personalization == "MyApp"
    assert config.default_algorithm == "aes-256-gcm"


def test_settings_defaults_without_environment(monkeypatch):
    for name in ("ENCRYPTION_KEYS", "CURRENT_KEY_VERSION", "ENCRYPTION_PERSONALIZATION", "DEFAULT_ALGORITHM"):
        monkeypatch.delenv(f"FIELDSEAL_{name}", raising=False)

    settings = EncryptionSettings(_env_file=None)

    assert settings.encryption_keys == {}
    assert settings.current_key_version is None
    assert settings.encryption_personalization == DEFAULT_PERSONALIZATION
