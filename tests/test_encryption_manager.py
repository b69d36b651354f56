"""Engine-level tests for EncryptionManager."""
import base64
import json

import pytest

from fieldseal.domain.encryption.derivation import DerivationContext
from fieldseal.domain.encryption.instrumentation import derivation_count
from fieldseal.domain.encryption.models import EncryptedEnvelope
from fieldseal.domain.encryption.manager import EncryptionManager
from fieldseal.errors import DecryptionError, EncryptionError, InvalidKeyError
from fieldseal.settings import EncryptionConfig

CONTEXT = DerivationContext("User", "ssn", "u-42")


def _flip_first_byte(encoded: str) -> str:
    raw = bytearray(base64.b64decode(encoded))
    raw[0] ^= 0x01
    return base64.b64encode(bytes(raw)).decode()


def test_example_scenario(manager):
    envelope = manager.encrypt_for("User:ssn:u-42", "123-45-6789")

    assert envelope.algorithm == "xchacha20poly1305"
    assert len(base64.b64decode(envelope.nonce)) == 24
    assert len(base64.b64decode(envelope.auth_tag)) == 16
    assert envelope.key_version == "v1"
    assert manager.decrypt_for("User:ssn:u-42", envelope.to_json()) == "123-45-6789"


def test_context_object_matches_context_string(manager):
    envelope = manager.encrypt_for(CONTEXT, "secret")

    assert str(CONTEXT) == "User:ssn:u-42"
    assert manager.decrypt_for("User:ssn:u-42", envelope) == "secret"


@pytest.mark.parametrize("plaintext", ["x", "123-45-6789", "ünïcødé ✓", "a" * 10_000])
def test_roundtrip(manager, plaintext):
    envelope = manager.encrypt_for(CONTEXT, plaintext, aad=b"u-42")

    assert manager.decrypt_for(CONTEXT, envelope.to_json(), aad=b"u-42") == plaintext


@pytest.mark.parametrize("plaintext", [b"\xff\x00binary", bytes(range(256)), b"ascii bytes"])
def test_bytes_roundtrip(manager, plaintext):
    envelope = manager.encrypt_for(CONTEXT, plaintext, aad=b"u-42")

    assert manager.decrypt_bytes_for(CONTEXT, envelope.to_json(), aad=b"u-42") == plaintext


def test_non_utf8_plaintext_is_not_reported_as_tampering(manager):
    envelope = manager.encrypt_for(CONTEXT, b"\xff\x00binary")

    with pytest.raises(EncryptionError, match="not valid UTF-8") as exc:
        manager.decrypt_for(CONTEXT, envelope.to_json())
    assert not isinstance(exc.value, DecryptionError)


def test_decrypt_bytes_for_detects_tampering(manager):
    data = manager.encrypt_for(CONTEXT, b"\x01\x02\x03").to_dict()
    data["ciphertext"] = _flip_first_byte(data["ciphertext"])

    with pytest.raises(DecryptionError):
        manager.decrypt_bytes_for(CONTEXT, json.dumps(data))
    assert manager.decrypt_bytes_for(CONTEXT, None) is None


def test_empty_plaintext_is_not_encrypted(manager):
    assert manager.encrypt_for(CONTEXT, None) is None
    assert manager.encrypt_for(CONTEXT, "") is None
    assert manager.decrypt_for(CONTEXT, None) is None
    assert derivation_count() == 0


def test_nonces_are_unique(manager):
    envelopes = [manager.encrypt_for(CONTEXT, "same plaintext") for _ in range(50)]

    assert len({e.nonce for e in envelopes}) == 50
    assert len({e.ciphertext for e in envelopes}) == 50


@pytest.mark.parametrize("component", ["nonce", "ciphertext", "auth_tag"])
def test_tampered_component_fails(manager, component):
    data = manager.encrypt_for(CONTEXT, "123-45-6789", aad=b"u-42").to_dict()
    data[component] = _flip_first_byte(data[component])

    with pytest.raises(DecryptionError) as exc:
        manager.decrypt_for(CONTEXT, json.dumps(data), aad=b"u-42")
    assert str(exc.value) == "Decryption failed"


def test_tampered_aad_fails(manager):
    envelope = manager.encrypt_for(CONTEXT, "123-45-6789", aad=b"u-42")

    with pytest.raises(DecryptionError, match="^Decryption failed$"):
        manager.decrypt_for(CONTEXT, envelope, aad=b"u-43")


def test_wrong_context_fails(manager):
    envelope = manager.encrypt_for(CONTEXT, "123-45-6789")

    with pytest.raises(DecryptionError):
        manager.decrypt_for(DerivationContext("User", "ssn", "u-43"), envelope)
    with pytest.raises(DecryptionError):
        manager.decrypt_for(DerivationContext("User", "tax_id", "u-42"), envelope)


def test_invalid_envelope_rejected_before_derivation(manager):
    with pytest.raises(EncryptionError, match="Invalid JSON structure"):
        manager.decrypt_for(CONTEXT, "not an envelope")

    assert derivation_count() == 0


def test_key_rotation(config, key_v1, key_v2):
    old_manager = EncryptionManager(config)
    old_envelope = old_manager.encrypt_for(CONTEXT, "legacy")

    rotated = EncryptionManager(config.with_keys({"v1": key_v1, "v2": key_v2}, current_version="v2"))
    new_envelope = rotated.encrypt_for(CONTEXT, "fresh")

    assert old_envelope.key_version == "v1"
    assert new_envelope.key_version == "v2"
    assert rotated.decrypt_for(CONTEXT, old_envelope) == "legacy"
    assert rotated.decrypt_for(CONTEXT, new_envelope) == "fresh"


def test_relabelled_key_version_fails(config, key_v1, key_v2):
    manager = EncryptionManager(config.with_keys({"v1": key_v1, "v2": key_v2}, current_version="v1"))
    data = manager.encrypt_for(CONTEXT, "secret").to_dict()
    data["key_version"] = "v2"

    with pytest.raises(DecryptionError):
        manager.decrypt_for(CONTEXT, json.dumps(data))


def test_retired_key_version_raises(config, key_v2):
    envelope = EncryptionManager(config).encrypt_for(CONTEXT, "secret")
    manager = EncryptionManager(EncryptionConfig(encryption_keys={"v2": key_v2}, current_key_version="v2"))

    with pytest.raises(EncryptionError, match="No key for version: v1"):
        manager.decrypt_for(CONTEXT, envelope)


def test_algorithm_override_per_call(manager):
    envelope = manager.encrypt_for(CONTEXT, "secret", algorithm="aes-256-gcm")

    assert envelope.algorithm == "aes-256-gcm"
    assert len(base64.b64decode(envelope.nonce)) == 12
    assert manager.decrypt_for(CONTEXT, envelope.to_json()) == "secret"


def test_fallback_envelope_readable_by_default_engine(config):
    aes_manager = EncryptionManager(config.model_copy(update={"default_algorithm": "aes-256-gcm"}))
    envelope = aes_manager.encrypt_for(CONTEXT, "secret")

    assert EncryptionManager(config).decrypt_for(CONTEXT, envelope) == "secret"


def test_personalization_separates_applications(config):
    other_app = EncryptionManager(config.model_copy(update={"encryption_personalization": "OtherApp"}))
    envelope = EncryptionManager(config).encrypt_for(CONTEXT, "secret")

    with pytest.raises(DecryptionError):
        other_app.decrypt_for(CONTEXT, envelope)


def test_each_operation_derives_a_key(manager):
    envelope = manager.encrypt_for(CONTEXT, "secret")
    manager.decrypt_for(CONTEXT, envelope)
    manager.decrypt_for(CONTEXT, envelope)

    assert derivation_count() == 3


def test_validate_configuration(manager):
    manager.validate_configuration()

    broken = EncryptionManager(EncryptionConfig(encryption_keys={"v1": "!!!"}, current_key_version="v1"))
    with pytest.raises(EncryptionError, match="not valid Base64"):
        broken.validate_configuration()


def test_validate_rejects_personalization_unusable_by_default_provider(config):
    manager = EncryptionManager(config.model_copy(update={"encryption_personalization": "MyApplicationName"}))

    with pytest.raises(InvalidKeyError, match="at most 16 bytes"):
        manager.validate_configuration()
    status = manager.status()
    assert status["valid"] is False
    assert "at most 16 bytes" in status["error"]


def test_long_personalization_accepted_by_fallback_default(config):
    manager = EncryptionManager(config.model_copy(update={
        "encryption_personalization": "MyApplicationName",
        "default_algorithm": "aes-256-gcm",
    }))

    manager.validate_configuration()
    envelope = manager.encrypt_for(CONTEXT, "secret")
    assert manager.decrypt_for(CONTEXT, envelope) == "secret"


def test_status_never_contains_key_material(manager, key_v1):
    status = manager.status()

    assert status["valid"] is True
    assert status["default_algorithm"] == "xchacha20poly1305"
    assert status["available_algorithms"] == ["xchacha20poly1305", "aes-256-gcm"]
    assert status["key_versions"] == ["v1"]
    assert status["current_version"] == "v1"
    assert key_v1 not in json.dumps(status)


def test_status_reports_invalid_configuration():
    status = EncryptionManager(EncryptionConfig()).status()

    assert status["valid"] is False
    assert status["error"] == "No encryption keys configured"


def test_encryption_info(manager):
    assert manager.encryption_info() == {
        "algorithm": "xchacha20poly1305",
        "key_size": 32,
        "nonce_size": 24,
        "tag_size": 16,
    }
    assert manager.encryption_info("aes-256-gcm")["nonce_size"] == 12


def test_envelope_object_accepted(manager):
    envelope = manager.encrypt_for(CONTEXT, "secret")

    assert isinstance(envelope, EncryptedEnvelope)
    assert manager.decrypt_for(CONTEXT, envelope) == "secret"
