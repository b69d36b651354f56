import base64

import pytest

from fieldseal import dependencies
from fieldseal.domain.encryption.instrumentation import reset_derivation_count
from fieldseal.settings import EncryptionConfig


@pytest.fixture(autouse=True)
def _isolate_engine_state():
    reset_derivation_count()
    dependencies.reset()
    yield
    dependencies.reset()
    reset_derivation_count()


@pytest.fixture
def key_v1():
    return base64.b64encode(b"a" * 32).decode()


@pytest.fixture
def key_v2():
    return base64.b64encode(b"b" * 32).decode()


@pytest.fixture
def config(key_v1):
    return EncryptionConfig(encryption_keys={"v1": key_v1}, current_key_version="v1")


@pytest.fixture
def manager(config):
    """Active process-wide manager for the v1 configuration."""
    return dependencies.configure(config)
