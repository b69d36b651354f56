import json
import logging

from fieldseal.logging_hardening import EnvelopeRedactionFilter, redact_string, setup_logging_redaction

ENVELOPE = json.dumps({
    "algorithm": "aes-256-gcm",
    "nonce": "bm9uY2Vub25jZQ==",
    "ciphertext": "c2VjcmV0LXZhbHVl",
    "auth_tag": "dGFndGFndGFndGFn",
    "key_version": "v1",
})


def test_redacts_envelope_json():
    redacted = redact_string(f"UPDATE users SET ssn = '{ENVELOPE}'")

    assert "c2VjcmV0LXZhbHVl" not in redacted
    assert "bm9uY2Vub25jZQ==" not in redacted
    assert "dGFndGFndGFndGFn" not in redacted
    assert '"algorithm": "aes-256-gcm"' in redacted
    assert '"key_version": "v1"' in redacted


def test_redacts_nested_escaped_envelope():
    payload = json.dumps({"ssn": ENVELOPE})

    assert "c2VjcmV0LXZhbHVl" not in redact_string(payload)


def test_redacts_keyword_assignments():
    assert redact_string("ciphertext=c2VjcmV0 nonce=bm9uY2U=") == "ciphertext=[REDACTED] nonce=[REDACTED]"


def test_filter_redacts_msg_and_args():
    record = logging.LogRecord("db", logging.INFO, __file__, 1, "params: %s", (ENVELOPE,), None)

    assert EnvelopeRedactionFilter().filter(record)
    assert "c2VjcmV0LXZhbHVl" not in record.getMessage()


def test_setup_installs_single_filter():
    setup_logging_redaction()
    setup_logging_redaction()

    root_filters = [f for f in logging.getLogger().filters if isinstance(f, EnvelopeRedactionFilter)]
    assert len(root_filters) == 1

    for f in root_filters:
        logging.getLogger().removeFilter(f)
