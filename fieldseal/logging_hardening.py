"""Logging Hardening and Redaction.

This module provides filters to keep envelope material (nonces, ciphertext,
auth tags) out of application logs, e.g. when a persistence layer logs the
commands it sends.
"""
import logging
import re

# Envelope JSON fields, plain or with escaped quotes (JSON nested in JSON).
SECRET_PATTERNS = [
    (re.compile(r'(\\?"(?:nonce|ciphertext|auth_tag)\\?":\s*\\?")[A-Za-z0-9+/=]+(\\?")'), r'\1[REDACTED]\2'),
    # Also catch keyword-based assignments
    (re.compile(r'\b(nonce|ciphertext|auth_tag)=[A-Za-z0-9+/=]+'), r'\1=[REDACTED]'),
]


def redact_string(text: str) -> str:
    for pattern, replacement in SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class EnvelopeRedactionFilter(logging.Filter):
    """Filter that redacts envelope-like patterns from log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_string(record.msg)

        # Also redact arguments if they are strings
        if isinstance(record.args, tuple) and record.args:
            record.args = tuple(
                redact_string(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        elif isinstance(record.args, dict):
            record.args = {
                k: redact_string(v) if isinstance(v, str) else v
                for k, v in record.args.items()
            }

        return True


def setup_logging_redaction() -> None:
    """Apply the EnvelopeRedactionFilter to the root logger and existing loggers."""
    redact_filter = EnvelopeRedactionFilter()

    root_logger = logging.getLogger()

    # Remove existing filters if any (to avoid duplicates)
    for f in root_logger.filters[:]:
        if isinstance(f, EnvelopeRedactionFilter):
            root_logger.removeFilter(f)

    root_logger.addFilter(redact_filter)

    # Specifically ensure it's on library loggers if they bypass root
    for name in logging.root.manager.loggerDict:
        logger = logging.getLogger(name)
        for f in logger.filters[:]:
            if isinstance(f, EnvelopeRedactionFilter):
                logger.removeFilter(f)
        logger.addFilter(redact_filter)

    logging.info("Logging redaction filters active.")
