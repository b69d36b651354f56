"""Encryption error taxonomy.

Every failure is raised synchronously to the caller. Nothing here ever
carries plaintext or key material in its message.
"""


class EncryptionError(Exception):
    """Configuration, input validation and envelope format errors."""


class InvalidKeyError(EncryptionError):
    """Master key or personalization rejected during key derivation."""


class DecryptionError(EncryptionError):
    """Authentication failure.

    The message never says which part of the envelope or AAD failed to
    verify.
    """

    def __init__(self, message: str = "Decryption failed"):
        super().__init__(message)


class SerializerError(EncryptionError, TypeError):
    """Raised when a concealed value reaches an untrusted serializer."""


class SecurityError(Exception):
    """API misuse on a concealed value (cleared, foreign, copied)."""
