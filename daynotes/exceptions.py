"""
Daynotes exceptions.

Codec errors are local to a single payload: the server never holds the key,
so none of them requires server-side recovery.
"""


class DaynotesError(Exception):
    """Base class for all Daynotes errors."""


class CodecError(DaynotesError):
    """Base class for content encryption errors."""


class KeyDerivationError(CodecError):
    """Password or salt missing or unusable for key derivation."""


class NoActiveKeyError(CodecError):
    """Encryption requested but no key is active for this session.

    A state error, not shown to users: the caller must abort the write.
    """


class DecryptionError(CodecError):
    """Wrong key, or the envelope is malformed or corrupted."""


class ValidationError(DaynotesError):
    """Note or analysis input rejected before it reaches the transport."""


class TransportError(DaynotesError):
    """Non-successful response from the Daynotes server."""

    def __init__(self, status: int, message: str = ""):
        self.status = status
        self.message = message or f"HTTP {status}"
        super().__init__(f"{status}: {self.message}")
