"""Daynotes client package."""
from .version import __version__
from .data import SessionData, SessionUser
from .codec import ContentCodec, KeyHandle, derive_key, is_encrypted

__all__ = [
    "__version__",
    "SessionData",
    "SessionUser",
    "ContentCodec",
    "KeyHandle",
    "derive_key",
    "is_encrypted",
]
