"""Content Codec — Client-side encryption of note and analysis text.

Security Note (Threat Model):
    The content key is derived from the user's password and lives only in
    process memory for the lifetime of the session. The server stores
    envelopes and the non-secret salt, never the key. A memory dump of the
    client process during a session could expose the key; this is an
    accepted limitation.
"""

from .crypto import (
    KeyHandle,
    derive_key,
    generate_salt,
    encrypt_payload,
    decrypt_payload,
    is_encrypted,
    verify_password,
)
from .session_codec import ContentCodec
from .rekey import rekey_payloads
from .config import CodecConfig

__all__ = [
    "KeyHandle",
    "derive_key",
    "generate_salt",
    "encrypt_payload",
    "decrypt_payload",
    "is_encrypted",
    "verify_password",
    "ContentCodec",
    "rekey_payloads",
    "CodecConfig",
]
