"""
Codec Crypto Core — Key derivation, envelope encryption/decryption and detection.

Keys are derived per user:
    PBKDF2-HMAC-SHA256(password, salt, iterations) → 32-byte key

Payloads are sealed into self-describing envelopes:
    ###ENCRYPTED###:<version>:<nonce b64>:<ciphertext+tag b64>

The marker and version are bound as associated data, so tampering with any
part of the envelope fails authentication.

Security Note:
    Never log plaintext, ciphertext, passwords or key material.
    Nonces are random 96-bit; collision probability negligible under normal usage.
"""
import os
import re
import hmac
import base64
import binascii
import secrets
import logging
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from ..exceptions import KeyDerivationError, DecryptionError
from .config import CodecConfig, get_config

logger = logging.getLogger("daynotes.codec")

ENCRYPTION_MARKER = "###ENCRYPTED###:"
NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16
KEY_LENGTH = 32  # AES-256

_CIPHERS = {
    "v1": AESGCM,
    "v2": ChaCha20Poly1305,
}

_ENVELOPE_RE = re.compile(
    re.escape(ENCRYPTION_MARKER)
    + r"(?P<version>v\d+)"
    + r":(?P<nonce>[A-Za-z0-9+/]{16})"
    + r":(?P<payload>(?:[A-Za-z0-9+/]{4})+(?:[A-Za-z0-9+/]{2}==|[A-Za-z0-9+/]{3}=)?"
    + r"|(?:[A-Za-z0-9+/]{2}==|[A-Za-z0-9+/]{3}=))"
)
# shortest payload: an empty plaintext still carries the 16-byte tag
_MIN_PAYLOAD_B64 = 24


class KeyHandle:
    """Opaque handle to derived key material.

    Holds the raw key only in process memory. It cannot be pickled and its
    repr never shows the material.
    """

    __slots__ = ("_key",)

    def __init__(self, key: bytes):
        if not isinstance(key, bytes) or len(key) != KEY_LENGTH:
            raise KeyDerivationError(
                f"Key material must be exactly {KEY_LENGTH} bytes"
            )
        self._key = key

    def cipher(self, version: str):
        """Return the AEAD cipher for an envelope version."""
        try:
            cls = _CIPHERS[version]
        except KeyError:
            raise DecryptionError(
                f"Unknown envelope version: {version}"
            ) from None
        return cls(self._key)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KeyHandle):
            return NotImplemented
        return hmac.compare_digest(self._key, other._key)

    __hash__ = None

    def __repr__(self) -> str:
        return "<KeyHandle>"

    def __reduce__(self):
        raise TypeError("KeyHandle cannot be serialized")


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def generate_salt(config: CodecConfig | None = None) -> str:
    """Generate a new per-user salt, hex encoded.

    The salt is not secret; it is stored with the user record at registration.
    """
    config = config or get_config()
    return secrets.token_hex(config.salt_size)


def derive_key(
    password: str,
    salt: str,
    config: CodecConfig | None = None,
) -> KeyHandle:
    """Derive a 32-byte content key from the user's password and salt.

    Args:
        password: The user's plaintext password.
        salt: The per-user salt stored with the user record.
        config: Codec configuration (iteration count).

    Returns:
        KeyHandle wrapping the derived key.

    Raises:
        KeyDerivationError: If password or salt is empty or not a string.
    """
    if not isinstance(password, str) or not password:
        raise KeyDerivationError("Password is required for key derivation")
    if not isinstance(salt, str) or not salt:
        raise KeyDerivationError("Salt is required for key derivation")
    config = config or get_config()
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt.encode("utf-8"),
        iterations=config.kdf_iterations,
    )
    return KeyHandle(kdf.derive(password.encode("utf-8")))


# ---------------------------------------------------------------------------
# Envelope encryption
# ---------------------------------------------------------------------------

def _associated_data(version: str) -> bytes:
    return f"{ENCRYPTION_MARKER}{version}".encode("ascii")


def _b64decode(text: str) -> bytes:
    """Decode base64, accepting only the canonical encoding.

    Unused bits before the padding are ignored by the decoder, so two
    different strings can decode to the same bytes; only the one
    ``b64encode`` produces is accepted.
    """
    raw = base64.b64decode(text, validate=True)
    if base64.b64encode(raw).decode("ascii") != text:
        raise binascii.Error("Non-canonical base64 encoding")
    return raw


def encrypt_payload(
    plaintext: str,
    key: KeyHandle,
    config: CodecConfig | None = None,
) -> str:
    """Seal a text payload into an envelope.

    Args:
        plaintext: Text to encrypt (note content or analysis text).
        key: Active content key.
        config: Codec configuration (cipher backend).

    Returns:
        Envelope string recognised by ``is_encrypted``.
    """
    if not isinstance(plaintext, str):
        raise TypeError(
            f"Payload must be str, got {type(plaintext).__name__}"
        )
    config = config or get_config()
    version = config.envelope_version
    cipher = key.cipher(version)
    nonce = os.urandom(NONCE_SIZE)
    ct = cipher.encrypt(
        nonce, plaintext.encode("utf-8"), _associated_data(version)
    )
    nonce_b64 = base64.b64encode(nonce).decode("ascii")
    ct_b64 = base64.b64encode(ct).decode("ascii")
    return f"{ENCRYPTION_MARKER}{version}:{nonce_b64}:{ct_b64}"


def decrypt_payload(envelope: str, key: KeyHandle) -> str:
    """Open an envelope produced by ``encrypt_payload``.

    Args:
        envelope: Envelope string.
        key: Content key to try.

    Returns:
        Decrypted plaintext.

    Raises:
        DecryptionError: Malformed envelope, unknown version, wrong key or
            corrupted ciphertext.
    """
    match = _ENVELOPE_RE.fullmatch(envelope) if isinstance(envelope, str) else None
    if match is None:
        raise DecryptionError("Malformed envelope")
    version = match.group("version")
    cipher = key.cipher(version)
    try:
        nonce = _b64decode(match.group("nonce"))
        ct = _b64decode(match.group("payload"))
    except binascii.Error as err:
        raise DecryptionError("Malformed envelope encoding") from err
    if len(ct) < TAG_SIZE:
        raise DecryptionError("Envelope payload too short")
    try:
        plaintext = cipher.decrypt(nonce, ct, _associated_data(version))
    except InvalidTag as err:
        raise DecryptionError(
            "Could not decrypt payload: wrong key or corrupted data"
        ) from err
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as err:
        raise DecryptionError("Decrypted payload is not valid UTF-8") from err


def is_encrypted(payload: Any) -> bool:
    """Structural test for an envelope; never attempts decryption.

    Returns False for anything that is not a well-formed envelope with a
    known version, including non-string values.
    """
    if not isinstance(payload, str) or not payload.startswith(ENCRYPTION_MARKER):
        return False
    match = _ENVELOPE_RE.fullmatch(payload)
    if match is None:
        return False
    if (
        match.group("version") not in _CIPHERS
        or len(match.group("payload")) < _MIN_PAYLOAD_B64
    ):
        return False
    try:
        _b64decode(match.group("nonce"))
        _b64decode(match.group("payload"))
    except binascii.Error:
        return False
    return True


def verify_password(
    password: str,
    salt: str,
    sample: str,
    config: CodecConfig | None = None,
) -> bool:
    """Check whether password and salt open an existing envelope.

    Lets a client confirm a password locally, without asking the server.
    """
    if not is_encrypted(sample):
        return False
    try:
        key = derive_key(password, salt, config)
        decrypt_payload(sample, key)
    except (KeyDerivationError, DecryptionError):
        return False
    return True
