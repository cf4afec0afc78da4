"""
ContentCodec — Encryption of note and analysis payloads bound to a user session.

Provides the public API used at the boundary with the server:
- ``set_active_key(key)`` / ``clear_active_key()``: the session's single key slot
- ``encrypt(text)`` / ``decrypt(envelope)``: strict operations on one payload
- ``seal(text)``: outbound policy, encrypt iff a key is active
- ``open(payload)`` / ``open_many(payloads)``: inbound policy, decrypt iff
  the payload is an envelope

The key is kept among the session's in-memory objects, so it is never part of
persisted session data and disappears with ``SessionData.invalidate()``.

Security Note:
    Never log plaintext or ciphertext values. Only log counts, operations
    and user IDs.
"""
import logging
from typing import Any, Optional
from collections.abc import Iterable

from ..conf import SESSION_CONTENT_KEY, DECRYPTION_FAILED_TEXT
from ..data import SessionData
from ..exceptions import NoActiveKeyError, DecryptionError
from ..models import Payload, PayloadEncoding, OpenResult
from .config import CodecConfig, get_config
from .crypto import (
    KeyHandle,
    encrypt_payload,
    decrypt_payload,
    is_encrypted,
)

logger = logging.getLogger("daynotes.codec")


class ContentCodec:
    """Encrypts and decrypts payloads with the key of one session.

    Each call reads the key slot exactly once, so a concurrent
    ``clear_active_key`` is observed either as the old key or as no key.
    """

    def __init__(
        self,
        session: SessionData,
        config: Optional[CodecConfig] = None,
    ):
        self._session = session
        self._config = config or get_config()

    @property
    def session(self) -> SessionData:
        return self._session

    # ------------------------------------------------------------------
    # Key slot
    # ------------------------------------------------------------------

    def _active_key(self) -> Optional[KeyHandle]:
        return self._session.session_objects().get(SESSION_CONTENT_KEY)

    def set_active_key(self, key: KeyHandle) -> None:
        """Activate a content key for this session, replacing any previous one."""
        if not isinstance(key, KeyHandle):
            raise TypeError("set_active_key expects a KeyHandle")
        self._session[SESSION_CONTENT_KEY] = key
        logger.debug("Content key activated: session=%s", self._session.session_id)

    def clear_active_key(self) -> None:
        """Drop the content key. Must run on logout and on disable."""
        self._session.session_objects().pop(SESSION_CONTENT_KEY, None)
        logger.debug("Content key cleared: session=%s", self._session.session_id)

    def is_encryption_enabled(self) -> bool:
        return self._active_key() is not None

    def _encryption_requested(self) -> bool:
        user = self._session.user
        return bool(user is not None and user.encryption_enabled)

    # ------------------------------------------------------------------
    # Strict operations
    # ------------------------------------------------------------------

    def encrypt(self, plaintext: str) -> str:
        """Encrypt one payload.

        Raises:
            NoActiveKeyError: If no key is active.
        """
        key = self._active_key()
        if key is None:
            raise NoActiveKeyError("No active content key for this session")
        return encrypt_payload(plaintext, key, self._config)

    def decrypt(self, envelope: str) -> str:
        """Decrypt one envelope.

        Raises:
            NoActiveKeyError: If no key is active.
            DecryptionError: Wrong key or corrupted envelope.
        """
        key = self._active_key()
        if key is None:
            raise NoActiveKeyError("No active content key for this session")
        return decrypt_payload(envelope, key)

    @staticmethod
    def is_encrypted(payload: Any) -> bool:
        return is_encrypted(payload)

    # ------------------------------------------------------------------
    # Boundary policy
    # ------------------------------------------------------------------

    def seal(self, plaintext: Optional[str]) -> Optional[Payload]:
        """Prepare an outbound payload.

        Encrypts iff a key is active. When the session user has encryption
        turned on but no key is active the write must not go out as
        plaintext, so NoActiveKeyError propagates to the caller.
        """
        if plaintext is None:
            return None
        key = self._active_key()
        if key is None:
            if self._encryption_requested():
                raise NoActiveKeyError(
                    "Encryption is enabled for this user but no key is active; "
                    "log in again to unlock"
                )
            return Payload(text=plaintext, encoding=PayloadEncoding.PLAIN)
        return Payload(
            text=encrypt_payload(plaintext, key, self._config),
            encoding=PayloadEncoding.ENVELOPE,
        )

    def is_envelope(self, payload: Payload) -> bool:
        """Classify a payload by its tag, or structurally when it has none."""
        if payload.encoding is not None:
            return payload.encoding is PayloadEncoding.ENVELOPE
        return is_encrypted(payload.text)

    def open(self, payload: Payload | str | None) -> Optional[str]:
        """Return the plaintext of an inbound payload.

        Plain payloads pass through untouched, whether written before
        encryption was enabled or after it was disabled.

        Raises:
            DecryptionError: The payload is an envelope that cannot be opened
                with the active key, or no key is active.
        """
        if payload is None:
            return None
        if isinstance(payload, str):
            payload = Payload(text=payload)
        if not self.is_envelope(payload):
            return payload.text
        key = self._active_key()
        if key is None:
            raise DecryptionError("Encrypted payload but no active content key")
        return decrypt_payload(payload.text, key)

    def open_many(self, payloads: Iterable[Payload | str]) -> list[OpenResult]:
        """Open a batch; a payload that fails becomes an error marker."""
        results: list[OpenResult] = []
        failures = 0
        for payload in payloads:
            try:
                results.append(OpenResult(text=self.open(payload)))
            except DecryptionError as err:
                failures += 1
                results.append(
                    OpenResult(
                        text=DECRYPTION_FAILED_TEXT, failed=True, error=str(err)
                    )
                )
        if failures:
            logger.warning(
                "Could not decrypt %d of %d payload(s): session=%s",
                failures, len(results), self._session.session_id,
            )
        return results
