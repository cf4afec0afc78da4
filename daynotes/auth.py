"""
SessionAuth — Login, logout and encryption toggles for one client session.

The password is used exactly once per login to derive the content key and is
never stored. Logging out, disabling encryption and invalidating the session
all remove the key.

Security Note:
    Never log passwords, salts or key material. Only log user IDs and
    operation names.
"""
import logging
from typing import Any, Optional
from collections.abc import Iterable

from .codec import (
    ContentCodec,
    CodecConfig,
    derive_key,
    generate_salt,
    rekey_payloads,
    verify_password,
)
from .codec.config import get_config
from .data import SessionData, SessionUser
from .exceptions import KeyDerivationError, ValidationError
from .models import Payload

logger = logging.getLogger("daynotes.auth")


class SessionAuth:
    """Client side of the Daynotes auth endpoints."""

    def __init__(
        self,
        transport: Any,
        session: Optional[SessionData] = None,
        config: Optional[CodecConfig] = None,
    ):
        self._transport = transport
        self._config = config or get_config()
        self._session = session or SessionData(new=True)
        self._codec = ContentCodec(self._session, self._config)

    @property
    def session(self) -> SessionData:
        return self._session

    @property
    def codec(self) -> ContentCodec:
        return self._codec

    @property
    def user(self) -> Optional[SessionUser]:
        return self._session.user

    def _unlock(self, password: str, user: SessionUser) -> bool:
        """Derive and activate the content key; False if derivation failed."""
        try:
            key = derive_key(password, user.encryption_salt, self._config)
        except KeyDerivationError as err:
            logger.error(
                "Could not derive content key for user=%s: %s", user.user_id, err,
            )
            return False
        self._codec.set_active_key(key)
        return True

    async def register(self, username: str, password: str, **extra) -> SessionUser:
        """Create an account with a fresh salt; encryption starts disabled."""
        payload = {
            **extra,
            "username": username,
            "password": password,
            "encryptionSalt": generate_salt(self._config),
            "encryptionEnabled": False,
            "encryptionVersion": self._config.envelope_version,
        }
        record = await self._transport.request("POST", "/api/register", data=payload)
        user = SessionUser.from_api(record)
        self._session.login(user)
        logger.info("Registered user=%s", user.user_id)
        return user

    async def login(self, username: str, password: str) -> SessionUser:
        """Authenticate and, if the account is encrypted, unlock the session.

        A key derivation failure leaves the session logged in but locked:
        reads show envelopes as undecryptable and writes are refused.
        """
        record = await self._transport.request(
            "POST", "/api/login", data={"username": username, "password": password},
        )
        # a previous user's key must never survive a user switch
        self._codec.clear_active_key()
        user = SessionUser.from_api(record)
        self._session.login(user)
        if user.encryption_enabled and user.encryption_salt:
            if self._unlock(password, user):
                logger.info(
                    "End-to-end encryption initialized: user=%s", user.user_id,
                )
        return user

    async def logout(self) -> None:
        """Log out; the key is dropped even if the request fails."""
        user = self._session.user
        try:
            await self._transport.request("POST", "/api/logout")
        finally:
            self._codec.clear_active_key()
            self._session.invalidate()
        logger.info("Logged out user=%s", user.user_id if user else None)

    async def enable_encryption(self, password: str) -> SessionUser:
        """Turn encryption on for the account and unlock this session.

        Existing plaintext notes are not rewritten; they keep reading as
        plaintext.
        """
        record = await self._transport.request(
            "POST", "/api/user/enable-encryption",
        )
        user = SessionUser.from_api(record)
        if not user.encryption_salt and self.user is not None:
            user.encryption_salt = self.user.encryption_salt
        self._session.login(user)
        if not self._unlock(password, user):
            raise KeyDerivationError(
                "Encryption enabled but the content key could not be derived"
            )
        logger.info("Encryption enabled: user=%s", user.user_id)
        return user

    def check_password(self, password: str, sample: str) -> bool:
        """Confirm a password locally by opening one stored envelope."""
        user = self._session.user
        if user is None or not user.encryption_salt:
            return False
        return verify_password(password, user.encryption_salt, sample, self._config)

    async def disable_encryption(
        self, confirm_password: str, sample: Optional[str] = None,
    ) -> SessionUser:
        """Turn encryption off; the server checks the password first.

        With ``sample`` (any stored envelope) the password is also checked
        locally, and a mismatch is rejected before the request is sent.
        """
        if sample is not None and not self.check_password(confirm_password, sample):
            raise ValidationError("Password does not open this account's notes")
        record = await self._transport.request(
            "POST",
            "/api/user/disable-encryption",
            data={"password": confirm_password},
        )
        user = SessionUser.from_api(record)
        self._session.login(user)
        self._codec.clear_active_key()
        logger.info("Encryption disabled: user=%s", user.user_id)
        return user

    def rekey(
        self,
        payloads: Iterable[Payload],
        old_password: str,
        new_password: str,
    ) -> tuple[list[Payload], dict]:
        """Re-encrypt stored envelopes for a password change.

        Both keys are derived from the account salt. The active key is left
        untouched; the caller stores the returned payloads, resets the
        password and logs in again.

        Raises:
            KeyDerivationError: No salt on the account, or an empty password.
        """
        user = self._session.user
        salt = user.encryption_salt if user is not None else None
        old_key = derive_key(old_password, salt, self._config)
        new_key = derive_key(new_password, salt, self._config)
        payloads, stats = rekey_payloads(payloads, old_key, new_key, self._config)
        logger.info(
            "Rekeyed payloads for user=%s: rekeyed=%d errors=%d",
            user.user_id, stats["rekeyed"], stats["errors"],
        )
        return payloads, stats
