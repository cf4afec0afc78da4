"""
Tests for SessionAuth: where the content key is created and destroyed.
"""
import asyncio

import pytest

from daynotes.auth import SessionAuth
from daynotes.codec import decrypt_payload, derive_key, encrypt_payload
from daynotes.exceptions import (
    KeyDerivationError,
    NoActiveKeyError,
    TransportError,
    ValidationError,
)
from daynotes.models import Payload, PayloadEncoding


def run(coro):
    return asyncio.run(coro)


def user_record(salt, enabled=True, user_id=1, username="alice"):
    return {
        "id": user_id,
        "username": username,
        "encryptionEnabled": enabled,
        "encryptionSalt": salt,
        "encryptionVersion": "v1",
    }


@pytest.fixture
def auth(transport, config):
    return SessionAuth(transport, config=config)


class TestRegister:

    def test_register_sends_salt(self, auth, transport):
        """Test registration generates a salt and keeps encryption off."""
        transport.on("POST", "/api/register", lambda data: {"id": 1, **data})
        user = run(auth.register("alice", "pw", email="a@example.com"))
        body = transport.calls[-1][2]
        assert len(body["encryptionSalt"]) == 32
        assert body["encryptionEnabled"] is False
        assert body["email"] == "a@example.com"
        assert user.encryption_salt == body["encryptionSalt"]
        assert auth.codec.is_encryption_enabled() is False


class TestLogin:

    def test_login_unlocks_encrypted_account(self, auth, transport, salt, config):
        """Test the key is derived at login when the flag is set."""
        transport.on("POST", "/api/login", user_record(salt))
        run(auth.login("alice", "pw"))
        assert auth.codec.is_encryption_enabled() is True
        envelope = encrypt_payload("note", derive_key("pw", salt, config), config)
        assert auth.codec.decrypt(envelope) == "note"

    def test_login_plain_account(self, auth, transport, salt):
        """Test no key is derived when encryption is off."""
        transport.on("POST", "/api/login", user_record(salt, enabled=False))
        user = run(auth.login("alice", "pw"))
        assert user.encryption_enabled is False
        assert auth.codec.is_encryption_enabled() is False

    def test_login_without_salt_stays_locked(self, auth, transport):
        """Test an account missing its salt logs in but refuses to write."""
        transport.on("POST", "/api/login", user_record(None))
        run(auth.login("alice", "pw"))
        assert auth.codec.is_encryption_enabled() is False
        with pytest.raises(NoActiveKeyError):
            auth.codec.seal("hello")

    def test_user_switch_drops_previous_key(self, auth, transport, salt):
        """Test a second login never inherits the first user's key."""
        transport.on("POST", "/api/login", user_record(salt))
        run(auth.login("alice", "pw"))
        transport.on(
            "POST", "/api/login", user_record(salt, enabled=False, user_id=2, username="bob"),
        )
        run(auth.login("bob", "pw2"))
        assert auth.user.username == "bob"
        assert auth.codec.is_encryption_enabled() is False

    def test_failed_login_keeps_state(self, auth, transport):
        """Test rejected credentials propagate."""
        transport.on("POST", "/api/login", error=TransportError(401, "Invalid"))
        with pytest.raises(TransportError):
            run(auth.login("alice", "bad"))
        assert auth.user is None


class TestLogout:

    def test_logout_clears_key_and_session(self, auth, transport, salt):
        """Test logout destroys the key."""
        transport.on("POST", "/api/login", user_record(salt))
        transport.on("POST", "/api/logout", None)
        run(auth.login("alice", "pw"))
        run(auth.logout())
        assert auth.codec.is_encryption_enabled() is False
        assert auth.user is None
        with pytest.raises(NoActiveKeyError):
            auth.codec.encrypt("hello")

    def test_logout_clears_key_on_error(self, auth, transport, salt):
        """Test the key is dropped even if the server call fails."""
        transport.on("POST", "/api/login", user_record(salt))
        transport.on("POST", "/api/logout", error=TransportError(500))
        run(auth.login("alice", "pw"))
        with pytest.raises(TransportError):
            run(auth.logout())
        assert auth.codec.is_encryption_enabled() is False


class TestEncryptionToggles:

    def test_enable(self, auth, transport, salt):
        """Test enabling encryption unlocks the session immediately."""
        transport.on("POST", "/api/login", user_record(salt, enabled=False))
        transport.on("POST", "/api/user/enable-encryption", user_record(salt))
        run(auth.login("alice", "pw"))
        user = run(auth.enable_encryption("pw"))
        assert user.encryption_enabled is True
        assert auth.codec.is_encryption_enabled() is True
        assert auth.codec.open("older plain note") == "older plain note"

    def test_enable_keeps_known_salt(self, auth, transport, salt):
        """Test the session salt is used when the response omits it."""
        transport.on("POST", "/api/login", user_record(salt, enabled=False))
        transport.on("POST", "/api/user/enable-encryption", user_record(None))
        run(auth.login("alice", "pw"))
        run(auth.enable_encryption("pw"))
        assert auth.user.encryption_salt == salt
        assert auth.codec.is_encryption_enabled() is True

    def test_enable_without_password(self, auth, transport, salt):
        """Test enabling with no password cannot unlock."""
        transport.on("POST", "/api/login", user_record(salt, enabled=False))
        transport.on("POST", "/api/user/enable-encryption", user_record(salt))
        run(auth.login("alice", "pw"))
        with pytest.raises(KeyDerivationError):
            run(auth.enable_encryption(""))

    def test_disable_clears_key(self, auth, transport, salt):
        """Test disabling sends the password and clears the key."""
        transport.on("POST", "/api/login", user_record(salt))
        transport.on(
            "POST", "/api/user/disable-encryption", user_record(salt, enabled=False),
        )
        run(auth.login("alice", "pw"))
        user = run(auth.disable_encryption("pw"))
        assert transport.calls[-1][2] == {"password": "pw"}
        assert user.encryption_enabled is False
        assert auth.codec.is_encryption_enabled() is False
        assert auth.codec.seal("now plain").text == "now plain"

    def test_disable_wrong_password(self, auth, transport, salt):
        """Test a rejected confirmation keeps the key."""
        transport.on("POST", "/api/login", user_record(salt))
        transport.on(
            "POST", "/api/user/disable-encryption", error=TransportError(401, "Bad password"),
        )
        run(auth.login("alice", "pw"))
        with pytest.raises(TransportError):
            run(auth.disable_encryption("wrong"))
        assert auth.codec.is_encryption_enabled() is True

    def test_disable_checks_password_locally(self, auth, transport, salt):
        """Test a wrong password is refused before the server is asked."""
        transport.on("POST", "/api/login", user_record(salt))
        run(auth.login("alice", "pw"))
        sample = auth.codec.encrypt("stored note")
        calls = len(transport.calls)
        with pytest.raises(ValidationError):
            run(auth.disable_encryption("wrong", sample=sample))
        assert len(transport.calls) == calls
        assert auth.codec.is_encryption_enabled() is True

    def test_disable_with_matching_sample(self, auth, transport, salt):
        """Test the right password passes the local check."""
        transport.on("POST", "/api/login", user_record(salt))
        transport.on(
            "POST", "/api/user/disable-encryption", user_record(salt, enabled=False),
        )
        run(auth.login("alice", "pw"))
        sample = auth.codec.encrypt("stored note")
        assert auth.check_password("pw", sample) is True
        run(auth.disable_encryption("pw", sample=sample))
        assert auth.codec.is_encryption_enabled() is False


class TestRekey:

    def test_rekey_for_new_password(self, auth, transport, salt, config):
        """Test envelopes open under the new password after a rekey."""
        transport.on("POST", "/api/login", user_record(salt))
        run(auth.login("alice", "pw"))
        stored = [
            Payload(text=auth.codec.encrypt("sealed"), encoding=PayloadEncoding.ENVELOPE),
            Payload(text="plain", encoding=PayloadEncoding.PLAIN),
        ]
        payloads, stats = auth.rekey(stored, "pw", "new-pw")
        assert stats == {"total": 2, "rekeyed": 1, "skipped": 1, "errors": 0}
        new_key = derive_key("new-pw", salt, config)
        assert decrypt_payload(payloads[0].text, new_key) == "sealed"
        assert payloads[1].text == "plain"
        # the session keeps its current key until the next login
        assert auth.codec.decrypt(stored[0].text) == "sealed"

    def test_rekey_wrong_old_password(self, auth, transport, salt):
        """Test envelopes the old password cannot open are kept and counted."""
        transport.on("POST", "/api/login", user_record(salt))
        run(auth.login("alice", "pw"))
        stored = [Payload(text=auth.codec.encrypt("sealed"))]
        payloads, stats = auth.rekey(stored, "not-pw", "new-pw")
        assert stats["errors"] == 1
        assert payloads[0].text == stored[0].text

    def test_rekey_requires_salt(self, auth):
        """Test rekeying without a logged-in account fails."""
        with pytest.raises(KeyDerivationError):
            auth.rekey([], "pw", "new-pw")
