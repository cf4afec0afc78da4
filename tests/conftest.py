import pytest

from daynotes.codec import CodecConfig, ContentCodec, derive_key, generate_salt
from daynotes.data import SessionData, SessionUser
from daynotes.exceptions import TransportError


class FakeTransport:
    """In-memory stand-in for the Daynotes server."""

    def __init__(self):
        self.calls = []
        self.routes = {}
        self.notes = []

    def on(self, method: str, path: str, response=None, error=None):
        self.routes[(method, path)] = (response, error)

    async def request(self, method, path, data=None, params=None):
        self.calls.append((method, path, data, params))
        if (method, path) in self.routes:
            response, error = self.routes[(method, path)]
            if error is not None:
                raise error
            return response(data) if callable(response) else response
        if method == "POST" and path == "/api/notes":
            note = {
                "id": len(self.notes) + 1,
                "content": data["content"],
                "date": data["date"],
                "contentEncoding": data.get("contentEncoding"),
                "userId": 1,
                "isMoment": False,
            }
            self.notes.append(note)
            return note
        if method == "GET" and path.startswith("/api/notes/"):
            date = path.rsplit("/", 1)[-1]
            return [n for n in self.notes if n["date"] == date]
        raise TransportError(404, "Not found")


@pytest.fixture
def config():
    """Fast key derivation for tests."""
    return CodecConfig(kdf_iterations=1000)


@pytest.fixture
def salt(config):
    return generate_salt(config)


@pytest.fixture
def key(salt, config):
    return derive_key("correct horse battery staple", salt, config)


@pytest.fixture
def other_key(salt, config):
    return derive_key("a different password", salt, config)


@pytest.fixture
def session(salt):
    session = SessionData(new=True)
    session.login(
        SessionUser(
            user_id=1,
            username="alice",
            encryption_enabled=True,
            encryption_salt=salt,
        )
    )
    return session


@pytest.fixture
def codec(session, config):
    return ContentCodec(session, config)


@pytest.fixture
def unlocked_codec(codec, key):
    codec.set_active_key(key)
    return codec


@pytest.fixture
def transport():
    return FakeTransport()
