import uuid
from typing import Union, Optional, Any
from datetime import datetime, timezone
from collections.abc import Iterator, Mapping, MutableMapping
import jsonpickle
from jsonpickle.unpickler import loadclass
from datamodel import BaseModel
from .conf import (
    SESSION_KEY,
    SESSION_ID,
    SESSION_USER
)


class ModelHandler(jsonpickle.handlers.BaseHandler):
    """ModelHandler.
    This class can handle with serializable Data Models.
    """
    def flatten(self, obj, data):
        data['__dict__'] = self.context.flatten(obj.__dict__, reset=False)
        return data

    def restore(self, obj):
        module_and_type = obj['py/object']
        mdl = loadclass(module_and_type)
        cls = mdl.__new__(mdl) if hasattr(mdl, '__new__') else object.__new__(mdl)
        cls.__dict__ = self.context.restore(obj['__dict__'], reset=False)
        return cls

jsonpickle.handlers.registry.register(BaseModel, ModelHandler, base=True)


class SessionUser(BaseModel):
    """Authenticated user as returned by the Daynotes login endpoint.

    Carries the encryption flag and the per-user salt, both non-secret.
    """
    user_id: int
    username: str
    name: Optional[str] = None
    encryption_enabled: bool = False
    encryption_salt: Optional[str] = None
    encryption_version: str = 'v1'

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> 'SessionUser':
        """Build from the server's camelCase user record."""
        return cls(
            user_id=int(payload['id']),
            username=payload['username'],
            name=payload.get('name'),
            encryption_enabled=bool(payload.get('encryptionEnabled', False)),
            encryption_salt=payload.get('encryptionSalt') or None,
            encryption_version=payload.get('encryptionVersion') or 'v1',
        )


class SessionData(MutableMapping[str, Any]):
    """Session dict-like object.

    Serializable values (primitives, data models) are kept in _data and are
    the only part ever persisted. Everything else, the content key included,
    lives in _objects for the lifetime of this instance only.
    """

    _data: Union[str, Any] = {}
    _objects: dict[str, Any] = {}

    # Internal attributes that should not be stored in _data or _objects
    _internal_attrs = frozenset({
        '_data', '_objects', '_changed', '_id_', '_identity', '_new',
        '_max_age', '_created'
    })

    def __init__(
        self,
        data: Optional[Mapping[str, Any]] = None,
        new: bool = False,
        id: Optional[str] = None,
        identity: Optional[Any] = None,
        max_age: Optional[int] = None
    ) -> None:
        object.__setattr__(self, '_data', {})
        object.__setattr__(self, '_objects', {})
        object.__setattr__(self, '_changed', True if new else False)
        self._id_ = (data.get(SESSION_ID, None) if data else id) or uuid.uuid4().hex
        self._identity = (
            data.get(SESSION_KEY, None) if data else identity
        ) or self._id_
        self._new = new if data != {} else True
        self._max_age = max_age or None
        created = data.get('created', None) if data else None
        now = int(datetime.now(timezone.utc).timestamp())
        if max_age is not None and created and now - created > max_age:
            data = None
            created = None
        self._created = created or now
        if data is not None:
            self._data.update(data)

    def __repr__(self) -> str:
        # object names only: values may include the content key
        return (
            f'<Daynotes-Session [new:{self.new}, created:{self.created}] '
            f'data={list(self._data.keys())}, objects={list(self._objects.keys())}>'
        )

    # --- Serialization helpers ---

    def _is_serializable(self, value: Any) -> bool:
        """Check if a value can be persisted and restored with jsonpickle.

        Primitives, containers of primitives, data models and datetimes are
        serializable. Any other instance stays in memory only.
        """
        if value is None or isinstance(value, (bool, int, float, str, bytes)):
            return True
        if isinstance(value, dict):
            return all(self._is_serializable(v) for v in value.values())
        if isinstance(value, (list, tuple, set, frozenset)):
            return all(self._is_serializable(v) for v in value)
        if isinstance(value, (BaseModel, datetime)):
            return True
        return False

    def _get_value(self, key: str) -> Any:
        if key in self._objects:
            return self._objects[key]
        if key in self._data:
            return self._data[key]
        raise KeyError(key)

    def _set_value(self, key: str, value: Any) -> None:
        if self._is_serializable(value):
            self._objects.pop(key, None)
            self._data[key] = value
            self._changed = True
        else:
            # in-memory only; not persisted, so _changed is untouched
            self._data.pop(key, None)
            self._objects[key] = value

    def _del_value(self, key: str) -> None:
        deleted = False
        if key in self._objects:
            del self._objects[key]
            deleted = True
        if key in self._data:
            del self._data[key]
            self._changed = True
            deleted = True
        if not deleted:
            raise KeyError(key)

    # --- Properties ---

    @property
    def new(self) -> bool:
        return self._new

    @property
    def session_id(self) -> str:
        return self._id_

    @property
    def identity(self) -> Optional[Any]:  # type: ignore[misc]
        return self._identity

    @property
    def created(self) -> int:
        return self._created

    @property
    def empty(self) -> bool:
        return not bool(self._data) and not bool(self._objects)

    @property
    def max_age(self) -> Optional[int]:
        return self._max_age

    @property
    def is_changed(self) -> bool:
        return self._changed

    @is_changed.setter
    def is_changed(self, value: bool) -> None:
        self._changed = value

    @property
    def user(self) -> Optional[SessionUser]:
        """Authenticated user, or None before login."""
        return self._data.get(SESSION_USER)

    @property
    def authenticated(self) -> bool:
        return self.user is not None

    def login(self, user: SessionUser) -> None:
        """Bind an authenticated user to this session."""
        self._identity = user.user_id
        self._set_value(SESSION_USER, user)

    def session_data(self) -> dict:
        """Return only serializable data (for persistence)."""
        return self._data

    def session_objects(self) -> dict:
        """Return in-memory objects (not persisted)."""
        return self._objects

    def invalidate(self) -> None:
        """Clear all session data and in-memory objects."""
        self._changed = True
        self._data = {}
        self._objects = {}
        self._identity = self._id_

    # --- Magic Methods ---

    def __len__(self) -> int:
        return len(self._data) + len(self._objects)

    def __iter__(self) -> Iterator[str]:
        seen = set()
        for key in self._data:
            seen.add(key)
            yield key
        for key in self._objects:
            if key not in seen:
                yield key

    def __contains__(self, key: object) -> bool:
        return str(key) in self._objects or str(key) in self._data

    def __getitem__(self, key: str) -> Any:
        return self._get_value(key)

    def __setitem__(self, key: str, value: Any) -> None:
        self._set_value(key, value)

    def __delitem__(self, key: str) -> None:
        self._del_value(key)

    def __getattr__(self, key: str) -> Any:
        if key.startswith('_'):
            raise AttributeError(key)
        try:
            return self._get_value(key)
        except KeyError:
            raise AttributeError(key) from None

    def __setattr__(self, key: str, value: Any) -> None:
        if (
            key in self._internal_attrs
            or key.startswith('_')
            or isinstance(getattr(type(self), key, None), property)
        ):
            object.__setattr__(self, key, value)
        else:
            self._set_value(key, value)

    # --- Persistence ---

    def dumps(self) -> str:
        """dumps.

            Encode the persistable part of the session using jsonpickle.
            In-memory objects, the content key among them, are never included.

        Raises:
            RuntimeError: Error converting data to json.

        Returns:
            str: json version of the session.
        """
        payload = dict(self._data)
        payload[SESSION_ID] = self._id_
        payload[SESSION_KEY] = self._identity
        payload['created'] = self._created
        try:
            return jsonpickle.encode(payload)
        except Exception as err:
            raise RuntimeError(err) from err

    @classmethod
    def loads(cls, raw: str, max_age: Optional[int] = None) -> 'SessionData':
        """loads.

            Restore a session saved with ``dumps``. The result never holds a
            content key: it must be derived again at the next login.

        Raises:
            RuntimeError: Error converting data from json.
        """
        try:
            data = jsonpickle.decode(raw)
        except Exception as err:
            raise RuntimeError(err) from err
        return cls(data=data, max_age=max_age)
