"""
HTTPTransport — JSON requests to the Daynotes server.

The codec never talks to the network: everything that crosses the wire goes
through an object exposing ``await request(method, path, data=None, params=None)``.
"""
import logging
from typing import Any, Optional

import orjson
from aiohttp import ClientSession, ClientTimeout, ClientError

from .conf import API_URL, API_TIMEOUT
from .exceptions import TransportError

logger = logging.getLogger("daynotes.transport")


class HTTPTransport:
    """aiohttp-backed transport; use as an async context manager."""

    def __init__(
        self,
        base_url: str = API_URL,
        timeout: int = API_TIMEOUT,
        session: Optional[ClientSession] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "HTTPTransport":
        if self._session is None:
            self._session = ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def request(
        self,
        method: str,
        path: str,
        data: Any = None,
        params: Optional[dict] = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Raises:
            TransportError: On a non-2xx response or a connection failure.
        """
        if self._session is None:
            raise RuntimeError("HTTPTransport used outside of its context")
        url = f"{self._base_url}{path}"
        body = orjson.dumps(data) if data is not None else None
        headers = {"Content-Type": "application/json"} if body is not None else None
        try:
            async with self._session.request(
                method, url, data=body, params=params, headers=headers,
            ) as response:
                raw = await response.read()
                if response.status >= 400:
                    message = _error_message(raw) or response.reason or ""
                    logger.debug(
                        "%s %s failed: status=%d", method, path, response.status,
                    )
                    raise TransportError(response.status, message)
        except ClientError as err:
            raise TransportError(0, str(err)) from err
        if not raw:
            return None
        return orjson.loads(raw)


def _error_message(raw: bytes) -> str:
    """Extract ``message`` from a JSON error body, if there is one."""
    try:
        body = orjson.loads(raw)
    except orjson.JSONDecodeError:
        return raw.decode("utf-8", errors="replace").strip()
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or "")
    return ""
