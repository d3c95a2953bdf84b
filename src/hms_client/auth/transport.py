"""
HTTP transport for the HMS client.

A transport is any coroutine function taking a Request and returning a
Response. AiohttpTransport is the real one; tests pass plain async callables.
"""

import asyncio
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp
from loguru import logger

from .errors import TransientError


class AuthMode(str, Enum):
    """How a request identifies its caller. Exactly one per request."""
    BEARER = "bearer"   # Authorization: Bearer <accessToken>
    GUEST = "guest"     # ?token=<guestToken>
    NONE = "none"       # Anonymous (login, refresh, logout)


@dataclass
class Request:
    """
    One logical request.

    The retried flag belongs to the logical request, so a request that has
    already been replayed after a refresh is never replayed again.
    """
    method: str
    path: str
    params: Dict[str, str] = field(default_factory=dict)
    json: Any = None
    data: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    auth: AuthMode = AuthMode.BEARER
    guest_token: Optional[str] = None
    retried: bool = False


@dataclass
class Response:
    """Status plus decoded body (JSON when it parses, text otherwise)."""
    status: int
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


Transport = Callable[[Request], Awaitable[Response]]


def _decode_body(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        # Several endpoints answer with a bare message string
        return text


class AiohttpTransport:
    """
    Transport backed by an aiohttp.ClientSession.

    The session is created lazily on first use unless one is supplied.
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
    ):
        """
        Args:
            base_url: Backend base URL, e.g. http://localhost:8080
            session: Existing ClientSession to reuse (not closed by close())
            timeout: Total timeout per request in seconds
        """
        self.base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def __call__(self, request: Request) -> Response:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True

        url = f"{self.base_url}{request.path}"
        kwargs: Dict[str, Any] = {"params": request.params or None, "headers": request.headers}
        if request.json is not None:
            kwargs["json"] = request.json
        elif request.data is not None:
            kwargs["data"] = request.data

        logger.debug(f"{request.method} {request.path}")
        try:
            async with self._session.request(request.method, url, **kwargs) as resp:
                text = await resp.text()
                return Response(status=resp.status, body=_decode_body(text))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"{request.method} {request.path} failed: {e}")
            raise TransientError() from e

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None
