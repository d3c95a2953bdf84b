"""
Shared fixtures: an in-memory fake backend transport, signed test tokens and
user profiles.
"""

import asyncio
import time
from typing import Any, Callable, Dict, List, Tuple, Union

import jwt
import pytest

from hms_client.auth import (
    AppKind,
    AuthenticatedHttpClient,
    Request,
    Response,
    SessionController,
    TokenPair,
    TokenStore,
    UserProfile,
)


TEST_SECRET = "test-secret-not-used-by-the-client"

Handler = Union[Response, Callable[[Request], Any]]


def make_token(subject: str = "1", expires_in: int = 3600, **claims) -> str:
    """Create an HS256 token whose exp lies `expires_in` seconds from now."""
    payload = {"sub": subject, "exp": int(time.time()) + expires_in, **claims}
    return jwt.encode(payload, TEST_SECRET, algorithm="HS256")


class FakeTransport:
    """
    Scripted transport.

    Responses are queued per (method, path); the last one queued repeats.
    Every request sent is recorded in `calls`.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], List[Handler]] = {}
        self.calls: List[Request] = []

    def on(self, method: str, path: str, *handlers: Handler) -> "FakeTransport":
        self.routes.setdefault((method, path), []).extend(handlers)
        return self

    def calls_to(self, method: str, path: str) -> List[Request]:
        return [r for r in self.calls if r.method == method and r.path == path]

    async def __call__(self, request: Request) -> Response:
        self.calls.append(request)
        queue = self.routes.get((request.method, request.path))
        if not queue:
            return Response(404, {"message": f"No route for {request.method} {request.path}"})
        handler = queue.pop(0) if len(queue) > 1 else queue[0]
        # Yield so concurrent callers interleave like real I/O
        await asyncio.sleep(0)
        if isinstance(handler, Response):
            return handler
        result = handler(request)
        if asyncio.iscoroutine(result):
            result = await result
        return result


def customer_profile(**overrides) -> UserProfile:
    data = {
        "id": 7,
        "fullName": "Jane Guest",
        "username": "jane",
        "email": "jane@example.com",
        "role": "CUSTOMER",
    }
    data.update(overrides)
    return UserProfile.model_validate(data)


def staff_profile(role: str = "RECEPTIONIST", **overrides) -> UserProfile:
    data = {"id": 100, "fullName": "Front Desk", "username": "desk", "role": role}
    data.update(overrides)
    return UserProfile.model_validate(data)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def store():
    return TokenStore()


@pytest.fixture
def session(store, transport):
    return SessionController(store, transport, AppKind.CUSTOMER_SITE)


@pytest.fixture
def staff_session(store, transport):
    return SessionController(store, transport, AppKind.STAFF_DASHBOARD)


@pytest.fixture
def client(session, transport):
    return AuthenticatedHttpClient(session, transport)


@pytest.fixture
def tokens():
    return TokenPair(access_token=make_token(), refresh_token="refresh-1")


@pytest.fixture
def logged_in(session, tokens):
    """Customer session that is already authenticated."""
    assert session.login(tokens, customer_profile())
    return session
