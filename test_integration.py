"""
End-to-end tests over real HTTP.

A small aiohttp.web application plays the HMS backend; the client talks to it
through AiohttpTransport.
"""

import jwt
import pytest
from aiohttp import web

from hms_client import cli
from hms_client.auth import (
    AiohttpTransport,
    AppKind,
    AuthenticatedHttpClient,
    FileStorage,
    GuestAccessResolver,
    OutcomeKind,
    PendingAction,
    ResourceKind,
    Request,
    ResourceRef,
    SessionController,
    TokenStore,
    TransientError,
)

from conftest import TEST_SECRET, make_token


GUEST_TOKEN = "guest-abc"
OTP_CODE = "123456"


class FakeHmsBackend:
    """The handful of HMS endpoints the session client uses."""

    def __init__(self):
        self.access_ttl = 3600
        self.refresh_calls = 0
        self.logout_calls = 0
        self.verified = False
        self.booking = {"id": 42, "customerId": None, "guestEmail": "guest@example.com",
                        "status": "CONFIRMED"}

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/api/auth/login", self.handle_login)
        app.router.add_post("/api/auth/refresh-token", self.handle_refresh)
        app.router.add_post("/api/auth/logout", self.handle_logout)
        app.router.add_get("/api/bookings/{id}", self.handle_get_booking)
        app.router.add_post("/api/bookings/{id}/request-otp", self.handle_request_otp)
        app.router.add_post("/api/bookings/{id}/verify-otp", self.handle_verify_otp)
        app.router.add_get("/api/bookings/{id}/otp-status", self.handle_otp_status)
        app.router.add_put("/api/bookings/{id}/change-status", self.handle_change_status)
        return app

    def _bearer_valid(self, request) -> bool:
        header = request.headers.get("Authorization", "")
        if not header.startswith("Bearer "):
            return False
        try:
            jwt.decode(header[len("Bearer "):], TEST_SECRET, algorithms=["HS256"])
        except jwt.InvalidTokenError:
            return False
        return True

    def _guest_valid(self, request) -> bool:
        return request.query.get("token") == GUEST_TOKEN

    async def handle_login(self, request):
        data = await request.json()
        if data.get("password") != "secret":
            return web.json_response({"message": "Bad credentials"}, status=401)
        return web.json_response({
            "tokenPair": {
                "accessToken": make_token(expires_in=self.access_ttl),
                "refreshToken": "refresh-1",
            },
            "user": {"id": 7, "username": data["username"], "role": "CUSTOMER"},
        })

    async def handle_refresh(self, request):
        self.refresh_calls += 1
        data = await request.json()
        if data.get("refreshToken") != "refresh-1":
            return web.json_response({"message": "Invalid refresh token"}, status=401)
        return web.json_response({"accessToken": make_token()})

    async def handle_logout(self, request):
        self.logout_calls += 1
        return web.Response(text="Logged out successfully")

    async def handle_get_booking(self, request):
        if not (self._bearer_valid(request) or self._guest_valid(request)):
            return web.json_response({"message": "Unauthorized"}, status=401)
        return web.json_response({"booking": self.booking, "rooms": []})

    async def handle_request_otp(self, request):
        if not self._guest_valid(request):
            return web.json_response({"message": "Invalid token"}, status=403)
        return web.Response(text="OTP sent to your email")

    async def handle_verify_otp(self, request):
        if not self._guest_valid(request) or request.query.get("otp") != OTP_CODE:
            return web.json_response({"message": "Invalid OTP"}, status=400)
        self.verified = True
        return web.Response(text="OTP verified")

    async def handle_otp_status(self, request):
        return web.json_response(self._guest_valid(request) and self.verified)

    async def handle_change_status(self, request):
        if not (self._guest_valid(request) and self.verified):
            return web.json_response({"message": "OTP verification required"}, status=403)
        self.booking["status"] = await request.text()
        return web.Response(text="Booking status updated")


@pytest.fixture
def backend():
    return FakeHmsBackend()


@pytest.fixture
async def base_url(aiohttp_server, backend):
    server = await aiohttp_server(backend.app())
    return f"http://{server.host}:{server.port}"


@pytest.fixture
async def wired(base_url, tmp_path):
    """Store, transport, session and client pointed at the fake backend."""
    transport = AiohttpTransport(base_url, timeout=5)
    store = TokenStore(FileStorage(tmp_path / "session.json"))
    session = SessionController(store, transport, AppKind.CUSTOMER_SITE)
    client = AuthenticatedHttpClient(session, transport)
    yield session, client
    await transport.close()


class TestOverHttp:

    async def test_login_and_fetch(self, wired, backend):
        session, client = wired

        assert await session.login_with_credentials("jane", "secret")
        body = await client.get("/api/bookings/42")

        assert body["booking"]["id"] == 42
        assert backend.refresh_calls == 0

    async def test_expired_token_refreshed_once(self, wired, backend):
        """An expired access token is refreshed and the request replayed."""
        session, client = wired
        backend.access_ttl = -60
        await session.login_with_credentials("jane", "secret")

        body = await client.get("/api/bookings/42")

        assert body["booking"]["id"] == 42
        assert backend.refresh_calls == 1

    async def test_wrong_password(self, wired):
        session, _ = wired
        assert not await session.login_with_credentials("jane", "nope")
        assert session.last_error == "Login failed: Invalid credentials"

    async def test_session_survives_restart(self, wired, base_url, tmp_path):
        session, _ = wired
        await session.login_with_credentials("jane", "secret")

        transport = AiohttpTransport(base_url)
        restored = SessionController(TokenStore(FileStorage(tmp_path / "session.json")), transport)
        try:
            await restored.init()
        finally:
            await transport.close()

        assert restored.is_authenticated
        assert restored.user.username == "jane"

    async def test_logout_reaches_backend(self, wired, backend):
        session, _ = wired
        await session.login_with_credentials("jane", "secret")
        await session.logout()
        assert backend.logout_calls == 1
        assert session.store.get() is None

    async def test_guest_cancel(self, wired, backend):
        session, client = wired
        resolver = GuestAccessResolver(
            session, client, ResourceRef(ResourceKind.BOOKING, 42), guest_token=GUEST_TOKEN)

        await resolver.fetch()
        assert (await resolver.begin(PendingAction.CANCEL)).kind == OutcomeKind.OTP_PROMPT
        assert (await resolver.submit_otp("000000")).kind == OutcomeKind.ERROR
        assert (await resolver.submit_otp(OTP_CODE)).kind == OutcomeKind.CONFIRM
        outcome = await resolver.confirm()

        assert outcome.kind == OutcomeKind.NAVIGATE
        assert outcome.path == f"/booking/42?token={GUEST_TOKEN}"
        assert backend.booking["status"] == "CANCELLED"


async def test_unreachable_backend():
    """Connection failures surface as TransientError."""
    transport = AiohttpTransport("http://127.0.0.1:1", timeout=2)
    try:
        with pytest.raises(TransientError):
            await transport(Request("GET", "/api/rooms"))
    finally:
        await transport.close()


async def test_cli_whoami_over_http(base_url, tmp_path, capsys):
    """The CLI entry point restores a stored session from its file."""
    path = tmp_path / "session.json"
    transport = AiohttpTransport(base_url)
    session = SessionController(TokenStore(FileStorage(path)), transport)
    try:
        assert await session.login_with_credentials("jane", "secret")
    finally:
        await transport.close()

    args = cli.build_parser().parse_args(
        ["--api-url", base_url, "--store", str(path), "--app", "customer", "whoami"])

    assert await cli.run(args) == 0
    assert "role=CUSTOMER" in capsys.readouterr().out
