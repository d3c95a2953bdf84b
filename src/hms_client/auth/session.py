"""
Session controller.

Single source of truth for whether someone is logged in, and as whom.
Owns the Unauthenticated/Authenticated state, login with role admission,
best-effort logout and the refresh-token exchange.
"""

import asyncio
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Union

import pydantic
from loguru import logger

from .errors import HmsClientError, ValidationError, error_for_status, user_message
from .jwt_claims import is_token_expired
from .models import LoginResponse, RefreshResponse, TokenPair, UserProfile
from .permissions import AppKind, admission_error
from .storage import TokenStore
from .transport import AuthMode, Request, Response, Transport


LOGIN_PATH = "/api/auth/login"
REFRESH_PATH = "/api/auth/refresh-token"
LOGOUT_PATH = "/api/auth/logout"


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


StateListener = Callable[[AuthState, Optional[UserProfile]], None]


class SessionController:
    """
    Authentication state for one running front-end.

    Construct one per client and pass it to whatever needs identity
    decisions; nothing here is a module-level singleton.
    """

    def __init__(
        self,
        store: TokenStore,
        transport: Transport,
        app_kind: AppKind = AppKind.CUSTOMER_SITE,
    ):
        """
        Initialize controller.

        Args:
            store: TokenStore holding the persisted session
            transport: Transport used for the auth endpoints
            app_kind: Front-end being run; decides which roles are admitted
        """
        self.store = store
        self.transport = transport
        self.app_kind = app_kind

        self.state = AuthState.UNAUTHENTICATED
        self.user: Optional[UserProfile] = None
        self.last_error: Optional[str] = None

        self._listeners: List[StateListener] = []
        self._refresh_task: Optional["asyncio.Future[Optional[str]]"] = None
        # Bumped on every logout; a refresh started earlier must not write back
        self._logout_count = 0

    @property
    def is_authenticated(self) -> bool:
        return self.state == AuthState.AUTHENTICATED

    @property
    def access_token(self) -> Optional[str]:
        """Bearer token for outgoing requests; None unless authenticated."""
        if not self.is_authenticated:
            return None
        return self.store.get_access_token()

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback invoked on every state transition."""
        self._listeners.append(listener)

    def _transition(self, state: AuthState, user: Optional[UserProfile]) -> None:
        changed = state != self.state or user != self.user
        self.state = state
        self.user = user
        if not changed:
            return
        for listener in self._listeners:
            try:
                listener(state, user)
            except Exception as e:
                logger.error(f"Session listener failed: {e}")

    async def init(self) -> AuthState:
        """
        Restore the session from storage.

        A valid cached session with an unexpired access token is restored
        directly; an expired one is refreshed first. Anything partial or
        unreadable is discarded.
        """
        session = self.store.get()
        if session is None:
            if self.store.get_access_token() or self.store.get_refresh_token():
                logger.warning("Discarding incomplete stored session")
                await self.logout()
            return self.state

        rejection = admission_error(self.app_kind, session.user.role)
        if rejection:
            logger.warning(f"Stored session rejected: {rejection}")
            self.last_error = rejection
            await self.logout()
            return self.state

        if not is_token_expired(session.access_token):
            self._transition(AuthState.AUTHENTICATED, session.user)
            logger.info(f"Session restored for {session.user.username}")
            return self.state

        logger.info("Stored access token expired, refreshing")
        if await self.refresh_access_token():
            self._transition(AuthState.AUTHENTICATED, session.user)
            logger.info(f"Session restored for {session.user.username}")
        return self.state

    def login(
        self,
        tokens: Union[TokenPair, Mapping[str, Any], None],
        user: Union[UserProfile, Mapping[str, Any], None],
    ) -> bool:
        """
        Establish a session from a token pair and user profile.

        Args:
            tokens: TokenPair or {"accessToken", "refreshToken"} mapping
            user: UserProfile or its wire mapping

        Returns:
            True if the session was stored; False (with last_error set) otherwise
        """
        self.last_error = None
        try:
            pair = tokens if isinstance(tokens, TokenPair) else TokenPair.model_validate(tokens)
            profile = user if isinstance(user, UserProfile) else UserProfile.model_validate(user)
        except pydantic.ValidationError:
            pair, profile = None, None

        if pair is None or profile is None or not pair.access_token or not pair.refresh_token:
            logger.error("Invalid login data")
            self.last_error = "Invalid login data"
            return False

        rejection = admission_error(self.app_kind, profile.role)
        if rejection:
            logger.warning(f"Login rejected for {profile.username}: {rejection}")
            self.last_error = rejection
            return False

        if not self.store.set(pair, profile):
            self.last_error = "Login failed due to an error"
            return False

        self._transition(AuthState.AUTHENTICATED, profile)
        logger.success(f"Logged in as {profile.username} ({profile.role})")
        return True

    async def login_with_credentials(self, username: str, password: str) -> bool:
        """
        Log in with username and password via POST /api/auth/login.

        Empty input is rejected before any network call.
        """
        username = (username or "").strip()
        if not username or not password:
            self.last_error = ValidationError("Username and password required").message
            return False

        request = Request(
            "POST",
            LOGIN_PATH,
            json={"username": username, "password": password},
            auth=AuthMode.NONE,
        )
        try:
            response = await self.transport(request)
        except HmsClientError:
            self.last_error = "Login failed due to a network error"
            return False

        if response.status == 401:
            self.last_error = "Login failed: Invalid credentials"
            return False
        if not response.ok:
            self.last_error = user_message(error_for_status(response.status, response.body))
            return False

        try:
            body = LoginResponse.model_validate(response.body)
        except pydantic.ValidationError:
            logger.error("Login response did not contain a token pair and user")
            self.last_error = "Invalid login data"
            return False

        return self.login(body.token_pair, body.user)

    async def logout(self) -> None:
        """
        End the session.

        The backend is notified on a best-effort basis; local state is always
        cleared. Safe to call when already logged out.
        """
        self._logout_count += 1
        access_token = self.store.get_access_token()
        refresh_token = self.store.get_refresh_token()

        if access_token and refresh_token:
            request = Request(
                "POST",
                LOGOUT_PATH,
                json={"accessToken": access_token, "refreshToken": refresh_token},
                auth=AuthMode.NONE,
            )
            try:
                response = await self.transport(request)
                if not response.ok:
                    logger.warning(f"Logout API failed: {response.status}")
            except Exception as e:
                logger.error(f"Logout API error: {e}")

        self.store.clear()
        if self.is_authenticated:
            logger.info("Logged out")
        self._transition(AuthState.UNAUTHENTICATED, None)

    async def refresh_access_token(self) -> Optional[str]:
        """
        Exchange the refresh token for a new access token.

        Concurrent callers share a single in-flight exchange.

        Returns:
            The new access token, or None (after logging out) on any failure
        """
        task = self._refresh_task
        if task is None or task.done():
            task = asyncio.ensure_future(self._refresh())
            self._refresh_task = task
        return await asyncio.shield(task)

    async def _refresh(self) -> Optional[str]:
        refresh_token = self.store.get_refresh_token()
        if not refresh_token:
            logger.warning("No refresh token available")
            await self.logout()
            return None

        request = Request(
            "POST",
            REFRESH_PATH,
            json={"refreshToken": refresh_token},
            auth=AuthMode.NONE,
        )
        logout_count = self._logout_count
        try:
            response = await self.transport(request)
        except HmsClientError as e:
            logger.error(f"Refresh token error: {e}")
            await self.logout()
            return None

        if self._logout_count != logout_count or self.store.get_refresh_token() != refresh_token:
            logger.info("Session ended during refresh, discarding new access token")
            return None

        body = self._parse_refresh(response)
        if body is None:
            await self.logout()
            return None

        if not self.store.update_tokens(body.access_token, body.refresh_token):
            await self.logout()
            return None
        logger.debug("Access token refreshed")
        return body.access_token

    def _parse_refresh(self, response: Response) -> Optional[RefreshResponse]:
        if not response.ok:
            logger.warning(f"Refresh rejected: {response.status}")
            return None
        try:
            body = RefreshResponse.model_validate(response.body)
        except pydantic.ValidationError:
            body = None
        if body is None or not body.access_token:
            logger.error("Invalid refresh token response")
            return None
        return body
