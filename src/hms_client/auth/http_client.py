"""
Authenticated HTTP client.

Attaches credentials to outgoing requests and recovers once from an expired
access token by refreshing it and replaying the request.
"""

from typing import Any, Dict, Optional

from loguru import logger

from .errors import error_for_status
from .session import SessionController
from .transport import AuthMode, Request, Response, Transport


class AuthenticatedHttpClient:
    """
    Wraps a transport with bearer/guest credential handling.

    Bearer requests that come back 401 trigger at most one
    SessionController.refresh_access_token() and one replay. Guest requests
    carry their token as a query parameter and are never replayed.
    """

    def __init__(self, session: SessionController, transport: Transport):
        """
        Args:
            session: SessionController providing and refreshing the access token
            transport: Transport used to send requests
        """
        self.session = session
        self.transport = transport

    def _prepare(self, request: Request, access_token: Optional[str]) -> Request:
        headers = dict(request.headers)
        params = dict(request.params)
        headers.pop("Authorization", None)
        params.pop("token", None)

        if request.auth == AuthMode.BEARER and access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        elif request.auth == AuthMode.GUEST and request.guest_token:
            params["token"] = request.guest_token

        return Request(
            method=request.method,
            path=request.path,
            params=params,
            json=request.json,
            data=request.data,
            headers=headers,
            auth=request.auth,
            guest_token=request.guest_token,
            retried=request.retried,
        )

    async def request(self, request: Request) -> Response:
        """
        Send a request, refreshing and replaying once on 401.

        Returns:
            The final Response (the replay's when a replay happened)

        Raises:
            TransientError: If the transport fails
        """
        access_token = self.session.access_token if request.auth == AuthMode.BEARER else None
        response = await self.transport(self._prepare(request, access_token))

        if response.status != 401 or request.retried or request.auth != AuthMode.BEARER:
            return response
        if not access_token:
            return response

        request.retried = True
        logger.debug(f"{request.method} {request.path} got 401, refreshing access token")
        new_token = await self.session.refresh_access_token()
        if not new_token:
            return response

        return await self.transport(self._prepare(request, new_token))

    async def request_json(self, request: Request) -> Any:
        """
        Send a request and return its decoded body.

        Raises:
            HmsClientError: Subclass matching the final non-2xx status
        """
        response = await self.request(request)
        if not response.ok:
            raise error_for_status(response.status, response.body)
        return response.body

    # Shortcuts

    async def get(self, path: str, params: Optional[Dict[str, str]] = None, **kwargs) -> Any:
        return await self.request_json(Request("GET", path, params=params or {}, **kwargs))

    async def post(self, path: str, json: Any = None, **kwargs) -> Any:
        return await self.request_json(Request("POST", path, json=json, **kwargs))

    async def put(self, path: str, json: Any = None, **kwargs) -> Any:
        return await self.request_json(Request("PUT", path, json=json, **kwargs))

    async def delete(self, path: str, **kwargs) -> Any:
        return await self.request_json(Request("DELETE", path, **kwargs))
