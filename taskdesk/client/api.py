"""
Async API client for the TaskDesk backend.

Attaches the bearer token from a token getter to every request and decodes
the response envelope. Any non-2xx response raises ApiError carrying the
server's message.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import httpx

logger = logging.getLogger(__name__)

TokenGetter = Callable[[], Union[Optional[str], Awaitable[Optional[str]]]]

class ApiError(Exception):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status

class ApiClient:
    def __init__(self, base_url: str, token_getter: Optional[TokenGetter] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.token_getter = token_getter
        self.client = httpx.AsyncClient(base_url=self.base_url, transport=transport, timeout=timeout)

    async def _token(self) -> Optional[str]:
        if self.token_getter is None:
            return None
        token = self.token_getter()
        if inspect.isawaitable(token):
            token = await token
        return token

    async def request(self, method: str, endpoint: str, body: Any = None) -> Dict[str, Any]:
        headers = {}
        token = await self._token()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self.client.request(method, endpoint, headers=headers, json=body)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, endpoint, e)
            raise ApiError(f"Network error: {e}")

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.is_success:
            message = data.get("message") if isinstance(data, dict) else None
            raise ApiError(message or f"Request failed with status {response.status_code}", response.status_code)
        return data

    async def get(self, endpoint: str) -> Dict[str, Any]:
        return await self.request("GET", endpoint)

    async def post(self, endpoint: str, body: Any) -> Dict[str, Any]:
        return await self.request("POST", endpoint, body)

    async def patch(self, endpoint: str, body: Any) -> Dict[str, Any]:
        return await self.request("PATCH", endpoint, body)

    async def delete(self, endpoint: str) -> Dict[str, Any]:
        return await self.request("DELETE", endpoint)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()
