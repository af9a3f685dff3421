"""
REST HTTP client for the chat server's `/api` routes.
"""

from typing import Any, Optional

import httpx

from chat_sync.config import DEFAULT_BASE_URL
from chat_sync.errors import ChatSyncError

USER_AGENT = "chat-sync/0.1.0"


class HttpClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._client = httpx.AsyncClient(
            base_url=f"{self._base_url}/api",
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def request(
        self,
        method: str,
        path: str,
        body: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        try:
            resp = await self._client.request(method, path, json=body, params=params, headers=self._headers())
        except httpx.HTTPError as e:
            raise ChatSyncError("network_error", f"{method} {path} failed: {e}") from e
        if resp.status_code >= 400:
            raise ChatSyncError(
                "http_error",
                f"HTTP {resp.status_code}: {resp.text[:200]}",
                details={"status": resp.status_code, "path": path},
            )
        if not resp.content:
            return None
        return resp.json()

    async def get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, body: Optional[dict[str, Any]] = None) -> Any:
        return await self.request("POST", path, body=body)

    async def put(self, path: str, body: Optional[dict[str, Any]] = None) -> Any:
        return await self.request("PUT", path, body=body)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

    async def close(self) -> None:
        await self._client.aclose()
