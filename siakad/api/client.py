"""
SIAKAD REST API Client

Async HTTP wrapper over the SIAKAD backend. Every call returns an
``ApiResult`` carrying either the decoded body or the failure reason;
nothing here retries or raises on transport errors.

Usage:
    async with SiakadClient(settings.api_base_url) as client:
        result = await client.get_tasks(nim)
        if result.success:
            tasks = result.data
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger

MESSAGES_LIMIT_DEFAULT = 50
MESSAGES_LIMIT_MAX = 200


@dataclass
class ApiResult:
    """Outcome of one API request."""

    success: bool
    data: Any = None
    error: str | None = None
    status_code: int | None = None

    @classmethod
    def ok(cls, data: Any, status_code: int = 200) -> ApiResult:
        return cls(success=True, data=data, status_code=status_code)

    @classmethod
    def fail(cls, error: str, status_code: int | None = None) -> ApiResult:
        return cls(success=False, error=error, status_code=status_code)


def clamp_messages_limit(limit: int | None) -> int:
    """Mirror the server rule: non-positive means default, cap at 200."""
    if not limit or limit <= 0:
        return MESSAGES_LIMIT_DEFAULT
    return min(limit, MESSAGES_LIMIT_MAX)


class SiakadClient:
    """
    HTTP client for the SIAKAD backend.

    Supports:
    - Login, registration, password change and FCM token registration
    - Task and message CRUD scoped by NIM
    - Debug user lookup used for contact resolution
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: API root, e.g. http://127.0.0.1:8000/api
            timeout: Transport timeout in seconds
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "SiakadClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Accept": "application/json", "Content-Type": "application/json"},
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> ApiResult:
        """Send a request and fold every outcome into an ApiResult."""
        try:
            client = await self._ensure_client()
            response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e}")
            return ApiResult.fail(str(e) or e.__class__.__name__)

        try:
            body = response.json()
        except ValueError:
            body = None

        if 200 <= response.status_code < 300:
            return ApiResult.ok(body, response.status_code)

        error = None
        if isinstance(body, dict):
            error = body.get("message") or body.get("error")
        error = error or f"HTTP {response.status_code}"
        logger.debug(f"{method} {path} -> {response.status_code}: {error}")
        return ApiResult.fail(error, response.status_code)

    # =========================================================================
    # Authentication & Users
    # =========================================================================

    async def login(self, nim: str, password: str) -> ApiResult:
        return await self._request("POST", "/login", json={"nim": nim, "password": password})

    async def register(
        self,
        nim: str,
        name: str,
        password: str,
        email: str | None = None,
        reg_type: str = "reguler",
    ) -> ApiResult:
        payload = {"nim": nim, "name": name, "email": email, "password": password, "type": reg_type}
        return await self._request("POST", "/register", json=payload)

    async def change_password(self, nim: str, old_password: str, new_password: str) -> ApiResult:
        payload = {"nim": nim, "old_password": old_password, "new_password": new_password}
        return await self._request("POST", "/user/change-password", json=payload)

    async def save_fcm_token(self, nim: str, fcm_token: str) -> ApiResult:
        return await self._request("POST", "/user/fcm-token", json={"nim": nim, "fcm_token": fcm_token})

    async def debug_users(self) -> ApiResult:
        """List every user (debug endpoint, contact resolution only)."""
        return await self._request("GET", "/debug/users")

    async def debug_user(self, nim: str) -> ApiResult:
        return await self._request("GET", f"/debug/user/{nim}")

    # =========================================================================
    # Tasks
    # =========================================================================

    async def get_tasks(self, nim: str) -> ApiResult:
        return await self._request("GET", "/tasks", params={"nim": nim})

    async def create_task(self, payload: dict[str, Any]) -> ApiResult:
        return await self._request("POST", "/tasks", json=payload)

    async def update_task(self, task_id: str, payload: dict[str, Any]) -> ApiResult:
        return await self._request("PUT", f"/tasks/{task_id}", json=payload)

    async def delete_task(self, task_id: str) -> ApiResult:
        return await self._request("DELETE", f"/tasks/{task_id}")

    # =========================================================================
    # Messages
    # =========================================================================

    async def get_messages(self, nim: str, limit: int | None = None) -> ApiResult:
        return await self._request(
            "GET",
            "/messages",
            params={"nim": nim, "limit": clamp_messages_limit(limit)},
        )

    async def create_message(self, payload: dict[str, Any]) -> ApiResult:
        return await self._request("POST", "/messages", json=payload)

    async def update_message(self, message_id: str, payload: dict[str, Any]) -> ApiResult:
        return await self._request("PUT", f"/messages/{message_id}", json=payload)
