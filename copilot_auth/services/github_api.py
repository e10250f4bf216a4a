from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from copilot_auth.auth.errors import NetworkError
from copilot_auth.config.settings import Settings

SleepFn = Callable[[float], Awaitable[None]]


class GitHubEndpoint:
    """Shared transport for the GitHub endpoints used by the login flow."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: Settings,
        *,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.client = client
        self.settings = settings
        self._sleep = sleep

    def _headers(self, credential: str | None = None) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": self.settings.user_agent,
        }
        if credential:
            headers["Authorization"] = f"token {credential}"
        return headers

    async def _send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(NetworkError),
            wait=wait_exponential(multiplier=1, min=1, max=8),
            stop=stop_after_attempt(self.settings.http_max_retries),
            sleep=self._sleep,
            reraise=True,
        )
        return await retrying(self._send_once, method, url, headers=headers, json=json)

    async def _send_once(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        try:
            return await self.client.request(method, url, headers=headers, json=json)
        except httpx.RequestError as exc:
            raise NetworkError(f"{method} {url} failed: {exc}") from exc

    @staticmethod
    def _is_ok(response: httpx.Response) -> bool:
        return 200 <= response.status_code < 300
