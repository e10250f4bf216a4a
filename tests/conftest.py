"""
Shared test fixtures for copilot-auth.

GitHub is faked with an httpx.MockTransport; time is faked with a manual
clock and injectable sleeps so nothing waits on the wall clock.
"""
from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
import pytest

from copilot_auth.config.settings import Settings
from copilot_auth.services.credential_store import FileCredentialStore
from copilot_auth.services.device_flow import DeviceFlowAuthorizer
from copilot_auth.services.identity import IdentityVerifier
from copilot_auth.services.auth_manager import AuthManager
from copilot_auth.services.token_exchange import ServiceTokenExchanger

START_TIME = 1_700_000_000.0


class FakeClock:
    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Returns immediately, remembers every requested duration."""

    def __init__(self) -> None:
        self.calls: list[float] = []
        self.on_sleep = None

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.on_sleep is not None:
            self.on_sleep()
        await asyncio.sleep(0)


class ManualSleep:
    """Blocks every caller until release() is called."""

    def __init__(self) -> None:
        self.calls: list[float] = []
        self._waiters: list[asyncio.Future] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        await waiter

    @property
    def pending(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    def release(self) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)


class FakeGitHub:
    """
    Minimal GitHub: device code, token polling, /user and the Copilot token
    endpoint. Queues hold the next responses; the last entry is sticky.
    """

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.requests: list[httpx.Request] = []
        self.device_code_responses: list[Any] = [
            {
                "device_code": "dev-123",
                "user_code": "ABCD-1234",
                "verification_uri": "https://github.test/login/device",
                "expires_in": 900,
                "interval": 5,
            }
        ]
        self.poll_responses: list[Any] = [{"access_token": "gho_new"}]
        self.token_responses: list[Any] = []
        self.valid_credentials: set[str] = {"gho_new"}
        self.token_ttl = 1800
        self.token_refresh_in = 1500
        self._issued = 0

    def count(self, path: str) -> int:
        return sum(1 for request in self.requests if request.url.path == path)

    def bodies(self, path: str) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.path == path]

    @staticmethod
    def _next(queue: list[Any]) -> Any:
        return queue.pop(0) if len(queue) > 1 else queue[0]

    @staticmethod
    def _respond(item: Any, request: httpx.Request) -> httpx.Response:
        if isinstance(item, Exception):
            raise item
        if isinstance(item, httpx.Response):
            return item
        return httpx.Response(200, json=item)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/login/device/code":
            return self._respond(self._next(self.device_code_responses), request)
        if path == "/login/oauth/access_token":
            return self._respond(self._next(self.poll_responses), request)
        if path == "/user":
            credential = request.headers.get("Authorization", "").removeprefix("token ")
            if credential in self.valid_credentials:
                return httpx.Response(200, json={"login": "octocat", "id": 583231, "name": "Mona"})
            return httpx.Response(401, json={"message": "Bad credentials"})
        if path == "/copilot_internal/v2/token":
            if self.token_responses:
                return self._respond(self._next(self.token_responses), request)
            self._issued += 1
            return httpx.Response(
                200,
                json={
                    "token": f"cop-{self._issued}",
                    "expires_at": int(self.clock() + self.token_ttl),
                    "refresh_in": self.token_refresh_in,
                },
            )
        return httpx.Response(404, json={"message": "Not Found"})


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def github(clock) -> FakeGitHub:
    return FakeGitHub(clock)


@pytest.fixture()
def http_client(github) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(github.handler))


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        github_base_url="https://github.test",
        api_base_url="https://api.github.test",
        data_dir=tmp_path / "data",
        http_max_retries=1,
    )


@pytest.fixture()
def poll_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def refresh_sleep() -> ManualSleep:
    return ManualSleep()


@pytest.fixture()
def presented() -> list:
    return []


@pytest.fixture()
def make_manager(settings, http_client, clock, poll_sleep, refresh_sleep, presented):
    def _make(**overrides) -> AuthManager:
        kwargs = dict(
            store=FileCredentialStore(settings.token_path),
            authorizer=DeviceFlowAuthorizer(http_client, settings, sleep=poll_sleep),
            verifier=IdentityVerifier(http_client, settings),
            exchanger=ServiceTokenExchanger(http_client, settings),
            presenter=presented.append,
            clock=clock,
            sleep=refresh_sleep,
        )
        kwargs.update(overrides)
        return AuthManager(**kwargs)

    return _make


@pytest.fixture()
def eventually():
    async def _wait(predicate, timeout: float = 2.0) -> None:
        async def _poll() -> None:
            while not predicate():
                await asyncio.sleep(0.001)

        await asyncio.wait_for(_poll(), timeout)

    return _wait
