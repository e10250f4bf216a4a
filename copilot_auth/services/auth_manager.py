"""
AuthManager: one object that turns "I need a Copilot token" into a valid one.

Lifecycle:
  UNINITIALIZED -> INITIALIZING -> READY, and INITIALIZING -> UNINITIALIZED on
  failure so the next caller starts over cleanly.

Concurrent initialize() calls share a single task: exactly one device flow and
one credential write happen no matter how many callers race. The composition
root builds one instance (see ``AuthManager.from_settings``) and hands it to
every consumer.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import sys
import time
from collections.abc import Awaitable, Callable
from enum import Enum

import httpx

from copilot_auth.auth.errors import InvalidCredential, RefreshFailure, TokenUnavailable
from copilot_auth.config.settings import Settings, get_settings
from copilot_auth.schemas.auth import DeviceAuthorizationRequest, Principal, ServiceToken
from copilot_auth.services.credential_store import CredentialStore, FileCredentialStore
from copilot_auth.services.device_flow import CancelToken, DeviceFlowAuthorizer
from copilot_auth.services.identity import IdentityVerifier
from copilot_auth.services.refresh_scheduler import RefreshHandle, RefreshScheduler, SleepFn
from copilot_auth.services.token_exchange import ServiceTokenExchanger

logger = logging.getLogger(__name__)

Presenter = Callable[[DeviceAuthorizationRequest], Awaitable[None] | None]


class ManagerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


def print_user_code(request: DeviceAuthorizationRequest) -> None:
    """Default presenter: show the verification URL and user code on stderr."""
    rule = "-" * 60
    print(rule, file=sys.stderr)
    print(f"Please visit: {request.verification_uri}", file=sys.stderr)
    print(f"Enter this code: {request.user_code}", file=sys.stderr)
    print(rule, file=sys.stderr)
    print("Waiting for authentication...", file=sys.stderr)


class AuthManager:
    def __init__(
        self,
        *,
        store: CredentialStore,
        authorizer: DeviceFlowAuthorizer,
        verifier: IdentityVerifier,
        exchanger: ServiceTokenExchanger,
        provided_credential: str | None = None,
        presenter: Presenter = print_user_code,
        refresh_buffer_seconds: int = 300,
        refresh_lead_seconds: int = 60,
        clock: Callable[[], float] = time.time,
        sleep: SleepFn = asyncio.sleep,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._store = store
        self._authorizer = authorizer
        self._verifier = verifier
        self._exchanger = exchanger
        self._provided_credential = (provided_credential or "").strip() or None
        self._presenter = presenter
        self._buffer_seconds = refresh_buffer_seconds
        self._clock = clock
        self._owned_client = http_client
        self._scheduler = RefreshScheduler(
            self._exchange_current,
            lead_seconds=refresh_lead_seconds,
            sleep=sleep,
        )

        self._state = ManagerState.UNINITIALIZED
        self._init_task: asyncio.Task | None = None
        self._cancel = CancelToken()
        self._refresh_handle: RefreshHandle | None = None

        self._credential: str | None = None
        self._principal: Principal | None = None
        self._token: ServiceToken | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        presenter: Presenter = print_user_code,
        client: httpx.AsyncClient | None = None,
    ) -> AuthManager:
        settings = settings or get_settings()
        owned = client is None
        if client is None:
            client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        return cls(
            store=FileCredentialStore(settings.token_path),
            authorizer=DeviceFlowAuthorizer(client, settings),
            verifier=IdentityVerifier(client, settings),
            exchanger=ServiceTokenExchanger(client, settings),
            provided_credential=settings.github_token,
            presenter=presenter,
            refresh_buffer_seconds=settings.refresh_buffer_seconds,
            refresh_lead_seconds=settings.refresh_lead_seconds,
            http_client=client if owned else None,
        )

    async def __aenter__(self) -> AuthManager:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    @property
    def state(self) -> ManagerState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is ManagerState.READY

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        if self._state is ManagerState.READY:
            return
        if self._init_task is None:
            self._state = ManagerState.INITIALIZING
            self._init_task = asyncio.create_task(
                self._initialize_once(), name="copilot-auth-initialize"
            )
        else:
            logger.debug("Initialization in progress, waiting")
        # shield: a cancelled waiter must not cancel the shared work
        await asyncio.shield(self._init_task)

    async def _initialize_once(self) -> None:
        try:
            await self._do_initialize()
        except BaseException:
            self._state = ManagerState.UNINITIALIZED
            raise
        else:
            self._state = ManagerState.READY
        finally:
            self._init_task = None

    async def _do_initialize(self) -> None:
        logger.info("Initializing GitHub Copilot authentication")
        self._cancel.reset()
        credential, principal = await self._resolve_credential()
        token = await self._exchanger.exchange(credential)

        self._credential = credential
        self._principal = principal
        self._token = token
        self._arm(token)
        logger.info("GitHub Copilot authentication ready")

    async def _resolve_credential(self) -> tuple[str, Principal]:
        if self._provided_credential:
            logger.info("Using provided GitHub token")
            principal = await self._verifier.verify(self._provided_credential)
            return self._provided_credential, principal

        stored = await self._store.load()
        if stored:
            logger.info("Found stored GitHub token, verifying")
            try:
                principal = await self._verifier.verify(stored)
            except InvalidCredential as exc:
                logger.warning("Stored GitHub token is invalid, removing it: %s", exc)
                await self._store.clear()
            else:
                return stored, principal
        else:
            logger.info("No stored GitHub token, starting device authorization")

        return await self._authorize_device()

    async def _authorize_device(self) -> tuple[str, Principal]:
        request = await self._authorizer.request_device_code()
        result = self._presenter(request)
        if inspect.isawaitable(result):
            await result
        logger.info("User code presented, waiting for authorization")

        credential = await self._authorizer.poll_for_token(request, self._cancel)
        principal = await self._verifier.verify(credential)
        await self._store.save(credential)
        return credential, principal

    def destroy(self) -> None:
        """Stop background activity. Credentials are kept."""
        self._cancel.cancel()
        self._scheduler.cancel(self._refresh_handle)
        self._refresh_handle = None
        logger.debug("Auth manager destroyed")

    async def logout(self) -> None:
        self.destroy()
        task = self._init_task
        if task is not None:
            # polling stops on the cancel flag; a save or exchange already
            # under way must finish before the store is cleared
            await asyncio.wait({task})
        await self._store.clear()
        self._credential = None
        self._principal = None
        self._token = None
        self._state = ManagerState.UNINITIALIZED
        logger.info("Logged out")

    async def aclose(self) -> None:
        self.destroy()
        if self._owned_client is not None:
            await self._owned_client.aclose()
            self._owned_client = None

    # ── Read paths ────────────────────────────────────────────────────────

    async def get_service_token(self) -> ServiceToken:
        if self._state is not ManagerState.READY:
            await self.initialize()
        token = self._token
        if token is None:
            raise TokenUnavailable("Copilot token not available")
        if token.remaining(self._clock()) < self._buffer_seconds:
            logger.info("Copilot token expired or expiring soon, refreshing")
            token = await self._refresh_now()
        return token

    async def get_token(self) -> str:
        token = await self.get_service_token()
        return token.token

    async def get_principal(self) -> Principal:
        if self._state is not ManagerState.READY:
            await self.initialize()
        if self._principal is None:
            raise TokenUnavailable("No verified GitHub principal")
        return self._principal

    # ── Refresh ───────────────────────────────────────────────────────────

    async def _exchange_current(self) -> ServiceToken:
        if self._credential is None:
            raise TokenUnavailable("GitHub token not available")
        return await self._exchanger.exchange(self._credential)

    async def _refresh_now(self) -> ServiceToken:
        token = await self._exchange_current()
        self._token = token
        self._scheduler.cancel(self._refresh_handle)
        self._arm(token)
        return token

    def _arm(self, token: ServiceToken) -> None:
        if self._cancel.cancelled:
            self._refresh_handle = None
            return
        self._refresh_handle = self._scheduler.arm(token, self._on_refreshed, self._on_refresh_error)

    def _on_refreshed(self, token: ServiceToken) -> None:
        self._token = token

    def _on_refresh_error(self, failure: RefreshFailure) -> None:
        logger.warning("%s; next get_token() will retry", failure)
