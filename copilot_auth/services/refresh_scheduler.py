from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from copilot_auth.auth.errors import RefreshFailure
from copilot_auth.schemas.auth import ServiceToken

logger = logging.getLogger(__name__)

RefreshFn = Callable[[], Awaitable[ServiceToken]]
SleepFn = Callable[[float], Awaitable[None]]


@dataclass
class RefreshHandle:
    task: asyncio.Task | None = None
    cancelled: bool = False

    @property
    def active(self) -> bool:
        return not self.cancelled and self.task is not None and not self.task.done()


class RefreshScheduler:
    """
    Background refresh of the service token.

    Each armed handle owns one task that sleeps until shortly before the
    token's suggested refresh time, refreshes, and re-arms itself with the new
    token. A failed refresh is reported to ``on_error`` and ends the chain.
    A token whose refresh_in does not exceed the lead is never scheduled;
    staleness is then left to the caller's own freshness check.
    """

    def __init__(
        self,
        refresh: RefreshFn,
        *,
        lead_seconds: int = 60,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._refresh = refresh
        self._lead_seconds = lead_seconds
        self._sleep = sleep

    def delay_for(self, token: ServiceToken) -> float:
        return float(token.refresh_in - self._lead_seconds)

    def arm(
        self,
        token: ServiceToken,
        on_refreshed: Callable[[ServiceToken], None],
        on_error: Callable[[RefreshFailure], None],
    ) -> RefreshHandle:
        handle = RefreshHandle()
        delay = self.delay_for(token)
        if delay <= 0:
            logger.debug("refresh_in=%ss is within the lead, not scheduling", token.refresh_in)
            return handle
        handle.task = asyncio.create_task(
            self._run(handle, token, on_refreshed, on_error),
            name="copilot-token-refresh",
        )
        logger.debug("Token refresh armed in %.0fs", delay)
        return handle

    def cancel(self, handle: RefreshHandle | None) -> None:
        if handle is None:
            return
        handle.cancelled = True
        task = handle.task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _run(
        self,
        handle: RefreshHandle,
        token: ServiceToken,
        on_refreshed: Callable[[ServiceToken], None],
        on_error: Callable[[RefreshFailure], None],
    ) -> None:
        current = token
        while True:
            await self._sleep(self.delay_for(current))
            # the timer may fire just as cancel() lands
            if handle.cancelled:
                return
            try:
                current = await self._refresh()
            except Exception as exc:
                failure = RefreshFailure(f"Background token refresh failed: {exc}")
                failure.__cause__ = exc
                on_error(failure)
                return
            if handle.cancelled:
                return
            on_refreshed(current)
            logger.info("Copilot token refreshed in background")
            if self.delay_for(current) <= 0:
                logger.debug(
                    "refresh_in=%ss is within the lead, ending background refresh",
                    current.refresh_in,
                )
                return
