"""
OAuth device authorization grant (RFC 8628) against GitHub.

GitHub answers every poll with HTTP 200 and signals "not yet" through an
``error`` field in the body, so poll responses are dispatched on that field
rather than on the status code.
"""
from __future__ import annotations

import logging
import math

from pydantic import ValidationError

from copilot_auth.auth.errors import (
    DeviceFlowCancelled,
    DeviceFlowDenied,
    DeviceFlowExpired,
    DeviceFlowTimeout,
    ProtocolError,
    ServerError,
)
from copilot_auth.schemas.auth import DeviceAuthorizationRequest, DeviceTokenResponse
from copilot_auth.services.github_api import GitHubEndpoint

logger = logging.getLogger(__name__)

DEVICE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"


class CancelToken:
    """Cooperative cancellation flag, consulted once per poll iteration."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def reset(self) -> None:
        self._cancelled = False


class DeviceFlowAuthorizer(GitHubEndpoint):
    @property
    def device_code_url(self) -> str:
        return f"{self.settings.github_base_url}/login/device/code"

    @property
    def access_token_url(self) -> str:
        return f"{self.settings.github_base_url}/login/oauth/access_token"

    async def request_device_code(self) -> DeviceAuthorizationRequest:
        response = await self._send(
            "POST",
            self.device_code_url,
            headers=self._headers(),
            json={"client_id": self.settings.client_id, "scope": self.settings.scope},
        )
        if not self._is_ok(response):
            raise ServerError(
                f"Device code request failed ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )
        try:
            request = DeviceAuthorizationRequest.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ServerError(
                f"Malformed device code response: {exc}",
                status_code=response.status_code,
            ) from exc

        logger.info(
            "Device code issued (expires_in=%ss, interval=%ss)",
            request.expires_in,
            request.interval,
        )
        return request

    async def poll_for_token(
        self,
        request: DeviceAuthorizationRequest,
        cancel_token: CancelToken,
    ) -> str:
        wait_seconds = float(request.interval + 1)
        max_attempts = math.ceil(request.expires_in / (request.interval + 1))
        payload = {
            "client_id": self.settings.client_id,
            "device_code": request.device_code,
            "grant_type": DEVICE_GRANT_TYPE,
        }
        logger.debug("Polling for access token (max_attempts=%d, wait=%.0fs)", max_attempts, wait_seconds)

        for attempt in range(1, max_attempts + 1):
            if cancel_token.cancelled:
                raise DeviceFlowCancelled("Authentication polling was cancelled")

            response = await self._send(
                "POST",
                self.access_token_url,
                headers=self._headers(),
                json=payload,
            )
            ok = self._is_ok(response)

            try:
                body = response.json()
            except ValueError:
                body = None
            if not isinstance(body, dict):
                if not ok:
                    raise ServerError(
                        f"Token polling failed ({response.status_code}): {response.text}",
                        status_code=response.status_code,
                    )
                # a garbled 200 is treated as "still pending".
                logger.warning(
                    "Unparsable token poll response, treating as pending",
                    extra={"attempt": attempt},
                )
                await self._wait(wait_seconds, attempt, max_attempts)
                continue

            try:
                result = DeviceTokenResponse.model_validate(body)
            except ValidationError as exc:
                raise ProtocolError(f"Unexpected token poll response: {exc}") from exc

            if result.error == "authorization_pending":
                logger.debug("Authorization pending", extra={"attempt": attempt})
                await self._wait(wait_seconds, attempt, max_attempts)
                continue
            if result.error == "slow_down":
                wait_seconds *= 2
                logger.info("Server asked to slow down, poll interval now %.0fs", wait_seconds)
                await self._wait(wait_seconds, attempt, max_attempts)
                continue
            if result.error == "expired_token":
                raise DeviceFlowExpired("Authentication code expired. Please try again.")
            if result.error == "access_denied":
                raise DeviceFlowDenied("Authentication was denied. Please try again.")
            if result.error:
                raise ProtocolError(
                    f"OAuth error: {result.error_description or result.error}",
                    error=result.error,
                )

            if result.access_token:
                logger.info("Device authorization completed after %d poll(s)", attempt)
                return result.access_token

            if not ok:
                raise ServerError(
                    f"Token polling failed ({response.status_code}): {response.text}",
                    status_code=response.status_code,
                )
            await self._wait(wait_seconds, attempt, max_attempts)

        raise DeviceFlowTimeout("Authentication timeout. Please try again.")

    async def _wait(self, seconds: float, attempt: int, max_attempts: int) -> None:
        if attempt >= max_attempts:
            return
        if attempt % 5 == 0:
            logger.info("Still waiting for authentication... (%d/%d)", attempt, max_attempts)
        await self._sleep(seconds)
