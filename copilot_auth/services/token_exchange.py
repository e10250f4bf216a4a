from __future__ import annotations

import logging
from datetime import datetime, timezone

from pydantic import ValidationError

from copilot_auth.auth.errors import ExchangeError
from copilot_auth.schemas.auth import ServiceToken
from copilot_auth.services.github_api import GitHubEndpoint

logger = logging.getLogger(__name__)


class ServiceTokenExchanger(GitHubEndpoint):
    @property
    def token_url(self) -> str:
        return f"{self.settings.api_base_url}/copilot_internal/v2/token"

    def _exchange_headers(self, credential: str) -> dict[str, str]:
        return {
            **self._headers(credential),
            "editor-version": self.settings.editor_version,
            "editor-plugin-version": self.settings.editor_plugin_version,
            "x-github-api-version": self.settings.api_version,
        }

    async def exchange(self, credential: str) -> ServiceToken:
        response = await self._send("GET", self.token_url, headers=self._exchange_headers(credential))
        if not self._is_ok(response):
            raise ExchangeError(
                f"Failed to get Copilot token ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )
        try:
            token = ServiceToken.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ExchangeError(
                f"Malformed Copilot token response: {exc}",
                status_code=response.status_code,
            ) from exc

        logger.info(
            "Copilot token acquired (refresh_in=%ss)",
            token.refresh_in,
            extra={"expires_at": datetime.fromtimestamp(token.expires_at, tz=timezone.utc).isoformat()},
        )
        return token
