from __future__ import annotations

import logging

from pydantic import ValidationError

from copilot_auth.auth.errors import InvalidCredential, ProtocolError
from copilot_auth.schemas.auth import Principal
from copilot_auth.services.github_api import GitHubEndpoint

logger = logging.getLogger(__name__)


class IdentityVerifier(GitHubEndpoint):
    @property
    def user_url(self) -> str:
        return f"{self.settings.api_base_url}/user"

    async def verify(self, credential: str) -> Principal:
        """Confirm ``credential`` against the identity endpoint.

        Raises InvalidCredential on any non-2xx answer. Transport failures
        surface as NetworkError since they say nothing about the credential.
        """
        response = await self._send("GET", self.user_url, headers=self._headers(credential))
        if not self._is_ok(response):
            raise InvalidCredential(
                f"Failed to verify GitHub user ({response.status_code})",
                status_code=response.status_code,
            )
        try:
            principal = Principal.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ProtocolError(f"Malformed identity response: {exc}") from exc

        logger.info("Authenticated as %s", principal.login)
        return principal
