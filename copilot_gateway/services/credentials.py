"""
In-memory credential holder

Keeps the current upstream credentials for the running process and refreshes
them through the executor when they go stale. Persisting replacements is left
to the optional `on_update` callback.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

from copilot_gateway.common.errors import AuthenticationError
from copilot_gateway.common.log import CategoryLog, CategoryLogger
from copilot_gateway.config import Settings
from copilot_gateway.executors.base import BaseExecutor, Credentials


class CredentialHolder:
    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        on_update: Optional[Callable[[Credentials], None]] = None,
    ):
        self._credentials = credentials
        self._on_update = on_update
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialHolder":
        if settings.PROVIDER == "openai":
            token = settings.OPENAI_API_KEY
            return cls(Credentials(access_token=token) if token else None)

        if not settings.GITHUB_ACCESS_TOKEN:
            return cls(None)
        return cls(
            Credentials(
                access_token=settings.GITHUB_ACCESS_TOKEN,
                refresh_token=settings.GITHUB_REFRESH_TOKEN,
                provider_token=settings.COPILOT_TOKEN,
                provider_token_expires_at=settings.COPILOT_TOKEN_EXPIRES_AT,
            )
        )

    @property
    def current(self) -> Optional[Credentials]:
        return self._credentials

    def replace(self, credentials: Credentials) -> None:
        self._credentials = credentials
        if self._on_update is not None:
            self._on_update(credentials)

    async def get_valid(
        self,
        executor: BaseExecutor,
        log: Optional[CategoryLog] = None,
    ) -> Credentials:
        """
        Return credentials fit for one upstream call, refreshing them first if needed.

        Concurrent callers share a single refresh.

        Raises:
            AuthenticationError: no credentials, or refresh failed and nothing usable is left
        """
        log = log or CategoryLogger()
        async with self._lock:
            credentials = self._credentials
            if credentials is None:
                raise AuthenticationError("No upstream credentials configured", code="missing_credentials")

            if not executor.needs_refresh(credentials):
                return credentials

            refreshed = await executor.refresh_credentials(credentials, log)
            if refreshed is not None:
                self.replace(refreshed)
                credentials = refreshed
                if not executor.needs_refresh(refreshed):
                    return refreshed

            if credentials.provider_token or not executor.requires_provider_token:
                log.warn("TOKEN", "Credential refresh failed, using the current token")
                return credentials

            raise AuthenticationError("Upstream credential refresh failed", code="refresh_failed")
