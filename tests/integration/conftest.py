"""
Integration fixtures: the FastAPI app wired to a mocked Copilot upstream.
"""

import json
import time
from typing import Callable

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from copilot_gateway.api.deps import get_chat_service
from copilot_gateway.executors.base import Credentials
from copilot_gateway.executors.github import GithubExecutor
from copilot_gateway.main import app
from copilot_gateway.services import ChatService, CredentialHolder


class Upstream:
    """Programmable stand-in for the Copilot API."""

    def __init__(self) -> None:
        self.handler: Callable[[httpx.Request], httpx.Response] = lambda r: httpx.Response(500)
        self.requests: list[httpx.Request] = []

    def bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)


@pytest.fixture
def upstream() -> Upstream:
    return Upstream()


@pytest_asyncio.fixture
async def client(settings, upstream):
    executor = GithubExecutor(settings=settings, transport=httpx.MockTransport(upstream))
    credentials = CredentialHolder(
        Credentials(
            access_token="gho_test",
            provider_token="tid_test",
            provider_token_expires_at=int(time.time()) + 3600,
        )
    )
    service = ChatService(executor, credentials)
    app.dependency_overrides[get_chat_service] = lambda: service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides = {}
