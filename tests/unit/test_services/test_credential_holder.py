"""
Credential Holder Unit Tests
"""

import asyncio
import time
from unittest.mock import AsyncMock, patch

import pytest

from copilot_gateway.common.errors import AuthenticationError
from copilot_gateway.config import Settings
from copilot_gateway.executors.base import Credentials
from copilot_gateway.executors.github import GithubExecutor
from copilot_gateway.executors.openai import OpenAIExecutor
from copilot_gateway.services.credentials import CredentialHolder


def _fresh() -> Credentials:
    return Credentials(
        access_token="gho_test",
        refresh_token="ghr_test",
        provider_token="tid_fresh",
        provider_token_expires_at=int(time.time()) + 3600,
    )


def _stale(provider_token="tid_stale") -> Credentials:
    return Credentials(
        access_token="gho_test",
        refresh_token="ghr_test",
        provider_token=provider_token,
        provider_token_expires_at=int(time.time()) - 10,
    )


def test_from_settings_github(settings):
    holder = CredentialHolder.from_settings(settings)
    assert holder.current.access_token == "gho_test"
    assert holder.current.refresh_token == "ghr_test"


def test_from_settings_without_token():
    holder = CredentialHolder.from_settings(Settings(_env_file=None, PROVIDER="github", GITHUB_ACCESS_TOKEN=None))
    assert holder.current is None


def test_from_settings_openai():
    holder = CredentialHolder.from_settings(Settings(_env_file=None, PROVIDER="openai", OPENAI_API_KEY="sk-x"))
    assert holder.current.access_token == "sk-x"


@pytest.mark.asyncio
async def test_missing_credentials_raise(settings):
    with pytest.raises(AuthenticationError) as exc:
        await CredentialHolder().get_valid(GithubExecutor(settings=settings))
    assert exc.value.code == "missing_credentials"


@pytest.mark.asyncio
async def test_fresh_credentials_skip_refresh(settings):
    executor = GithubExecutor(settings=settings)
    holder = CredentialHolder(_fresh())
    with patch.object(executor, "refresh_credentials", new_callable=AsyncMock) as refresh:
        credentials = await holder.get_valid(executor)
    assert credentials.provider_token == "tid_fresh"
    refresh.assert_not_called()


@pytest.mark.asyncio
async def test_stale_credentials_are_refreshed_and_published(settings):
    executor = GithubExecutor(settings=settings)
    updates = []
    holder = CredentialHolder(_stale(), on_update=updates.append)

    with patch.object(executor, "refresh_credentials", new_callable=AsyncMock, return_value=_fresh()) as refresh:
        credentials = await holder.get_valid(executor)

    assert credentials.provider_token == "tid_fresh"
    assert holder.current is credentials
    assert updates == [credentials]
    refresh.assert_awaited_once()


@pytest.mark.asyncio
async def test_failed_refresh_uses_stale_provider_token(settings):
    executor = GithubExecutor(settings=settings)
    holder = CredentialHolder(_stale())

    with patch.object(executor, "refresh_credentials", new_callable=AsyncMock, return_value=None):
        credentials = await holder.get_valid(executor)

    assert credentials.provider_token == "tid_stale"


@pytest.mark.asyncio
async def test_failed_refresh_without_provider_token_raises(settings):
    executor = GithubExecutor(settings=settings)
    holder = CredentialHolder(_stale(provider_token=None))

    with patch.object(executor, "refresh_credentials", new_callable=AsyncMock, return_value=None):
        with pytest.raises(AuthenticationError) as exc:
            await holder.get_valid(executor)
    assert exc.value.code == "refresh_failed"


@pytest.mark.asyncio
async def test_partial_refresh_without_provider_token_raises_but_keeps_oauth_tokens(settings):
    executor = GithubExecutor(settings=settings)
    holder = CredentialHolder(_stale(provider_token=None))
    partial = Credentials(access_token="gho_new", refresh_token="ghr_new")

    with patch.object(executor, "refresh_credentials", new_callable=AsyncMock, return_value=partial):
        with pytest.raises(AuthenticationError):
            await holder.get_valid(executor)
    assert holder.current.access_token == "gho_new"


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_refresh(settings):
    executor = GithubExecutor(settings=settings)
    holder = CredentialHolder(_stale())

    async def slow_refresh(credentials, log=None):
        await asyncio.sleep(0.01)
        return _fresh()

    with patch.object(executor, "refresh_credentials", side_effect=slow_refresh) as refresh:
        results = await asyncio.gather(*(holder.get_valid(executor) for _ in range(5)))

    assert refresh.call_count == 1
    assert {c.provider_token for c in results} == {"tid_fresh"}


@pytest.mark.asyncio
async def test_openai_key_is_used_as_is():
    executor = OpenAIExecutor(settings=Settings(_env_file=None, PROVIDER="openai", OPENAI_API_KEY="sk-x"))
    holder = CredentialHolder(Credentials(access_token="sk-x"))
    credentials = await holder.get_valid(executor)
    assert credentials.access_token == "sk-x"
