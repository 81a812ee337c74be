"""
GitHub Copilot Credential Refresh Unit Tests
"""

import time
from datetime import datetime, timezone
from urllib.parse import parse_qs

import httpx
import pytest

from copilot_gateway.executors.base import Credentials
from copilot_gateway.executors.github import GithubExecutor


def _executor(settings, handler) -> GithubExecutor:
    return GithubExecutor(settings=settings, transport=httpx.MockTransport(handler))


def _iso(ts: int) -> str:
    return datetime.fromtimestamp(ts, timezone.utc).isoformat().replace("+00:00", "Z")


# ============ needs_refresh ============

def test_needs_refresh_without_provider_token(settings):
    executor = GithubExecutor(settings=settings)
    assert executor.needs_refresh(Credentials(access_token="gho_test")) is True
    assert executor.needs_refresh(None) is True


@pytest.mark.parametrize("offset,expected", [(3600, False), (60, True), (-60, True)])
def test_needs_refresh_same_answer_for_seconds_millis_and_iso(settings, offset, expected):
    executor = GithubExecutor(settings=settings)
    ts = int(time.time()) + offset
    for value in (ts, ts * 1000, _iso(ts), str(ts)):
        credentials = Credentials(access_token="gho_test", provider_token="tid", provider_token_expires_at=value)
        assert executor.needs_refresh(credentials) is expected, value


def test_needs_refresh_unparseable_expiry(settings):
    executor = GithubExecutor(settings=settings)
    credentials = Credentials(access_token="gho_test", provider_token="tid", provider_token_expires_at="whenever")
    assert executor.needs_refresh(credentials) is True


def test_needs_refresh_without_expiry_trusts_token(settings):
    executor = GithubExecutor(settings=settings)
    assert executor.needs_refresh(Credentials(access_token="gho_test", provider_token="tid")) is False


# ============ refresh_credentials ============

@pytest.mark.asyncio
async def test_refresh_copilot_token(settings):
    seen = []
    expires_at = int(time.time()) + 1800

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"token": "tid_new", "expires_at": expires_at})

    executor = _executor(settings, handler)
    refreshed = await executor.refresh_credentials(Credentials(access_token="gho_test", refresh_token="ghr_test"))

    assert refreshed.provider_token == "tid_new"
    assert refreshed.provider_token_expires_at == expires_at
    assert refreshed.access_token == "gho_test"
    assert refreshed.refresh_token == "ghr_test"
    assert seen[0].method == "GET"
    assert str(seen[0].url) == settings.GITHUB_COPILOT_TOKEN_URL
    assert seen[0].headers["authorization"] == "token gho_test"


@pytest.mark.asyncio
async def test_refresh_falls_back_to_github_refresh_token(settings):
    forms = []

    def handler(request):
        if request.url.path == "/login/oauth/access_token":
            forms.append(parse_qs(request.content.decode()))
            return httpx.Response(200, json={"access_token": "gho_new", "refresh_token": "ghr_new", "expires_in": 28800})
        if request.headers["authorization"] == "token gho_new":
            return httpx.Response(200, json={"token": "tid_new", "expires_at": 1900000000})
        return httpx.Response(401, json={"message": "Bad credentials"})

    executor = _executor(settings, handler)
    before = int(time.time())
    refreshed = await executor.refresh_credentials(Credentials(access_token="gho_old", refresh_token="ghr_old"))

    assert refreshed.access_token == "gho_new"
    assert refreshed.refresh_token == "ghr_new"
    assert refreshed.provider_token == "tid_new"
    assert refreshed.provider_token_expires_at == 1900000000
    assert before + 28800 <= refreshed.expires_at <= int(time.time()) + 28800

    assert forms[0]["grant_type"] == ["refresh_token"]
    assert forms[0]["refresh_token"] == ["ghr_old"]
    assert forms[0]["client_id"] == [settings.GITHUB_CLIENT_ID]
    assert "client_secret" not in forms[0]


@pytest.mark.asyncio
async def test_refresh_keeps_old_refresh_token_when_none_returned(settings):
    def handler(request):
        if request.url.path == "/login/oauth/access_token":
            return httpx.Response(200, json={"access_token": "gho_new"})
        if request.headers["authorization"] == "token gho_new":
            return httpx.Response(200, json={"token": "tid_new", "expires_at": 1900000000})
        return httpx.Response(401)

    refreshed = await _executor(settings, handler).refresh_credentials(
        Credentials(access_token="gho_old", refresh_token="ghr_old")
    )
    assert refreshed.refresh_token == "ghr_old"
    assert refreshed.expires_at is None


@pytest.mark.asyncio
async def test_github_refresh_ok_but_copilot_still_failing(settings):
    def handler(request):
        if request.url.path == "/login/oauth/access_token":
            return httpx.Response(200, json={"access_token": "gho_new", "refresh_token": "ghr_new"})
        return httpx.Response(500, text="down")

    refreshed = await _executor(settings, handler).refresh_credentials(
        Credentials(access_token="gho_old", refresh_token="ghr_old")
    )
    assert refreshed.access_token == "gho_new"
    assert refreshed.provider_token is None


@pytest.mark.asyncio
async def test_oauth_error_in_200_body_is_failure(settings):
    def handler(request):
        if request.url.path == "/login/oauth/access_token":
            return httpx.Response(200, json={"error": "bad_refresh_token", "error_description": "expired"})
        return httpx.Response(401)

    refreshed = await _executor(settings, handler).refresh_credentials(
        Credentials(access_token="gho_old", refresh_token="ghr_old")
    )
    assert refreshed is None


@pytest.mark.asyncio
async def test_refresh_without_refresh_token_fails(settings):
    calls = []

    def handler(request):
        calls.append(request.url.path)
        return httpx.Response(401)

    refreshed = await _executor(settings, handler).refresh_credentials(Credentials(access_token="gho_old"))
    assert refreshed is None
    assert calls == ["/copilot_internal/v2/token"]


@pytest.mark.asyncio
async def test_refresh_transport_error_is_failure(settings):
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    executor = _executor(settings, handler)
    assert await executor.refresh_copilot_token("gho_test") is None
    assert await executor.refresh_github_token("ghr_test") is None
