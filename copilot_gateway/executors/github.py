"""
GitHub Copilot Executor

Serves chat requests through Copilot's `/chat/completions` endpoint. Models
that Copilot only exposes through `/responses` are detected from the upstream
400, remembered, and served through `/responses` with the request and the
response translated on the fly.
"""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from copilot_gateway.common.log import CategoryLog, CategoryLogger
from copilot_gateway.common.time import expires_within
from copilot_gateway.config import Settings
from copilot_gateway.executors.base import (
    BaseExecutor,
    Credentials,
    ExecutionRequest,
    ExecutionResult,
)
from copilot_gateway.executors.route_cache import ModelRouteCache
from copilot_gateway.translator.formats import WireFormat
from copilot_gateway.translator.openai_responses import (
    chat_completions_request_to_responses,
    responses_chunk_to_chat,
    responses_response_to_chat_completion,
)
from copilot_gateway.translator.sse import transform_sse_stream
from copilot_gateway.translator.state import init_state

# Copilot's 400 body for models that are only served by /responses.
RESPONSES_ONLY_MARKER = "not accessible via the /chat/completions endpoint"

# Content part types accepted by Copilot's /chat/completions.
CHAT_CONTENT_TYPES = frozenset({"text", "image_url"})

# Result parts whose payload is their text/content; an empty one carries nothing.
RESULT_PART_TYPES = frozenset({"tool_result", "function_call_output"})


@dataclass
class ProviderToken:
    token: str
    expires_at: Any


@dataclass
class OAuthTokens:
    access_token: str
    refresh_token: Optional[str]
    expires_in: Optional[int]


def _part_as_text(part: dict[str, Any]) -> dict[str, Any]:
    text = part.get("text") or part.get("content") or part.get("output")
    if not text:
        text = "" if part.get("type") in RESULT_PART_TYPES else json.dumps(part, ensure_ascii=False)
    if not isinstance(text, str):
        text = json.dumps(text, ensure_ascii=False)
    return {"type": "text", "text": text}


def sanitize_messages_for_chat_completions(body: dict[str, Any]) -> dict[str, Any]:
    """
    Flatten content parts Copilot's /chat/completions rejects.

    Tool use, tool result and thinking parts are serialized to text parts,
    result parts with no payload and empty text parts are dropped, and a
    message left with no parts gets `content: None`. String content and
    missing content are left untouched.
    """
    messages = body.get("messages") if isinstance(body, dict) else None
    if not isinstance(messages, list):
        return body

    sanitized_messages = []
    for message in messages:
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, list):
            sanitized_messages.append(message)
            continue

        parts = []
        for part in content:
            if not isinstance(part, dict):
                part = {"type": "text", "text": part if isinstance(part, str) else json.dumps(part)}
            elif part.get("type") not in CHAT_CONTENT_TYPES:
                part = _part_as_text(part)
            if part.get("type") == "text" and part.get("text") == "":
                continue
            parts.append(part)

        sanitized_messages.append({**message, "content": parts or None})

    return {**body, "messages": sanitized_messages}


class GithubExecutor(BaseExecutor):
    """
    GitHub Copilot executor

    - `/chat/completions` first, with content parts sanitized
    - one retry through `/responses` when Copilot reports the model is not
      served by `/chat/completions`; the model is remembered afterwards
    """

    provider = "github"
    requires_provider_token = True

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        route_cache: Optional[ModelRouteCache] = None,
    ):
        super().__init__(settings=settings, transport=transport)
        self.responses_models = route_cache if route_cache is not None else ModelRouteCache()

    def build_url(self, model: str, stream: bool) -> str:
        return self.settings.GITHUB_COPILOT_CHAT_URL

    def _client_headers(self) -> dict[str, str]:
        return {
            "editor-version": f"vscode/{self.settings.COPILOT_VSCODE_VERSION}",
            "editor-plugin-version": f"copilot-chat/{self.settings.COPILOT_CHAT_VERSION}",
            "user-agent": self.settings.COPILOT_USER_AGENT,
            "x-github-api-version": self.settings.COPILOT_API_VERSION,
        }

    def build_headers(self, credentials: Optional[Credentials], stream: bool = True) -> dict[str, str]:
        token = None
        if credentials is not None:
            token = credentials.provider_token or credentials.access_token
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "copilot-integration-id": "vscode-chat",
            **self._client_headers(),
            "openai-intent": "conversation-panel",
            "x-request-id": str(uuid.uuid4()),
            "x-vscode-user-agent-library-version": "electron-fetch",
            "X-Initiator": "user",
            "Accept": "text/event-stream" if stream else "application/json",
        }
        return headers

    # ============ Execution ============

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        log = request.log

        if request.model in self.responses_models:
            log.debug("GITHUB", f"Using cached /responses route for {request.model}")
            return await self.execute_with_responses_endpoint(request)

        sanitized = ExecutionRequest(
            model=request.model,
            body=sanitize_messages_for_chat_completions(request.body),
            credentials=request.credentials,
            stream=request.stream,
            cancel_event=request.cancel_event,
            log=request.log,
        )
        result = await super().execute(sanitized)

        if result.status_code == 400 and RESPONSES_ONLY_MARKER in result.body_text:
            log.warn("GITHUB", f"Model {request.model} requires /responses. Switching...")
            self.responses_models.add(request.model)
            await result.aclose()
            return await self.execute_with_responses_endpoint(request)

        return result

    async def execute_with_responses_endpoint(self, request: ExecutionRequest) -> ExecutionResult:
        """
        Serve a chat request through `/responses`.

        The caller still receives Chat Completions: JSON bodies are converted
        whole, streams are converted event by event.
        """
        url = self.settings.GITHUB_COPILOT_RESPONSES_URL
        headers = self.build_headers(request.credentials, request.stream)
        payload = chat_completions_request_to_responses(request.body, request.model, request.stream)

        request.log.debug("GITHUB", "Sending translated request to /responses")
        result = await self._dispatch(url, headers, payload, request)

        if not result.is_success:
            return result

        if result.stream is not None:
            state = init_state(WireFormat.OPENAI_RESPONSES, request.model)
            result.stream = transform_sse_stream(
                result.stream,
                responses_chunk_to_chat,
                state,
                WireFormat.OPENAI,
                cancel_event=request.cancel_event,
            )
        else:
            result.body = responses_response_to_chat_completion(result.body, request.model)
        return result

    # ============ Credentials ============

    def needs_refresh(self, credentials: Optional[Credentials]) -> bool:
        if credentials is None or not credentials.provider_token:
            return True
        window = self.settings.TOKEN_REFRESH_WINDOW_SECONDS
        if credentials.provider_token_expires_at is not None and expires_within(
            credentials.provider_token_expires_at, window
        ):
            return True
        return super().needs_refresh(credentials)

    async def refresh_copilot_token(
        self,
        access_token: str,
        log: Optional[CategoryLog] = None,
    ) -> Optional[ProviderToken]:
        """Exchange a GitHub access token for a short-lived Copilot token. None on failure."""
        log = log or CategoryLogger()
        headers = {
            "Authorization": f"token {access_token}",
            "User-Agent": self.settings.COPILOT_USER_AGENT,
            "Editor-Version": f"vscode/{self.settings.COPILOT_VSCODE_VERSION}",
            "Editor-Plugin-Version": f"copilot-chat/{self.settings.COPILOT_CHAT_VERSION}",
            "Accept": "application/json",
            "x-github-api-version": self.settings.COPILOT_API_VERSION,
        }
        try:
            async with self._client() as client:
                response = await client.get(self.settings.GITHUB_COPILOT_TOKEN_URL, headers=headers)
        except httpx.HTTPError as e:
            log.error("TOKEN", f"Copilot refresh error: {str(e)}")
            return None

        if not response.is_success:
            log.error("TOKEN", f"Copilot token refresh failed: {response.status_code} {response.text}")
            return None

        try:
            data = response.json()
        except json.JSONDecodeError:
            log.error("TOKEN", "Copilot token refresh returned a non-JSON body")
            return None
        if not isinstance(data, dict) or not data.get("token"):
            log.error("TOKEN", "Copilot token refresh returned no token")
            return None

        log.info("TOKEN", "Copilot token refreshed")
        return ProviderToken(token=data["token"], expires_at=data.get("expires_at"))

    async def refresh_github_token(
        self,
        refresh_token: str,
        log: Optional[CategoryLog] = None,
    ) -> Optional[OAuthTokens]:
        """OAuth refresh-token exchange. The old refresh token is kept if GitHub returns none."""
        log = log or CategoryLogger()
        form = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.settings.GITHUB_CLIENT_ID,
        }
        if self.settings.GITHUB_CLIENT_SECRET:
            form["client_secret"] = self.settings.GITHUB_CLIENT_SECRET

        try:
            async with self._client() as client:
                response = await client.post(
                    self.settings.GITHUB_OAUTH_TOKEN_URL,
                    data=form,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            log.error("TOKEN", f"GitHub refresh error: {str(e)}")
            return None

        if not response.is_success:
            log.error("TOKEN", f"GitHub token refresh failed: {response.status_code} {response.text}")
            return None

        try:
            tokens = response.json()
        except json.JSONDecodeError:
            log.error("TOKEN", "GitHub token refresh returned a non-JSON body")
            return None
        # GitHub reports OAuth errors with a 200 and an "error" field.
        if not isinstance(tokens, dict) or not tokens.get("access_token"):
            error = tokens.get("error_description") or tokens.get("error") if isinstance(tokens, dict) else None
            log.error("TOKEN", f"GitHub token refresh failed: {error or 'no access_token'}")
            return None

        log.info("TOKEN", "GitHub token refreshed")
        return OAuthTokens(
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token") or refresh_token,
            expires_in=tokens.get("expires_in"),
        )

    async def refresh_credentials(
        self,
        credentials: Credentials,
        log: Optional[CategoryLog] = None,
    ) -> Optional[Credentials]:
        """
        Refresh the Copilot token, re-authenticating with the refresh token if needed.

        Returns the richest successful combination, or None if every path failed.
        """
        copilot = await self.refresh_copilot_token(credentials.access_token, log)

        if copilot is None and credentials.refresh_token:
            github = await self.refresh_github_token(credentials.refresh_token, log)
            if github is not None:
                expires_at = int(time.time()) + int(github.expires_in) if github.expires_in else None
                copilot = await self.refresh_copilot_token(github.access_token, log)
                return Credentials(
                    access_token=github.access_token,
                    refresh_token=github.refresh_token,
                    provider_token=copilot.token if copilot else None,
                    provider_token_expires_at=copilot.expires_at if copilot else None,
                    expires_at=expires_at,
                )

        if copilot is not None:
            return Credentials(
                access_token=credentials.access_token,
                refresh_token=credentials.refresh_token,
                provider_token=copilot.token,
                provider_token_expires_at=copilot.expires_at,
                expires_at=credentials.expires_at,
            )

        return None
