"""
Provider Executor Base Class

Defines the executor contract (URL, headers, dispatch, credential refresh)
and the shared httpx dispatch used by every concrete provider.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, AsyncIterator, Awaitable, Callable, Optional

import httpx

from copilot_gateway.common.log import CategoryLog, CategoryLogger
from copilot_gateway.common.time import expires_within
from copilot_gateway.common.timer import Timer
from copilot_gateway.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class Credentials:
    """
    Credential set supplied (and persisted) by the caller.

    `provider_token_expires_at` may be epoch seconds, epoch milliseconds or an
    ISO-8601 string. `expires_at` is the access token's own expiry, if known.
    """

    access_token: str
    refresh_token: Optional[str] = None
    provider_token: Optional[str] = None
    provider_token_expires_at: Any = None
    expires_at: Any = None


@dataclass
class ExecutionRequest:
    model: str
    body: dict[str, Any]
    credentials: Credentials
    stream: bool = False
    # Set by the caller to tear down the upstream call.
    cancel_event: Optional[asyncio.Event] = None
    log: CategoryLog = field(default_factory=CategoryLogger)


@dataclass
class ExecutionResult:
    """
    Outcome of one upstream call.

    Exactly one of `body` (materialized payload) and `stream` (live byte
    stream) is set on success. A live stream belongs to the caller, who must
    drain it or call `aclose()`. `status_code == 0` marks a transport failure
    or a cancelled call; `error` then carries the reason.
    """

    status_code: int
    url: str
    request_headers: dict[str, str]
    translated_body: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    stream: Optional[AsyncIterator[bytes]] = None
    error: Optional[str] = None
    first_byte_delay_ms: Optional[int] = None
    _closers: list[Callable[[], Awaitable[None]]] = field(default_factory=list, repr=False)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def body_text(self) -> str:
        if self.body is None:
            return ""
        if isinstance(self.body, bytes):
            return self.body.decode("utf-8", errors="replace")
        if isinstance(self.body, str):
            return self.body
        return json.dumps(self.body, ensure_ascii=False)

    async def aclose(self) -> None:
        """Release the upstream connection. Safe to call more than once."""
        if self.stream is not None and hasattr(self.stream, "aclose"):
            await self.stream.aclose()
        closers, self._closers = self._closers, []
        for close in closers:
            await close()


class RequestCancelled(Exception):
    """The caller signalled cancellation before the upstream answered."""


def _parse_body(raw: bytes) -> Any:
    text = raw.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


class BaseExecutor(ABC):
    """
    Provider Executor Abstract Base Class

    Subclasses supply the endpoint and the headers; the base class posts the
    JSON body once and returns the upstream response, live when streaming.
    """

    provider: str = ""
    # Whether upstream calls need a short-lived token derived from the access token.
    requires_provider_token: bool = False

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            settings: Application settings, defaults to the global configuration
            transport: httpx transport override (tests pass httpx.MockTransport)
        """
        self.settings = settings or get_settings()
        self.timeout = self.settings.HTTP_TIMEOUT
        self._transport = transport

    # ============ Contract ============

    @abstractmethod
    def build_url(self, model: str, stream: bool) -> str:
        """Upstream URL for a chat request. No I/O."""

    @abstractmethod
    def build_headers(self, credentials: Optional[Credentials], stream: bool = True) -> dict[str, str]:
        """Upstream headers for a chat request. No I/O."""

    def transform_request(
        self,
        model: str,
        body: dict[str, Any],
        stream: bool,
        credentials: Optional[Credentials],
    ) -> dict[str, Any]:
        """
        Prepare the outbound body.

        Only `model` and `stream` are rewritten; other fields are forwarded as-is.
        """
        new_body = dict(body)
        new_body["model"] = model
        new_body["stream"] = stream
        return new_body

    def needs_refresh(self, credentials: Optional[Credentials]) -> bool:
        """Whether the access token is missing or expires inside the safety window."""
        if credentials is None or not credentials.access_token:
            return True
        if credentials.expires_at is None:
            return False
        return expires_within(credentials.expires_at, self.settings.TOKEN_REFRESH_WINDOW_SECONDS)

    async def refresh_credentials(
        self,
        credentials: Credentials,
        log: Optional[CategoryLog] = None,
    ) -> Optional[Credentials]:
        """Return replacement credentials, or None when the provider cannot refresh."""
        return None

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        url = self.build_url(request.model, request.stream)
        headers = self.build_headers(request.credentials, request.stream)
        body = self.transform_request(request.model, request.body, request.stream, request.credentials)
        return await self._dispatch(url, headers, body, request)

    # ============ HTTP ============

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    @staticmethod
    async def _send(
        client: httpx.AsyncClient,
        http_request: httpx.Request,
        cancel_event: Optional[asyncio.Event],
    ) -> httpx.Response:
        """Send with streaming enabled, racing the caller's cancellation signal."""
        if cancel_event is None:
            return await client.send(http_request, stream=True)
        if cancel_event.is_set():
            raise RequestCancelled()

        send_task = asyncio.ensure_future(client.send(http_request, stream=True))
        cancel_task = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {send_task, cancel_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            send_task.cancel()
            raise
        finally:
            cancel_task.cancel()

        if send_task in done:
            return send_task.result()

        send_task.cancel()
        try:
            response = await send_task
        except asyncio.CancelledError:
            pass
        else:
            await response.aclose()
        raise RequestCancelled()

    async def _dispatch(
        self,
        url: str,
        headers: dict[str, str],
        payload: dict[str, Any],
        request: ExecutionRequest,
    ) -> ExecutionResult:
        """
        POST `payload` to `url` once.

        Non-streaming calls and error responses are read fully and closed;
        successful streaming calls return the live byte stream.
        """
        log = request.log
        log.debug(self.provider.upper(), f"POST {url} stream={request.stream}")
        logger.debug(
            "Upstream Request: url=%s body=%s",
            url,
            json.dumps(payload, ensure_ascii=False),
        )

        timer = Timer().start()
        client = self._client()

        def failed(error: str) -> ExecutionResult:
            timer.stop()
            log.error(self.provider.upper(), error)
            return ExecutionResult(
                status_code=0,
                url=url,
                request_headers=headers,
                translated_body=payload,
                error=error,
                first_byte_delay_ms=timer.first_byte_delay_ms,
            )

        try:
            http_request = client.build_request("POST", url, headers=headers, json=payload)
            response = await self._send(client, http_request, request.cancel_event)
        except RequestCancelled:
            await client.aclose()
            return failed("Request cancelled")
        except httpx.TimeoutException as e:
            await client.aclose()
            return failed(f"Request timeout: {str(e)}")
        except httpx.RequestError as e:
            await client.aclose()
            return failed(f"Request error: {str(e)}")

        timer.mark_first_byte()
        result = ExecutionResult(
            status_code=response.status_code,
            url=url,
            request_headers=headers,
            translated_body=payload,
            headers=dict(response.headers),
            first_byte_delay_ms=timer.first_byte_delay_ms,
        )

        if not request.stream or response.status_code >= 400:
            try:
                raw = await response.aread()
            except httpx.HTTPError as e:
                return failed(f"Request error: {str(e)}")
            finally:
                await response.aclose()
                await client.aclose()
            timer.stop()
            result.body = _parse_body(raw)
            logger.debug(
                "Upstream Response: status=%s ttfb=%sms total=%sms",
                response.status_code,
                timer.first_byte_delay_ms,
                timer.total_time_ms,
            )
            return result

        async def close() -> None:
            await response.aclose()
            await client.aclose()

        result.stream = self._iter_stream(response, client, timer, request)
        result._closers.append(close)
        return result

    async def _iter_stream(
        self,
        response: httpx.Response,
        client: httpx.AsyncClient,
        timer: Timer,
        request: ExecutionRequest,
    ) -> AsyncGenerator[bytes, None]:
        try:
            async for chunk in response.aiter_bytes():
                if request.cancel_event is not None and request.cancel_event.is_set():
                    request.log.info(self.provider.upper(), "Stream cancelled by caller")
                    break
                yield chunk
        except httpx.HTTPError as e:
            request.log.error(self.provider.upper(), f"Stream interrupted: {str(e)}")
        finally:
            await response.aclose()
            await client.aclose()
            timer.stop()
            logger.debug(
                "Upstream Stream closed: ttfb=%sms total=%sms",
                timer.first_byte_delay_ms,
                timer.total_time_ms,
            )
