"""
OpenAI-compatible Executor

Forwards chat requests to any OpenAI Chat Completions compatible endpoint
using a static API key.
"""

from typing import Optional

from copilot_gateway.executors.base import BaseExecutor, Credentials


class OpenAIExecutor(BaseExecutor):
    """
    Generic Chat Completions executor

    The API key is the access token; there is no short-lived provider token to refresh.
    """

    provider = "openai"

    def build_url(self, model: str, stream: bool) -> str:
        base = self.settings.OPENAI_BASE_URL.rstrip("/")
        return f"{base}/chat/completions"

    def build_headers(self, credentials: Optional[Credentials], stream: bool = True) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream" if stream else "application/json",
        }
        token = credentials.access_token if credentials is not None else self.settings.OPENAI_API_KEY
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers
