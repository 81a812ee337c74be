"""
Configuration Management Module

Configures application parameters via environment variables or .env file.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application Configuration Class

    All configuration items can be overridden by environment variables, with names matching fields (uppercase).
    """

    # Application Config
    APP_NAME: str = "Copilot Gateway"
    DEBUG: bool = False

    # Comma-separated list of allowed origins for CORS
    ALLOWED_ORIGINS: str = ""

    # HTTP Client Config
    # Request timeout (seconds)
    HTTP_TIMEOUT: int = 600

    # Upstream provider used to serve chat requests
    PROVIDER: Literal["github", "openai"] = "github"

    # GitHub Copilot endpoints
    GITHUB_COPILOT_CHAT_URL: str = "https://api.githubcopilot.com/chat/completions"
    GITHUB_COPILOT_RESPONSES_URL: str = "https://api.githubcopilot.com/responses"
    GITHUB_COPILOT_TOKEN_URL: str = "https://api.github.com/copilot_internal/v2/token"
    GITHUB_OAUTH_TOKEN_URL: str = "https://github.com/login/oauth/access_token"

    # GitHub OAuth application (used for refresh-token exchange)
    GITHUB_CLIENT_ID: str = "Iv1.b507a08c87ecfe98"
    GITHUB_CLIENT_SECRET: str | None = None

    # Client identification sent to Copilot
    COPILOT_VSCODE_VERSION: str = "1.99.3"
    COPILOT_CHAT_VERSION: str = "0.26.7"
    COPILOT_USER_AGENT: str = "GitHubCopilotChat/0.26.7"
    COPILOT_API_VERSION: str = "2025-04-01"

    # Bootstrap credentials
    # The gateway keeps refreshed values in memory only; persisting them is up to the operator.
    GITHUB_ACCESS_TOKEN: str | None = None
    GITHUB_REFRESH_TOKEN: str | None = None
    COPILOT_TOKEN: str | None = None
    COPILOT_TOKEN_EXPIRES_AT: str | None = None

    # Token refresh safety window (seconds)
    TOKEN_REFRESH_WINDOW_SECONDS: int = 300

    # Generic OpenAI-compatible backend (PROVIDER=openai)
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_API_KEY: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings, read from the environment once."""
    return Settings()
