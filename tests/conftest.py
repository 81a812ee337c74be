"""
Test Configuration Module
"""

import pytest

from copilot_gateway.config import Settings


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any .env file"""
    return Settings(
        _env_file=None,
        PROVIDER="github",
        GITHUB_ACCESS_TOKEN="gho_test",
        GITHUB_REFRESH_TOKEN="ghr_test",
        GITHUB_CLIENT_ID="client-id",
        GITHUB_CLIENT_SECRET=None,
        TOKEN_REFRESH_WINDOW_SECONDS=300,
    )
