"""
Executor Factory Module

Creates the executor for the configured provider.
"""

from typing import Optional

import httpx

from copilot_gateway.config import Settings, get_settings
from copilot_gateway.executors.base import BaseExecutor
from copilot_gateway.executors.github import GithubExecutor
from copilot_gateway.executors.openai import OpenAIExecutor

_EXECUTORS: dict[str, type[BaseExecutor]] = {
    "github": GithubExecutor,
    "openai": OpenAIExecutor,
}


def get_executor(
    provider: Optional[str] = None,
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> BaseExecutor:
    """
    Create the executor for a provider

    Args:
        provider: Provider name, defaults to settings.PROVIDER
        settings: Application settings
        transport: httpx transport override

    Returns:
        BaseExecutor: New executor instance

    Raises:
        ValueError: Unsupported provider
    """
    settings = settings or get_settings()
    name = (provider or settings.PROVIDER).lower()
    executor_cls = _EXECUTORS.get(name)
    if executor_cls is None:
        raise ValueError(f"Unsupported provider: {name}")
    return executor_cls(settings=settings, transport=transport)
