"""
Provider executors
"""

from copilot_gateway.executors.base import (
    BaseExecutor,
    Credentials,
    ExecutionRequest,
    ExecutionResult,
)
from copilot_gateway.executors.factory import get_executor
from copilot_gateway.executors.github import GithubExecutor
from copilot_gateway.executors.openai import OpenAIExecutor
from copilot_gateway.executors.route_cache import ModelRouteCache

__all__ = [
    "BaseExecutor",
    "Credentials",
    "ExecutionRequest",
    "ExecutionResult",
    "GithubExecutor",
    "OpenAIExecutor",
    "ModelRouteCache",
    "get_executor",
]
