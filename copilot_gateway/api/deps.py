"""
API Dependency Injection Module

Provides the dependencies required by the FastAPI routes.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from copilot_gateway.config import get_settings
from copilot_gateway.executors import get_executor
from copilot_gateway.services import ChatService, CredentialHolder


@lru_cache
def get_chat_service() -> ChatService:
    """
    Get the process-wide chat service

    The executor (and its model route cache) and the credential holder live
    for the whole process so refreshed tokens and learned routes are shared
    by every request.
    """
    settings = get_settings()
    return ChatService(
        executor=get_executor(settings=settings),
        credentials=CredentialHolder.from_settings(settings),
    )


ChatServiceDep = Annotated[ChatService, Depends(get_chat_service)]
