"""
API Router Module Initialization
"""

from copilot_gateway.api.deps import ChatServiceDep, get_chat_service

__all__ = [
    "ChatServiceDep",
    "get_chat_service",
]
