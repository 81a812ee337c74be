"""
Service layer

- credentials: in-memory credential holder with refresh
- chat_service: inbound request -> executor -> outbound response
"""

from copilot_gateway.services.chat_service import ChatResponse, ChatService
from copilot_gateway.services.credentials import CredentialHolder

__all__ = [
    "ChatResponse",
    "ChatService",
    "CredentialHolder",
]
