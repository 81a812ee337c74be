"""
Proxy API Module Initialization
"""

from copilot_gateway.api.proxy.gemini import router as gemini_router
from copilot_gateway.api.proxy.openai import router as openai_router

__all__ = [
    "gemini_router",
    "openai_router",
]
