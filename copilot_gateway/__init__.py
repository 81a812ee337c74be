"""
Copilot Gateway

Serves Gemini and OpenAI style generation requests from the GitHub Copilot
chat backend.
"""

__version__ = "0.1.0"
