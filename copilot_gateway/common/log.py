"""
Category Logger

The executor core logs through a small leveled interface that takes a
category tag ("GITHUB", "TOKEN", ...) and a message. Callers can inject any
object with the same four methods; the default forwards to stdlib logging.
"""

import logging
from typing import Optional, Protocol


class CategoryLog(Protocol):
    def debug(self, category: str, message: str) -> None: ...

    def info(self, category: str, message: str) -> None: ...

    def warn(self, category: str, message: str) -> None: ...

    def error(self, category: str, message: str) -> None: ...


class CategoryLogger:
    """Forward category-tagged messages to a stdlib logger as "[CATEGORY] message"."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or logging.getLogger("copilot_gateway")

    def _log(self, level: int, category: str, message: str) -> None:
        self._logger.log(level, "[%s] %s", category, message, extra={"category": category})

    def debug(self, category: str, message: str) -> None:
        self._log(logging.DEBUG, category, message)

    def info(self, category: str, message: str) -> None:
        self._log(logging.INFO, category, message)

    def warn(self, category: str, message: str) -> None:
        self._log(logging.WARNING, category, message)

    def error(self, category: str, message: str) -> None:
        self._log(logging.ERROR, category, message)
