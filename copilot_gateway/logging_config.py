"""
Logging setup for the gateway process.

Everything goes to one stdout handler as `[time] [LEVEL] [logger] message`.
Records from the executor core carry a `category` extra (see
`common.log.CategoryLogger`) and already start with `[CATEGORY]`.

Credential refresh failures log upstream bodies verbatim, so the handler
masks GitHub and Copilot tokens before anything is written.
"""

import logging
import logging.config
import re

from copilot_gateway.config import get_settings

# gho_/ghu_/ghr_... OAuth tokens, Copilot `tid=...;exp=...` tokens and bearer values
_SECRET_PATTERNS = (
    re.compile(r"\b(gh[opusr]_)[A-Za-z0-9_]{8,}"),
    re.compile(r"\b(tid=)[^\s\"',]+"),
    re.compile(r"(Bearer )[^\s\"',]+", re.IGNORECASE),
)


def mask_secrets(text: str) -> str:
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(r"\1***", text)
    return text


class SecretMaskingFilter(logging.Filter):
    """Rewrite the record's message with tokens masked. Never drops a record."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = mask_secrets(message)
        if masked != message:
            record.msg, record.args = masked, None
        return True


def _console(level: str) -> dict:
    return {"handlers": ["console"], "level": level, "propagate": False}


def setup_logging():
    settings = get_settings()
    log_level = "DEBUG" if settings.DEBUG else "INFO"

    loggers = {name: _console("INFO") for name in ("uvicorn", "uvicorn.error", "uvicorn.access")}
    # httpx logs every upstream call at INFO
    loggers["httpx"] = _console("DEBUG" if settings.DEBUG else "WARNING")
    loggers["copilot_gateway"] = _console(log_level)

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "mask_secrets": {"()": SecretMaskingFilter},
        },
        "formatters": {
            "standard": {
                "format": "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "filters": ["mask_secrets"],
                "stream": "ext://sys.stdout",
            },
        },
        "root": {"handlers": ["console"], "level": log_level},
        "loggers": loggers,
    })
