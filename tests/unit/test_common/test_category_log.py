"""
Category Logger Unit Tests
"""

import logging

from copilot_gateway.common.log import CategoryLogger


def test_category_logger_prefixes_category(caplog):
    log = CategoryLogger(logging.getLogger("category_log_test"))
    with caplog.at_level(logging.DEBUG, logger="category_log_test"):
        log.debug("GITHUB", "debug message")
        log.warn("TOKEN", "refresh failed")

    messages = [(r.levelno, r.getMessage(), r.category) for r in caplog.records]
    assert messages == [
        (logging.DEBUG, "[GITHUB] debug message", "GITHUB"),
        (logging.WARNING, "[TOKEN] refresh failed", "TOKEN"),
    ]
