"""Logging configuration for imapstream.

This module provides structlog configuration and a helper for making
server supplied text safe to put in log events.
"""

import logging
import re
import sys
from typing import Any, TextIO

import structlog


def sanitize_for_log(text: str | bytes | bytearray | None, max_length: int = 200) -> str:
    """Remove control characters and limit length for safe logging.

    IMAP servers answer with raw protocol lines, so bytes are accepted
    and decoded leniently.

    Args:
        text: The text (or raw server line) to sanitize.
        max_length: Maximum length of returned string.

    Returns:
        Sanitized text safe for logging.
    """
    if not text:
        return ""
    if isinstance(text, (bytes, bytearray)):
        text = bytes(text).decode("utf-8", errors="replace")
    # ANSI codes first, the ESC byte would be stripped below
    text = re.sub(r"\x1b\[[0-9;]*m", "", text)
    text = re.sub(r"[\x00-\x1f\x7f]", "", text)
    return text[:max_length]


def configure_logging(
    json_format: bool = False,
    debug: bool = False,
    stream: TextIO | None = None,
) -> None:
    """Configure structlog for the application.

    Args:
        json_format: If True, output JSON logs (for production).
        debug: If True, enable DEBUG level logging.
        stream: Where to write log lines; stderr when omitted.
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=stream is None))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if debug else logging.INFO
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
        cache_logger_on_first_use=True,
    )
