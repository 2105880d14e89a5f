"""Logging for the chat runtime.

The registry, store and sessions log through loguru directly; the
coordinator, the adapters and the HTTP/SDK libraries under pydantic-ai use
stdlib ``logging``.  ``setup_logging`` funnels both into one loguru sink.

An interactive chat shares the terminal with log output, so the sink can be
a file instead of stderr.
"""

from __future__ import annotations

import inspect
import logging
import sys
from pathlib import Path

from loguru import logger

TERMINAL_FORMAT = "<dim>{time:HH:mm:ss}</dim> <level>{level: <7}</level> <cyan>{name}</cyan> {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"

# Transport and SDK loggers, chatty below WARNING.
SDK_LOGGERS = ("httpx", "httpcore", "anthropic", "openai", "google_genai")


class _StdlibToLoguru(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Report the stdlib caller, not this handler.
        frame, depth = inspect.currentframe(), 0
        while frame is not None and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "WARNING", *, log_file: str | Path | None = None) -> None:
    """Send all runtime and library logging to stderr, or to *log_file*.

    Call once per process, before the coordinator is built.  SDK loggers stay
    at WARNING unless *level* is DEBUG.
    """
    level = level.upper()
    logger.remove()
    if log_file is None:
        logger.add(sys.stderr, level=level, format=TERMINAL_FORMAT)
    else:
        logger.add(log_file, level=level, format=FILE_FORMAT, rotation="5 MB", retention=3, encoding="utf-8")

    logging.basicConfig(handlers=[_StdlibToLoguru()], level=0, force=True)
    sdk_level = logging.DEBUG if level == "DEBUG" else logging.WARNING
    for name in SDK_LOGGERS:
        logging.getLogger(name).setLevel(sdk_level)

    logger.debug("Logging to {} at {}", log_file or "stderr", level)
