"""Structured logging for CodeClaw.

Log lines go to stderr, or to a sink callback while the terminal UI owns
the screen. Backend credentials never reach the renderer.
"""

import logging
import sys
from typing import Any, Callable, MutableMapping

import structlog

from codeclaw.config import Config, get_config

_system_log_sink: Callable[[str], None] | None = None

_SECRET_KEYS = {"api_key", "authorization", "token"}
# Libraries that log through the standard library.
_LIBRARY_LOGGERS = ("httpx", "httpcore", "mcp")


class _SinkWriter:
    """Line-buffered file object that hands complete lines to a callback."""

    def __init__(self, sink: Callable[[str], None]):
        self._sink = sink
        self._pending = ""

    def write(self, text: str) -> int:
        self._pending += text
        *lines, self._pending = self._pending.split("\n")
        for line in lines:
            if line:
                self._sink(line)
        return len(text)

    def flush(self) -> None:
        if self._pending:
            line, self._pending = self._pending, ""
            self._sink(line)


def set_system_log_sink(sink: Callable[[str], None] | None) -> None:
    """Divert log lines to a callback (the terminal UI) instead of stderr."""
    global _system_log_sink
    _system_log_sink = sink


def _redact_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    for key in event_dict.keys() & _SECRET_KEYS:
        if event_dict[key]:
            event_dict[key] = "***"
    return event_dict


def configure_logging(config: Config | None = None) -> None:
    """Configure structlog from the ``logging`` and ``ui`` config sections."""
    config = config or get_config()
    level = getattr(logging, config.logging.level.upper(), logging.INFO)

    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    renderer: Any
    if config.logging.format == "console":
        renderer = structlog.dev.ConsoleRenderer(colors=config.ui.colors and _system_log_sink is None)
    else:
        renderer = structlog.processors.JSONRenderer()

    output = _SinkWriter(_system_log_sink) if _system_log_sink else sys.stderr
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Logger for a module; ``name`` is attached to every event as ``logger_name``."""
    if name:
        return structlog.get_logger(logger_name=name)
    return structlog.get_logger()


log = get_logger(__name__)
