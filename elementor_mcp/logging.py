"""Logging utilities for the Elementor MCP server.

Events are logged under dotted names (``gateway.request``, ``store.tree_saved``)
with their fields in ``extra={"context": {...}}``. :func:`bind_context` returns
a logger that merges a fixed context (the WordPress site, the post being
edited) into every event it emits.
"""

from __future__ import annotations

import logging
from typing import Any, Literal, Mapping, MutableMapping

from fastmcp.utilities.logging import configure_logging as _fastmcp_configure_logging

_PACKAGE_LOGGER_NAME = "elementor_mcp"
_CONFIGURED = False

# httpx logs every request line at INFO; only surface it when debugging.
_HTTP_LOGGERS = ("httpx", "httpcore")


def _qualify(name: str | None) -> str:
    if not name:
        return _PACKAGE_LOGGER_NAME
    if name.startswith(_PACKAGE_LOGGER_NAME):
        return name
    return f"{_PACKAGE_LOGGER_NAME}.{name}"


def _level_number(level: str | int) -> int:
    if isinstance(level, int):
        return level
    return logging.getLevelNamesMapping().get(level.upper(), logging.INFO)


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] | int = "INFO",
    **rich_kwargs: Any,
) -> logging.Logger:
    """Route package logging through FastMCP's handler setup.

    FastMCP writes to stderr, which keeps stdout free for the stdio
    transport's JSON-RPC stream. HTTP client loggers follow ``level`` only
    when it is ``DEBUG``; otherwise they are held at ``WARNING``.
    """

    global _CONFIGURED

    logger = logging.getLogger(_PACKAGE_LOGGER_NAME)
    _fastmcp_configure_logging(level=level, logger=logger, **rich_kwargs)

    numeric = _level_number(level)
    for name in _HTTP_LOGGERS:
        logging.getLogger(name).setLevel(numeric if numeric <= logging.DEBUG else logging.WARNING)

    _CONFIGURED = True
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger scoped to the package namespace."""

    if not _CONFIGURED:
        configure_logging()

    return logging.getLogger(_qualify(name))


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that folds bound fields into each event's ``context``."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra["context"] = {**self.extra, **(extra.get("context") or {})}
        kwargs["extra"] = extra
        return msg, kwargs


def bind_context(logger: logging.Logger | ContextLogger, **context: Any) -> ContextLogger:
    """Return ``logger`` with ``context`` merged into every event; call fields win."""

    if isinstance(logger, ContextLogger):
        base: Mapping[str, Any] = logger.extra or {}
        return ContextLogger(logger.logger, {**base, **context})
    return ContextLogger(logger, context)
