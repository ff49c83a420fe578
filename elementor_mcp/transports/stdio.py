"""Stdio transport wiring.

Stdout carries the JSON-RPC stream, so any package log handler that writes
to it is redirected to stderr before the server starts.
"""

from __future__ import annotations

import logging
import sys

from fastmcp import FastMCP

from ..logging import bind_context, get_logger

logger = get_logger(__name__)


def redirect_stdout_handlers(target: logging.Logger | None = None) -> int:
    """Point stream handlers on ``target`` (the package logger) at stderr; returns how many moved."""

    target = target or logging.getLogger("elementor_mcp")
    moved = 0
    for handler in target.handlers:
        if isinstance(handler, logging.StreamHandler) and getattr(handler, "stream", None) is sys.stdout:
            handler.setStream(sys.stderr)
            moved += 1
    return moved


def run_stdio(server: FastMCP, *, show_banner: bool = True) -> None:
    """Serve ``server`` over stdin/stdout until the client disconnects."""

    log = bind_context(logger, server=getattr(server, "name", None), transport="stdio")
    moved = redirect_stdout_handlers()
    log.info("transport.stdio.start", extra={"context": {"show_banner": bool(show_banner), "redirected_handlers": moved}})
    try:
        server.run(transport="stdio", show_banner=show_banner)
    except KeyboardInterrupt:
        log.info("transport.stdio.interrupted")
        raise
    except Exception:
        log.exception("transport.stdio.failed")
        raise
    log.info("transport.stdio.stop")
