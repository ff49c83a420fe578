"""Streamable HTTP and SSE transports served by uvicorn."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Mapping

import uvicorn
from fastmcp import FastMCP
from fastmcp.utilities.logging import temporary_log_level

from ..logging import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class HttpTransportConfig:
    """Listener settings for the HTTP transport."""

    host: str
    port: int
    path: str
    transport: str = "http"


def describe_routes(config: HttpTransportConfig) -> Mapping[str, str]:
    """Return the logical endpoint served and its normalised path."""

    return {config.transport: _normalise_path(config.path)}


def run_http(server: FastMCP, config: HttpTransportConfig) -> None:
    """Run ``server`` as an ASGI app under uvicorn until interrupted."""

    routes = describe_routes(config)
    context = {"host": config.host, "port": config.port, "routes": routes}

    async def _serve() -> None:
        app = server.http_app(path=_normalise_path(config.path), transport=config.transport)
        log_level = logger.level if isinstance(logger.level, int) else None
        uvicorn_config = uvicorn.Config(
            app,
            host=config.host,
            port=config.port,
            timeout_graceful_shutdown=0,
            lifespan="on",
        )
        server_instance = uvicorn.Server(uvicorn_config)
        logger.info("transport.http.serve", extra={"context": context})
        with temporary_log_level(level=log_level):
            await server_instance.serve()

    logger.info("transport.http.start", extra={"context": context})
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        logger.info("transport.http.interrupted", extra={"context": context})
        raise
    except Exception:
        logger.exception("transport.http.failed", extra={"context": context})
        raise
    logger.info("transport.http.stop", extra={"context": context})


def _normalise_path(path: str) -> str:
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/")
    return path
