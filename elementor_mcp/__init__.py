"""Elementor WordPress MCP server package."""

from .config import Config, load_config
from .logging import configure_logging
from .server import SERVER, main

__version__ = "0.1.0"

__all__ = [
    "Config",
    "load_config",
    "configure_logging",
    "SERVER",
    "main",
]
