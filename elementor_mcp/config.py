"""Configuration loading utilities for the Elementor MCP server."""

from __future__ import annotations

import argparse
import json
import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping, MutableMapping, Sequence

ENV_PREFIX = "ELEMENTOR_MCP_"

BOOL_TRUE = {"1", "true", "t", "yes", "y", "on"}
BOOL_FALSE = {"0", "false", "f", "no", "n", "off"}

DEFAULT_HTTP_HOST = "127.0.0.1"
DEFAULT_HTTP_PORT = 8765
DEFAULT_HTTP_PATH = "/mcp"
DEFAULT_HTTP_TRANSPORT = "http"
DEFAULT_TEMP_SUBDIR = Path("tmp") / "elementor-data"
DEFAULT_REQUEST_TIMEOUT = "60s"
DEFAULT_MAX_RESPONSE_BYTES = 52_428_800
DEFAULT_MAX_REQUEST_BYTES = 10_485_760
DEFAULT_LOG_LEVEL = "INFO"

HTTP_TRANSPORTS = {"http", "sse"}
LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

WORDPRESS_ENV_VARS = (
    "WORDPRESS_BASE_URL",
    "WORDPRESS_USERNAME",
    "WORDPRESS_APPLICATION_PASSWORD",
)


def _default_temp_dir() -> Path:
    """Return the default export directory under the current working directory."""

    return (Path.cwd() / DEFAULT_TEMP_SUBDIR).resolve()


T_DURATION_UNITS = {"s": 1, "m": 60, "h": 3600}

ENV_FIELD_MAP = {
    "wordpress_base_url": "WORDPRESS_BASE_URL",
    "wordpress_username": "WORDPRESS_USERNAME",
    "wordpress_application_password": "WORDPRESS_APPLICATION_PASSWORD",
    "config_file": f"{ENV_PREFIX}CONFIG_FILE",
    "request_timeout": f"{ENV_PREFIX}REQUEST_TIMEOUT",
    "max_response_bytes": f"{ENV_PREFIX}MAX_RESPONSE_BYTES",
    "max_request_bytes": f"{ENV_PREFIX}MAX_REQUEST_BYTES",
    "verify_tls": f"{ENV_PREFIX}VERIFY_TLS",
    "temp_dir": f"{ENV_PREFIX}TEMP_DIR",
    "cache_flush_endpoints": f"{ENV_PREFIX}CACHE_FLUSH_ENDPOINTS",
    "cache_bust_meta": f"{ENV_PREFIX}CACHE_BUST_META",
    "enable_stdio": f"{ENV_PREFIX}ENABLE_STDIO",
    "enable_http": f"{ENV_PREFIX}ENABLE_HTTP",
    "http_host": f"{ENV_PREFIX}HTTP_HOST",
    "http_port": f"{ENV_PREFIX}HTTP_PORT",
    "http_path": f"{ENV_PREFIX}HTTP_PATH",
    "http_transport": f"{ENV_PREFIX}HTTP_TRANSPORT",
    "log_level": f"{ENV_PREFIX}LOG_LEVEL",
}

DEFAULT_VALUES: dict[str, Any] = {
    "wordpress_base_url": None,
    "wordpress_username": None,
    "wordpress_application_password": None,
    "config_file": None,
    "request_timeout": DEFAULT_REQUEST_TIMEOUT,
    "max_response_bytes": DEFAULT_MAX_RESPONSE_BYTES,
    "max_request_bytes": DEFAULT_MAX_REQUEST_BYTES,
    "verify_tls": "auto",
    "temp_dir": None,
    "cache_flush_endpoints": (),
    "cache_bust_meta": True,
    "enable_stdio": True,
    "enable_http": False,
    "http_host": DEFAULT_HTTP_HOST,
    "http_port": DEFAULT_HTTP_PORT,
    "http_path": DEFAULT_HTTP_PATH,
    "http_transport": DEFAULT_HTTP_TRANSPORT,
    "log_level": DEFAULT_LOG_LEVEL,
}


class ConfigError(ValueError):
    """Raised when configuration values are invalid."""


@dataclass(slots=True)
class Config:
    """Configuration model for the Elementor MCP server."""

    wordpress_base_url: str | None
    wordpress_username: str | None
    wordpress_application_password: str | None
    request_timeout: timedelta
    max_response_bytes: int
    max_request_bytes: int
    verify_tls: bool | None
    temp_dir: Path
    cache_flush_endpoints: tuple[str, ...]
    cache_bust_meta: bool
    enable_stdio: bool
    enable_http: bool
    http_host: str
    http_port: int
    http_path: str
    http_transport: str
    log_level: str
    config_file: Path | None = None

    @property
    def wordpress_configured(self) -> bool:
        return bool(self.wordpress_base_url and self.wordpress_username and self.wordpress_application_password)


def load_config(
    argv: Sequence[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """Load configuration from CLI arguments, environment variables, and optional file."""

    parser = _build_arg_parser()
    parsed = parser.parse_args(argv)
    cli_values = {k: v for k, v in vars(parsed).items() if v is not None}

    env_values = _extract_env_values(os.environ if environ is None else environ)

    config_path_value = cli_values.get("config_file") or env_values.get("config_file")
    file_values = _load_config_file(config_path_value)

    merged: dict[str, Any] = {}
    _merge_layer(merged, DEFAULT_VALUES)
    _merge_layer(merged, file_values)
    _merge_layer(merged, env_values)
    _merge_layer(merged, cli_values)

    return _normalize_values(merged, config_path_value)


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="elementor-mcp",
        description="Elementor WordPress MCP server configuration flags.",
        add_help=False,
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument("-h", "--help", action="help", help="Show this help message and exit.")
    parser.add_argument(
        "--config-file",
        dest="config_file",
        metavar="PATH",
        help="Path to a JSON configuration file. Default: none.",
    )

    parser.add_argument(
        "--wordpress-base-url",
        dest="wordpress_base_url",
        metavar="URL",
        help="WordPress site URL, e.g. https://example.com (env: WORDPRESS_BASE_URL).",
    )
    parser.add_argument(
        "--wordpress-username",
        dest="wordpress_username",
        metavar="USER",
        help="WordPress user owning the application password (env: WORDPRESS_USERNAME).",
    )
    parser.add_argument(
        "--wordpress-application-password",
        dest="wordpress_application_password",
        metavar="SECRET",
        help="WordPress application password (env: WORDPRESS_APPLICATION_PASSWORD).",
    )

    parser.add_argument(
        "--request-timeout",
        dest="request_timeout",
        metavar="DURATION",
        help=f"Timeout applied to every WordPress request (default: {DEFAULT_REQUEST_TIMEOUT}).",
    )
    parser.add_argument(
        "--max-response-bytes",
        dest="max_response_bytes",
        metavar="INT",
        help=f"Largest accepted WordPress response body (default: {DEFAULT_MAX_RESPONSE_BYTES}).",
    )
    parser.add_argument(
        "--max-request-bytes",
        dest="max_request_bytes",
        metavar="INT",
        help=f"Largest request body sent to WordPress (default: {DEFAULT_MAX_REQUEST_BYTES}).",
    )
    parser.add_argument(
        "--verify-tls",
        dest="verify_tls",
        metavar="MODE",
        help="TLS verification: auto, true or false. auto skips verification for local dev hosts (default: auto).",
    )
    parser.add_argument(
        "--temp-dir",
        dest="temp_dir",
        metavar="PATH",
        help="Directory for exported trees and file backups (default: ./tmp/elementor-data).",
    )
    parser.add_argument(
        "--cache-flush-endpoint",
        dest="cache_flush_endpoints",
        action="append",
        metavar="PATH",
        help="REST path under wp-json/ to POST after each write (may be repeated).",
    )
    parser.add_argument(
        "--cache-bust-meta",
        dest="cache_bust_meta",
        metavar="BOOL",
        help="Clear the _elementor_css meta field after each write (default: true).",
    )

    parser.add_argument(
        "--enable-stdio",
        dest="enable_stdio",
        metavar="BOOL",
        help="Enable the MCP stdio transport (default: true).",
    )
    parser.add_argument(
        "--enable-http",
        dest="enable_http",
        metavar="BOOL",
        help="Serve MCP over HTTP instead of stdio (default: false).",
    )
    parser.add_argument(
        "--http-host",
        dest="http_host",
        metavar="HOST",
        help=f"HTTP listener host (default: {DEFAULT_HTTP_HOST}).",
    )
    parser.add_argument(
        "--http-port",
        dest="http_port",
        metavar="PORT",
        help=f"HTTP listener port (default: {DEFAULT_HTTP_PORT}).",
    )
    parser.add_argument(
        "--http-path",
        dest="http_path",
        metavar="PATH",
        help=f"HTTP path for MCP requests (default: {DEFAULT_HTTP_PATH}).",
    )
    parser.add_argument(
        "--http-transport",
        dest="http_transport",
        metavar="KIND",
        help="HTTP flavour: http (streamable) or sse (default: http).",
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        metavar="LEVEL",
        help=f"Log level (default: {DEFAULT_LOG_LEVEL}).",
    )

    return parser


def _extract_env_values(env: Mapping[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for field_name, env_name in ENV_FIELD_MAP.items():
        if env_name in env:
            values[field_name] = env[env_name]
    return values


def _load_config_file(path_value: str | Path | None) -> dict[str, Any]:
    if not path_value:
        return {}
    path = _parse_path(path_value, field="config_file")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file is not valid JSON: {path}") from exc
    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a JSON object")
    result: dict[str, Any] = {k: v for k, v in data.items() if k in DEFAULT_VALUES}
    result["config_file"] = str(path)
    return result


def _merge_layer(base: MutableMapping[str, Any], overrides: Mapping[str, Any]) -> None:
    for key, value in overrides.items():
        if value is None:
            continue
        base[key] = value


def _normalize_values(values: Mapping[str, Any], config_path_value: str | Path | None) -> Config:
    base_url = _parse_optional_str(values.get("wordpress_base_url"))
    if base_url is not None:
        base_url = base_url.rstrip("/")
        if not base_url.startswith(("http://", "https://")):
            raise ConfigError("wordpress_base_url must start with http:// or https://")

    request_timeout = _parse_duration(values.get("request_timeout", DEFAULT_REQUEST_TIMEOUT), default_unit="s", field="request_timeout")
    if request_timeout.total_seconds() <= 0:
        raise ConfigError("request_timeout must be greater than zero")

    max_response_bytes = _parse_int(values.get("max_response_bytes"), field="max_response_bytes", minimum=1)
    max_request_bytes = _parse_int(values.get("max_request_bytes"), field="max_request_bytes", minimum=1)
    verify_tls = _parse_verify_tls(values.get("verify_tls"))

    temp_dir_value = values.get("temp_dir")
    temp_dir = _parse_path(temp_dir_value, field="temp_dir") if temp_dir_value else _default_temp_dir()

    cache_flush_endpoints = _parse_endpoint_list(values.get("cache_flush_endpoints"))
    cache_bust_meta = _parse_bool(values.get("cache_bust_meta"), default=DEFAULT_VALUES["cache_bust_meta"])

    enable_stdio = _parse_bool(values.get("enable_stdio"), default=DEFAULT_VALUES["enable_stdio"])
    enable_http = _parse_bool(values.get("enable_http"), default=DEFAULT_VALUES["enable_http"])
    if not enable_stdio and not enable_http:
        raise ConfigError("At least one of enable_stdio or enable_http must be true")

    http_host = str(values.get("http_host", DEFAULT_HTTP_HOST))
    http_port = _parse_int(values.get("http_port", DEFAULT_HTTP_PORT), field="http_port", minimum=0, maximum=65535)
    http_path = str(values.get("http_path", DEFAULT_HTTP_PATH))
    http_transport = str(values.get("http_transport", DEFAULT_HTTP_TRANSPORT)).strip().lower()
    if http_transport not in HTTP_TRANSPORTS:
        raise ConfigError("http_transport must be one of: http, sse")

    log_level = str(values.get("log_level", DEFAULT_LOG_LEVEL)).strip().upper()
    if log_level not in LOG_LEVELS:
        raise ConfigError(f"log_level must be one of: {', '.join(sorted(LOG_LEVELS))}")

    config_file_path = _parse_optional_path(config_path_value, field="config_file")

    return Config(
        wordpress_base_url=base_url,
        wordpress_username=_parse_optional_str(values.get("wordpress_username")),
        wordpress_application_password=_parse_optional_str(values.get("wordpress_application_password")),
        request_timeout=request_timeout,
        max_response_bytes=max_response_bytes,
        max_request_bytes=max_request_bytes,
        verify_tls=verify_tls,
        temp_dir=temp_dir,
        cache_flush_endpoints=cache_flush_endpoints,
        cache_bust_meta=cache_bust_meta,
        enable_stdio=enable_stdio,
        enable_http=enable_http,
        http_host=http_host,
        http_port=http_port,
        http_path=http_path,
        http_transport=http_transport,
        log_level=log_level,
        config_file=config_file_path,
    )


def _parse_optional_str(value: Any) -> str | None:
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped or None


def _parse_verify_tls(value: Any) -> bool | None:
    if value is None or (isinstance(value, str) and value.strip().lower() == "auto"):
        return None
    return _parse_bool(value, default=True)


def _parse_endpoint_list(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items: Sequence[Any] = value.split(",")
    elif isinstance(value, Sequence):
        items = value
    else:
        raise ConfigError("cache_flush_endpoints must be a comma separated string or an array of strings")
    endpoints: list[str] = []
    for item in items:
        if not isinstance(item, str):
            raise ConfigError("cache_flush_endpoints entries must be strings")
        stripped = item.strip().strip("/")
        if stripped and stripped not in endpoints:
            endpoints.append(stripped)
    return tuple(endpoints)


def _parse_bool(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in BOOL_TRUE:
            return True
        if lowered in BOOL_FALSE:
            return False
    raise ConfigError(f"Invalid boolean value: {value!r}")


def _parse_int(value: Any, *, field: str, minimum: int | None = None, maximum: int | None = None) -> int:
    try:
        if isinstance(value, (int, float)):
            int_value = int(value)
        else:
            int_value = int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid integer for {field}: {value!r}") from exc

    if minimum is not None and int_value < minimum:
        raise ConfigError(f"{field} must be >= {minimum}")
    if maximum is not None and int_value > maximum:
        raise ConfigError(f"{field} must be <= {maximum}")
    return int_value


def _parse_duration(value: Any, *, default_unit: str, field: str) -> timedelta:
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        seconds = float(value)
        if seconds < 0:
            raise ConfigError(f"{field} must be positive")
        return timedelta(seconds=seconds)
    if not isinstance(value, str):
        raise ConfigError(f"Invalid duration for {field}: {value!r}")

    stripped = value.strip()
    if not stripped:
        raise ConfigError(f"{field} may not be empty")

    unit = default_unit
    number_part = stripped
    if stripped[-1].lower() in T_DURATION_UNITS:
        unit = stripped[-1].lower()
        number_part = stripped[:-1]
    if not number_part or not number_part.isdigit():
        raise ConfigError(f"{field} must be a positive integer optionally suffixed with s, m, or h")
    return timedelta(seconds=int(number_part) * T_DURATION_UNITS[unit])


def _parse_path(value: Any, *, field: str) -> Path:
    if isinstance(value, Path):
        return value.expanduser().resolve()
    if not isinstance(value, str):
        raise ConfigError(f"Invalid path for {field}: {value!r}")
    stripped = value.strip()
    if not stripped:
        raise ConfigError(f"{field} may not be empty")
    return Path(stripped).expanduser().resolve()


def _parse_optional_path(value: Any, *, field: str) -> Path | None:
    if value in (None, ""):
        return None
    return _parse_path(value, field=field)
