"""WordPress REST API adapter used by the tool handlers."""

from __future__ import annotations

import asyncio
import json
import mimetypes
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlsplit

import httpx

from .config import WORDPRESS_ENV_VARS, Config
from .errors import (
    NOT_CONFIGURED,
    NOT_FOUND,
    PAYLOAD_TOO_LARGE,
    TIMEOUT,
    UPSTREAM_ERROR,
    VALIDATION_ERROR,
    ElementorMcpError,
)
from .logging import bind_context, get_logger

logger = get_logger(__name__)

API_PREFIX = "wp/v2"
POST = "post"
PAGE = "page"
MEDIA = "media"
TEMPLATE = "template"
COLLECTIONS = {POST: "posts", PAGE: "pages", MEDIA: "media", TEMPLATE: "elementor_library"}
PROBE_ORDER = (POST, PAGE)

LOCAL_HOSTS = {"localhost", "127.0.0.1"}
LOCAL_SUFFIXES = (".local", ".dev", ".test")

NOT_CONFIGURED_MESSAGE = (
    "WordPress connection not configured. Please set environment variables: " + ", ".join(WORDPRESS_ENV_VARS) + "."
)


def is_local_host(base_url: str) -> bool:
    host = (urlsplit(base_url).hostname or "").lower()
    return host in LOCAL_HOSTS or host.endswith(LOCAL_SUFFIXES)


def resolve_verify(config: Config) -> bool:
    """Return whether TLS certificates should be verified for ``config``.

    ``verify_tls=None`` (auto) accepts self-signed certificates only on local
    development hosts.
    """

    if config.verify_tls is not None:
        return config.verify_tls
    return not (config.wordpress_base_url and is_local_host(config.wordpress_base_url))


class WordPressGateway:
    """Thin async client for the ``wp-json`` REST API.

    Every call opens its own ``httpx.AsyncClient``; nothing is cached between
    calls. Failures are raised as :class:`ElementorMcpError` with a transport
    specific code (``TIMEOUT``, ``PAYLOAD_TOO_LARGE``, ``NOT_FOUND`` or
    ``UPSTREAM_ERROR``).
    """

    def __init__(self, config: Config, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._config = config
        self._transport = transport
        self._log = bind_context(logger, site=urlsplit(config.wordpress_base_url or "").hostname)

    @property
    def configured(self) -> bool:
        return self._config.wordpress_configured

    @property
    def base_url(self) -> str | None:
        return self._config.wordpress_base_url

    def ensure_configured(self) -> None:
        if not self.configured:
            raise ElementorMcpError(NOT_CONFIGURED, NOT_CONFIGURED_MESSAGE)

    def _client(self) -> httpx.AsyncClient:
        config = self._config
        return httpx.AsyncClient(
            base_url=f"{config.wordpress_base_url}/wp-json/",
            auth=httpx.BasicAuth(config.wordpress_username or "", config.wordpress_application_password or ""),
            timeout=httpx.Timeout(config.request_timeout.total_seconds()),
            verify=resolve_verify(config),
            headers={"Accept": "application/json", "User-Agent": "elementor-mcp"},
            transport=self._transport,
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        payload: Any = None,
        content: bytes | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """Send one request relative to ``wp-json/`` and return the decoded JSON body."""

        self.ensure_configured()
        request_headers = dict(headers or {})
        body = content
        if payload is not None:
            body = json.dumps(payload).encode("utf-8")
            request_headers.setdefault("Content-Type", "application/json")
        if body is not None and len(body) > self._config.max_request_bytes:
            raise ElementorMcpError(
                PAYLOAD_TOO_LARGE,
                f"Request body for {method} {path} is {len(body)} bytes; the limit is {self._config.max_request_bytes}",
                details={"size_bytes": len(body), "limit_bytes": self._config.max_request_bytes},
            )

        context = {"method": method, "path": path}
        self._log.debug("gateway.request", extra={"context": context})
        try:
            async with self._client() as client:
                async with client.stream(method, path, params=params, content=body, headers=request_headers) as response:
                    raw = await self._read_body(response, method, path)
        except httpx.TimeoutException as exc:
            self._log.warning("gateway.timeout", extra={"context": context})
            seconds = int(self._config.request_timeout.total_seconds())
            raise ElementorMcpError(
                TIMEOUT,
                f"Request timeout for {method} {path}. The operation took longer than {seconds} seconds.",
            ) from exc
        except httpx.HTTPError as exc:
            self._log.warning("gateway.network_error", extra={"context": {**context, "error": str(exc)}})
            raise ElementorMcpError(UPSTREAM_ERROR, f"Network error: {exc}") from exc

        if not response.is_success:
            self._raise_for_status(response.status_code, _decode_lenient(raw), method, path)
        return _decode(raw)

    async def _read_body(self, response: httpx.Response, method: str, path: str) -> bytes:
        limit = self._config.max_response_bytes
        declared = response.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > limit:
            raise self._too_large(method, path, int(declared))
        chunks: list[bytes] = []
        received = 0
        async for chunk in response.aiter_bytes():
            received += len(chunk)
            if received > limit:
                raise self._too_large(method, path, received)
            chunks.append(chunk)
        return b"".join(chunks)

    def _too_large(self, method: str, path: str, size: int) -> ElementorMcpError:
        limit = self._config.max_response_bytes
        return ElementorMcpError(
            PAYLOAD_TOO_LARGE,
            f"Response for {method} {path} exceeds the {limit} byte limit",
            details={"size_bytes": size, "limit_bytes": limit},
        )

    def _raise_for_status(self, status_code: int, body: Any, method: str, path: str) -> None:
        message = body.get("message") if isinstance(body, dict) else None
        message = message or f"{method} {path} failed"
        details = {"status_code": status_code, "path": path}
        if isinstance(body, dict) and body.get("code"):
            details["wordpress_code"] = body["code"]
        self._log.info("gateway.http_error", extra={"context": details})
        if status_code == 404:
            raise ElementorMcpError(NOT_FOUND, f"HTTP 404: {message}", details=details)
        if status_code == 413:
            raise ElementorMcpError(PAYLOAD_TOO_LARGE, f"HTTP 413: {message}", details=details)
        raise ElementorMcpError(UPSTREAM_ERROR, f"HTTP {status_code}: {message}", details=details)

    # ----------------------------------------------------------------------------------
    # Content items

    async def get_item(self, kind: str, item_id: int) -> dict[str, Any]:
        return await self.request("GET", f"{_collection(kind)}/{item_id}", params={"context": "edit"})

    async def set_item(self, kind: str, item_id: int, payload: Mapping[str, Any]) -> dict[str, Any]:
        return await self.request("POST", f"{_collection(kind)}/{item_id}", payload=dict(payload))

    async def create_item(self, kind: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        return await self.request("POST", _collection(kind), payload=dict(payload))

    async def get_any(self, item_id: int) -> tuple[str, dict[str, Any]]:
        """Fetch ``item_id`` as a post, falling back to a page."""

        for kind in PROBE_ORDER:
            try:
                return kind, await self.get_item(kind, item_id)
            except ElementorMcpError as exc:
                if exc.code != NOT_FOUND:
                    raise
        raise ElementorMcpError(
            NOT_FOUND,
            f"Post/Page ID {item_id} not found",
            details={"post_id": item_id, "tried": list(PROBE_ORDER)},
        )

    async def update_any(self, item_id: int, payload: Mapping[str, Any]) -> tuple[str, dict[str, Any]]:
        """Update ``item_id`` as a post, retrying as a page on not-found."""

        for kind in PROBE_ORDER:
            try:
                return kind, await self.set_item(kind, item_id, payload)
            except ElementorMcpError as exc:
                if exc.code != NOT_FOUND:
                    raise
        raise ElementorMcpError(
            NOT_FOUND,
            f"Post/Page ID {item_id} not found",
            details={"post_id": item_id, "tried": list(PROBE_ORDER)},
        )

    async def list_items(
        self,
        kind: str,
        *,
        status: str | None = None,
        per_page: int = 10,
        search: str | None = None,
        context: str = "view",
        filters: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"per_page": per_page, "context": context, **(filters or {})}
        if status:
            params["status"] = status
        if search:
            params["search"] = search
        items = await self.request("GET", _collection(kind), params=params)
        return items if isinstance(items, list) else []

    async def post_endpoint(self, path: str, payload: Mapping[str, Any]) -> Any:
        return await self.request("POST", path.strip("/"), payload=dict(payload))

    # ----------------------------------------------------------------------------------
    # Media

    async def upload_asset(
        self,
        file_path: str | Path,
        *,
        title: str | None = None,
        alt_text: str | None = None,
    ) -> dict[str, Any]:
        path = Path(file_path).expanduser()
        if not path.is_file():
            raise ElementorMcpError(NOT_FOUND, f"File not found: {path}", details={"file_path": str(path)})
        data = await asyncio.to_thread(path.read_bytes)
        mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        media = await self.request(
            "POST",
            _collection(MEDIA),
            content=data,
            headers={
                "Content-Type": mime_type,
                "Content-Disposition": f'attachment; filename="{path.name}"',
            },
        )
        if not isinstance(media, dict) or "id" not in media:
            raise ElementorMcpError(UPSTREAM_ERROR, "WordPress did not return a media item")

        extra: dict[str, Any] = {}
        if title:
            extra["title"] = title
        if alt_text:
            extra["alt_text"] = alt_text
        if extra:
            media = await self.set_item(MEDIA, media["id"], extra)
        return {
            "id": media.get("id"),
            "url": media.get("source_url"),
            "title": rendered_text(media.get("title")),
            "mime_type": media.get("mime_type", mime_type),
            "alt_text": media.get("alt_text", alt_text),
        }


def _collection(kind: str) -> str:
    try:
        return f"{API_PREFIX}/{COLLECTIONS[kind]}"
    except KeyError as exc:
        raise ElementorMcpError(VALIDATION_ERROR, f"Unknown content kind: {kind!r}") from exc


def _decode(raw: bytes) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ElementorMcpError(
            UPSTREAM_ERROR,
            "WordPress returned a response that is not valid JSON",
            details={"preview": raw[:200].decode("utf-8", "replace")},
        ) from exc


def rendered_text(value: Any) -> Any:
    if isinstance(value, dict):
        return value.get("raw") or value.get("rendered")
    return value


def _decode_lenient(raw: bytes) -> Any:
    try:
        return _decode(raw)
    except ElementorMcpError:
        return None
