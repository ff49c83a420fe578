"""Best-effort Elementor cache invalidation after tree writes."""

from __future__ import annotations

from typing import Sequence

from .gateway import WordPressGateway
from .logging import bind_context, get_logger

logger = get_logger(__name__)

CSS_META_KEY = "_elementor_css"


class CacheInvalidator:
    """Tell WordPress that a page's Elementor data changed.

    Clears the generated CSS meta field (when ``bust_meta`` is set) and POSTs
    ``{"post_id": ...}`` to each configured ``wp-json`` endpoint. Every step
    is independent; failures are logged and never raised.
    """

    def __init__(self, gateway: WordPressGateway, *, endpoints: Sequence[str] = (), bust_meta: bool = True) -> None:
        self._gateway = gateway
        self._endpoints = tuple(endpoints)
        self._bust_meta = bust_meta

    @property
    def endpoints(self) -> tuple[str, ...]:
        return self._endpoints

    async def invalidate(self, post_id: int, kind: str) -> dict[str, list[str]]:
        """Return which invalidation steps succeeded and which failed."""

        cleared: list[str] = []
        failed: list[str] = []
        log = bind_context(logger, post_id=post_id, post_type=kind)

        if self._bust_meta:
            try:
                await self._gateway.set_item(kind, post_id, {"meta": {CSS_META_KEY: ""}})
            except Exception as exc:  # noqa: BLE001
                failed.append(CSS_META_KEY)
                log.warning("cache.meta_failed", extra={"context": {"error": str(exc)}})
            else:
                cleared.append(CSS_META_KEY)

        for endpoint in self._endpoints:
            try:
                await self._gateway.post_endpoint(endpoint, {"post_id": post_id})
            except Exception as exc:  # noqa: BLE001
                failed.append(endpoint)
                log.warning("cache.endpoint_failed", extra={"context": {"endpoint": endpoint, "error": str(exc)}})
            else:
                cleared.append(endpoint)

        log.debug("cache.invalidated", extra={"context": {"cleared": cleared, "failed": failed}})
        return {"cleared": cleared, "failed": failed}
