"""Load and persist Elementor trees through the WordPress gateway."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from .backup import build_backup_entry
from .cache import CacheInvalidator
from .errors import PARSE_ERROR, ElementorMcpError
from .gateway import WordPressGateway, rendered_text
from .logging import bind_context, get_logger
from .models import ParsedResult
from .normalizer import DATA_MARKERS, parse_elementor_response

logger = get_logger(__name__)

DATA_META_KEY = "_elementor_data"
EDIT_MODE_META_KEY = "_elementor_edit_mode"
VERSION_META_KEY = "_elementor_version"
PAGE_SETTINGS_META_KEY = "_elementor_page_settings"
BUILDER_EDIT_MODE = "builder"
RAW_PREVIEW_LIMIT = 500


def serialize_tree(tree: list[Any]) -> str:
    return json.dumps(tree, ensure_ascii=False, separators=(",", ":"))


@dataclass(slots=True)
class ElementorDocument:
    """A post or page as seen through its Elementor meta fields."""

    post_id: int
    post_type: str
    title: str
    status: str | None
    edit_mode: str | None
    version: str | None
    has_page_settings: bool
    raw_data: Any
    meta_keys: list[str] = field(default_factory=list)

    @classmethod
    def from_item(cls, post_id: int, kind: str, item: dict[str, Any]) -> "ElementorDocument":
        meta = item.get("meta")
        if not isinstance(meta, dict):
            meta = {}
        return cls(
            post_id=post_id,
            post_type=kind,
            title=str(rendered_text(item.get("title")) or ""),
            status=item.get("status"),
            edit_mode=meta.get(EDIT_MODE_META_KEY) or None,
            version=meta.get(VERSION_META_KEY) or None,
            has_page_settings=bool(meta.get(PAGE_SETTINGS_META_KEY)),
            raw_data=meta.get(DATA_META_KEY),
            meta_keys=sorted(meta),
        )

    @property
    def has_data(self) -> bool:
        if isinstance(self.raw_data, str):
            return bool(self.raw_data.strip())
        return bool(self.raw_data)

    def data_text(self) -> str:
        if isinstance(self.raw_data, str):
            return self.raw_data
        if self.raw_data:
            return json.dumps(self.raw_data, ensure_ascii=False)
        return ""

    def response_text(self) -> str:
        """Render the item as diagnostic text followed by the stored tree."""

        lines = [
            f"Found as {self.post_type} (ID: {self.post_id})",
            f'Title: "{self.title}"',
            f"Status: {self.status}",
            f"Edit Mode: {self.edit_mode or 'None'}",
            f"Version: {self.version or 'None'}",
            f"Has Page Settings: {'Yes' if self.has_page_settings else 'No'}",
            f"Has Elementor Data: {'Yes' if self.has_data else 'No'}",
        ]
        if not self.has_data:
            if self.edit_mode == BUILDER_EDIT_MODE:
                lines.append(f"No Elementor data found for {self.post_type} ID {self.post_id}")
            else:
                lines.append(f"This {self.post_type} does not use Elementor builder")
        return "\n".join(lines) + f"\n{DATA_MARKERS[0]}\n" + self.data_text()

    def summary(self) -> dict[str, Any]:
        return {
            "post_id": self.post_id,
            "post_type": self.post_type,
            "title": self.title,
            "status": self.status,
            "edit_mode": self.edit_mode,
            "elementor_version": self.version,
        }


class ElementorStore:
    """Fetch, normalise and persist one item's Elementor tree per call."""

    def __init__(self, gateway: WordPressGateway, invalidator: CacheInvalidator) -> None:
        self.gateway = gateway
        self.invalidator = invalidator

    async def fetch(self, post_id: int) -> ElementorDocument:
        kind, item = await self.gateway.get_any(post_id)
        return ElementorDocument.from_item(post_id, kind, item)

    async def load_tree(self, post_id: int, *, allow_empty: bool = False) -> tuple[ElementorDocument, list[Any]]:
        """Return the item and its parsed tree.

        ``allow_empty`` turns an item without any stored tree into ``[]``; a
        stored tree that cannot be parsed is always an error.
        """

        document = await self.fetch(post_id)
        if allow_empty and not document.has_data:
            return document, []
        parsed = parse_elementor_response(document.response_text())
        if not parsed.success:
            raise self._parse_error(post_id, parsed)
        return document, parsed.data or []

    async def save_tree(self, post_id: int, tree: list[Any]) -> dict[str, Any]:
        """Persist ``tree`` and run cache invalidation; returns write details."""

        serialized = serialize_tree(tree)
        kind, _ = await self.gateway.update_any(
            post_id,
            {"meta": {DATA_META_KEY: serialized, EDIT_MODE_META_KEY: BUILDER_EDIT_MODE}},
        )
        log = bind_context(logger, post_id=post_id, post_type=kind)
        log.info("store.tree_saved", extra={"context": {"bytes": len(serialized.encode("utf-8")), "elements": len(tree)}})
        cache = await self.invalidator.invalidate(post_id, kind)
        return {"post_type": kind, "elements": len(tree), "cache": cache}

    async def backup_to_meta(
        self,
        document: ElementorDocument,
        tree: list[Any],
        backup_name: str | None = None,
    ) -> dict[str, Any]:
        key, record = build_backup_entry(
            post_id=document.post_id,
            post_type=document.post_type,
            post_title=document.title,
            serialized_tree=serialize_tree(tree),
            backup_name=backup_name,
        )
        await self.gateway.set_item(document.post_type, document.post_id, {"meta": {key: json.dumps(record, ensure_ascii=False)}})
        log = bind_context(logger, post_id=document.post_id, post_type=document.post_type)
        log.info("store.backup_saved", extra={"context": {"meta_key": key}})
        return {
            "backup_key": key,
            "backup_name": record["backup_name"],
            "timestamp": record["timestamp"],
            "post_id": document.post_id,
            "post_type": document.post_type,
            "elements": len(tree),
        }

    @staticmethod
    def _parse_error(post_id: int, parsed: ParsedResult) -> ElementorMcpError:
        return ElementorMcpError(
            PARSE_ERROR,
            f"Failed to get Elementor data for post/page ID {post_id}: {parsed.error}",
            details=parsed.to_dict(raw_limit=RAW_PREVIEW_LIMIT),
        )
