"""Domain models for Elementor element trees and parse results."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

from .errors import INTERNAL_ERROR, VALIDATION_ERROR, ElementorMcpError

Element = dict[str, Any]
"""One Elementor node. Kept as the raw JSON object so unknown keys round-trip."""

SECTION = "section"
COLUMN = "column"
CONTAINER = "container"
WIDGET = "widget"
ELEMENT_TYPES: tuple[str, ...] = (SECTION, COLUMN, CONTAINER, WIDGET)

ELEMENT_ID_LENGTH = 8
_ID_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
_ID_SPACE = len(_ID_ALPHABET) ** ELEMENT_ID_LENGTH
_MAX_ID_ATTEMPTS = 1000

# widgetType -> settings key holding the widget's visible text
CONTENT_SETTING_KEYS: dict[str, str] = {
    "html": "html",
    "text-editor": "editor",
    "heading": "title",
}


def _to_base36(value: int) -> str:
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, len(_ID_ALPHABET))
        digits.append(_ID_ALPHABET[remainder])
    return "".join(reversed(digits)) or "0"


def new_element_id(taken: set[str] | None = None) -> str:
    """Return a fresh eight character base-36 element id.

    When ``taken`` is given the id is guaranteed not to be in it, and it is
    added to the set so consecutive calls never repeat.
    """

    for _ in range(_MAX_ID_ATTEMPTS):
        candidate = _to_base36(uuid.uuid4().int % _ID_SPACE).rjust(ELEMENT_ID_LENGTH, "0")
        if taken is None:
            return candidate
        if candidate not in taken:
            taken.add(candidate)
            return candidate
    raise ElementorMcpError(INTERNAL_ERROR, "Unable to generate a unique element id")


def make_column(column_size: int = 100, *, taken: set[str] | None = None) -> Element:
    return {
        "id": new_element_id(taken),
        "elType": COLUMN,
        "isInner": False,
        "settings": {"_column_size": column_size, "_inline_size": None},
        "elements": [],
        "widgetType": None,
    }


def make_section(
    columns: int = 1,
    settings: dict[str, Any] | None = None,
    *,
    taken: set[str] | None = None,
) -> Element:
    """Build a section holding ``columns`` empty columns of equal width."""

    if columns < 1:
        raise ElementorMcpError(VALIDATION_ERROR, "A section needs at least one column", details={"columns": columns})
    column_size = 100 // columns
    return {
        "id": new_element_id(taken),
        "elType": SECTION,
        "isInner": False,
        "settings": dict(settings or {}),
        "elements": [make_column(column_size, taken=taken) for _ in range(columns)],
        "widgetType": None,
    }


def make_container(settings: dict[str, Any] | None = None, *, taken: set[str] | None = None) -> Element:
    return {
        "id": new_element_id(taken),
        "elType": CONTAINER,
        "isInner": False,
        "settings": dict(settings or {}),
        "elements": [],
        "widgetType": None,
    }


def make_widget(widget_type: str, settings: dict[str, Any] | None = None, *, taken: set[str] | None = None) -> Element:
    return {
        "id": new_element_id(taken),
        "elType": WIDGET,
        "isInner": False,
        "settings": dict(settings or {}),
        "elements": [],
        "widgetType": widget_type,
    }


@dataclass(slots=True)
class ParsedResult:
    """Outcome of normalising an upstream response into an element tree."""

    success: bool
    data: list[Any] | None = None
    error: str | None = None
    raw_data: str | None = None
    debug_info: str | None = None

    @classmethod
    def ok(cls, data: list[Any], *, debug_info: str | None = None) -> "ParsedResult":
        return cls(success=True, data=data, debug_info=debug_info or None)

    @classmethod
    def fail(cls, error: str, *, raw_data: str | None = None, debug_info: str | None = None) -> "ParsedResult":
        return cls(success=False, error=error, raw_data=raw_data, debug_info=debug_info or None)

    def to_dict(self, *, raw_limit: int | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success}
        if self.success:
            payload["data"] = self.data
        else:
            payload["error"] = self.error
        if self.raw_data is not None:
            raw = self.raw_data
            if raw_limit is not None and len(raw) > raw_limit:
                raw = raw[:raw_limit] + "..."
            payload["raw_data"] = raw
        if self.debug_info:
            payload["debug_info"] = self.debug_info
        return payload


@dataclass(slots=True)
class Chunk:
    """A window over the top-level elements of a tree."""

    elements: list[Any]
    chunk_index: int
    chunk_size: int
    total_chunks: int
    total_elements: int
    start_index: int
    end_index: int

    @property
    def has_next(self) -> bool:
        return self.chunk_index < self.total_chunks - 1

    @property
    def has_previous(self) -> bool:
        return self.chunk_index > 0

    def bounds_info(self) -> dict[str, Any]:
        return {
            "chunk_index": self.chunk_index,
            "chunk_size": self.chunk_size,
            "total_chunks": self.total_chunks,
            "total_elements": self.total_elements,
            "elements_in_chunk": len(self.elements),
            "start_index": self.start_index,
            "end_index": self.end_index,
        }

    def pagination(self) -> dict[str, Any]:
        return {
            "has_next_chunk": self.has_next,
            "has_previous_chunk": self.has_previous,
            "next_chunk_index": self.chunk_index + 1 if self.has_next else None,
            "previous_chunk_index": self.chunk_index - 1 if self.has_previous else None,
        }


@dataclass(slots=True)
class Removal:
    """Where a deleted element used to live."""

    element: Element
    index: int
    parent_id: str | None
    parent_type: str
    remaining_siblings: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "deleted_element_id": self.element.get("id"),
            "deleted_element_type": self.element.get("elType"),
            "deleted_widget_type": self.element.get("widgetType"),
            "parent_id": self.parent_id,
            "parent_type": self.parent_type,
            "index": self.index,
            "remaining_siblings": self.remaining_siblings,
        }


@dataclass(slots=True)
class Placement:
    """Where an element was inserted."""

    element: Element
    index: int
    parent_id: str | None
    parent_type: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "element_id": self.element.get("id"),
            "element_type": self.element.get("elType"),
            "widget_type": self.element.get("widgetType"),
            "parent_id": self.parent_id,
            "parent_type": self.parent_type,
            "index": self.index,
        }


@dataclass(slots=True)
class CopyReport:
    copied: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    replaced_all: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "copied_settings": "all" if self.replaced_all else list(self.copied),
            "skipped_settings": list(self.skipped),
        }
