"""Recursive lookup and mutation over Elementor element trees.

A tree is the ordered list of top-level elements stored in a page's
``_elementor_data`` meta field. Every node is a plain ``dict`` with ``id``,
``elType``, ``settings`` and ``elements`` keys (plus ``widgetType`` for
widgets). Traversal is always pre-order depth-first and the first match wins
when ids are duplicated.

Upstream data is not trusted to be well formed, so every walk tracks the
nodes on the current ancestor path (by object identity) and never descends
into a node it is already inside. Nodes that merely share an id are all
visited.

Mutating helpers either complete on the in-memory tree or raise
:class:`~elementor_mcp.errors.ElementorMcpError` before touching it.
"""

from __future__ import annotations

import copy
import math
from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Sequence

from .errors import NOT_FOUND, VALIDATION_ERROR, ElementorMcpError
from .models import (
    COLUMN,
    CONTAINER,
    CONTENT_SETTING_KEYS,
    SECTION,
    WIDGET,
    Chunk,
    CopyReport,
    Element,
    Placement,
    Removal,
    make_column,
    new_element_id,
)

PREVIEW_LENGTH = 100
DEFAULT_CHUNK_SIZE = 5
DEFAULT_SUMMARY_DEPTH = 4
DEFAULT_ELEMENT_DEPTH = 2
RELATIVE_POSITIONS = ("before", "after", "inside")
TOP_LEVEL = "top-level"


@dataclass(slots=True)
class _Position:
    node: Element
    parent: Element
    index: int
    level: int

    @property
    def siblings(self) -> list[Any]:
        return self.parent["elements"]


def _children(node: Element) -> list[Any]:
    children = node.get("elements")
    return children if isinstance(children, list) else []


def _ensure_children(node: Element) -> list[Any]:
    children = node.get("elements")
    if not isinstance(children, list):
        children = []
        node["elements"] = children
    return children


def _root_parent(root: list[Any]) -> Element:
    # Stand-in parent so top-level splices share the nested code path.
    return {"id": None, "elType": TOP_LEVEL, "elements": root}


def _parent_info(parent: Element) -> tuple[str | None, str]:
    if parent.get("elType") == TOP_LEVEL:
        return None, TOP_LEVEL
    return parent.get("id"), str(parent.get("elType"))


def walk(root: list[Any]) -> Iterator[_Position]:
    """Yield every element of ``root`` in pre-order with its parent and depth."""

    yield from _walk(_root_parent(root), 0, set())


def _walk(parent: Element, level: int, ancestors: set[int]) -> Iterator[_Position]:
    for index, node in enumerate(parent["elements"]):
        if not isinstance(node, dict) or id(node) in ancestors:
            continue
        yield _Position(node=node, parent=parent, index=index, level=level)
        if isinstance(node.get("elements"), list):
            ancestors.add(id(node))
            try:
                yield from _walk(node, level + 1, ancestors)
            finally:
                ancestors.discard(id(node))


def _locate(root: list[Any], element_id: str) -> _Position | None:
    for position in walk(root):
        if position.node.get("id") == element_id:
            return position
    return None


# --------------------------------------------------------------------------------------
# Lookup


def find_by_id(root: list[Any], element_id: str) -> Element | None:
    position = _locate(root, element_id)
    return position.node if position else None


def require_element(root: list[Any], element_id: str, *, label: str = "Element") -> Element:
    node = find_by_id(root, element_id)
    if node is None:
        raise ElementorMcpError(
            NOT_FOUND,
            f"{label} ID {element_id} not found in Elementor data",
            details={"element_id": element_id},
        )
    return node


def collect_ids(root: list[Any]) -> set[str]:
    return {position.node["id"] for position in walk(root) if isinstance(position.node.get("id"), str)}


def duplicate_ids(root: Iterable[Any]) -> list[str]:
    """Return ids used by more than one node, in first-seen order.

    Walks by object identity so repeated ids are counted, not skipped.
    """

    counts: Counter[str] = Counter()
    seen: set[int] = set()
    stack = [node for node in reversed(list(root))]
    while stack:
        node = stack.pop()
        if not isinstance(node, dict) or id(node) in seen:
            continue
        seen.add(id(node))
        node_id = node.get("id")
        if isinstance(node_id, str) and node_id:
            counts[node_id] += 1
        stack.extend(reversed(_children(node)))
    return [node_id for node_id, count in counts.items() if count > 1]


def content_preview(node: Element) -> str | None:
    key = CONTENT_SETTING_KEYS.get(str(node.get("widgetType")))
    settings = node.get("settings")
    if key is None or not isinstance(settings, dict):
        return None
    value = settings.get(key)
    if not isinstance(value, str) or not value:
        return None
    if len(value) > PREVIEW_LENGTH:
        return value[:PREVIEW_LENGTH] + "..."
    return value


def flatten(root: list[Any], *, include_content: bool = False) -> list[dict[str, Any]]:
    records: list[dict[str, Any]] = []
    for position in walk(root):
        node = position.node
        record: dict[str, Any] = {"id": node.get("id"), "type": node.get("elType"), "level": position.level}
        if node.get("widgetType"):
            record["widgetType"] = node["widgetType"]
        if include_content:
            preview = content_preview(node)
            if preview is not None:
                record["contentPreview"] = preview
        records.append(record)
    return records


def extract_outline(
    root: list[Any],
    *,
    include_settings: bool = False,
    include_previews: bool = False,
    max_depth: int | None = None,
) -> list[dict[str, Any]]:
    """Return the nested ``{id, type, widgetType, level, settings?, children?}`` shape.

    Nodes below ``max_depth`` are omitted; their parent reports how many
    children were cut via ``truncated_children``. ``include_previews`` adds a
    ``contentPreview`` to text-bearing widgets.
    """

    return _outline(root, 0, include_settings, include_previews, max_depth, set())


def _outline(
    elements: Sequence[Any],
    level: int,
    include_settings: bool,
    include_previews: bool,
    max_depth: int | None,
    ancestors: set[int],
) -> list[dict[str, Any]]:
    outline: list[dict[str, Any]] = []
    for node in elements:
        if not isinstance(node, dict) or id(node) in ancestors:
            continue
        entry: dict[str, Any] = {
            "id": node.get("id"),
            "type": node.get("elType"),
            "widgetType": node.get("widgetType"),
            "level": level,
        }
        if include_settings:
            entry["settings"] = node.get("settings") or {}
        if include_previews:
            preview = content_preview(node)
            if preview is not None:
                entry["contentPreview"] = preview
        children = _children(node)
        if children:
            if max_depth is not None and level + 1 >= max_depth:
                entry["truncated_children"] = len(children)
            else:
                ancestors.add(id(node))
                entry["children"] = _outline(
                    children, level + 1, include_settings, include_previews, max_depth, ancestors
                )
                ancestors.discard(id(node))
        outline.append(entry)
    return outline


def outline_top_level(
    root: list[Any],
    element_index: int = 0,
    *,
    max_depth: int = DEFAULT_ELEMENT_DEPTH,
    include_previews: bool = False,
) -> dict[str, Any]:
    """Outline a single top-level element, for reading large pages one piece at a time."""

    if max_depth < 1:
        raise ElementorMcpError(VALIDATION_ERROR, "max_depth must be at least 1", details={"max_depth": max_depth})
    total = len(root)
    if element_index < 0 or element_index >= total:
        raise ElementorMcpError(
            VALIDATION_ERROR,
            f"Element index {element_index} is out of range. Total top-level elements: {total}",
            details={"element_index": element_index, "total_elements": total},
        )
    outline = extract_outline([root[element_index]], include_previews=include_previews, max_depth=max_depth)
    return {
        "element_index": element_index,
        "total_elements": total,
        "element": outline[0] if outline else None,
        "navigation": {
            "has_previous": element_index > 0,
            "has_next": element_index + 1 < total,
            "previous_index": element_index - 1 if element_index > 0 else None,
            "next_index": element_index + 1 if element_index + 1 < total else None,
        },
    }


def find_all_by_widget_type(root: list[Any], widget_type: str) -> list[Element]:
    return [
        position.node
        for position in walk(root)
        if position.node.get("elType") == WIDGET and position.node.get("widgetType") == widget_type
    ]


def paginate(root: list[Any], chunk_size: int = DEFAULT_CHUNK_SIZE, chunk_index: int = 0) -> Chunk:
    """Slice the top-level list into windows of ``chunk_size`` elements."""

    if chunk_size < 1:
        raise ElementorMcpError(VALIDATION_ERROR, "chunk_size must be at least 1", details={"chunk_size": chunk_size})
    total_elements = len(root)
    total_chunks = math.ceil(total_elements / chunk_size)
    if chunk_index < 0 or chunk_index >= total_chunks:
        raise ElementorMcpError(
            VALIDATION_ERROR,
            f"Chunk index {chunk_index} is out of range. Total chunks: {total_chunks}",
            details={"chunk_index": chunk_index, "total_chunks": total_chunks, "total_elements": total_elements},
        )
    start = chunk_index * chunk_size
    end = min(start + chunk_size, total_elements)
    return Chunk(
        elements=root[start:end],
        chunk_index=chunk_index,
        chunk_size=chunk_size,
        total_chunks=total_chunks,
        total_elements=total_elements,
        start_index=start,
        end_index=end - 1,
    )


def summarize_structure(root: list[Any], *, max_depth: int = DEFAULT_SUMMARY_DEPTH) -> dict[str, Any]:
    element_counts: Counter[str] = Counter()
    widget_counts: Counter[str] = Counter()
    deepest = -1
    total = 0
    for position in walk(root):
        total += 1
        deepest = max(deepest, position.level)
        element_counts[str(position.node.get("elType"))] += 1
        widget_type = position.node.get("widgetType")
        if widget_type:
            widget_counts[str(widget_type)] += 1
    return {
        "top_level_elements": len(root),
        "total_elements": total,
        "depth": deepest + 1,
        "element_types": dict(element_counts),
        "widget_types": dict(widget_counts),
        "outline": extract_outline(root, max_depth=max_depth),
    }


# --------------------------------------------------------------------------------------
# Mutation


def _splice(siblings: list[Any], node: Element, position: int | None) -> int:
    if position is not None and 0 <= position < len(siblings):
        siblings.insert(position, node)
        return position
    siblings.append(node)
    return len(siblings) - 1


def resolve_insert_target(
    root: list[Any],
    *,
    section_id: str | None = None,
    column_id: str | None = None,
) -> Element:
    """Pick the node whose children receive an inserted element."""

    if column_id:
        return require_element(root, column_id, label="Column")
    if section_id:
        section = require_element(root, section_id, label="Section")
        children = [child for child in _children(section) if isinstance(child, dict)]
        if not children:
            raise ElementorMcpError(
                NOT_FOUND,
                f"Section ID {section_id} has no columns to insert into",
                details={"section_id": section_id},
            )
        return children[0]
    for position in walk(root):
        if position.node.get("elType") in (COLUMN, CONTAINER):
            return position.node
    raise ElementorMcpError(
        NOT_FOUND,
        "No column or container found to insert into. Create a section or container first.",
    )


def insert_node(
    root: list[Any],
    node: Element,
    *,
    section_id: str | None = None,
    column_id: str | None = None,
    position: int | None = None,
) -> Placement:
    target = resolve_insert_target(root, section_id=section_id, column_id=column_id)
    index = _splice(_ensure_children(target), node, position)
    return Placement(element=node, index=index, parent_id=target.get("id"), parent_type=str(target.get("elType")))


def insert_top_level(root: list[Any], node: Element, position: int | None = None) -> Placement:
    index = _splice(root, node, position)
    return Placement(element=node, index=index, parent_id=None, parent_type=TOP_LEVEL)


def insert_relative_to(root: list[Any], node: Element, target_id: str, position: str = "after") -> Placement:
    """Insert ``node`` before, after or inside the element ``target_id``."""

    if position not in RELATIVE_POSITIONS:
        raise ElementorMcpError(
            VALIDATION_ERROR,
            f"Invalid insert position {position!r}; expected one of: {', '.join(RELATIVE_POSITIONS)}",
        )
    located = _locate(root, target_id)
    if located is None:
        raise ElementorMcpError(
            NOT_FOUND,
            f"Target element ID {target_id} not found in Elementor data",
            details={"target_element_id": target_id},
        )
    if position == "inside":
        index = _splice(_ensure_children(located.node), node, None)
        return Placement(
            element=node,
            index=index,
            parent_id=located.node.get("id"),
            parent_type=str(located.node.get("elType")),
        )
    index = located.index if position == "before" else located.index + 1
    located.siblings.insert(index, node)
    parent_id, parent_type = _parent_info(located.parent)
    return Placement(element=node, index=index, parent_id=parent_id, parent_type=parent_type)


def delete_node(root: list[Any], element_id: str) -> Removal:
    located = _locate(root, element_id)
    if located is None:
        raise ElementorMcpError(
            NOT_FOUND,
            f"Element ID {element_id} not found in Elementor data",
            details={"element_id": element_id},
        )
    del located.siblings[located.index]
    parent_id, parent_type = _parent_info(located.parent)
    return Removal(
        element=located.node,
        index=located.index,
        parent_id=parent_id,
        parent_type=parent_type,
        remaining_siblings=len(located.siblings),
    )


def move_node(
    root: list[Any],
    element_id: str,
    *,
    section_id: str | None = None,
    column_id: str | None = None,
    position: int | None = None,
) -> Placement:
    """Detach ``element_id`` and insert it into another column or section."""

    if not section_id and not column_id:
        raise ElementorMcpError(
            NOT_FOUND,
            "Target location not found. Specify a target section or column.",
        )
    element = require_element(root, element_id)
    target = resolve_insert_target(root, section_id=section_id, column_id=column_id)
    if target is element or any(pos.node is target for pos in walk(_children(element))):
        raise ElementorMcpError(
            VALIDATION_ERROR,
            f"Cannot move element {element_id} into itself or one of its descendants",
            details={"element_id": element_id, "target_id": target.get("id")},
        )
    delete_node(root, element_id)
    index = _splice(_ensure_children(target), element, position)
    return Placement(element=element, index=index, parent_id=target.get("id"), parent_type=str(target.get("elType")))


def reorder_siblings(container: Element, ordered_ids: Sequence[str]) -> list[Any]:
    """Reorder ``container``'s children; ids left out keep their relative order at the end."""

    children = _children(container)
    used = [False] * len(children)
    reordered: list[Any] = []
    for wanted in ordered_ids:
        for index, child in enumerate(children):
            if not used[index] and isinstance(child, dict) and child.get("id") == wanted:
                used[index] = True
                reordered.append(child)
                break
    reordered.extend(child for index, child in enumerate(children) if not used[index])
    container["elements"] = reordered
    return reordered


def clone_subtree(node: Element, *, taken: set[str] | None = None) -> Element:
    """Deep copy ``node`` and give every node in the copy a fresh id.

    ``taken`` holds ids already in use in the destination tree; new ids are
    added to it.
    """

    reserved = taken if taken is not None else set()
    reserved.update(collect_ids([node]))
    clone = copy.deepcopy(node)
    _regenerate_ids(clone, reserved, set())
    return clone


def _regenerate_ids(node: Element, taken: set[str], seen: set[int]) -> None:
    if id(node) in seen:
        return
    seen.add(id(node))
    node["id"] = new_element_id(taken)
    for child in _children(node):
        if isinstance(child, dict):
            _regenerate_ids(child, taken, seen)


def duplicate_section(root: list[Any], section_id: str, position: int | None = None) -> Placement:
    index = next(
        (
            i
            for i, node in enumerate(root)
            if isinstance(node, dict) and node.get("id") == section_id and node.get("elType") == SECTION
        ),
        None,
    )
    if index is None:
        raise ElementorMcpError(
            NOT_FOUND,
            f"Section ID {section_id} not found at the top level of Elementor data",
            details={"section_id": section_id},
        )
    duplicate = clone_subtree(root[index], taken=collect_ids(root))
    if position is None:
        root.insert(index + 1, duplicate)
        return Placement(element=duplicate, index=index + 1, parent_id=None, parent_type=TOP_LEVEL)
    return insert_top_level(root, duplicate, position)


def add_columns(section: Element, count: int, *, taken: set[str] | None = None) -> list[Element]:
    """Append ``count`` empty columns to ``section`` without resizing existing ones."""

    if section.get("elType") != SECTION:
        raise ElementorMcpError(
            VALIDATION_ERROR,
            f"Element {section.get('id')} is a {section.get('elType')}, not a section",
        )
    if count < 1:
        raise ElementorMcpError(VALIDATION_ERROR, "columns_to_add must be at least 1", details={"columns_to_add": count})
    children = _ensure_children(section)
    column_size = 100 // (len(children) + count)
    columns = [make_column(column_size, taken=taken) for _ in range(count)]
    children.extend(columns)
    return columns


def copy_settings(source: Element, target: Element, keys: Sequence[str] | None = None) -> CopyReport:
    source_settings = source.get("settings")
    if not isinstance(source_settings, dict):
        source_settings = {}
    if not keys:
        target["settings"] = copy.deepcopy(source_settings)
        return CopyReport(copied=list(source_settings), replaced_all=True)

    target_settings = target.get("settings")
    if not isinstance(target_settings, dict):
        target_settings = {}
        target["settings"] = target_settings
    report = CopyReport()
    for key in keys:
        if key in source_settings:
            target_settings[key] = copy.deepcopy(source_settings[key])
            report.copied.append(key)
        else:
            report.skipped.append(key)
    return report


def update_widget_content(
    node: Element,
    settings_patch: dict[str, Any] | None = None,
    content: str | None = None,
) -> bool:
    """Merge ``settings_patch`` and write ``content`` to the widget's text key.

    Returns ``True`` when ``content`` was applied. Widget types without a
    known text key ignore ``content``.
    """

    settings = node.get("settings")
    if not isinstance(settings, dict):
        settings = {}
        node["settings"] = settings
    if settings_patch:
        settings.update(settings_patch)
    if content is None:
        return False
    key = CONTENT_SETTING_KEYS.get(str(node.get("widgetType")))
    if key is None:
        return False
    settings[key] = content
    return True


def update_section_widgets(
    root: list[Any],
    section_id: str,
    updates: Sequence[dict[str, Any]],
) -> tuple[list[str], list[str]]:
    """Apply ``{widget_id, widget_settings?, widget_content?}`` updates inside one section.

    Returns ``(updated_ids, missing_ids)``; raises when the section is absent
    or an update lacks a ``widget_id``.
    """

    section = require_element(root, section_id, label="Section")
    for update in updates:
        if not isinstance(update, dict) or not update.get("widget_id"):
            raise ElementorMcpError(VALIDATION_ERROR, "Every widget update needs a widget_id")
    updated: list[str] = []
    missing: list[str] = []
    for update in updates:
        widget_id = str(update["widget_id"])
        widget = find_by_id(_children(section), widget_id)
        if widget is None:
            missing.append(widget_id)
            continue
        update_widget_content(widget, update.get("widget_settings"), update.get("widget_content"))
        updated.append(widget_id)
    return updated, missing
