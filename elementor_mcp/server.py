"""FastMCP server entrypoint for the Elementor WordPress MCP service."""

from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass
from functools import wraps
from typing import Any, Mapping, Sequence

import httpx
from fastmcp import FastMCP

from . import tree as tree_ops
from .backup import iso_timestamp, utc_now, write_json_file
from .cache import CacheInvalidator
from .config import WORDPRESS_ENV_VARS, Config, load_config
from .errors import (
    CONFIG_ERROR,
    INTERNAL_ERROR,
    NOT_FOUND,
    PARSE_ERROR,
    UNSUPPORTED_OPERATION,
    VALIDATION_ERROR,
    ElementorMcpError,
)
from .gateway import MEDIA, PAGE, POST, TEMPLATE, WordPressGateway, rendered_text
from .logging import configure_logging, get_logger
from .models import make_container, make_section, make_widget
from .normalizer import parse_elementor_response
from .store import (
    BUILDER_EDIT_MODE,
    DATA_META_KEY,
    EDIT_MODE_META_KEY,
    RAW_PREVIEW_LIMIT,
    ElementorStore,
    serialize_tree,
)
from .transports import HttpTransportConfig, run_http, run_stdio
from .validation import validate_tree

LOGGER = get_logger(__name__)
SERVER = FastMCP(name="elementor-wordpress")

DEFAULT_SUCCESS_MESSAGE = "Operation completed successfully"
ALL_CONTENT_STATUSES = ("publish", "draft", "private", "trash")
TEMPLATE_TYPE_META_KEY = "_elementor_template_type"


@dataclass(slots=True)
class AppState:
    config: Config
    gateway: WordPressGateway
    store: ElementorStore


APP_STATE: AppState | None = None


def initialize_app(config: Config, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
    """Initialise application state for tool handlers.

    ``transport`` replaces the network layer of every gateway request; tests
    pass an ``httpx.MockTransport`` here.
    """

    global APP_STATE
    gateway = WordPressGateway(config, transport=transport)
    invalidator = CacheInvalidator(
        gateway,
        endpoints=config.cache_flush_endpoints,
        bust_meta=config.cache_bust_meta,
    )
    APP_STATE = AppState(config=config, gateway=gateway, store=ElementorStore(gateway, invalidator))
    if not config.wordpress_configured:
        LOGGER.warning(
            "wordpress.not_configured",
            extra={"context": {"required_env": list(WORDPRESS_ENV_VARS)}},
        )


def shutdown_app() -> None:
    """Clear application state."""

    global APP_STATE
    APP_STATE = None


def get_state() -> AppState:
    if APP_STATE is None:
        raise ElementorMcpError(CONFIG_ERROR, "Server is not initialised")
    return APP_STATE


def get_gateway() -> WordPressGateway:
    gateway = get_state().gateway
    gateway.ensure_configured()
    return gateway


def get_store() -> ElementorStore:
    state = get_state()
    state.gateway.ensure_configured()
    return state.store


def success(data: Any, message: str | None = None) -> dict[str, Any]:
    return {"status": "success", "data": data, "message": message or DEFAULT_SUCCESS_MESSAGE}


def failure(error: ElementorMcpError) -> dict[str, Any]:
    return {"status": "error", "data": error.to_dict()}


def _tool_guard(func):
    """Convert every exception raised by a tool into an error envelope."""

    name = func.__name__.strip("_").removesuffix("_impl")

    if asyncio.iscoroutinefunction(func):

        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except ElementorMcpError as exc:
                return _handle_error(name, exc)
            except Exception as exc:
                return _handle_unexpected(name, exc)

        return async_wrapper

    @wraps(func)
    def sync_wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ElementorMcpError as exc:
            return _handle_error(name, exc)
        except Exception as exc:
            return _handle_unexpected(name, exc)

    return sync_wrapper


def _handle_error(tool: str, exc: ElementorMcpError) -> dict[str, Any]:
    LOGGER.info("tool.error", extra={"context": {"tool": tool, "code": exc.code, "error": exc.message}})
    return failure(exc)


def _handle_unexpected(tool: str, exc: Exception) -> dict[str, Any]:
    LOGGER.exception("tool.failed", extra={"context": {"tool": tool}})
    return failure(ElementorMcpError(INTERNAL_ERROR, f"Unexpected error in {tool}: {exc}"))


def _require_any(**values: Any) -> None:
    if all(value is None for value in values.values()):
        raise ElementorMcpError(VALIDATION_ERROR, f"Provide at least one of: {', '.join(values)}")


def _item_summary(item: Mapping[str, Any], *, full: bool = False) -> dict[str, Any]:
    summary = {
        "id": item.get("id"),
        "type": item.get("type"),
        "title": rendered_text(item.get("title")),
        "status": item.get("status"),
        "slug": item.get("slug"),
        "link": item.get("link"),
        "date": item.get("date"),
        "modified": item.get("modified"),
    }
    if full:
        summary["content"] = rendered_text(item.get("content"))
        summary["excerpt"] = rendered_text(item.get("excerpt"))
        meta = item.get("meta")
        summary["meta_keys"] = sorted(meta) if isinstance(meta, dict) else []
    return summary


# --------------------------------------------------------------------------------------
# Content items


@_tool_guard
async def _list_content(kind: str, per_page: int, status: str | None, search: str | None) -> dict[str, Any]:
    gateway = get_gateway()
    items = await gateway.list_items(kind, status=status, per_page=per_page, search=search)
    summaries = [_item_summary(item) for item in items]
    return success({"items": summaries, "count": len(summaries)}, f"Found {len(summaries)} {kind}s")


async def _get_posts_impl(per_page: int = 10, status: str = "publish", search: str | None = None) -> dict[str, Any]:
    return await _list_content(POST, per_page, status, search)


async def _get_pages_impl(per_page: int = 10, status: str = "publish", search: str | None = None) -> dict[str, Any]:
    return await _list_content(PAGE, per_page, status, search)


@_tool_guard
async def _get_content(kind: str, item_id: int) -> dict[str, Any]:
    item = await get_gateway().get_item(kind, item_id)
    return success(_item_summary(item, full=True), f"Retrieved {kind} {item_id}")


async def _get_post_impl(post_id: int) -> dict[str, Any]:
    return await _get_content(POST, post_id)


async def _get_page_impl(page_id: int) -> dict[str, Any]:
    return await _get_content(PAGE, page_id)


def _content_payload(**fields: Any) -> dict[str, Any]:
    return {key: value for key, value in fields.items() if value is not None}


@_tool_guard
async def _create_content(kind: str, payload: dict[str, Any]) -> dict[str, Any]:
    item = await get_gateway().create_item(kind, payload)
    return success(_item_summary(item), f"Created {kind} {item.get('id')}")


@_tool_guard
async def _update_content(kind: str, item_id: int, payload: dict[str, Any]) -> dict[str, Any]:
    if not payload:
        raise ElementorMcpError(VALIDATION_ERROR, "Provide at least one field to update")
    item = await get_gateway().set_item(kind, item_id, payload)
    return success(_item_summary(item), f"Updated {kind} {item_id}")


async def _create_post_impl(title: str, content: str = "", status: str = "draft", excerpt: str | None = None) -> dict[str, Any]:
    return await _create_content(POST, _content_payload(title=title, content=content, status=status, excerpt=excerpt))


async def _create_page_impl(
    title: str,
    content: str = "",
    status: str = "draft",
    excerpt: str | None = None,
    parent: int | None = None,
) -> dict[str, Any]:
    return await _create_content(
        PAGE,
        _content_payload(title=title, content=content, status=status, excerpt=excerpt, parent=parent),
    )


async def _update_post_impl(
    post_id: int,
    title: str | None = None,
    content: str | None = None,
    status: str | None = None,
    excerpt: str | None = None,
) -> dict[str, Any]:
    return await _update_content(POST, post_id, _content_payload(title=title, content=content, status=status, excerpt=excerpt))


async def _update_page_impl(
    page_id: int,
    title: str | None = None,
    content: str | None = None,
    status: str | None = None,
    excerpt: str | None = None,
    parent: int | None = None,
) -> dict[str, Any]:
    return await _update_content(
        PAGE,
        page_id,
        _content_payload(title=title, content=content, status=status, excerpt=excerpt, parent=parent),
    )


@_tool_guard
async def _upload_media_impl(file_path: str, title: str | None = None, alt_text: str | None = None) -> dict[str, Any]:
    media = await get_gateway().upload_asset(file_path, title=title, alt_text=alt_text)
    return success(media, f"Uploaded media {media.get('id')}")


@_tool_guard
async def _get_media_impl(per_page: int = 10, media_type: str | None = None) -> dict[str, Any]:
    filters = {"media_type": media_type} if media_type else None
    items = await get_gateway().list_items(MEDIA, per_page=per_page, filters=filters)
    media = [
        {
            "id": item.get("id"),
            "title": rendered_text(item.get("title")),
            "media_type": item.get("media_type"),
            "mime_type": item.get("mime_type"),
            "url": item.get("source_url"),
            "alt_text": item.get("alt_text"),
        }
        for item in items
    ]
    return success(
        {"media": media, "count": len(media), "filter": media_type or "all"},
        f"Retrieved {len(media)} media items",
    )


def builder_status(item: Mapping[str, Any]) -> str:
    """Rate how much Elementor data an item carries: ``full``, ``partial`` or ``none``."""

    meta = item.get("meta")
    if not isinstance(meta, dict):
        return "none"
    if meta.get(DATA_META_KEY):
        return "full"
    if meta.get(EDIT_MODE_META_KEY) == BUILDER_EDIT_MODE:
        return "partial"
    return "none"


@_tool_guard
async def _list_all_content_impl(per_page: int = 50, include_all_statuses: bool = False) -> dict[str, Any]:
    gateway = get_gateway()
    gateway.ensure_configured()
    statuses = ALL_CONTENT_STATUSES if include_all_statuses else ("publish",)
    content: list[dict[str, Any]] = []
    skipped: list[dict[str, Any]] = []
    for kind in (POST, PAGE):
        for status in statuses:
            try:
                items = await gateway.list_items(kind, status=status, per_page=per_page, context="edit")
            except ElementorMcpError as exc:
                # Statuses the account may not read are skipped.
                LOGGER.warning(
                    "content.list_skipped",
                    extra={"context": {"kind": kind, "status": status, "code": exc.code, "error": exc.message}},
                )
                skipped.append({"type": kind, "status": status, "code": exc.code, "message": exc.message})
                continue
            for item in items:
                content.append(
                    {
                        "id": item.get("id"),
                        "title": rendered_text(item.get("title")) or "(No title)",
                        "type": kind,
                        "status": item.get("status"),
                        "elementor_status": builder_status(item),
                        "url": item.get("link"),
                    }
                )
    content.sort(key=lambda entry: entry["id"] or 0)

    summary = {
        "total": len(content),
        "by_type": {
            "posts": sum(entry["type"] == POST for entry in content),
            "pages": sum(entry["type"] == PAGE for entry in content),
        },
        "by_elementor_status": {rating: 0 for rating in ("full", "partial", "none")},
        "by_status": dict(Counter(str(entry["status"]) for entry in content)),
    }
    for entry in content:
        summary["by_elementor_status"][entry["elementor_status"]] += 1
    return success(
        {"summary": summary, "content": content, "skipped": skipped},
        f"Retrieved {len(content)} content items",
    )


@_tool_guard
async def _get_elementor_templates_impl(per_page: int = 10, template_type: str | None = None) -> dict[str, Any]:
    filters: dict[str, Any] = {"meta_key": TEMPLATE_TYPE_META_KEY}
    if template_type:
        filters["meta_value"] = template_type
    try:
        templates = await get_gateway().list_items(TEMPLATE, per_page=per_page, filters=filters)
    except ElementorMcpError as exc:
        if exc.code != NOT_FOUND:
            raise
        raise ElementorMcpError(
            NOT_FOUND,
            "Elementor templates endpoint not found. Make sure Elementor Pro is installed and activated.",
            details={**(exc.details or {}), "requires": "Elementor Pro"},
        ) from exc
    summaries = [_item_summary(item) for item in templates]
    return success(
        {"templates": summaries, "count": len(summaries), "filter": template_type or "all"},
        f"Retrieved {len(summaries)} Elementor templates",
    )



# --------------------------------------------------------------------------------------
# Tree reads


@_tool_guard
async def _get_elementor_data_impl(post_id: int) -> dict[str, Any]:
    document, tree = await get_store().load_tree(post_id)
    return success(
        {**document.summary(), "element_count": len(tree), "elementor_data": tree},
        f"Retrieved Elementor data for {document.post_type} {post_id}",
    )


@_tool_guard
async def _get_elementor_widget_impl(post_id: int, widget_id: str) -> dict[str, Any]:
    _, tree = await get_store().load_tree(post_id)
    widget = tree_ops.require_element(tree, widget_id, label="Widget")
    return success({"post_id": post_id, "widget": widget}, f"Retrieved widget {widget_id}")


@_tool_guard
async def _get_elementor_elements_impl(post_id: int, include_content: bool = False) -> dict[str, Any]:
    _, tree = await get_store().load_tree(post_id)
    elements = tree_ops.flatten(tree, include_content=include_content)
    return success(
        {"post_id": post_id, "total_elements": len(elements), "elements": elements},
        f"Found {len(elements)} elements",
    )


@_tool_guard
async def _get_page_structure_impl(
    post_id: int,
    include_settings: bool = False,
    max_depth: int | None = None,
) -> dict[str, Any]:
    document, tree = await get_store().load_tree(post_id)
    outline = tree_ops.extract_outline(tree, include_settings=include_settings, max_depth=max_depth)
    return success({**document.summary(), "structure": outline}, f"Page structure for {document.post_type} {post_id}")


@_tool_guard
async def _get_elementor_structure_summary_impl(post_id: int, max_depth: int = tree_ops.DEFAULT_SUMMARY_DEPTH) -> dict[str, Any]:
    if max_depth < 1:
        raise ElementorMcpError(VALIDATION_ERROR, "max_depth must be at least 1")
    document, tree = await get_store().load_tree(post_id)
    summary = tree_ops.summarize_structure(tree, max_depth=max_depth)
    return success({**document.summary(), **summary}, f"Structure summary for {document.post_type} {post_id}")


@_tool_guard
async def _find_elements_by_type_impl(post_id: int, widget_type: str, include_settings: bool = True) -> dict[str, Any]:
    _, tree = await get_store().load_tree(post_id)
    matches = tree_ops.find_all_by_widget_type(tree, widget_type)
    results = []
    for node in matches:
        entry: dict[str, Any] = {"id": node.get("id"), "widgetType": node.get("widgetType")}
        if include_settings:
            entry["settings"] = node.get("settings") or {}
        results.append(entry)
    return success(
        {"post_id": post_id, "widget_type": widget_type, "count": len(results), "elements": results},
        f"Found {len(results)} {widget_type} widgets",
    )


@_tool_guard
async def _get_elementor_data_chunked_impl(
    post_id: int,
    chunk_size: int = tree_ops.DEFAULT_CHUNK_SIZE,
    chunk_index: int = 0,
) -> dict[str, Any]:
    _, tree = await get_store().load_tree(post_id)
    chunk = tree_ops.paginate(tree, chunk_size, chunk_index)
    return success(
        {
            "post_id": post_id,
            "chunk_info": chunk.bounds_info(),
            "chunk_data": chunk.elements,
            "pagination": chunk.pagination(),
        },
        f"Chunk {chunk_index + 1} of {chunk.total_chunks}",
    )


@_tool_guard
async def _get_elementor_data_smart_impl(
    post_id: int,
    element_index: int = 0,
    max_depth: int = tree_ops.DEFAULT_ELEMENT_DEPTH,
    include_widget_previews: bool = False,
) -> dict[str, Any]:
    _, tree = await get_store().load_tree(post_id)
    view = tree_ops.outline_top_level(
        tree,
        element_index,
        max_depth=max_depth,
        include_previews=include_widget_previews,
    )
    return success(
        {"post_id": post_id, "max_depth": max_depth, **view},
        f"Element {element_index + 1} of {view['total_elements']}",
    )


@_tool_guard
async def _validate_elementor_data_impl(post_id: int) -> dict[str, Any]:
    _, tree = await get_store().load_tree(post_id)
    report = validate_tree(tree)
    message = "Elementor data is valid" if report["valid"] else f"Found {report['issue_count']} issues in Elementor data"
    return success({"post_id": post_id, "element_count": len(tree), **report}, message)


# --------------------------------------------------------------------------------------
# Tree writes


@_tool_guard
async def _update_elementor_data_impl(post_id: int, elementor_data: str | list[dict[str, Any]]) -> dict[str, Any]:
    store = get_store()
    text = elementor_data if isinstance(elementor_data, str) else serialize_tree(elementor_data)
    parsed = parse_elementor_response(text)
    if not parsed.success:
        raise ElementorMcpError(
            PARSE_ERROR,
            f"Invalid Elementor data: {parsed.error}",
            details=parsed.to_dict(raw_limit=RAW_PREVIEW_LIMIT),
        )
    tree = parsed.data or []
    write = await store.save_tree(post_id, tree)
    return success({"post_id": post_id, **write}, f"Elementor data updated for {write['post_type']} {post_id}")


@_tool_guard
async def _update_elementor_widget_impl(
    post_id: int,
    widget_id: str,
    widget_settings: dict[str, Any] | None = None,
    widget_content: str | None = None,
) -> dict[str, Any]:
    _require_any(widget_settings=widget_settings, widget_content=widget_content)
    store = get_store()
    _, tree = await store.load_tree(post_id)
    widget = tree_ops.require_element(tree, widget_id, label="Widget")
    content_applied = tree_ops.update_widget_content(widget, widget_settings, widget_content)
    write = await store.save_tree(post_id, tree)
    return success(
        {
            "post_id": post_id,
            "widget_id": widget_id,
            "widget_type": widget.get("widgetType"),
            "updated_settings": sorted(widget_settings or {}),
            "content_applied": content_applied,
            **write,
        },
        f"Widget {widget_id} updated",
    )


@_tool_guard
async def _update_elementor_section_impl(
    post_id: int,
    section_id: str,
    widgets_updates: list[dict[str, Any]],
) -> dict[str, Any]:
    if not widgets_updates:
        raise ElementorMcpError(VALIDATION_ERROR, "widgets_updates must contain at least one update")
    store = get_store()
    _, tree = await store.load_tree(post_id)
    updated, missing = tree_ops.update_section_widgets(tree, section_id, widgets_updates)
    if not updated:
        raise ElementorMcpError(
            NOT_FOUND,
            f"None of the requested widgets were found in section {section_id}",
            details={"section_id": section_id, "widgets_not_found": missing},
        )
    write = await store.save_tree(post_id, tree)
    return success(
        {"post_id": post_id, "section_id": section_id, "widgets_updated": updated, "widgets_not_found": missing, **write},
        f"Updated {len(updated)} widgets in section {section_id}",
    )


# --------------------------------------------------------------------------------------
# Structure


@_tool_guard
async def _create_elementor_section_impl(
    post_id: int,
    position: int | None = None,
    columns: int = 1,
    section_settings: dict[str, Any] | None = None,
) -> dict[str, Any]:
    store = get_store()
    _, tree = await store.load_tree(post_id, allow_empty=True)
    section = make_section(columns, section_settings, taken=tree_ops.collect_ids(tree))
    placement = tree_ops.insert_top_level(tree, section, position)
    write = await store.save_tree(post_id, tree)
    return success(
        {
            "post_id": post_id,
            "section_id": section["id"],
            "column_ids": [column["id"] for column in section["elements"]],
            **placement.to_dict(),
            **write,
        },
        f"Section {section['id']} created with {columns} columns",
    )


@_tool_guard
async def _create_elementor_container_impl(
    post_id: int,
    position: int | None = None,
    container_settings: dict[str, Any] | None = None,
) -> dict[str, Any]:
    store = get_store()
    _, tree = await store.load_tree(post_id, allow_empty=True)
    container = make_container(container_settings, taken=tree_ops.collect_ids(tree))
    placement = tree_ops.insert_top_level(tree, container, position)
    write = await store.save_tree(post_id, tree)
    return success(
        {"post_id": post_id, "container_id": container["id"], **placement.to_dict(), **write},
        f"Container {container['id']} created",
    )


@_tool_guard
async def _add_column_to_section_impl(post_id: int, section_id: str, columns_to_add: int = 1) -> dict[str, Any]:
    store = get_store()
    _, tree = await store.load_tree(post_id)
    section = tree_ops.require_element(tree, section_id, label="Section")
    columns = tree_ops.add_columns(section, columns_to_add, taken=tree_ops.collect_ids(tree))
    write = await store.save_tree(post_id, tree)
    return success(
        {
            "post_id": post_id,
            "section_id": section_id,
            "added_column_ids": [column["id"] for column in columns],
            "total_columns": len(section["elements"]),
            **write,
        },
        f"Added {len(columns)} columns to section {section_id}",
    )


@_tool_guard
async def _duplicate_section_impl(post_id: int, section_id: str, position: int | None = None) -> dict[str, Any]:
    store = get_store()
    _, tree = await store.load_tree(post_id)
    placement = tree_ops.duplicate_section(tree, section_id, position)
    write = await store.save_tree(post_id, tree)
    return success(
        {"post_id": post_id, "original_section_id": section_id, "new_section_id": placement.element["id"], **placement.to_dict(), **write},
        f"Section {section_id} duplicated as {placement.element['id']}",
    )


@_tool_guard
async def _add_widget_to_section_impl(
    post_id: int,
    widget_type: str,
    section_id: str | None = None,
    column_id: str | None = None,
    position: int | None = None,
    widget_settings: dict[str, Any] | None = None,
) -> dict[str, Any]:
    store = get_store()
    _, tree = await store.load_tree(post_id)
    widget = make_widget(widget_type, widget_settings, taken=tree_ops.collect_ids(tree))
    placement = tree_ops.insert_node(tree, widget, section_id=section_id, column_id=column_id, position=position)
    write = await store.save_tree(post_id, tree)
    return success(
        {"post_id": post_id, "widget_id": widget["id"], **placement.to_dict(), **write},
        f"{widget_type} widget {widget['id']} added to {placement.parent_type} {placement.parent_id}",
    )


@_tool_guard
async def _insert_widget_at_position_impl(
    post_id: int,
    widget_type: str,
    target_element_id: str,
    insert_position: str = "after",
    widget_settings: dict[str, Any] | None = None,
) -> dict[str, Any]:
    store = get_store()
    _, tree = await store.load_tree(post_id)
    widget = make_widget(widget_type, widget_settings, taken=tree_ops.collect_ids(tree))
    placement = tree_ops.insert_relative_to(tree, widget, target_element_id, insert_position)
    write = await store.save_tree(post_id, tree)
    return success(
        {"post_id": post_id, "widget_id": widget["id"], "target_element_id": target_element_id, **placement.to_dict(), **write},
        f"{widget_type} widget {widget['id']} inserted {insert_position} {target_element_id}",
    )


@_tool_guard
async def _clone_widget_impl(
    post_id: int,
    widget_id: str,
    target_element_id: str | None = None,
    insert_position: str = "after",
) -> dict[str, Any]:
    store = get_store()
    _, tree = await store.load_tree(post_id)
    source = tree_ops.require_element(tree, widget_id, label="Widget")
    clone = tree_ops.clone_subtree(source, taken=tree_ops.collect_ids(tree))
    placement = tree_ops.insert_relative_to(tree, clone, target_element_id or widget_id, insert_position)
    write = await store.save_tree(post_id, tree)
    return success(
        {"post_id": post_id, "original_widget_id": widget_id, "cloned_widget_id": clone["id"], **placement.to_dict(), **write},
        f"Widget {widget_id} cloned as {clone['id']}",
    )


@_tool_guard
async def _move_widget_impl(
    post_id: int,
    widget_id: str,
    target_section_id: str | None = None,
    target_column_id: str | None = None,
    position: int | None = None,
) -> dict[str, Any]:
    store = get_store()
    _, tree = await store.load_tree(post_id)
    placement = tree_ops.move_node(
        tree,
        widget_id,
        section_id=target_section_id,
        column_id=target_column_id,
        position=position,
    )
    write = await store.save_tree(post_id, tree)
    return success(
        {"post_id": post_id, "widget_id": widget_id, **placement.to_dict(), **write},
        f"Widget {widget_id} moved to {placement.parent_type} {placement.parent_id}",
    )


@_tool_guard
async def _delete_elementor_element_impl(post_id: int, element_id: str) -> dict[str, Any]:
    store = get_store()
    _, tree = await store.load_tree(post_id)
    removal = tree_ops.delete_node(tree, element_id)
    write = await store.save_tree(post_id, tree)
    return success(
        {"post_id": post_id, **removal.to_dict(), **write},
        f"Element {element_id} deleted from {removal.parent_type}",
    )


@_tool_guard
async def _reorder_elements_impl(post_id: int, container_id: str, element_ids: list[str]) -> dict[str, Any]:
    store = get_store()
    _, tree = await store.load_tree(post_id)
    container = tree_ops.require_element(tree, container_id, label="Container")
    reordered = tree_ops.reorder_siblings(container, element_ids)
    write = await store.save_tree(post_id, tree)
    return success(
        {
            "post_id": post_id,
            "container_id": container_id,
            "new_order": [child.get("id") for child in reordered if isinstance(child, dict)],
            **write,
        },
        f"Reordered {len(reordered)} elements in {container_id}",
    )


@_tool_guard
async def _copy_element_settings_impl(
    post_id: int,
    source_element_id: str,
    target_element_id: str,
    settings_to_copy: list[str] | None = None,
) -> dict[str, Any]:
    store = get_store()
    _, tree = await store.load_tree(post_id)
    source = tree_ops.require_element(tree, source_element_id, label="Source element")
    target = tree_ops.require_element(tree, target_element_id, label="Target element")
    report = tree_ops.copy_settings(source, target, settings_to_copy)
    write = await store.save_tree(post_id, tree)
    return success(
        {"post_id": post_id, "source_element_id": source_element_id, "target_element_id": target_element_id, **report.to_dict(), **write},
        f"Copied settings from {source_element_id} to {target_element_id}",
    )


# --------------------------------------------------------------------------------------
# Backups, exports and cache


@_tool_guard
async def _backup_elementor_data_impl(post_id: int, backup_name: str | None = None) -> dict[str, Any]:
    store = get_store()
    document, tree = await store.load_tree(post_id)
    backup = await store.backup_to_meta(document, tree, backup_name)
    return success(backup, f"Backup {backup['backup_name']} stored in {backup['backup_key']}")


async def _export(post_id: int, payload: dict[str, Any], prefix: str) -> dict[str, Any]:
    temp_dir = get_state().config.temp_dir
    result = await asyncio.to_thread(write_json_file, temp_dir, post_id, payload, prefix=prefix)
    return result.to_dict()


@_tool_guard
async def _get_elementor_data_to_file_impl(post_id: int) -> dict[str, Any]:
    document, tree = await get_store().load_tree(post_id)
    payload = {**document.summary(), "exported_at": iso_timestamp(utc_now()), "elementor_data": tree}
    result = await _export(post_id, payload, "page")
    return success({**result, "element_count": len(tree)}, f"Elementor data written to {result['file_path']}")


@_tool_guard
async def _get_page_structure_to_file_impl(post_id: int, include_settings: bool = False) -> dict[str, Any]:
    document, tree = await get_store().load_tree(post_id)
    payload = {
        **document.summary(),
        "exported_at": iso_timestamp(utc_now()),
        "structure": tree_ops.extract_outline(tree, include_settings=include_settings),
    }
    result = await _export(post_id, payload, "page-structure")
    return success(result, f"Page structure written to {result['file_path']}")


@_tool_guard
async def _backup_elementor_data_to_file_impl(post_id: int, backup_name: str | None = None) -> dict[str, Any]:
    document, tree = await get_store().load_tree(post_id)
    timestamp = iso_timestamp(utc_now())
    name = backup_name or f"backup_{timestamp}"
    payload = {
        "backup_name": name,
        "backup_type": "full_elementor_data",
        "timestamp": timestamp,
        "post_id": post_id,
        "post_type": document.post_type,
        "post_title": document.title,
        "elementor_data": tree,
    }
    result = await _export(post_id, payload, "backup-page")
    return success(
        {**result, "backup_name": name, "backup_type": "full_elementor_data"},
        f"Backup {name} written to {result['file_path']}",
    )


@_tool_guard
async def _clear_elementor_cache_by_page_impl(post_id: int) -> dict[str, Any]:
    store = get_store()
    document = await store.fetch(post_id)
    cache = await store.invalidator.invalidate(post_id, document.post_type)
    message = "Cache invalidation requested" if not cache["failed"] else "Cache invalidation partially failed"
    return success({"post_id": post_id, "post_type": document.post_type, **cache}, message)


# --------------------------------------------------------------------------------------
# Unavailable features

_PRO_DETAILS = "This feature requires Elementor Pro and server-side access that the WordPress REST API does not expose."
_SERVER_DETAILS = "This operation needs direct access to the WordPress server; it is not available over the REST API."

UNSUPPORTED_TOOLS: dict[str, tuple[str, str]] = {
    "rebuild_page_structure": ("Rebuilding page structure is not implemented", _SERVER_DETAILS),
    "create_elementor_template": ("Template creation is not available", _PRO_DETAILS),
    "apply_elementor_template": ("Template application is not available", _PRO_DETAILS),
    "export_elementor_template": ("Template export is not available", _PRO_DETAILS),
    "import_elementor_template": ("Template import is not available", _PRO_DETAILS),
    "get_elementor_global_colors": ("Global colors are not available", _PRO_DETAILS),
    "update_elementor_global_colors": ("Global colors are not available", _PRO_DETAILS),
    "get_elementor_global_fonts": ("Global fonts are not available", _PRO_DETAILS),
    "update_elementor_global_fonts": ("Global fonts are not available", _PRO_DETAILS),
    "manage_elementor_custom_fields": ("Custom field management is not available", _PRO_DETAILS),
    "add_dynamic_content": ("Dynamic content is not available", _PRO_DETAILS),
    "get_elementor_revisions": ("Elementor revisions are not available", _SERVER_DETAILS),
    "restore_elementor_revision": ("Elementor revisions are not available", _SERVER_DETAILS),
    "compare_elementor_revisions": ("Elementor revisions are not available", _SERVER_DETAILS),
    "regenerate_css": ("CSS regeneration is not available", _SERVER_DETAILS),
    "optimize_assets": ("Asset optimization is not available", _SERVER_DETAILS),
    "bulk_update_widget_settings": ("Bulk widget updates are not implemented", _SERVER_DETAILS),
    "replace_widget_content": ("Widget content replacement is not implemented", _SERVER_DETAILS),
}


def unsupported_response(name: str) -> dict[str, Any]:
    message, details = UNSUPPORTED_TOOLS[name]
    return failure(ElementorMcpError(UNSUPPORTED_OPERATION, f"{message}: {name}", details=details))


def _register_unsupported(name: str):
    async def _impl(post_id: int | None = None) -> dict[str, Any]:
        return unsupported_response(name)

    _impl.__name__ = f"_{name}_impl"
    return SERVER.tool(name=name, description=f"{UNSUPPORTED_TOOLS[name][0]}. Always returns a FEATURE_UNAVAILABLE error.")(_impl)


# --------------------------------------------------------------------------------------
# Registration

get_posts = SERVER.tool(name="get_posts", description="List WordPress posts (per_page, status, search).")(_get_posts_impl)
get_pages = SERVER.tool(name="get_pages", description="List WordPress pages (per_page, status, search).")(_get_pages_impl)
get_post = SERVER.tool(name="get_post", description="Get one WordPress post by id, including raw content.")(_get_post_impl)
get_page = SERVER.tool(name="get_page", description="Get one WordPress page by id, including raw content.")(_get_page_impl)
create_post = SERVER.tool(name="create_post", description="Create a WordPress post (defaults to draft).")(_create_post_impl)
create_page = SERVER.tool(name="create_page", description="Create a WordPress page (defaults to draft).")(_create_page_impl)
update_post = SERVER.tool(name="update_post", description="Update title, content, status or excerpt of a post.")(_update_post_impl)
update_page = SERVER.tool(name="update_page", description="Update title, content, status, excerpt or parent of a page.")(_update_page_impl)
upload_media = SERVER.tool(
    name="upload_media",
    description="Upload a local file to the WordPress media library, optionally setting title and alt text.",
)(_upload_media_impl)
get_media = SERVER.tool(
    name="get_media",
    description="List media library items, optionally filtered by media_type (image, video, audio, application).",
)(_get_media_impl)
list_all_content = SERVER.tool(
    name="list_all_content",
    description="List posts and pages (optionally every status) and rate each one's Elementor data as full, partial or none.",
)(_list_all_content_impl)
get_elementor_templates = SERVER.tool(
    name="get_elementor_templates",
    description="List saved Elementor library templates, optionally filtered by template_type (page, section, ...).",
)(_get_elementor_templates_impl)

get_elementor_data = SERVER.tool(
    name="get_elementor_data",
    description="Get the complete Elementor element tree of a post or page (posts are tried first, then pages).",
)(_get_elementor_data_impl)
update_elementor_data = SERVER.tool(
    name="update_elementor_data",
    description=(
        "Replace the whole Elementor tree of a post or page.\n\n"
        "elementor_data may be a JSON string or an array of elements; it is parsed and normalised before saving."
    ),
)(_update_elementor_data_impl)
get_elementor_widget = SERVER.tool(
    name="get_elementor_widget",
    description="Get one element (widget, column, section or container) by id.",
)(_get_elementor_widget_impl)
update_elementor_widget = SERVER.tool(
    name="update_elementor_widget",
    description=(
        "Update a widget.\n\n"
        "- widget_settings: merged into the existing settings.\n"
        "- widget_content: written to the text setting of html (html), text-editor (editor) and heading (title) widgets; "
        "ignored for other widget types."
    ),
)(_update_elementor_widget_impl)
update_elementor_section = SERVER.tool(
    name="update_elementor_section",
    description=(
        "Update several widgets inside one section in a single write.\n\n"
        "widgets_updates: list of {widget_id, widget_settings?, widget_content?}. Ids not found are reported in widgets_not_found."
    ),
)(_update_elementor_section_impl)
get_elementor_elements = SERVER.tool(
    name="get_elementor_elements",
    description="List every element as a flat pre-order list with nesting level; include_content adds 100 character text previews.",
)(_get_elementor_elements_impl)
get_page_structure = SERVER.tool(
    name="get_page_structure",
    description="Get the nested element outline (ids, types, levels); include_settings adds each element's settings.",
)(_get_page_structure_impl)
get_elementor_structure_summary = SERVER.tool(
    name="get_elementor_structure_summary",
    description="Summarise a page: element and widget counts, depth, and an outline cut at max_depth (default 4).",
)(_get_elementor_structure_summary_impl)
find_elements_by_type = SERVER.tool(
    name="find_elements_by_type",
    description="Find every widget of a given widgetType (e.g. heading, button, image).",
)(_find_elements_by_type_impl)
get_elementor_data_chunked = SERVER.tool(
    name="get_elementor_data_chunked",
    description=(
        "Page through the top-level elements of a large tree.\n\n"
        "chunk_size defaults to 5 and chunk_index to 0; an index past the last chunk is an error."
    ),
)(_get_elementor_data_chunked_impl)
get_elementor_data_smart = SERVER.tool(
    name="get_elementor_data_smart",
    description=(
        "Outline one top-level element at a time (element_index) down to max_depth, "
        "optionally with widget content previews; suited to pages too large to read at once."
    ),
)(_get_elementor_data_smart_impl)
validate_elementor_data = SERVER.tool(
    name="validate_elementor_data",
    description="Check the stored tree for missing ids, unknown element types and duplicate ids without changing it.",
)(_validate_elementor_data_impl)

create_elementor_section = SERVER.tool(
    name="create_elementor_section",
    description="Add a top-level section with N equal columns at position (appended when absent or out of range).",
)(_create_elementor_section_impl)
create_elementor_container = SERVER.tool(
    name="create_elementor_container",
    description="Add a top-level flexbox container at position (appended when absent or out of range).",
)(_create_elementor_container_impl)
add_column_to_section = SERVER.tool(
    name="add_column_to_section",
    description="Append empty columns to a section; existing column widths are left unchanged.",
)(_add_column_to_section_impl)
duplicate_section = SERVER.tool(
    name="duplicate_section",
    description="Copy a top-level section with fresh ids for every element; placed right after the original unless position is given.",
)(_duplicate_section_impl)
add_widget_to_section = SERVER.tool(
    name="add_widget_to_section",
    description=(
        "Add a new widget.\n\n"
        "- column_id: insert into that column.\n"
        "- section_id: insert into the section's first column.\n"
        "- neither: insert into the first column or container of the page.\n"
        "position is a zero-based index; absent or out of range appends."
    ),
)(_add_widget_to_section_impl)
insert_widget_at_position = SERVER.tool(
    name="insert_widget_at_position",
    description="Insert a new widget before, after or inside the target element.",
)(_insert_widget_at_position_impl)
clone_widget = SERVER.tool(
    name="clone_widget",
    description="Clone an element with fresh ids, placed before, after or inside target_element_id (defaults to after the original).",
)(_clone_widget_impl)
move_widget = SERVER.tool(
    name="move_widget",
    description="Move an element into a target column (or a target section's first column) at position.",
)(_move_widget_impl)
delete_elementor_element = SERVER.tool(
    name="delete_elementor_element",
    description="Delete an element and its children; reports the parent it was removed from.",
)(_delete_elementor_element_impl)
reorder_elements = SERVER.tool(
    name="reorder_elements",
    description="Reorder the children of one container; children missing from element_ids keep their order at the end.",
)(_reorder_elements_impl)
copy_element_settings = SERVER.tool(
    name="copy_element_settings",
    description="Copy settings from one element to another; without settings_to_copy the target's settings are replaced entirely.",
)(_copy_element_settings_impl)

backup_elementor_data = SERVER.tool(
    name="backup_elementor_data",
    description="Store a timestamped copy of the tree in a _elementor_data_backup_<ms> meta field of the same item.",
)(_backup_elementor_data_impl)
get_elementor_data_to_file = SERVER.tool(
    name="get_elementor_data_to_file",
    description="Write the tree to a JSON file in the server's temp directory and return its path and size.",
)(_get_elementor_data_to_file_impl)
get_page_structure_to_file = SERVER.tool(
    name="get_page_structure_to_file",
    description="Write the nested page outline to a JSON file in the server's temp directory.",
)(_get_page_structure_to_file_impl)
backup_elementor_data_to_file = SERVER.tool(
    name="backup_elementor_data_to_file",
    description="Write a named full backup of the tree to a JSON file in the server's temp directory.",
)(_backup_elementor_data_to_file_impl)
clear_elementor_cache_by_page = SERVER.tool(
    name="clear_elementor_cache_by_page",
    description="Ask WordPress to regenerate Elementor caches for one item; failures are reported, never raised.",
)(_clear_elementor_cache_by_page_impl)

UNSUPPORTED_TOOL_REGISTRY = {name: _register_unsupported(name) for name in UNSUPPORTED_TOOLS}

ENVELOPE_OUTPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "status": {"type": "string", "enum": ["success", "error"]},
        "data": {},
        "message": {"type": "string"},
    },
    "required": ["status", "data"],
    "allOf": [
        {
            "if": {"properties": {"status": {"const": "error"}}},
            "then": {
                "properties": {
                    "data": {
                        "type": "object",
                        "properties": {
                            "message": {"type": "string"},
                            "code": {"type": "string"},
                            "error_type": {"type": "string"},
                            "details": {},
                        },
                        "required": ["message", "code", "error_type", "details"],
                    }
                }
            },
        }
    ],
}

TOOLS = (
    get_posts,
    get_pages,
    get_post,
    get_page,
    create_post,
    create_page,
    update_post,
    update_page,
    upload_media,
    get_media,
    list_all_content,
    get_elementor_templates,
    get_elementor_data,
    update_elementor_data,
    get_elementor_widget,
    update_elementor_widget,
    update_elementor_section,
    get_elementor_elements,
    get_page_structure,
    get_elementor_structure_summary,
    find_elements_by_type,
    get_elementor_data_chunked,
    get_elementor_data_smart,
    validate_elementor_data,
    create_elementor_section,
    create_elementor_container,
    add_column_to_section,
    duplicate_section,
    add_widget_to_section,
    insert_widget_at_position,
    clone_widget,
    move_widget,
    delete_elementor_element,
    reorder_elements,
    copy_element_settings,
    backup_elementor_data,
    get_elementor_data_to_file,
    get_page_structure_to_file,
    backup_elementor_data_to_file,
    clear_elementor_cache_by_page,
    *UNSUPPORTED_TOOL_REGISTRY.values(),
)

for _tool in TOOLS:
    _tool.output_schema = ENVELOPE_OUTPUT_SCHEMA


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entrypoint for running the Elementor MCP server."""

    config = load_config(argv)
    configure_logging(config.log_level)
    LOGGER.info(
        "Configuration loaded",
        extra={
            "context": {
                "wordpress_base_url": config.wordpress_base_url,
                "wordpress_configured": config.wordpress_configured,
                "enable_stdio": config.enable_stdio,
                "enable_http": config.enable_http,
                "temp_dir": str(config.temp_dir),
            }
        },
    )

    initialize_app(config)
    try:
        if config.enable_http:
            http_config = HttpTransportConfig(
                host=config.http_host,
                port=config.http_port,
                path=config.http_path,
                transport=config.http_transport,
            )
            run_http(SERVER, http_config)
        else:
            run_stdio(SERVER)
    finally:
        shutdown_app()


if __name__ == "__main__":  # pragma: no cover - manual invocation only
    main()
