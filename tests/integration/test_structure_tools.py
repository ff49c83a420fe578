from __future__ import annotations

import pytest

from elementor_mcp.server import (
    _add_column_to_section_impl,
    _add_widget_to_section_impl,
    _clone_widget_impl,
    _copy_element_settings_impl,
    _create_elementor_container_impl,
    _create_elementor_section_impl,
    _delete_elementor_element_impl,
    _duplicate_section_impl,
    _insert_widget_at_position_impl,
    _move_widget_impl,
    _reorder_elements_impl,
)


def _child_ids(node):
    return [child["id"] for child in node["elements"]]


@pytest.mark.asyncio
async def test_create_section_with_equal_columns(app, wordpress) -> None:
    response = await _create_elementor_section_impl(10, position=0, columns=3, section_settings={"gap": "wide"})

    assert response["status"] == "success"
    data = response["data"]
    assert data["index"] == 0
    assert data["parent_type"] == "top-level"
    stored = wordpress.stored_tree("posts", 10)
    section = stored[0]
    assert section["id"] == data["section_id"]
    assert section["settings"] == {"gap": "wide"}
    assert _child_ids(section) == data["column_ids"]
    assert [column["settings"]["_column_size"] for column in section["elements"]] == [33, 33, 33]
    assert [node["id"] for node in stored[1:]] == ["sec1", "cont1"]


@pytest.mark.asyncio
async def test_create_section_on_item_without_tree(app, wordpress) -> None:
    response = await _create_elementor_section_impl(30)

    assert response["status"] == "success"
    stored = wordpress.stored_tree("posts", 30)
    assert len(stored) == 1
    assert stored[0]["elType"] == "section"


@pytest.mark.asyncio
async def test_create_section_refuses_corrupt_tree(app, wordpress) -> None:
    response = await _create_elementor_section_impl(40)

    assert response["data"]["code"] == "PARSE_ERROR"
    assert wordpress.items["pages"][40]["meta"]["_elementor_data"] == "{broken"


@pytest.mark.asyncio
async def test_create_section_needs_a_column(app) -> None:
    response = await _create_elementor_section_impl(10, columns=0)

    assert response["data"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_create_container_out_of_range_position_appends(app, wordpress) -> None:
    response = await _create_elementor_container_impl(10, position=99, container_settings={"flex_direction": "column"})

    assert response["data"]["index"] == 2
    stored = wordpress.stored_tree("posts", 10)
    assert stored[2]["id"] == response["data"]["container_id"]
    assert stored[2]["elType"] == "container"


@pytest.mark.asyncio
async def test_add_columns_leaves_existing_widths(app, wordpress) -> None:
    response = await _add_column_to_section_impl(10, "sec1", columns_to_add=2)

    assert response["data"]["total_columns"] == 4
    section = wordpress.stored_tree("posts", 10)[0]
    sizes = [column["settings"]["_column_size"] for column in section["elements"]]
    assert sizes == [50, 50, 25, 25]
    assert _child_ids(section)[2:] == response["data"]["added_column_ids"]

    not_section = await _add_column_to_section_impl(10, "col1")
    assert not_section["data"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_duplicate_section_places_copy_after_original(app, wordpress) -> None:
    response = await _duplicate_section_impl(10, "sec1")

    assert response["status"] == "success"
    stored = wordpress.stored_tree("posts", 10)
    assert [node["id"] for node in stored][0] == "sec1"
    copy = stored[1]
    assert copy["id"] == response["data"]["new_section_id"] != "sec1"
    assert set(_child_ids(copy)).isdisjoint({"col1", "col2"})
    assert copy["elements"][0]["elements"][0]["settings"] == {"title": "Welcome", "align": "center"}
    assert stored[2]["id"] == "cont1"

    nested = await _duplicate_section_impl(10, "col1")
    assert nested["data"]["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_add_widget_targets(app, wordpress) -> None:
    into_column = await _add_widget_to_section_impl(10, "image", column_id="col2", position=0)
    assert into_column["data"]["parent_id"] == "col2"
    assert into_column["data"]["index"] == 0

    into_section = await _add_widget_to_section_impl(10, "spacer", section_id="sec1", widget_settings={"space": 20})
    assert into_section["data"]["parent_id"] == "col1"
    assert into_section["data"]["index"] == 2

    anywhere = await _add_widget_to_section_impl(10, "divider")
    assert anywhere["data"]["parent_id"] == "col1"
    assert anywhere["data"]["index"] == 3

    stored = wordpress.stored_tree("posts", 10)
    col1, col2 = stored[0]["elements"]
    assert [node.get("widgetType") for node in col1["elements"]] == ["heading", "text-editor", "spacer", "divider"]
    assert col1["elements"][2]["settings"] == {"space": 20}
    assert col2["elements"][0]["widgetType"] == "image"

    missing = await _add_widget_to_section_impl(10, "image", column_id="nope")
    assert missing["data"]["message"] == "Column ID nope not found in Elementor data"


@pytest.mark.asyncio
async def test_add_widget_without_any_column_is_an_error(app, wordpress) -> None:
    wordpress.add("posts", 12, title="Widgets only", tree=[{"id": "w", "elType": "widget", "widgetType": "html", "elements": []}])

    response = await _add_widget_to_section_impl(12, "heading")

    assert response["data"]["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_insert_widget_relative_to_target(app, wordpress) -> None:
    before = await _insert_widget_at_position_impl(10, "heading", "text1", "before", {"title": "Sub"})
    assert before["data"]["index"] == 1
    assert before["data"]["parent_id"] == "col1"

    inside = await _insert_widget_at_position_impl(10, "button", "cont1", "inside")
    assert inside["data"]["parent_id"] == "cont1"
    assert inside["data"]["index"] == 1

    stored = wordpress.stored_tree("posts", 10)
    assert _child_ids(stored[0]["elements"][0]) == ["head1", before["data"]["widget_id"], "text1"]
    assert _child_ids(stored[1]) == ["html1", inside["data"]["widget_id"]]

    bad = await _insert_widget_at_position_impl(10, "button", "cont1", "middle")
    assert bad["data"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_insert_after_top_level_element(app, wordpress) -> None:
    response = await _insert_widget_at_position_impl(10, "html", "sec1", "after")

    assert response["data"]["parent_type"] == "top-level"
    assert response["data"]["parent_id"] is None
    assert [node["id"] for node in wordpress.stored_tree("posts", 10)] == ["sec1", response["data"]["widget_id"], "cont1"]


@pytest.mark.asyncio
async def test_clone_widget_copies_settings_with_fresh_id(app, wordpress) -> None:
    response = await _clone_widget_impl(10, "btn1")

    data = response["data"]
    assert data["cloned_widget_id"] != "btn1"
    column = wordpress.stored_tree("posts", 10)[0]["elements"][1]
    assert _child_ids(column) == ["btn1", data["cloned_widget_id"]]
    assert column["elements"][1]["settings"] == column["elements"][0]["settings"]


@pytest.mark.asyncio
async def test_clone_widget_into_other_container(app, wordpress) -> None:
    response = await _clone_widget_impl(10, "head1", target_element_id="cont1", insert_position="inside")

    container = wordpress.stored_tree("posts", 10)[1]
    assert _child_ids(container) == ["html1", response["data"]["cloned_widget_id"]]


@pytest.mark.asyncio
async def test_move_widget_between_columns(app, wordpress) -> None:
    response = await _move_widget_impl(10, "btn1", target_column_id="col1", position=0)

    assert response["data"]["parent_id"] == "col1"
    col1, col2 = wordpress.stored_tree("posts", 10)[0]["elements"]
    assert _child_ids(col1) == ["btn1", "head1", "text1"]
    assert col2["elements"] == []


@pytest.mark.asyncio
async def test_move_widget_errors(app, wordpress) -> None:
    no_target = await _move_widget_impl(10, "btn1")
    assert no_target["data"]["code"] == "NOT_FOUND"
    assert no_target["data"]["message"] == "Target location not found. Specify a target section or column."

    into_itself = await _move_widget_impl(10, "sec1", target_column_id="col1")
    assert into_itself["data"]["code"] == "VALIDATION_ERROR"
    assert wordpress.writes("wp/v2/posts/10") == []


@pytest.mark.asyncio
async def test_delete_reports_parent(app, wordpress) -> None:
    nested = await _delete_elementor_element_impl(10, "btn1")
    assert nested["data"]["parent_id"] == "col2"
    assert nested["data"]["parent_type"] == "column"
    assert nested["data"]["remaining_siblings"] == 0
    assert nested["data"]["deleted_widget_type"] == "button"

    top = await _delete_elementor_element_impl(10, "cont1")
    assert top["data"]["parent_type"] == "top-level"
    assert top["data"]["remaining_siblings"] == 1

    missing = await _delete_elementor_element_impl(10, "btn1")
    assert missing["data"]["code"] == "NOT_FOUND"
    assert [node["id"] for node in wordpress.stored_tree("posts", 10)] == ["sec1"]


@pytest.mark.asyncio
async def test_reorder_keeps_unlisted_children(app, wordpress) -> None:
    response = await _reorder_elements_impl(10, "col1", ["text1", "ghost"])

    assert response["data"]["new_order"] == ["text1", "head1"]
    assert _child_ids(wordpress.stored_tree("posts", 10)[0]["elements"][0]) == ["text1", "head1"]


@pytest.mark.asyncio
async def test_copy_selected_and_all_settings(app, wordpress) -> None:
    selected = await _copy_element_settings_impl(10, "head1", "text1", ["align", "missing"])
    assert selected["data"]["copied_settings"] == ["align"]
    assert selected["data"]["skipped_settings"] == ["missing"]
    text = wordpress.stored_tree("posts", 10)[0]["elements"][0]["elements"][1]
    assert text["settings"] == {"editor": "<p>Hello there</p>", "align": "center"}

    everything = await _copy_element_settings_impl(10, "btn1", "html1")
    assert everything["data"]["copied_settings"] == "all"
    html = wordpress.stored_tree("posts", 10)[1]["elements"][0]
    assert html["settings"] == {"text": "Go", "size": "lg"}
