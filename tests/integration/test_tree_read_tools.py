from __future__ import annotations

import pytest

from elementor_mcp.server import (
    _find_elements_by_type_impl,
    _get_elementor_data_chunked_impl,
    _get_elementor_data_impl,
    _get_elementor_data_smart_impl,
    _get_elementor_elements_impl,
    _get_elementor_structure_summary_impl,
    _get_elementor_widget_impl,
    _get_page_structure_impl,
    _validate_elementor_data_impl,
)


@pytest.mark.asyncio
async def test_get_elementor_data_reads_post(app, elementor_tree) -> None:
    response = await _get_elementor_data_impl(10)

    assert response["status"] == "success"
    data = response["data"]
    assert data["post_type"] == "post"
    assert data["title"] == "Landing Post"
    assert data["edit_mode"] == "builder"
    assert data["elementor_data"] == elementor_tree
    assert data["element_count"] == 2


@pytest.mark.asyncio
async def test_get_elementor_data_falls_back_to_page(app, wordpress) -> None:
    response = await _get_elementor_data_impl(20)

    assert response["status"] == "success"
    assert response["data"]["post_type"] == "page"
    paths = [request.url.path for request in wordpress.requests]
    assert paths[:2] == ["/wp-json/wp/v2/posts/20", "/wp-json/wp/v2/pages/20"]


@pytest.mark.asyncio
async def test_get_elementor_data_unknown_id_is_not_found(app) -> None:
    response = await _get_elementor_data_impl(999)

    assert response["status"] == "error"
    error = response["data"]
    assert error["code"] == "NOT_FOUND"
    assert error["error_type"] == "NOT_FOUND"
    assert error["message"] == "Post/Page ID 999 not found"


@pytest.mark.asyncio
async def test_corrupt_tree_reports_parse_failure_with_diagnostics(app) -> None:
    response = await _get_elementor_data_impl(40)

    assert response["status"] == "error"
    error = response["data"]
    assert error["code"] == "PARSE_ERROR"
    assert error["error_type"] == "DATA_ERROR"
    assert error["message"].startswith("Failed to get Elementor data for post/page ID 40: JSON parse failed")
    assert error["details"]["raw_data"] == "{broken"
    assert "Found as page (ID: 40)" in error["details"]["debug_info"]


@pytest.mark.asyncio
async def test_item_without_builder_data_is_reported(app) -> None:
    response = await _get_elementor_data_impl(30)

    assert response["status"] == "error"
    assert response["data"]["code"] == "PARSE_ERROR"
    assert "does not use Elementor builder" in response["data"]["details"]["debug_info"]


@pytest.mark.asyncio
async def test_get_elementor_widget_returns_nested_node(app) -> None:
    response = await _get_elementor_widget_impl(10, "btn1")

    assert response["status"] == "success"
    assert response["data"]["widget"]["settings"] == {"text": "Go", "size": "lg"}

    missing = await _get_elementor_widget_impl(10, "nope")
    assert missing["status"] == "error"
    assert missing["data"]["message"] == "Widget ID nope not found in Elementor data"


@pytest.mark.asyncio
async def test_get_elementor_elements_flattens_with_previews(app) -> None:
    response = await _get_elementor_elements_impl(10, include_content=True)

    assert response["status"] == "success"
    elements = response["data"]["elements"]
    assert [element["id"] for element in elements] == ["sec1", "col1", "head1", "text1", "col2", "btn1", "cont1", "html1"]
    by_id = {element["id"]: element for element in elements}
    assert by_id["head1"]["contentPreview"] == "Welcome"
    assert by_id["head1"]["level"] == 2
    assert "contentPreview" not in by_id["btn1"]
    assert response["data"]["total_elements"] == 8


@pytest.mark.asyncio
async def test_get_page_structure_nests_children(app) -> None:
    response = await _get_page_structure_impl(10, include_settings=True)

    structure = response["data"]["structure"]
    assert structure[0]["id"] == "sec1"
    assert structure[0]["settings"] == {"layout": "boxed"}
    assert [child["id"] for child in structure[0]["children"]] == ["col1", "col2"]


@pytest.mark.asyncio
async def test_structure_summary_counts_types(app) -> None:
    response = await _get_elementor_structure_summary_impl(10, max_depth=2)

    data = response["data"]
    assert data["total_elements"] == 8
    assert data["depth"] == 3
    assert data["element_types"] == {"section": 1, "column": 2, "widget": 4, "container": 1}
    assert data["widget_types"]["heading"] == 1
    column = data["outline"][0]["children"][0]
    assert column["truncated_children"] == 2

    invalid = await _get_elementor_structure_summary_impl(10, max_depth=0)
    assert invalid["data"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_find_elements_by_type(app) -> None:
    response = await _find_elements_by_type_impl(20, "html")

    assert response["data"]["count"] == 1
    assert response["data"]["elements"][0] == {"id": "html1", "widgetType": "html", "settings": {"html": "<b>raw</b>"}}

    none = await _find_elements_by_type_impl(20, "image", include_settings=False)
    assert none["data"]["count"] == 0


@pytest.mark.asyncio
async def test_chunked_read_reports_pagination(app) -> None:
    response = await _get_elementor_data_chunked_impl(10, chunk_size=1, chunk_index=1)

    data = response["data"]
    assert [node["id"] for node in data["chunk_data"]] == ["cont1"]
    assert data["chunk_info"]["total_chunks"] == 2
    assert data["pagination"] == {
        "has_next_chunk": False,
        "has_previous_chunk": True,
        "next_chunk_index": None,
        "previous_chunk_index": 0,
    }

    out_of_range = await _get_elementor_data_chunked_impl(10, chunk_size=5, chunk_index=1)
    assert out_of_range["status"] == "error"
    assert out_of_range["data"]["message"] == "Chunk index 1 is out of range. Total chunks: 1"


@pytest.mark.asyncio
async def test_validate_reports_duplicates(app, wordpress, elementor_tree) -> None:
    tree = elementor_tree
    tree[1]["elements"][0]["id"] = "head1"
    wordpress.add("posts", 11, title="Dupes", tree=tree)

    response = await _validate_elementor_data_impl(11)

    assert response["status"] == "success"
    assert response["data"]["valid"] is True
    assert response["data"]["duplicate_ids"] == ["head1"]

    clean = await _validate_elementor_data_impl(10)
    assert clean["data"]["duplicate_ids"] == []
    assert clean["message"] == "Elementor data is valid"


@pytest.mark.asyncio
async def test_smart_read_outlines_one_top_level_element(app) -> None:
    response = await _get_elementor_data_smart_impl(10)

    assert response["status"] == "success"
    data = response["data"]
    assert data["element_index"] == 0
    assert data["total_elements"] == 2
    assert data["navigation"] == {"has_previous": False, "has_next": True, "previous_index": None, "next_index": 1}
    section = data["element"]
    assert section["id"] == "sec1"
    assert [column["id"] for column in section["children"]] == ["col1", "col2"]
    assert section["children"][0]["truncated_children"] == 2
    assert "children" not in section["children"][0]
    assert response["message"] == "Element 1 of 2"


@pytest.mark.asyncio
async def test_smart_read_with_depth_and_previews(app) -> None:
    deep = await _get_elementor_data_smart_impl(10, max_depth=3, include_widget_previews=True)
    widgets = deep["data"]["element"]["children"][0]["children"]
    assert [(widget["id"], widget.get("contentPreview")) for widget in widgets] == [
        ("head1", "Welcome"),
        ("text1", "<p>Hello there</p>"),
    ]

    last = await _get_elementor_data_smart_impl(20, element_index=1)
    assert last["data"]["element"]["id"] == "cont1"
    assert last["data"]["element"]["children"][0]["id"] == "html1"
    assert "contentPreview" not in last["data"]["element"]["children"][0]
    assert last["data"]["navigation"]["has_next"] is False
    assert last["data"]["navigation"]["previous_index"] == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("arguments", [{"element_index": 2}, {"element_index": -1}, {"max_depth": 0}])
async def test_smart_read_rejects_out_of_range_arguments(app, arguments) -> None:
    response = await _get_elementor_data_smart_impl(10, **arguments)

    assert response["status"] == "error"
    assert response["data"]["code"] == "VALIDATION_ERROR"
