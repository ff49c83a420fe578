from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

from elementor_mcp import load_config
from elementor_mcp.server import (
    _backup_elementor_data_impl,
    _backup_elementor_data_to_file_impl,
    _clear_elementor_cache_by_page_impl,
    _get_elementor_data_to_file_impl,
    _get_page_structure_to_file_impl,
    _update_elementor_widget_impl,
    initialize_app,
    shutdown_app,
)


@pytest.mark.asyncio
async def test_backup_to_meta_stores_snapshot(app, wordpress, elementor_tree) -> None:
    response = await _backup_elementor_data_impl(10, backup_name="before-redesign")

    assert response["status"] == "success"
    data = response["data"]
    assert data["backup_key"].startswith("_elementor_data_backup_")
    assert data["backup_name"] == "before-redesign"
    assert data["elements"] == 2

    record = json.loads(wordpress.items["posts"][10]["meta"][data["backup_key"]])
    assert record["post_id"] == 10
    assert record["post_type"] == "post"
    assert record["post_title"] == "Landing Post"
    assert json.loads(record["elementor_data"]) == elementor_tree


@pytest.mark.asyncio
async def test_backup_default_name_uses_timestamp(app) -> None:
    response = await _backup_elementor_data_impl(20)

    data = response["data"]
    assert data["post_type"] == "page"
    assert data["backup_name"] == f"backup_{data['timestamp']}"
    assert data["timestamp"].endswith("Z")


@pytest.mark.asyncio
async def test_data_export_writes_json_file(app, elementor_tree) -> None:
    response = await _get_elementor_data_to_file_impl(10)

    assert response["status"] == "success"
    data = response["data"]
    path = Path(data["file_path"])
    assert path.parent.resolve() == app.temp_dir.resolve()
    assert path.name.startswith("page-10-")
    assert ":" not in path.name
    assert data["size_bytes"] == path.stat().st_size
    assert data["element_count"] == 2
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["elementor_data"] == elementor_tree
    assert payload["post_type"] == "post"


@pytest.mark.asyncio
async def test_structure_export_writes_outline(app) -> None:
    response = await _get_page_structure_to_file_impl(20, include_settings=True)

    path = Path(response["data"]["file_path"])
    assert path.name.startswith("page-structure-20-")
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["structure"][0]["id"] == "sec1"
    assert payload["structure"][0]["settings"] == {"layout": "boxed"}


@pytest.mark.asyncio
async def test_backup_to_file(app, elementor_tree) -> None:
    response = await _backup_elementor_data_to_file_impl(20, backup_name="nightly")

    data = response["data"]
    assert data["backup_name"] == "nightly"
    path = Path(data["file_path"])
    assert path.name.startswith("backup-page-20-")
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["backup_type"] == "full_elementor_data"
    assert payload["post_title"] == "About Page"
    assert payload["elementor_data"] == elementor_tree


@pytest.mark.asyncio
async def test_export_of_missing_item_writes_nothing(app) -> None:
    response = await _get_elementor_data_to_file_impl(999)

    assert response["data"]["code"] == "NOT_FOUND"
    assert not app.temp_dir.exists() or not any(app.temp_dir.iterdir())


@pytest.fixture
def app_with_endpoints(tmp_path, wordpress, wordpress_env):
    environ = {
        **wordpress_env,
        "ELEMENTOR_MCP_TEMP_DIR": str(tmp_path / "exports"),
        "ELEMENTOR_MCP_CACHE_FLUSH_ENDPOINTS": "elementor/v1/cache, custom/v1/flush",
    }
    config = load_config(argv=[], environ=environ)
    initialize_app(config, transport=httpx.MockTransport(wordpress.handler))
    yield config
    shutdown_app()


@pytest.mark.asyncio
async def test_clear_cache_reports_partial_failure(app_with_endpoints, wordpress) -> None:
    wordpress.failures["custom/v1/flush"] = 500

    response = await _clear_elementor_cache_by_page_impl(20)

    assert response["status"] == "success"
    assert response["message"] == "Cache invalidation partially failed"
    data = response["data"]
    assert data["post_type"] == "page"
    assert data["cleared"] == ["_elementor_css", "elementor/v1/cache"]
    assert data["failed"] == ["custom/v1/flush"]
    assert ("elementor/v1/cache", {"post_id": 20}) in wordpress.endpoint_calls


@pytest.mark.asyncio
async def test_cache_failures_never_fail_writes(app_with_endpoints, wordpress) -> None:
    wordpress.failures["elementor/v1/cache"] = 503
    wordpress.failures["custom/v1/flush"] = 404

    response = await _update_elementor_widget_impl(10, "head1", widget_content="Still saved")

    assert response["status"] == "success"
    assert response["data"]["cache"]["failed"] == ["elementor/v1/cache", "custom/v1/flush"]
    assert wordpress.stored_tree("posts", 10)[0]["elements"][0]["elements"][0]["settings"]["title"] == "Still saved"
