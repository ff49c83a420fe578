from __future__ import annotations

import copy
import json
from typing import Any

import httpx
import pytest

from elementor_mcp import load_config
from elementor_mcp.server import initialize_app, shutdown_app

BASE_URL = "https://wp.example.com"

WORDPRESS_ENV = {
    "WORDPRESS_BASE_URL": BASE_URL,
    "WORDPRESS_USERNAME": "editor",
    "WORDPRESS_APPLICATION_PASSWORD": "abcd efgh ijkl mnop",
}


def sample_tree() -> list[dict[str, Any]]:
    return [
        {
            "id": "sec1",
            "elType": "section",
            "settings": {"layout": "boxed"},
            "elements": [
                {
                    "id": "col1",
                    "elType": "column",
                    "settings": {"_column_size": 50},
                    "elements": [
                        {
                            "id": "head1",
                            "elType": "widget",
                            "widgetType": "heading",
                            "settings": {"title": "Welcome", "align": "center"},
                            "elements": [],
                        },
                        {
                            "id": "text1",
                            "elType": "widget",
                            "widgetType": "text-editor",
                            "settings": {"editor": "<p>Hello there</p>"},
                            "elements": [],
                        },
                    ],
                },
                {
                    "id": "col2",
                    "elType": "column",
                    "settings": {"_column_size": 50},
                    "elements": [
                        {
                            "id": "btn1",
                            "elType": "widget",
                            "widgetType": "button",
                            "settings": {"text": "Go", "size": "lg"},
                            "elements": [],
                        }
                    ],
                },
            ],
        },
        {
            "id": "cont1",
            "elType": "container",
            "settings": {"flex_direction": "row"},
            "elements": [
                {
                    "id": "html1",
                    "elType": "widget",
                    "widgetType": "html",
                    "settings": {"html": "<b>raw</b>"},
                    "elements": [],
                }
            ],
        },
    ]


class FakeWordPress:
    """In-memory ``wp-json`` API answering through ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.items: dict[str, dict[int, dict[str, Any]]] = {
            "posts": {},
            "pages": {},
            "media": {},
            "elementor_library": {},
        }
        self.requests: list[httpx.Request] = []
        self.endpoint_calls: list[tuple[str, Any]] = []
        self.failures: dict[str, int] = {}
        self._next_id = 500

    def add(
        self,
        collection: str,
        item_id: int,
        *,
        title: str = "",
        tree: Any = None,
        raw_data: str | None = None,
        edit_mode: str = "builder",
        status: str = "publish",
    ) -> dict[str, Any]:
        meta: dict[str, Any] = {"_elementor_edit_mode": edit_mode, "_elementor_version": "3.20.0"}
        if tree is not None:
            meta["_elementor_data"] = json.dumps(tree)
        elif raw_data is not None:
            meta["_elementor_data"] = raw_data
        item = {
            "id": item_id,
            "type": collection.rstrip("s"),
            "title": {"raw": title, "rendered": title},
            "content": {"raw": "", "rendered": ""},
            "excerpt": {"raw": "", "rendered": ""},
            "status": status,
            "slug": title.lower().replace(" ", "-"),
            "link": f"{BASE_URL}/?p={item_id}",
            "meta": meta,
        }
        self.items[collection][item_id] = item
        return item

    def stored_tree(self, collection: str, item_id: int) -> Any:
        return json.loads(self.items[collection][item_id]["meta"]["_elementor_data"])

    def writes(self, path: str) -> list[dict[str, Any]]:
        return [
            json.loads(request.content)
            for request in self.requests
            if request.method == "POST" and request.url.path == f"/wp-json/{path}"
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/wp-json/")
        if path in self.failures:
            status = self.failures[path]
            return httpx.Response(status, json={"code": "rest_error", "message": f"Forced failure {status}"})

        parts = path.split("/")
        if parts[:2] != ["wp", "v2"]:
            self.endpoint_calls.append((path, json.loads(request.content or b"null")))
            return httpx.Response(200, json={"ok": True})

        collection = parts[2]
        if len(parts) == 3:
            if request.method == "GET":
                return httpx.Response(200, json=self._list(collection, request.url.params))
            return httpx.Response(201, json=self._create(collection, request))

        item = self.items.get(collection, {}).get(int(parts[3]))
        if item is None:
            return httpx.Response(404, json={"code": "rest_post_invalid_id", "message": "Invalid post ID."})
        if request.method == "POST":
            self._update(item, json.loads(request.content))
        return httpx.Response(200, json=item)

    def _list(self, collection: str, params: httpx.QueryParams) -> list[dict[str, Any]]:
        items = list(self.items[collection].values())
        if params.get("status"):
            items = [item for item in items if item["status"] == params["status"]]
        if params.get("search"):
            needle = params["search"].lower()
            items = [item for item in items if needle in item["title"]["raw"].lower()]
        if params.get("media_type"):
            items = [item for item in items if item.get("media_type") == params["media_type"]]
        if params.get("meta_key"):
            key = params["meta_key"]
            items = [item for item in items if key in item.get("meta", {})]
            if params.get("meta_value"):
                items = [item for item in items if item["meta"][key] == params["meta_value"]]
        return items[: int(params.get("per_page", 10))]

    def _create(self, collection: str, request: httpx.Request) -> dict[str, Any]:
        self._next_id += 1
        if collection == "media":
            disposition = request.headers.get("content-disposition", "")
            filename = disposition.split("filename=")[-1].strip('"')
            item = {
                "id": self._next_id,
                "title": {"raw": filename, "rendered": filename},
                "source_url": f"{BASE_URL}/wp-content/uploads/{filename}",
                "mime_type": request.headers.get("content-type"),
                "media_type": "image" if request.headers.get("content-type", "").startswith("image/") else "file",
                "alt_text": "",
                "size": len(request.content),
            }
            self.items["media"][self._next_id] = item
            return item
        payload = json.loads(request.content)
        item = self.add(collection, self._next_id, title=payload.get("title", ""), status=payload.get("status", "draft"))
        self._update(item, payload)
        return item

    @staticmethod
    def _update(item: dict[str, Any], payload: dict[str, Any]) -> None:
        for key, value in payload.items():
            if key == "meta":
                item.setdefault("meta", {}).update(value)
            elif key in {"title", "content", "excerpt"}:
                item[key] = {"raw": value, "rendered": value}
            else:
                item[key] = value


@pytest.fixture
def wordpress() -> FakeWordPress:
    fake = FakeWordPress()
    fake.add("posts", 10, title="Landing Post", tree=sample_tree())
    fake.add("pages", 20, title="About Page", tree=sample_tree())
    fake.add("posts", 30, title="Plain Post", edit_mode="")
    fake.add("pages", 40, title="Broken Page", raw_data="{broken")
    return fake


@pytest.fixture
def app(tmp_path, wordpress):
    environ = {
        **WORDPRESS_ENV,
        "ELEMENTOR_MCP_TEMP_DIR": str(tmp_path / "exports"),
        "ELEMENTOR_MCP_ENABLE_STDIO": "true",
    }
    config = load_config(argv=[], environ=environ)
    initialize_app(config, transport=httpx.MockTransport(wordpress.handler))
    yield config
    shutdown_app()


@pytest.fixture
def elementor_tree() -> list[dict[str, Any]]:
    return copy.deepcopy(sample_tree())


@pytest.fixture
def wordpress_env() -> dict[str, str]:
    return dict(WORDPRESS_ENV)
