from __future__ import annotations

from typing import Any

import pytest
from fastmcp import FastMCP

from elementor_mcp.transports.http import HttpTransportConfig, describe_routes, run_http


def test_describe_routes_normalises_path() -> None:
    config = HttpTransportConfig(host="127.0.0.1", port=1234, path="mcp/", transport="sse")

    assert describe_routes(config) == {"sse": "/mcp"}


@pytest.mark.parametrize("transport", ["http", "sse"])
def test_run_http_invokes_uvicorn(monkeypatch: pytest.MonkeyPatch, transport: str) -> None:
    captured: dict[str, Any] = {}

    class DummyConfig:  # mimics uvicorn.Config signature
        def __init__(self, app, host, port, **kwargs):
            captured["app"] = app
            captured["host"] = host
            captured["port"] = port
            captured["kwargs"] = kwargs

    class DummyServer:
        def __init__(self, config):
            captured["config"] = config

        async def serve(self) -> None:
            captured["served"] = True

    monkeypatch.setattr("elementor_mcp.transports.http.uvicorn.Config", DummyConfig)
    monkeypatch.setattr("elementor_mcp.transports.http.uvicorn.Server", DummyServer)

    server = FastMCP(name="test-http")
    run_http(server, HttpTransportConfig(host="127.0.0.1", port=0, path="/mcp", transport=transport))

    assert captured["host"] == "127.0.0.1"
    assert captured["port"] == 0
    assert captured["kwargs"] == {"timeout_graceful_shutdown": 0, "lifespan": "on"}
    assert captured["served"] is True
    assert captured["app"].state.path == "/mcp"


def test_run_http_propagates_failures(monkeypatch: pytest.MonkeyPatch) -> None:
    class ExplodingServer:
        def __init__(self, config):
            pass

        async def serve(self) -> None:
            raise OSError("address in use")

    monkeypatch.setattr("elementor_mcp.transports.http.uvicorn.Config", lambda app, **kwargs: None)
    monkeypatch.setattr("elementor_mcp.transports.http.uvicorn.Server", ExplodingServer)

    with pytest.raises(OSError):
        run_http(FastMCP(name="test-http"), HttpTransportConfig(host="127.0.0.1", port=0, path="/mcp"))
