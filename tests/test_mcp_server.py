"""Tests for the MCP tool provider and the HTTP surface of the server."""

from __future__ import annotations

import asyncio

import pytest

from fastapi.testclient import TestClient
from mcp import types

from comfyui_mcp.mcp_server import ServerConfig, WorkflowMcpServer, WorkflowToolProvider
from comfyui_mcp.mcp_server.server import _watch_disconnect
from comfyui_mcp.service import WorkflowToolService
from comfyui_mcp.storage import InMemoryToolConfigSource, InMemoryWorkflowSource
from tests.helpers import (
    FakeExecutionClient,
    assert_tool_schema_invariants,
    classic_workflow,
    node_by_id,
    parse_single_text_content_json,
    txt2img_tool,
)

pytestmark = pytest.mark.unit


def _service(tools=None, client=None) -> WorkflowToolService:
    tools = [txt2img_tool(), txt2img_tool(name="orphan", workflowName=None)] if tools is None else tools
    return asyncio.run(
        WorkflowToolService.from_sources(
            InMemoryWorkflowSource({"txt2img": classic_workflow(), "upscale": classic_workflow()}),
            InMemoryToolConfigSource(tools),
            client,
        )
    )


@pytest.fixture
def server() -> WorkflowMcpServer:
    return WorkflowMcpServer(_service(), ServerConfig(port=3999))


@pytest.fixture
def http(server: WorkflowMcpServer) -> TestClient:
    # No context manager: the MCP session manager is not started for REST-only tests.
    return TestClient(server.app)


class TestWorkflowToolProvider:
    def test_list_tools(self):
        provider = WorkflowToolProvider(_service())

        tools = provider.list_tools()

        assert [t.name for t in tools] == ["txt2img", "orphan", "upscale"]
        assert all(isinstance(t, types.Tool) for t in tools)
        assert_tool_schema_invariants(tools[0], expected_name="txt2img")
        assert tools[0].inputSchema["required"] == ["positive_prompt"]
        assert tools[2].description == "Workflow upscale"

    @pytest.mark.asyncio
    async def test_call_tool_returns_json_result(self):
        service = await WorkflowToolService.from_sources(
            InMemoryWorkflowSource({"txt2img": classic_workflow()}),
            InMemoryToolConfigSource([txt2img_tool()]),
        )
        provider = WorkflowToolProvider(service)

        response = await provider.call_tool("txt2img", {"positive_prompt": "a heron"})
        payload = parse_single_text_content_json(response)

        assert payload["status"] == "ok"
        assert node_by_id(payload["graph"], 6)["inputs"]["text"] == "a heron"

    @pytest.mark.asyncio
    async def test_call_unknown_tool(self):
        provider = WorkflowToolProvider(
            await WorkflowToolService.from_sources(InMemoryWorkflowSource({}), InMemoryToolConfigSource(None))
        )

        payload = parse_single_text_content_json(await provider.call_tool("nope", {}))

        assert payload == {"status": "error", "tool": "nope", "params": {}, "message": "Tool nope not found."}

    @pytest.mark.asyncio
    async def test_call_with_non_object_arguments(self):
        provider = WorkflowToolProvider(
            await WorkflowToolService.from_sources(InMemoryWorkflowSource({}), InMemoryToolConfigSource(None))
        )

        payload = parse_single_text_content_json(await provider.call_tool("x", ["a"]))

        assert payload["status"] == "error"


class TestMcpServerWiring:
    def test_handlers_registered(self, server: WorkflowMcpServer):
        assert types.ListToolsRequest in server.mcp_server.request_handlers
        assert types.CallToolRequest in server.mcp_server.request_handlers

    def test_config_defaults(self):
        config = ServerConfig()
        assert config.port == 3000
        assert config.transport == "streamable-http"


class TestHttpRoutes:
    @pytest.mark.parametrize("path", ["/health", "/healthz"])
    def test_health(self, http: TestClient, path: str):
        response = http.get(path)

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["tools"] == 3

    def test_list_tools(self, http: TestClient):
        response = http.get("/tools")

        assert response.status_code == 200
        tools = response.json()["tools"]
        assert [t["name"] for t in tools] == ["txt2img", "orphan", "upscale"]
        assert tools[1]["workflow"] is None

    def test_invoke(self, http: TestClient):
        response = http.post("/invoke", json={"tool": "txt2img", "params": {"positive_prompt": "a heron"}})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert node_by_id(body["graph"], 6)["inputs"]["text"] == "a heron"

    def test_invoke_without_params(self, http: TestClient):
        response = http.post("/invoke", json={"tool": "upscale"})

        assert response.status_code == 200
        assert response.json()["graph"] == classic_workflow()

    def test_unknown_tool_is_404(self, http: TestClient):
        response = http.post("/invoke", json={"tool": "nope"})

        assert response.status_code == 404
        assert response.json()["message"] == "Tool nope not found."

    def test_error_result_is_400(self, http: TestClient):
        response = http.post("/invoke", json={"tool": "orphan", "params": {}})

        assert response.status_code == 400
        assert response.json()["status"] == "error"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"content": b"{not json", "headers": {"content-type": "application/json"}},
            {"json": {"params": {}}},
            {"json": {"tool": "txt2img", "params": ["a"]}},
            {"json": ["txt2img"]},
        ],
    )
    def test_malformed_request_is_400(self, http: TestClient, kwargs):
        response = http.post("/invoke", **kwargs)

        assert response.status_code == 400
        assert response.json()["status"] == "error"

    def test_invoke_with_execution_client(self):
        client = FakeExecutionClient()
        http = TestClient(WorkflowMcpServer(_service(client=client)).app)

        response = http.post("/invoke", json={"tool": "txt2img", "params": {"positive_prompt": "x"}})

        assert response.status_code == 200
        assert response.json()["resultReference"] == client.result
        assert isinstance(client.awaited[0]["cancel_event"], asyncio.Event)


class TestDisconnectWatcher:
    @pytest.mark.asyncio
    async def test_sets_cancel_event_on_disconnect(self):
        class _Request:
            def __init__(self):
                self.calls = 0

            async def is_disconnected(self) -> bool:
                self.calls += 1
                return self.calls > 1

        cancel = asyncio.Event()
        await asyncio.wait_for(_watch_disconnect(_Request(), cancel), timeout=5)

        assert cancel.is_set()
