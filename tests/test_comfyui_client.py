"""Tests for the ComfyUI HTTP client, against a mocked transport."""

from __future__ import annotations

import asyncio
import json

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from comfyui_mcp.comfyui_client import ComfyUiClient, ExecutionClient, build_image_url, extract_images, normalize_base_url
from comfyui_mcp.errors import EmptyGraph, ExecutionCancelled, ExecutionError, ExecutionTimeout
from comfyui_mcp.graph import normalize_graph
from comfyui_mcp.models import WorkflowGraph
from tests.helpers import classic_workflow

pytestmark = pytest.mark.unit

BASE_URL = "http://comfy.test:8188"

_DONE = {
    "status": {"status_str": "success", "completed": True},
    "outputs": {"9": {"images": [{"filename": "ComfyUI_0001.png", "subfolder": "", "type": "output"}]}},
}


class _ComfyStub:
    """Scripted ComfyUI: queue answers with a prompt id, history replays entries in order."""

    def __init__(self, history: list[dict] | None = None, prompt_status: int = 200, prompt_body: dict | None = None):
        self.history = list(history or [])
        self.prompt_status = prompt_status
        self.prompt_body = {"prompt_id": "abc", "number": 1} if prompt_body is None else prompt_body
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST" and request.url.path == "/prompt":
            return httpx.Response(self.prompt_status, json=self.prompt_body)
        if request.method == "GET" and request.url.path.startswith("/history/"):
            job_id = request.url.path.rsplit("/", 1)[-1]
            entry = self.history.pop(0) if len(self.history) > 1 else (self.history[0] if self.history else None)
            return httpx.Response(200, json={job_id: entry} if entry is not None else {})
        return httpx.Response(404)

    @property
    def history_polls(self) -> int:
        return sum(1 for r in self.requests if r.url.path.startswith("/history/"))


def _client(stub: _ComfyStub) -> ComfyUiClient:
    return ComfyUiClient(BASE_URL, transport=httpx.MockTransport(stub))


class TestHelpers:
    def test_normalize_base_url(self):
        assert normalize_base_url("127.0.0.1:8188/") == "http://127.0.0.1:8188"
        assert normalize_base_url(" https://comfy.example ") == "https://comfy.example"
        with pytest.raises(ValueError):
            normalize_base_url("  ")

    def test_build_image_url(self):
        url = build_image_url(BASE_URL, {"filename": "a b.png", "subfolder": "x", "type": "output"})

        parsed = urlparse(url)
        assert parsed.path == "/view"
        assert parse_qs(parsed.query) == {"filename": ["a b.png"], "subfolder": ["x"], "type": ["output"]}

    def test_extract_images_ignores_other_outputs(self):
        outputs = {"5": {"text": ["hi"]}, "9": {"images": [{"filename": "a.png"}, {"subfolder": "x"}]}}
        assert extract_images(outputs) == [{"filename": "a.png"}]
        assert extract_images(None) == []

    def test_satisfies_protocol(self):
        assert isinstance(ComfyUiClient(BASE_URL), ExecutionClient)


class TestSubmit:
    @pytest.mark.asyncio
    async def test_posts_api_prompt(self):
        stub = _ComfyStub()
        async with _client(stub) as client:
            job_id = await client.submit(normalize_graph(classic_workflow("a cat")))

        assert job_id == "abc"
        body = json.loads(stub.requests[0].content)
        assert body["prompt"]["6"] == {"class_type": "CLIPTextEncode", "inputs": {"text": "a cat"}}

    @pytest.mark.asyncio
    async def test_rejected_prompt(self):
        stub = _ComfyStub(prompt_status=400, prompt_body={"error": "invalid prompt"})
        async with _client(stub) as client:
            with pytest.raises(ExecutionError, match="400"):
                await client.submit(normalize_graph(classic_workflow()))

    @pytest.mark.asyncio
    async def test_missing_prompt_id(self):
        stub = _ComfyStub(prompt_body={"number": 1})
        async with _client(stub) as client:
            with pytest.raises(ExecutionError, match="prompt_id"):
                await client.submit(normalize_graph(classic_workflow()))

    @pytest.mark.asyncio
    async def test_empty_graph_is_not_sent(self):
        stub = _ComfyStub()
        async with _client(stub) as client:
            with pytest.raises(EmptyGraph):
                await client.submit(WorkflowGraph())
        assert stub.requests == []

    @pytest.mark.asyncio
    async def test_transport_failure_becomes_execution_error(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with ComfyUiClient(BASE_URL, transport=httpx.MockTransport(refuse)) as client:
            with pytest.raises(ExecutionError, match="connection refused"):
                await client.submit(normalize_graph(classic_workflow()))


class TestAwaitResult:
    @pytest.mark.asyncio
    async def test_polls_until_image_is_available(self):
        stub = _ComfyStub(history=[{}, {"status": {"status_str": "running", "completed": False}}, _DONE])
        async with _client(stub) as client:
            url = await client.await_result("abc", poll_interval_ms=1, timeout_ms=5000)

        assert url.startswith(f"{BASE_URL}/view?")
        assert parse_qs(urlparse(url).query)["filename"] == ["ComfyUI_0001.png"]
        assert stub.history_polls == 3

    @pytest.mark.asyncio
    async def test_outputs_without_completed_flag_count_as_done(self):
        stub = _ComfyStub(history=[{"outputs": _DONE["outputs"]}])
        async with _client(stub) as client:
            url = await client.await_result("abc", poll_interval_ms=1, timeout_ms=5000)
        assert "ComfyUI_0001.png" in url

    @pytest.mark.asyncio
    async def test_remote_error(self):
        stub = _ComfyStub(history=[{"status": {"status_str": "error", "completed": False}}])
        async with _client(stub) as client:
            with pytest.raises(ExecutionError, match="reported an error"):
                await client.await_result("abc", poll_interval_ms=1, timeout_ms=5000)

    @pytest.mark.asyncio
    async def test_completed_without_images(self):
        stub = _ComfyStub(history=[{"status": {"status_str": "success", "completed": True}, "outputs": {}}])
        async with _client(stub) as client:
            with pytest.raises(ExecutionError, match="without producing an image"):
                await client.await_result("abc", poll_interval_ms=1, timeout_ms=5000)

    @pytest.mark.asyncio
    async def test_timeout(self):
        stub = _ComfyStub(history=[{}])
        async with _client(stub) as client:
            with pytest.raises(ExecutionTimeout):
                await client.await_result("abc", poll_interval_ms=10, timeout_ms=50)
        assert stub.history_polls >= 1

    @pytest.mark.asyncio
    async def test_preset_cancel_stops_before_polling(self):
        stub = _ComfyStub(history=[_DONE])
        cancel = asyncio.Event()
        cancel.set()
        async with _client(stub) as client:
            with pytest.raises(ExecutionCancelled):
                await client.await_result("abc", poll_interval_ms=1, timeout_ms=5000, cancel_event=cancel)
        assert stub.history_polls == 0

    @pytest.mark.asyncio
    async def test_cancel_wakes_sleeping_poll(self):
        stub = _ComfyStub(history=[{}])
        cancel = asyncio.Event()
        async with _client(stub) as client:
            task = asyncio.create_task(client.await_result("abc", poll_interval_ms=60_000, timeout_ms=120_000, cancel_event=cancel))
            await asyncio.sleep(0.05)
            cancel.set()
            with pytest.raises(ExecutionCancelled):
                await asyncio.wait_for(task, timeout=2)
        assert stub.history_polls == 1
