"""Test helper utilities for the ComfyUI MCP tests.

Provides common functionality used across multiple test modules:
- Sample workflow payloads in both accepted shapes
- A scripted execution client
- Response and schema validation
"""

from __future__ import annotations

import asyncio
import copy
import json

from typing import Any

from comfyui_mcp.errors import ExecutionCancelled
from comfyui_mcp.models import WorkflowGraph


def classic_workflow(text: str = "old") -> dict[str, Any]:
    """Canonical (``nodes`` array) workflow with a sampler, a prompt and a save node."""
    return {
        "nodes": [
            {"id": 3, "type": "KSampler", "inputs": {"seed": 1, "steps": 20, "cfg": 7.0}},
            {"id": 6, "type": "CLIPTextEncode", "inputs": {"text": text}},
            {"id": 9, "type": "SaveImage", "inputs": {"filename_prefix": "ComfyUI"}},
        ],
        "links": [[1, 6, 0, 3, 1, "CONDITIONING"]],
        "version": 0.4,
    }


def keyed_workflow(text: str = "old") -> dict[str, Any]:
    """The same logical graph as ``classic_workflow`` in the keyed API shape."""
    return {
        "3": {"class_type": "KSampler", "inputs": {"seed": 1, "steps": 20, "cfg": 7.0}},
        "6": {"class_type": "CLIPTextEncode", "inputs": {"text": text}},
        "9": {"class_type": "SaveImage", "inputs": {"filename_prefix": "ComfyUI"}},
    }


def txt2img_tool(**overrides: Any) -> dict[str, Any]:
    tool: dict[str, Any] = {
        "name": "txt2img",
        "description": "Render an image from a prompt",
        "workflowName": "txt2img",
        "fields": [
            {
                "name": "positive_prompt",
                "description": "What to draw",
                "type": "string",
                "mapping": {"target": 6, "attributePath": "inputs.text"},
            },
            {
                "name": "steps",
                "type": "integer",
                "default": 30,
                "mapping": {"target": "KSampler", "attributePath": "inputs.steps"},
            },
            {
                "name": "seed",
                "type": "integer",
                "generator": {"strategy": "seed"},
                "mapping": {"target": 3, "attributePath": "inputs.seed"},
            },
        ],
    }
    tool.update(overrides)
    return tool


class FakeExecutionClient:
    """Execution client that records submissions and replays a scripted outcome."""

    def __init__(self, result: str = "http://comfy.test/view?filename=out.png", error: Exception | None = None, wait_for_cancel: bool = False):
        self.result = result
        self.error = error
        self.wait_for_cancel = wait_for_cancel
        self.submitted: list[WorkflowGraph] = []
        self.awaited: list[dict[str, Any]] = []

    async def submit(self, graph: WorkflowGraph) -> str:
        self.submitted.append(copy.deepcopy(graph))
        return f"job-{len(self.submitted)}"

    async def await_result(self, job_id: str, poll_interval_ms: int = 1000, timeout_ms: int = 300000, cancel_event: asyncio.Event | None = None) -> str:
        self.awaited.append({"job_id": job_id, "poll_interval_ms": poll_interval_ms, "timeout_ms": timeout_ms, "cancel_event": cancel_event})
        if self.wait_for_cancel and cancel_event is not None:
            await cancel_event.wait()
            raise ExecutionCancelled(f"Stopped waiting for prompt {job_id}.")
        if self.error is not None:
            raise self.error
        return self.result


def node_by_id(payload: dict[str, Any], node_id: int) -> dict[str, Any]:
    """Find a node in a canonical graph payload."""
    matches = [node for node in payload["nodes"] if node["id"] == node_id]
    assert len(matches) == 1, f"expected exactly one node {node_id}, found {len(matches)}"
    return matches[0]


def parse_single_text_content_json(response: list[Any]) -> dict[str, Any]:
    assert response is not None
    assert isinstance(response, list)
    assert len(response) == 1
    first = response[0]
    assert first.type == "text"
    assert isinstance(first.text, str)
    assert first.text.strip().startswith("{")
    payload = json.loads(first.text)
    assert isinstance(payload, dict)
    return payload


def assert_tool_schema_invariants(tool: Any, *, expected_name: str | None = None) -> None:
    assert tool is not None
    assert isinstance(tool.name, str)
    assert tool.name != ""
    if expected_name is not None:
        assert tool.name == expected_name
    assert isinstance(tool.inputSchema, dict)
    assert tool.inputSchema.get("type") == "object"
    assert isinstance(tool.inputSchema["properties"], dict)
    assert isinstance(tool.inputSchema["required"], list)
    assert all(k in tool.inputSchema["properties"] for k in tool.inputSchema["required"])
    assert tool.description is None or isinstance(tool.description, str)


def assert_mapping_invariants(mapping: dict[str, Any], *, expected_keys: list[str] | None = None) -> None:
    assert isinstance(mapping, dict)
    assert all(isinstance(k, str) and k != "" for k in mapping.keys())
    assert json.loads(json.dumps(mapping)) == mapping
    if expected_keys is not None:
        missing = [k for k in expected_keys if k not in mapping]
        assert not missing, f"missing keys: {missing}"


def assert_int_invariants(value: int, *, min_value: int | None = None, max_value: int | None = None) -> None:
    assert isinstance(value, int)
    assert not isinstance(value, bool)
    if min_value is not None:
        assert value >= min_value
    if max_value is not None:
        assert value <= max_value
