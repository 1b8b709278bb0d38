"""MCP tool provider backed by the workflow tool service.

Flow:
  1. MCP Server -> WorkflowToolProvider.call_tool(name, arguments)
  2. Provider -> WorkflowToolService.invoke(name, arguments)
  3. The InvokeResult is JSON-encoded into a single TextContent block.
"""

from __future__ import annotations

import asyncio
import json as _json
import logging

from typing import Any

from mcp import types

from comfyui_mcp.service import WorkflowToolService

logger = logging.getLogger(__name__)


def create_json_response(data: dict[str, Any]) -> list[types.TextContent]:
    """Create a standardized MCP response carrying one JSON document."""
    return [types.TextContent(type="text", text=_json.dumps(data))]


def create_error_response(error: str | Exception) -> list[types.TextContent]:
    """Create a standardized MCP error response."""
    msg = str(error) if isinstance(error, Exception) else error
    return create_json_response({"status": "error", "message": msg})


class WorkflowToolProvider:
    """Exposes every registered workflow tool over MCP."""

    def __init__(self, service: WorkflowToolService) -> None:
        self.service: WorkflowToolService = service

    def list_tools(self) -> list[types.Tool]:
        return [
            types.Tool(
                name=tool["name"],
                description=tool["description"],
                inputSchema=tool["inputSchema"],
            )
            for tool in self.service.list_tools()
        ]

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None,
        cancel_event: asyncio.Event | None = None,
    ) -> list[types.TextContent]:
        if arguments is not None and not isinstance(arguments, dict):
            return create_error_response(f"Arguments for tool {name} must be an object.")
        result = await self.service.invoke(name, arguments, cancel_event=cancel_event)
        return create_json_response(result.to_payload())
