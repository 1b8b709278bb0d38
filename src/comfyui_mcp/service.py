"""Workflow tool service - the interface the outer transports talk to.

Holds the immutable registry and workflow templates loaded at startup. Every
invocation works on its own copy of the template, so concurrent calls to the
same tool never share state.
"""

from __future__ import annotations

import asyncio
import logging
import random

from collections.abc import Iterable, Mapping
from typing import Any

from comfyui_mcp.comfyui_client import DEFAULT_POLL_INTERVAL_MS, DEFAULT_TIMEOUT_MS, ExecutionClient
from comfyui_mcp.errors import ComfyMcpError, InvalidToolConfigShape, NoWorkflowBound, ToolNotFound, WorkflowNotFound
from comfyui_mcp.injector import apply_tool_arguments
from comfyui_mcp.mcp_utils import DebugLogger, project_input_schema
from comfyui_mcp.models import InvokeResult, ToolDefinition, WorkflowDefinition
from comfyui_mcp.registry import RegisteredTool, ToolRegistry, bind_tools
from comfyui_mcp.storage import ToolConfigSource, WorkflowSource
from comfyui_mcp.tool_config import load_tool_definitions

logger = logging.getLogger(__name__)


class WorkflowToolService:
    """Lists and invokes the tools bound to stored workflows."""

    def __init__(
        self,
        registry: ToolRegistry,
        workflows: Iterable[WorkflowDefinition],
        execution_client: ExecutionClient | None = None,
        *,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        rng: random.Random | None = None,
    ):
        self.registry: ToolRegistry = registry
        self.workflows: dict[str, WorkflowDefinition] = {w.name: w for w in workflows}
        self.execution_client: ExecutionClient | None = execution_client
        self.poll_interval_ms: int = poll_interval_ms
        self.timeout_ms: int = timeout_ms
        self._rng: random.Random | None = rng

    @classmethod
    async def from_sources(
        cls,
        workflow_source: WorkflowSource,
        tool_config_source: ToolConfigSource,
        execution_client: ExecutionClient | None = None,
        *,
        include_unconfigured_workflows: bool = True,
        **kwargs: Any,
    ) -> WorkflowToolService:
        """Load workflows and tool config, then bind them.

        Raises:
            DuplicateToolName: two explicit tools share a name.
        """
        workflows = await workflow_source.load()

        definitions: list[ToolDefinition] = []
        try:
            payload = await tool_config_source.load()
            if payload is not None:
                definitions = load_tool_definitions(payload, skip_invalid=True)
        except InvalidToolConfigShape as e:
            logger.error(f"Ignoring tool config: {e}")

        registry = bind_tools(definitions, workflows, include_unconfigured_workflows=include_unconfigured_workflows)
        logger.info(f"Registered {len(registry)} tool(s) from {len(workflows)} workflow(s) and {len(definitions)} tool definition(s)")
        return cls(registry, workflows, execution_client, **kwargs)

    def _describe(self, tool: RegisteredTool) -> dict[str, Any]:
        return {
            "name": tool.name,
            "description": tool.description or "",
            "inputSchema": project_input_schema(tool.definition.fields),
            "provenance": tool.provenance,
            "workflow": tool.workflow_name,
        }

    def list_tools(self) -> list[dict[str, Any]]:
        """Describe every registered tool, in registration order."""
        return [self._describe(tool) for tool in self.registry.list()]

    def get_tool(self, name: str) -> dict[str, Any] | None:
        tool = self.registry.get(name)
        return self._describe(tool) if tool is not None else None

    def _resolve(self, name: str) -> tuple[RegisteredTool, WorkflowDefinition]:
        tool = self.registry.get(name)
        if tool is None:
            raise ToolNotFound(name)
        if tool.workflow_name is None:
            raise NoWorkflowBound(name)
        workflow = self.workflows.get(tool.workflow_name)
        if workflow is None:
            raise WorkflowNotFound(tool.workflow_name)
        return tool, workflow

    async def invoke(
        self,
        name: str,
        arguments: Mapping[str, Any] | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> InvokeResult:
        """Invoke a tool and return a structured result.

        Failures come back as ``status="error"`` results; only task
        cancellation propagates to the caller.
        """
        params = dict(arguments or {})
        with DebugLogger.time_operation(self, f"invoke:{name}"):
            try:
                return await self._invoke(name, params, cancel_event)
            except ComfyMcpError as e:
                logger.error(f"Tool '{name}' failed: {e.message}")
                return InvokeResult(status="error", tool=name, params=params, message=e.message)

    async def _invoke(self, name: str, params: dict[str, Any], cancel_event: asyncio.Event | None) -> InvokeResult:
        tool, workflow = self._resolve(name)
        injection = apply_tool_arguments(workflow.graph, tool.definition, params, rng=self._rng)
        warnings = injection.warnings or None
        for warning in injection.warnings:
            DebugLogger.debug(self, f"{name}: {warning}")

        if self.execution_client is None:
            return InvokeResult(status="ok", tool=name, params=params, graph=injection.graph.to_payload(), warnings=warnings)

        job_id = await self.execution_client.submit(injection.graph)
        DebugLogger.debug(self, f"{name}: submitted job {job_id}")
        reference = await self.execution_client.await_result(
            job_id,
            poll_interval_ms=self.poll_interval_ms,
            timeout_ms=self.timeout_ms,
            cancel_event=cancel_event,
        )
        return InvokeResult(status="ok", tool=name, params=params, result_reference=reference, warnings=warnings)

    def __repr__(self) -> str:
        return f"WorkflowToolService(tools={self.registry.names()})"
