"""Tool registry - binds tool definitions to workflow templates.

Resolution order for an explicit tool (first match wins):
  1. its ``workflowName``
  2. a workflow whose name equals the tool name
  3. nothing; the tool is listed but invoking it fails with ``NoWorkflowBound``

Every workflow not claimed by an explicit tool becomes an implicit zero-field
tool, so a stored workflow is invocable without any authored configuration.
"""

from __future__ import annotations

import logging

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Literal

from comfyui_mcp.errors import DuplicateToolName
from comfyui_mcp.models import ToolDefinition, WorkflowDefinition

logger = logging.getLogger(__name__)

Provenance = Literal["explicit", "implicit"]
WorkflowNameResolver = Callable[[ToolDefinition, Sequence[WorkflowDefinition]], str | None]


@dataclass(frozen=True)
class RegisteredTool:
    definition: ToolDefinition
    workflow_name: str | None
    provenance: Provenance

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def description(self) -> str | None:
        return self.definition.description

    @property
    def is_bound(self) -> bool:
        return self.workflow_name is not None


class ToolRegistry:
    """Ordered, name-unique collection of invocable tools."""

    def __init__(self, tools: Iterable[RegisteredTool] = ()) -> None:
        self._tools: dict[str, RegisteredTool] = {}
        for tool in tools:
            self.add(tool)

    def add(self, tool: RegisteredTool) -> None:
        if tool.name in self._tools:
            raise DuplicateToolName(tool.name)
        self._tools[tool.name] = tool

    def get(self, name: str) -> RegisteredTool | None:
        return self._tools.get(name)

    def list(self) -> list[RegisteredTool]:
        return list(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


def default_workflow_resolver(workflow_names: set[str]) -> WorkflowNameResolver:
    def resolve(tool: ToolDefinition, workflows: Sequence[WorkflowDefinition]) -> str | None:
        if tool.workflow_name:
            return tool.workflow_name
        if tool.name in workflow_names:
            return tool.name
        return None

    return resolve


def implicit_tool_for(workflow: WorkflowDefinition) -> RegisteredTool:
    definition = ToolDefinition(
        name=workflow.name,
        description=workflow.description or f"Workflow {workflow.name}",
        fields=[],
        workflow_name=workflow.name,
    )
    return RegisteredTool(definition=definition, workflow_name=workflow.name, provenance="implicit")


def bind_tools(
    definitions: Sequence[ToolDefinition],
    workflows: Sequence[WorkflowDefinition],
    *,
    include_unconfigured_workflows: bool = True,
    resolve_workflow_name: WorkflowNameResolver | None = None,
) -> ToolRegistry:
    """Build the tool registry from explicit definitions and loaded workflows.

    Raises:
        DuplicateToolName: two explicit definitions share a name.
    """
    resolve = resolve_workflow_name or default_workflow_resolver({w.name for w in workflows})
    registry = ToolRegistry()

    claimed: set[str] = set()
    for definition in definitions:
        workflow_name = resolve(definition, workflows)
        if workflow_name is None:
            logger.warning(f"Tool '{definition.name}' is not bound to any workflow")
        else:
            claimed.add(workflow_name)
        registry.add(RegisteredTool(definition=definition, workflow_name=workflow_name, provenance="explicit"))

    if not include_unconfigured_workflows:
        return registry

    for workflow in workflows:
        if workflow.name in claimed:
            continue
        if workflow.name in registry:
            logger.warning(f"Workflow '{workflow.name}' is unclaimed but its name is taken by an explicit tool; no implicit tool created")
            continue
        registry.add(implicit_tool_for(workflow))

    return registry
