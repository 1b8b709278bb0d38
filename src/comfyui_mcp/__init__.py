"""ComfyUI MCP - expose ComfyUI workflows as parameterized agent tools.

Workflow templates are loaded from storage, bound to tool definitions, and
invoked by injecting caller arguments into a fresh copy of the template graph.
Programmatic use: WorkflowToolService.from_sources(...), then list_tools() / invoke().
"""

try:
    from ._version import version as __version__
except ImportError:
    # Fallback version if not installed or in development
    __version__ = "0.0.0.dev0"

from comfyui_mcp.errors import (
    ComfyMcpError,
    DuplicateToolName,
    EmptyGraph,
    ExecutionCancelled,
    ExecutionError,
    ExecutionTimeout,
    InvalidToolConfigShape,
    InvalidToolDefinition,
    NoWorkflowBound,
    ToolMustDeclareFields,
    ToolNotFound,
    UnsupportedGraphFormat,
    WorkflowNotFound,
)
from comfyui_mcp.graph import GraphFormat, classify_graph_payload, normalize_graph
from comfyui_mcp.injector import InjectionResult, apply_tool_arguments, register_generator
from comfyui_mcp.models import (
    InvokeResult,
    ToolDefinition,
    ToolField,
    WorkflowDefinition,
    WorkflowGraph,
    WorkflowNode,
)
from comfyui_mcp.registry import RegisteredTool, ToolRegistry, bind_tools
from comfyui_mcp.service import WorkflowToolService
from comfyui_mcp.tool_config import load_tool_definitions

__all__ = [
    "ComfyMcpError",
    "DuplicateToolName",
    "EmptyGraph",
    "ExecutionCancelled",
    "ExecutionError",
    "ExecutionTimeout",
    "GraphFormat",
    "InjectionResult",
    "InvalidToolConfigShape",
    "InvalidToolDefinition",
    "InvokeResult",
    "NoWorkflowBound",
    "RegisteredTool",
    "ToolDefinition",
    "ToolField",
    "ToolMustDeclareFields",
    "ToolNotFound",
    "ToolRegistry",
    "UnsupportedGraphFormat",
    "WorkflowDefinition",
    "WorkflowGraph",
    "WorkflowNode",
    "WorkflowNotFound",
    "WorkflowToolService",
    "__version__",
    "apply_tool_arguments",
    "bind_tools",
    "classify_graph_payload",
    "load_tool_definitions",
    "normalize_graph",
    "register_generator",
]
