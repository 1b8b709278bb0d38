"""Error hierarchy for the ComfyUI MCP tool engine.

Load-time errors (graph/tool-config parsing) exclude one source and are logged
by the caller. ``DuplicateToolName`` aborts startup. Invoke-time errors are
turned into structured ``InvokeResult`` payloads by the service and never cross
the invocation boundary.
"""

from __future__ import annotations


class ComfyMcpError(Exception):
    """Base class for all engine errors."""

    code: str = "ComfyMcpError"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message


# ---------------------------------------------------------------------------
# Load time
# ---------------------------------------------------------------------------


class UnsupportedGraphFormat(ComfyMcpError):
    """Raised when a graph payload matches none of the accepted shapes."""

    code = "UnsupportedGraphFormat"


class EmptyGraph(ComfyMcpError):
    """Raised when a keyed export yields no convertible node."""

    code = "EmptyGraph"


class InvalidToolConfigShape(ComfyMcpError):
    """Raised when a tool config payload is neither an array nor ``{"tools": [...]}``."""

    code = "InvalidToolConfigShape"


class InvalidToolDefinition(ComfyMcpError):
    """Raised when a single tool descriptor fails validation."""

    code = "InvalidToolDefinition"

    def __init__(self, message: str, tool_name: str | None = None) -> None:
        super().__init__(message)
        self.tool_name: str | None = tool_name


class ToolMustDeclareFields(InvalidToolDefinition):
    code = "ToolMustDeclareFields"


# ---------------------------------------------------------------------------
# Bind time
# ---------------------------------------------------------------------------


class DuplicateToolName(ComfyMcpError):
    code = "DuplicateToolName"

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Tool name '{tool_name}' is declared more than once.")
        self.tool_name: str = tool_name


# ---------------------------------------------------------------------------
# Invoke time
# ---------------------------------------------------------------------------


class ToolNotFound(ComfyMcpError):
    code = "ToolNotFound"

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Tool {tool_name} not found.")
        self.tool_name: str = tool_name


class NoWorkflowBound(ComfyMcpError):
    code = "NoWorkflowBound"

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"No workflow is bound to tool {tool_name}.")
        self.tool_name: str = tool_name


class WorkflowNotFound(ComfyMcpError):
    code = "WorkflowNotFound"

    def __init__(self, workflow_name: str) -> None:
        super().__init__(f"Workflow {workflow_name} not found.")
        self.workflow_name: str = workflow_name


# ---------------------------------------------------------------------------
# Remote execution
# ---------------------------------------------------------------------------


class ExecutionError(ComfyMcpError):
    """Raised when the remote execution service rejects or fails a job."""

    code = "ExecutionError"


class ExecutionTimeout(ExecutionError):
    code = "ExecutionTimeout"


class ExecutionCancelled(ExecutionError):
    code = "ExecutionCancelled"
