"""MCP server for ComfyUI workflow tools.

Exposes the workflow tool service over MCP (streamable HTTP or stdio) and a
small REST surface.
"""

from .server import InvokeRequest, ServerConfig, WorkflowMcpServer
from .tool_providers import WorkflowToolProvider, create_error_response, create_json_response

__all__ = [
    "InvokeRequest",
    "ServerConfig",
    "WorkflowMcpServer",
    "WorkflowToolProvider",
    "create_error_response",
    "create_json_response",
]
