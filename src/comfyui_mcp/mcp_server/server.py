"""MCP server exposing ComfyUI workflows as tools.

The same ``WorkflowToolService`` is reachable three ways: MCP over streamable
HTTP (mounted at ``/mcp/message``), MCP over stdio, and a small REST surface
(``/tools``, ``/invoke``) for clients that do not speak MCP.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from typing import Any, Literal

import uvicorn

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from mcp import types
from mcp.server import Server, Server as MCPServer
from mcp.server.stdio import stdio_server
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from pydantic import BaseModel, Field, ValidationError

from comfyui_mcp._version import __version__
from comfyui_mcp.mcp_server.tool_providers import WorkflowToolProvider
from comfyui_mcp.mcp_utils.debug_logger import DebugLogger
from comfyui_mcp.service import WorkflowToolService

logger = logging.getLogger(__name__)

DISCONNECT_POLL_SECONDS = 0.5


class ServerConfig(BaseModel):
    """Configuration for the MCP server."""

    name: str = "comfyui-mcp"
    version: str = __version__
    host: str = "127.0.0.1"
    port: int = 3000
    transport: Literal["streamable-http", "stdio"] = "streamable-http"


class InvokeRequest(BaseModel):
    """Body of ``POST /invoke``."""

    tool: str = Field(..., min_length=1)
    params: dict[str, Any] = Field(default_factory=dict)


async def _watch_disconnect(request: Request, cancel_event: asyncio.Event) -> None:
    while not cancel_event.is_set():
        if await request.is_disconnected():
            logger.info("Client disconnected; cancelling invocation wait")
            cancel_event.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


class WorkflowMcpServer:
    """MCP + HTTP front end for a ``WorkflowToolService``."""

    def __init__(
        self,
        service: WorkflowToolService,
        config: ServerConfig | None = None,
    ) -> None:
        self.config: ServerConfig = ServerConfig() if config is None else config
        self.service: WorkflowToolService = service
        self.tool_provider: WorkflowToolProvider = WorkflowToolProvider(service)
        self.app: FastAPI = FastAPI(title=self.config.name, version=self.config.version)

        self.mcp_server: MCPServer = self._create_mcp_server()

        self._session_manager = StreamableHTTPSessionManager(
            app=self.mcp_server,
            json_response=True,
            stateless=False,
        )
        self._session_manager_cm = None

        self._setup_routes()

    def _create_mcp_server(self) -> MCPServer:
        """Create the MCP server instance."""
        server = Server(name=self.config.name, version=self.config.version)

        @server.list_tools()
        async def list_tools() -> list[types.Tool]:
            """List all workflow tools."""
            return self.tool_provider.list_tools()

        @server.call_tool(validate_input=False)
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[types.TextContent]:
            """Invoke a workflow tool.

            Input validation is disabled so argument problems come back as
            per-field warnings in the result instead of a protocol error.
            """
            return await self.tool_provider.call_tool(name, arguments)

        return server

    def _setup_routes(self) -> None:
        """Setup FastAPI routes for MCP and REST communication."""

        @self.app.on_event("startup")
        async def _startup_session_manager() -> None:
            self._session_manager_cm = self._session_manager.run()
            await self._session_manager_cm.__aenter__()

        @self.app.on_event("shutdown")
        async def _shutdown_session_manager() -> None:
            if self._session_manager_cm is not None:
                await self._session_manager_cm.__aexit__(None, None, None)
                self._session_manager_cm = None

        self.app.mount("/mcp/message", self._session_manager.handle_request)

        async def health_check() -> dict[str, Any]:
            """Health check endpoint."""
            return {
                "status": "ok",
                "server": self.config.name,
                "version": self.config.version,
                "tools": len(self.service.registry),
            }

        self.app.add_api_route("/health", health_check, methods=["GET"])
        self.app.add_api_route("/healthz", health_check, methods=["GET"])

        @self.app.get("/tools")
        async def list_tools() -> dict[str, Any]:
            return {"tools": self.service.list_tools()}

        @self.app.post("/invoke")
        async def invoke(request: Request) -> JSONResponse:
            try:
                body = InvokeRequest.model_validate(await request.json())
            except (ValueError, ValidationError) as e:
                return JSONResponse({"status": "error", "message": f"Invalid invoke request: {e}"}, status_code=400)

            if body.tool not in self.service.registry:
                result = await self.service.invoke(body.tool, body.params)
                return JSONResponse(result.to_payload(), status_code=404)

            cancel_event = asyncio.Event()
            watcher = asyncio.create_task(_watch_disconnect(request, cancel_event))
            try:
                result = await self.service.invoke(body.tool, body.params, cancel_event=cancel_event)
            finally:
                watcher.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await watcher

            return JSONResponse(result.to_payload(), status_code=200 if result.ok else 400)

    async def serve_http(self) -> None:
        """Serve MCP (streamable HTTP) and the REST routes until shutdown."""
        DebugLogger.debug_tool_execution(self, "server_startup", "START", f"Starting server on {self.config.host}:{self.config.port}")
        logger.info(f"MCP server listening on http://{self.config.host}:{self.config.port}/mcp/message")
        config = uvicorn.Config(app=self.app, host=self.config.host, port=self.config.port, log_level="info")
        await uvicorn.Server(config).serve()
        logger.info("MCP server stopped")

    async def serve_stdio(self) -> None:
        """Serve MCP over stdin/stdout."""
        logger.info("MCP server running on stdio")
        async with stdio_server() as (read_stream, write_stream):
            await self.mcp_server.run(read_stream, write_stream, self.mcp_server.create_initialization_options())

    async def serve(self) -> None:
        if self.config.transport == "stdio":
            await self.serve_stdio()
        else:
            await self.serve_http()
