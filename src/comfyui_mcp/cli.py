"""Command line interface for the ComfyUI MCP server.

Usage:
  # Serve workflows in ./workflows over streamable HTTP on port 3000
  comfyui-mcp serve
  # Serve over stdio for a local agent, executing on a ComfyUI instance
  comfyui-mcp serve --transport stdio --comfyui-url http://127.0.0.1:8188

  # Inspect and try tools without a server
  comfyui-mcp tools -f json
  comfyui-mcp invoke txt2img '{"positive_prompt": "a lighthouse at dusk"}'
  comfyui-mcp invoke txt2img '{"positive_prompt": "a lighthouse"}' --execute
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys

from pathlib import Path
from typing import Any

import click

from comfyui_mcp import __version__
from comfyui_mcp.comfyui_client import ComfyUiClient
from comfyui_mcp.config import ConfigManager
from comfyui_mcp.errors import ComfyMcpError
from comfyui_mcp.mcp_server import ServerConfig, WorkflowMcpServer
from comfyui_mcp.service import WorkflowToolService
from comfyui_mcp.storage import DirectoryWorkflowSource, JsonFileToolConfigSource

logger = logging.getLogger(__name__)


def format_output(data: Any, fmt: str) -> str:
    """Format data for output.

    fmt: 'json' | 'text'
    """
    if (fmt or "text").strip().lower() == "json":
        return json.dumps(data, indent=2)

    def _value(value: Any) -> str:
        return json.dumps(value) if isinstance(value, (dict, list)) else str(value)

    if isinstance(data, dict):
        return "\n".join(f"{k}: {_value(v)}" for k, v in data.items())
    if isinstance(data, list):
        return "\n".join(f"- {_value(item)}" for item in data)
    return str(data)


def _format_tools_text(tools: list[dict[str, Any]]) -> str:
    lines: list[str] = []
    for tool in tools:
        bound = tool["workflow"] or "<unbound>"
        lines.append(f"{tool['name']} [{tool['provenance']} -> {bound}]: {tool['description']}")
        schema = tool["inputSchema"]
        for name, prop in schema["properties"].items():
            marker = "*" if name in schema["required"] else " "
            default = f" (default {json.dumps(prop['default'])})" if "default" in prop else ""
            lines.append(f"  {marker} {name}: {prop['type']}{default}")
    return "\n".join(lines)


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _get_manager(ctx: click.Context) -> ConfigManager:
    return ctx.obj["config"]


def _fmt(ctx: click.Context) -> str:
    return ctx.obj.get("format", "text")


def _apply_overrides(manager: ConfigManager, **overrides: Any) -> None:
    """Command-line options beat config file and environment values."""
    setters = {
        "host": manager.set_server_host,
        "port": manager.set_server_port,
        "workflows_dir": manager.set_workflows_dir,
        "tool_config": manager.set_tool_config_path,
        "comfyui_url": manager.set_comfyui_url,
    }
    for key, value in overrides.items():
        if value is None:
            continue
        try:
            setters[key](value)
        except ValueError as e:
            _fail(str(e))


async def _build_service(manager: ConfigManager, client: ComfyUiClient | None = None) -> WorkflowToolService:
    return await WorkflowToolService.from_sources(
        DirectoryWorkflowSource(manager.get_workflows_dir()),
        JsonFileToolConfigSource(manager.get_tool_config_path()),
        client,
        poll_interval_ms=manager.get_poll_interval_ms(),
        timeout_ms=manager.get_timeout_ms(),
    )


def _make_client(manager: ConfigManager) -> ComfyUiClient | None:
    url = manager.get_comfyui_url()
    return ComfyUiClient(url) if url else None


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--config", "config_path", type=click.Path(path_type=Path), help="JSON configuration file")
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging on stderr")
@click.option(
    "-f",
    "--format",
    type=click.Choice(["json", "text"]),
    default="text",
    help="Output format",
)
@click.version_option(__version__, "--version", "-V")
@click.pass_context
def main(ctx: click.Context, config_path: Path | None, verbose: bool, format: str) -> None:
    """ComfyUI MCP - expose ComfyUI workflows as agent tools."""
    # stdout carries the stdio MCP stream, so logs go to stderr
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    ctx.obj = {
        "config": ConfigManager(config_path),
        "format": format,
    }


@main.command("serve")
@click.option(
    "-t",
    "--transport",
    type=click.Choice(["streamable-http", "stdio"]),
    default="streamable-http",
    show_default=True,
    help="MCP transport",
)
@click.option("--host", help="Bind host")
@click.option("--port", type=int, help="Bind port")
@click.option("--workflows-dir", type=click.Path(path_type=Path), help="Directory of workflow JSON files")
@click.option("--tool-config", type=click.Path(path_type=Path), help="Tool configuration JSON file")
@click.option("--comfyui-url", help="ComfyUI base URL; enables remote execution")
@click.pass_context
def serve(ctx: click.Context, transport: str, **overrides: Any) -> None:
    """Run the MCP server."""
    manager = _get_manager(ctx)
    _apply_overrides(manager, **overrides)

    async def _run() -> None:
        client = _make_client(manager)
        try:
            service = await _build_service(manager, client)
            config = ServerConfig(host=manager.get_server_host(), port=manager.get_server_port(), transport=transport)
            await WorkflowMcpServer(service, config).serve()
        finally:
            if client is not None:
                await client.aclose()

    try:
        asyncio.run(_run())
    except ComfyMcpError as e:
        _fail(e.message)
    except KeyboardInterrupt:
        logger.info("Interrupted")


@main.command("tools")
@click.option("--workflows-dir", type=click.Path(path_type=Path), help="Directory of workflow JSON files")
@click.option("--tool-config", type=click.Path(path_type=Path), help="Tool configuration JSON file")
@click.pass_context
def tools(ctx: click.Context, **overrides: Any) -> None:
    """List registered tools and their input schemas."""
    manager = _get_manager(ctx)
    _apply_overrides(manager, **overrides)
    try:
        service = asyncio.run(_build_service(manager))
    except ComfyMcpError as e:
        _fail(e.message)

    listed = service.list_tools()
    if _fmt(ctx) == "json":
        click.echo(format_output({"tools": listed}, "json"))
    else:
        click.echo(_format_tools_text(listed))


@main.command("invoke")
@click.argument("name")
@click.argument("args_json", required=False, default="{}")
@click.option("--workflows-dir", type=click.Path(path_type=Path), help="Directory of workflow JSON files")
@click.option("--tool-config", type=click.Path(path_type=Path), help="Tool configuration JSON file")
@click.option("--comfyui-url", help="ComfyUI base URL")
@click.option("--execute", is_flag=True, help="Submit to ComfyUI and wait for the result")
@click.pass_context
def invoke(ctx: click.Context, name: str, args_json: str, execute: bool, **overrides: Any) -> None:
    """Invoke tool NAME with ARGS_JSON (a JSON object) and print the result."""
    manager = _get_manager(ctx)
    _apply_overrides(manager, **overrides)

    try:
        arguments = json.loads(args_json)
    except json.JSONDecodeError as e:
        _fail(f"ARGS_JSON is not valid JSON: {e}")
    if not isinstance(arguments, dict):
        _fail("ARGS_JSON must be a JSON object")
    if execute and not manager.get_comfyui_url():
        _fail("--execute needs a ComfyUI URL (--comfyui-url or COMFYUI_URL)")

    async def _run():
        client = _make_client(manager) if execute else None
        try:
            service = await _build_service(manager, client)
            return await service.invoke(name, arguments)
        finally:
            if client is not None:
                await client.aclose()

    try:
        result = asyncio.run(_run())
    except ComfyMcpError as e:
        _fail(e.message)

    click.echo(format_output(result.to_payload(), _fmt(ctx)))
    if not result.ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
