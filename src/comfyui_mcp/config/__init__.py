"""Configuration management for the ComfyUI MCP server."""

from .config_manager import ConfigManager

__all__ = [
    "ConfigManager",
]
