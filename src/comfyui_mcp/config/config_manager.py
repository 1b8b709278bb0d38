"""Configuration manager for the ComfyUI MCP server.

Values come from, in increasing priority: built-in defaults, an optional JSON
config file, then environment variables.
"""

from __future__ import annotations

import json
import logging
import os

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from comfyui_mcp.mcp_utils.debug_logger import DebugLogger

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("true", "1", "yes", "on")


class ConfigManager:
    """Configuration manager for the ComfyUI MCP server."""

    # Configuration option categories
    SERVER_OPTIONS = "server"
    WORKFLOW_OPTIONS = "workflows"
    COMFYUI_OPTIONS = "comfyui"

    # Option names
    SERVER_PORT = "port"
    SERVER_HOST = "host"
    DEBUG_MODE = "debug"
    WORKFLOWS_DIR = "directory"
    TOOL_CONFIG_PATH = "tool_config"
    COMFYUI_URL = "url"
    POLL_INTERVAL_MS = "poll_interval_ms"
    TIMEOUT_MS = "timeout_ms"

    # Default values
    DEFAULT_PORT = 3000
    DEFAULT_HOST = "127.0.0.1"
    DEFAULT_DEBUG_MODE = False
    DEFAULT_WORKFLOWS_DIR = "./workflows"
    DEFAULT_TOOL_CONFIG_PATH = "./config/tools.json"
    DEFAULT_POLL_INTERVAL_MS = 1000
    DEFAULT_TIMEOUT_MS = 5 * 60 * 1000

    def __init__(self, config_file: Path | None = None, environ: Mapping[str, str] | None = None):
        """Initialize configuration manager.

        Args:
            config_file: Optional path to a JSON configuration file
            environ: Environment to read overrides from (defaults to ``os.environ``)
        """
        self.config_file = config_file
        self._config: dict[str, dict[str, Any]] = {}

        self._load_config()
        self._apply_env_overrides(os.environ if environ is None else environ)

    def _load_config(self) -> None:
        """Load configuration from file if available."""
        self._config = {}
        if self.config_file and self.config_file.exists():
            try:
                with open(self.config_file, encoding="utf-8") as f:
                    loaded = json.load(f)
                if isinstance(loaded, dict):
                    self._config = {k: dict(v) for k, v in loaded.items() if isinstance(v, dict)}
                else:
                    logger.warning(f"Config file {self.config_file} must contain a JSON object; ignoring it")
                DebugLogger.debug(self, f"Loaded configuration from {self.config_file}")
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Failed to load config file {self.config_file}: {e}")

        for category in (self.SERVER_OPTIONS, self.WORKFLOW_OPTIONS, self.COMFYUI_OPTIONS):
            self._config.setdefault(category, {})

        if self.is_debug_mode():
            DebugLogger.set_debug_enabled(True)

    def _apply_int_env(self, environ: Mapping[str, str], name: str, setter) -> None:
        try:
            setter(int(environ[name]))
        except ValueError:
            logger.warning(f"Invalid {name} value: {environ[name]!r}")

    def _apply_env_overrides(self, environ: Mapping[str, str]) -> None:
        """Apply environment variable overrides."""
        # Server configuration
        for name in ("COMFYUI_MCP_PORT", "PORT"):
            if name in environ:
                self._apply_int_env(environ, name, self.set_server_port)
                break

        if "COMFYUI_MCP_HOST" in environ:
            host = environ["COMFYUI_MCP_HOST"].strip()
            if host:
                self.set_server_host(host)

        if "COMFYUI_MCP_DEBUG" in environ:
            self.set_debug_mode(environ["COMFYUI_MCP_DEBUG"].strip().lower() in _TRUE_VALUES)

        # Workflow storage
        if environ.get("WORKFLOWS_DIR", "").strip():
            self.set_workflows_dir(environ["WORKFLOWS_DIR"])
        if environ.get("TOOL_CONFIG_PATH", "").strip():
            self.set_tool_config_path(environ["TOOL_CONFIG_PATH"])

        # Remote execution
        if environ.get("COMFYUI_URL", "").strip():
            self.set_comfyui_url(environ["COMFYUI_URL"])
        if "COMFYUI_POLL_INTERVAL_MS" in environ:
            self._apply_int_env(environ, "COMFYUI_POLL_INTERVAL_MS", self.set_poll_interval_ms)
        if "COMFYUI_TIMEOUT_MS" in environ:
            self._apply_int_env(environ, "COMFYUI_TIMEOUT_MS", self.set_timeout_ms)

    def save_config(self) -> None:
        """Save configuration to file."""
        if not self.config_file:
            return
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w", encoding="utf-8") as f:
                json.dump(self._config, f, indent=2)
            DebugLogger.debug(self, f"Saved configuration to {self.config_file}")
        except OSError as e:
            logger.error(f"Failed to save config file {self.config_file}: {e}")

    def _get_option(self, category: str, name: str, default_value: Any = None) -> Any:
        """Get a configuration option value."""
        category_config = self._config.get(category, {})
        return category_config.get(name, default_value)

    def _set_option(self, category: str, name: str, value: Any) -> None:
        """Set a configuration option value."""
        self._config.setdefault(category, {})[name] = value

    # Server configuration methods
    def get_server_port(self) -> int:
        """Get the server port."""
        return self._get_option(self.SERVER_OPTIONS, self.SERVER_PORT, self.DEFAULT_PORT)

    def set_server_port(self, port: int) -> None:
        """Set the server port."""
        if port < 1 or port > 65535:
            raise ValueError("Port must be between 1 and 65535")
        self._set_option(self.SERVER_OPTIONS, self.SERVER_PORT, port)

    def get_server_host(self) -> str:
        """Get the server host."""
        return self._get_option(self.SERVER_OPTIONS, self.SERVER_HOST, self.DEFAULT_HOST)

    def set_server_host(self, host: str) -> None:
        """Set the server host."""
        if not host or not host.strip():
            raise ValueError("Host cannot be empty")
        self._set_option(self.SERVER_OPTIONS, self.SERVER_HOST, host.strip())

    def is_debug_mode(self) -> bool:
        """Check if debug mode is enabled."""
        return bool(self._get_option(self.SERVER_OPTIONS, self.DEBUG_MODE, self.DEFAULT_DEBUG_MODE))

    def set_debug_mode(self, enabled: bool) -> None:
        """Set debug mode."""
        self._set_option(self.SERVER_OPTIONS, self.DEBUG_MODE, bool(enabled))
        DebugLogger.set_debug_enabled(bool(enabled))

    # Workflow storage methods
    def get_workflows_dir(self) -> Path:
        return Path(self._get_option(self.WORKFLOW_OPTIONS, self.WORKFLOWS_DIR, self.DEFAULT_WORKFLOWS_DIR))

    def set_workflows_dir(self, directory: str | Path) -> None:
        if not str(directory).strip():
            raise ValueError("Workflows directory cannot be empty")
        self._set_option(self.WORKFLOW_OPTIONS, self.WORKFLOWS_DIR, str(directory).strip())

    def get_tool_config_path(self) -> Path:
        return Path(self._get_option(self.WORKFLOW_OPTIONS, self.TOOL_CONFIG_PATH, self.DEFAULT_TOOL_CONFIG_PATH))

    def set_tool_config_path(self, path: str | Path) -> None:
        if not str(path).strip():
            raise ValueError("Tool config path cannot be empty")
        self._set_option(self.WORKFLOW_OPTIONS, self.TOOL_CONFIG_PATH, str(path).strip())

    # Remote execution methods
    def get_comfyui_url(self) -> str | None:
        """Get the ComfyUI base URL; ``None`` disables remote execution."""
        return self._get_option(self.COMFYUI_OPTIONS, self.COMFYUI_URL)

    def set_comfyui_url(self, url: str | None) -> None:
        if url is not None and not url.strip():
            raise ValueError("ComfyUI URL cannot be empty")
        self._set_option(self.COMFYUI_OPTIONS, self.COMFYUI_URL, url.strip() if url else None)

    def get_poll_interval_ms(self) -> int:
        return self._get_option(self.COMFYUI_OPTIONS, self.POLL_INTERVAL_MS, self.DEFAULT_POLL_INTERVAL_MS)

    def set_poll_interval_ms(self, interval_ms: int) -> None:
        if interval_ms < 1:
            raise ValueError("Poll interval must be positive")
        self._set_option(self.COMFYUI_OPTIONS, self.POLL_INTERVAL_MS, interval_ms)

    def get_timeout_ms(self) -> int:
        return self._get_option(self.COMFYUI_OPTIONS, self.TIMEOUT_MS, self.DEFAULT_TIMEOUT_MS)

    def set_timeout_ms(self, timeout_ms: int) -> None:
        if timeout_ms < 1:
            raise ValueError("Timeout must be positive")
        self._set_option(self.COMFYUI_OPTIONS, self.TIMEOUT_MS, timeout_ms)

    def reset_to_defaults(self) -> None:
        """Reset all options to defaults."""
        self._config = {self.SERVER_OPTIONS: {}, self.WORKFLOW_OPTIONS: {}, self.COMFYUI_OPTIONS: {}}
        DebugLogger.set_debug_enabled(self.DEFAULT_DEBUG_MODE)

    def __str__(self) -> str:
        """String representation of configuration."""
        return f"ConfigManager(config_file={self.config_file}, options={len(self._config)})"
