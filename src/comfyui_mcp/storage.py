"""Storage collaborators for workflow templates and tool configuration.

Both are read once at startup. A malformed workflow file is logged and skipped
without failing the batch; an absent tool config means zero explicit tools.
"""

from __future__ import annotations

import asyncio
import json
import logging

from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from comfyui_mcp.errors import ComfyMcpError, InvalidToolConfigShape
from comfyui_mcp.graph import normalize_graph
from comfyui_mcp.models import WorkflowDefinition

logger = logging.getLogger(__name__)


@runtime_checkable
class WorkflowSource(Protocol):
    async def load(self) -> list[WorkflowDefinition]: ...


@runtime_checkable
class ToolConfigSource(Protocol):
    async def load(self) -> Any | None:
        """Return the raw decoded payload, or ``None`` when no config exists."""
        ...


def _read_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


class DirectoryWorkflowSource:
    """Every ``*.json`` file in a directory is one workflow named after its stem."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _load_sync(self) -> list[WorkflowDefinition]:
        if not self.directory.is_dir():
            logger.warning(f"Workflows directory {self.directory} does not exist; no workflows loaded")
            return []

        workflows: list[WorkflowDefinition] = []
        for path in sorted(self.directory.iterdir()):
            if not path.is_file() or path.suffix.lower() != ".json":
                continue
            try:
                graph = normalize_graph(_read_json(path))
            except (OSError, UnicodeDecodeError, json.JSONDecodeError, ComfyMcpError) as e:
                logger.error(f"Failed to load workflow {path.stem} from {path}: {e}")
                continue
            workflows.append(WorkflowDefinition(name=path.stem, graph=graph))

        logger.info(f"Loaded {len(workflows)} workflow(s) from {self.directory}")
        return workflows

    async def load(self) -> list[WorkflowDefinition]:
        return await asyncio.to_thread(self._load_sync)

    def __repr__(self) -> str:
        return f"DirectoryWorkflowSource({self.directory})"


class JsonFileToolConfigSource:
    """Tool configuration read from a single JSON file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _load_sync(self) -> Any | None:
        if not self.path.is_file():
            logger.info(f"No tool config at {self.path}; running with workflow tools only")
            return None
        try:
            return _read_json(self.path)
        except json.JSONDecodeError as e:
            raise InvalidToolConfigShape(f"Tool config {self.path} is not valid JSON: {e}") from e

    async def load(self) -> Any | None:
        return await asyncio.to_thread(self._load_sync)

    def __repr__(self) -> str:
        return f"JsonFileToolConfigSource({self.path})"


class InMemoryWorkflowSource:
    def __init__(self, workflows: list[WorkflowDefinition] | dict[str, Any]):
        self._workflows = workflows

    async def load(self) -> list[WorkflowDefinition]:
        if isinstance(self._workflows, list):
            return list(self._workflows)
        workflows: list[WorkflowDefinition] = []
        for name, payload in self._workflows.items():
            try:
                workflows.append(WorkflowDefinition(name=name, graph=normalize_graph(payload)))
            except ComfyMcpError as e:
                logger.error(f"Failed to load workflow {name}: {e}")
        return workflows


class InMemoryToolConfigSource:
    def __init__(self, payload: Any | None):
        self._payload = payload

    async def load(self) -> Any | None:
        return self._payload
