"""Tool definition loading.

Accepts either a bare array of tool descriptors or ``{"version": "...", "tools": [...]}``
and returns validated ``ToolDefinition`` objects. Field mapping targets are kept
exactly as written; resolving them to nodes happens at invoke time.
"""

from __future__ import annotations

import logging

from typing import Any

from pydantic import ValidationError

from comfyui_mcp.errors import InvalidToolConfigShape, InvalidToolDefinition, ToolMustDeclareFields
from comfyui_mcp.models import ToolDefinition

logger = logging.getLogger(__name__)


def _descriptor_name(descriptor: Any) -> str | None:
    if isinstance(descriptor, dict) and isinstance(descriptor.get("name"), str):
        return descriptor["name"]
    return None


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for issue in error.errors():
        location = ".".join(str(p) for p in issue.get("loc", ()))
        parts.append(f"{location}: {issue.get('msg')}" if location else str(issue.get("msg")))
    return "; ".join(parts)


def extract_tool_descriptors(payload: Any) -> list[Any]:
    """Unwrap the descriptor list from either accepted config shape."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("tools"), list):
        return payload["tools"]
    raise InvalidToolConfigShape("Tool config must be an array of tools or an object with a 'tools' array.")


def parse_tool_definition(descriptor: Any) -> ToolDefinition:
    """Validate one tool descriptor.

    Raises:
        ToolMustDeclareFields: the descriptor declares no fields.
        InvalidToolDefinition: any other validation failure.
    """
    name = _descriptor_name(descriptor)
    if not isinstance(descriptor, dict):
        raise InvalidToolDefinition("Tool descriptor must be an object.")

    fields = descriptor.get("fields")
    if fields is None or (isinstance(fields, list) and not fields):
        raise ToolMustDeclareFields(f"Tool '{name}' must declare at least one field.", tool_name=name)

    try:
        return ToolDefinition.model_validate(descriptor)
    except ValidationError as e:
        raise InvalidToolDefinition(f"Invalid tool '{name}': {_format_validation_error(e)}", tool_name=name) from e


def load_tool_definitions(payload: Any, *, skip_invalid: bool = False) -> list[ToolDefinition]:
    """Parse a raw tool config payload into tool definitions.

    Args:
        payload: Decoded JSON, either ``[...]`` or ``{"tools": [...]}``.
        skip_invalid: Log and drop invalid descriptors instead of raising.

    Raises:
        InvalidToolConfigShape: the payload has neither accepted shape.
        InvalidToolDefinition: a descriptor is invalid and ``skip_invalid`` is False.
    """
    definitions: list[ToolDefinition] = []
    for descriptor in extract_tool_descriptors(payload):
        try:
            definitions.append(parse_tool_definition(descriptor))
        except InvalidToolDefinition as e:
            if not skip_invalid:
                raise
            logger.warning(f"Skipping tool definition: {e}")
    return definitions
