"""Schema utility functions for the ComfyUI MCP server.

Derives the JSON-Schema input descriptor advertised for each tool.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from comfyui_mcp.models import ToolField


class SchemaUtil:
    """Utility methods for creating MCP JSON schemas."""

    @staticmethod
    def typed_property(json_type: str, description: str | None = None) -> dict[str, Any]:
        """Create a property schema of the given JSON type."""
        schema: dict[str, Any] = {"type": json_type}
        if description:
            schema["description"] = description
        return schema

    @staticmethod
    def typed_property_with_default(json_type: str, description: str | None, default_value: Any) -> dict[str, Any]:
        """Create a property schema with a default value."""
        schema = SchemaUtil.typed_property(json_type, description)
        schema["default"] = default_value
        return schema

    @staticmethod
    def create_schema(
        properties: dict[str, Any],
        required: list[str] | None = None,
    ) -> dict[str, Any]:
        """Create a complete JSON schema."""
        return {
            "type": "object",
            "properties": properties,
            "required": list(required or []),
        }

    @staticmethod
    def builder() -> SchemaBuilder:
        """Create a schema builder for fluent API."""
        return SchemaBuilder()


class SchemaBuilder:
    """Fluent builder for creating JSON schemas."""

    def __init__(self):
        self._properties: dict[str, Any] = {}
        self._required: list[str] = []

    def field_property(self, tool_field: ToolField) -> SchemaBuilder:
        """Add the property for one tool field, marking it required when it has no other source."""
        if tool_field.has_default:
            prop = SchemaUtil.typed_property_with_default(tool_field.type, tool_field.description, tool_field.default)
        else:
            prop = SchemaUtil.typed_property(tool_field.type, tool_field.description)
        self._properties[tool_field.name] = prop
        if is_field_required(tool_field):
            self.required(tool_field.name)
        return self

    def required(self, *names: str) -> SchemaBuilder:
        """Mark properties as required."""
        self._required.extend(names)
        return self

    def build(self) -> dict[str, Any]:
        """Build the final schema."""
        return SchemaUtil.create_schema(self._properties, self._required)


def is_field_required(tool_field: ToolField) -> bool:
    """Explicit ``required`` wins; otherwise a field without default or generator is required."""
    if tool_field.required is not None:
        return tool_field.required
    return not tool_field.has_default and tool_field.generator is None


def project_input_schema(fields: Iterable[ToolField]) -> dict[str, Any]:
    """Derive the JSON-Schema object describing a tool's arguments."""
    builder = SchemaUtil.builder()
    for tool_field in fields:
        builder.field_property(tool_field)
    return builder.build()
