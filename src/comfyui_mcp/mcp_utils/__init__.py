"""Shared MCP helpers: schema projection and debug logging."""

from .debug_logger import DebugLogger
from .schema_util import SchemaBuilder, SchemaUtil, is_field_required, project_input_schema

__all__ = [
    "DebugLogger",
    "SchemaBuilder",
    "SchemaUtil",
    "is_field_required",
    "project_input_schema",
]
