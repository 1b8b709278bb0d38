"""Field resolution and parameter injection.

``apply_tool_arguments`` deep-copies a workflow template, then for every tool
field (in declaration order):

1. finds the target node, by id first and by type second;
2. resolves a value: supplied argument, declared default, or generator;
3. writes the value at the field's attribute path.

Per-field problems (missing node, missing value, unsupported generator, bad
path) are collected as warnings and never stop the remaining fields.

Write policy for a bare attribute name: the node's ``inputs`` map if it has one,
else its ``properties`` map, else the node's own attributes. A dotted path is
always walked from the node's own attributes, creating nested maps as needed,
so ``inputs.text`` and ``text`` can land in the same place while ``extra.text``
never touches ``inputs``.
"""

from __future__ import annotations

import copy
import logging
import random

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from comfyui_mcp.graph import parse_node_id
from comfyui_mcp.models import ToolDefinition, ToolField, ToolFieldGenerator, WorkflowGraph, WorkflowNode

logger = logging.getLogger(__name__)

# 2**53 - 1, the largest integer a JSON consumer can hold exactly.
MAX_SAFE_INTEGER = 9007199254740991

_MISSING = object()


# ---------------------------------------------------------------------------
# Warnings
# ---------------------------------------------------------------------------


def _warning(code: str, message: str) -> str:
    return f"{code}: {message}"


def node_not_found(target: int | str) -> str:
    return _warning("NodeNotFound", f"Node {target} not found in workflow.")


def missing_field(name: str) -> str:
    return _warning("MissingField", f"Field {name} is missing from the arguments.")


def unsupported_generator(field_name: str, strategy: str) -> str:
    return _warning("UnsupportedGenerator", f"Generator '{strategy}' for field {field_name} is not supported.")


def invalid_generator_options(field_name: str, reason: str) -> str:
    return _warning("InvalidGeneratorOptions", f"Generator options for field {field_name} are invalid: {reason}.")


def invalid_attribute_path(field_name: str, path: str, segment: str) -> str:
    return _warning("InvalidAttributePath", f"Cannot write {path} for field {field_name}: '{segment}' is not an object.")


class GeneratorOptionsError(ValueError):
    """Raised by a generator when its declared options are unusable."""


# ---------------------------------------------------------------------------
# Generators
# ---------------------------------------------------------------------------

Generator = Callable[[Mapping[str, Any], random.Random], Any]


def _int_option(options: Mapping[str, Any], key: str, default: int) -> int:
    value = options.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise GeneratorOptionsError(f"'{key}' must be an integer")
    return value


def generate_seed(options: Mapping[str, Any], rng: random.Random) -> int:
    low = _int_option(options, "min", 0)
    high = _int_option(options, "max", MAX_SAFE_INTEGER)
    if low > high:
        raise GeneratorOptionsError(f"'min' ({low}) is greater than 'max' ({high})")
    return rng.randint(low, high)


def generate_random(options: Mapping[str, Any], rng: random.Random) -> float:
    return rng.random()


GENERATORS: dict[str, Generator] = {
    "seed": generate_seed,
    "random": generate_random,
}


def register_generator(strategy: str, generator: Generator) -> None:
    """Add or replace a value generation strategy."""
    GENERATORS[strategy] = generator


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


@dataclass
class InjectionResult:
    graph: WorkflowGraph
    warnings: list[str] = field(default_factory=list)


def find_node(graph: WorkflowGraph, target: int | str) -> WorkflowNode | None:
    """Locate a node by id (numeric equality), then by type tag."""
    node_id = parse_node_id(target)
    if node_id is not None:
        for node in graph.nodes:
            if node.id == node_id:
                return node
    type_tag = str(target)
    for node in graph.nodes:
        if node.type == type_tag:
            return node
    return None


def _generate(tool_field: ToolField, generator: ToolFieldGenerator, rng: random.Random) -> tuple[Any, str | None]:
    handler = GENERATORS.get(generator.strategy)
    if handler is None:
        return _MISSING, unsupported_generator(tool_field.name, generator.strategy)
    try:
        return handler(generator.options or {}, rng), None
    except GeneratorOptionsError as e:
        return _MISSING, invalid_generator_options(tool_field.name, str(e))


def resolve_field_value(
    tool_field: ToolField,
    arguments: Mapping[str, Any],
    rng: random.Random,
) -> tuple[Any, str | None]:
    """Return ``(value, warning)``; ``value`` is ``_MISSING`` when nothing resolved.

    Presence decides, not truthiness: a supplied ``False``, ``0`` or ``""`` wins.
    """
    if tool_field.name in arguments:
        return arguments[tool_field.name], None
    if tool_field.has_default:
        return copy.deepcopy(tool_field.default), None
    if tool_field.generator is not None:
        return _generate(tool_field, tool_field.generator, rng)
    return _MISSING, missing_field(tool_field.name)


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------


def _bare_container(node: WorkflowNode) -> dict[str, Any]:
    for key in ("inputs", "properties"):
        container = node.attributes.get(key)
        if isinstance(container, dict):
            return container
    return node.attributes


def write_attribute(node: WorkflowNode, tool_field: ToolField, value: Any) -> str | None:
    """Write *value* at the field's attribute path; return a warning on failure."""
    path = tool_field.mapping.attribute_path
    if not tool_field.mapping.is_nested:
        _bare_container(node)[path] = value
        return None

    *parents, leaf = path.split(".")
    container: dict[str, Any] = node.attributes
    for segment in parents:
        child = container.get(segment)
        if child is None:
            child = {}
            container[segment] = child
        elif not isinstance(child, dict):
            return invalid_attribute_path(tool_field.name, path, segment)
        container = child
    container[leaf] = value
    return None


def apply_tool_arguments(
    graph: WorkflowGraph,
    tool: ToolDefinition,
    arguments: Mapping[str, Any] | None = None,
    *,
    rng: random.Random | None = None,
) -> InjectionResult:
    """Produce a new graph with the tool's fields applied; *graph* is never mutated."""
    arguments = arguments or {}
    rng = rng or random.SystemRandom()
    result = InjectionResult(graph=graph.model_copy(deep=True))

    for tool_field in tool.fields:
        node = find_node(result.graph, tool_field.mapping.target)
        if node is None:
            result.warnings.append(node_not_found(tool_field.mapping.target))
            continue

        value, warning = resolve_field_value(tool_field, arguments, rng)
        if warning:
            result.warnings.append(warning)
        if value is _MISSING:
            continue

        warning = write_attribute(node, tool_field, value)
        if warning:
            result.warnings.append(warning)

    if result.warnings:
        logger.debug(f"Applied tool '{tool.name}' with {len(result.warnings)} warning(s)")
    return result
