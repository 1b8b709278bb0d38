"""Workflow graph normalization.

Two stored encodings are accepted and folded into one ``WorkflowGraph``:

- classic (UI export): ``{"nodes": [{"id": 6, "type": "CLIPTextEncode", ...}], "links": [...]}``
- keyed (API export): ``{"6": {"class_type": "CLIPTextEncode", "inputs": {...}}, ...}``

A classic payload may also wrap a keyed prompt under ``"prompt"``; the wrapped
prompt is used directly. Shape dispatch happens only here, in
``classify_graph_payload``; everything downstream sees ``WorkflowGraph``.
"""

from __future__ import annotations

import logging

from enum import Enum
from typing import Any

from comfyui_mcp.errors import EmptyGraph, UnsupportedGraphFormat
from comfyui_mcp.models import WorkflowGraph, WorkflowNode

logger = logging.getLogger(__name__)


class GraphFormat(str, Enum):
    """Accepted graph encodings."""

    CLASSIC = "classic"
    KEYED = "keyed"
    PROMPT_CONTAINER = "prompt_container"
    UNSUPPORTED = "unsupported"


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def _type_tag(entry: dict[str, Any]) -> tuple[str, str] | None:
    """Return ``(tag_key, tag_value)`` for a keyed node entry, preferring ``class_type``."""
    for key in ("class_type", "type"):
        value = entry.get(key)
        if isinstance(value, str) and value.strip():
            return key, value
    return None


def _is_prompt_like(value: Any) -> bool:
    if not isinstance(value, dict) or not value:
        return False
    return all(
        isinstance(entry, dict) and isinstance(entry.get("class_type"), str) and "inputs" in entry
        for entry in value.values()
    )


def classify_graph_payload(payload: Any) -> GraphFormat:
    """Decide which accepted encoding *payload* uses, without converting it."""
    if not isinstance(payload, dict):
        return GraphFormat.UNSUPPORTED
    if _is_prompt_like(payload.get("prompt")):
        return GraphFormat.PROMPT_CONTAINER
    if "nodes" in payload:
        return GraphFormat.CLASSIC if isinstance(payload["nodes"], list) else GraphFormat.UNSUPPORTED
    if any(isinstance(entry, dict) and _type_tag(entry) is not None for entry in payload.values()):
        return GraphFormat.KEYED
    return GraphFormat.UNSUPPORTED


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------


def parse_node_id(key: Any) -> int | None:
    """Return the integer node id spelled by *key*, or None.

    Only an optional leading ``-`` and ASCII digits qualify; ``"²"``, ``"1_0"``
    and ``"10:5"`` are not node ids.
    """
    if isinstance(key, bool):
        return None
    if isinstance(key, int):
        return key
    if not isinstance(key, str):
        return None
    text = key.strip()
    digits = text[1:] if text.startswith("-") else text
    if not (digits.isascii() and digits.isdigit()):
        return None
    return int(text)


def _from_classic(payload: dict[str, Any]) -> WorkflowGraph:
    nodes: list[WorkflowNode] = []
    for index, raw in enumerate(payload["nodes"]):
        if not isinstance(raw, dict):
            raise UnsupportedGraphFormat(f"Node #{index} is not an object.")
        node_id = raw.get("id")
        node_type = raw.get("type")
        if isinstance(node_id, bool) or not isinstance(node_id, int):
            raise UnsupportedGraphFormat(f"Node #{index} has no integer 'id'.")
        if not isinstance(node_type, str) or not node_type.strip():
            raise UnsupportedGraphFormat(f"Node {node_id} has no string 'type'.")
        attributes = {k: v for k, v in raw.items() if k not in ("id", "type")}
        nodes.append(WorkflowNode(id=node_id, type=node_type, attributes=attributes))

    links = payload.get("links")
    if links is not None and not isinstance(links, list):
        raise UnsupportedGraphFormat("'links' must be an array when present.")
    extra = {k: v for k, v in payload.items() if k not in ("nodes", "links")}
    return WorkflowGraph(nodes=nodes, links=links, extra=extra)


def _from_keyed(
    entries: dict[str, Any],
    extra: dict[str, Any] | None = None,
    *,
    keep_unaddressable: bool = False,
) -> WorkflowGraph:
    nodes: list[WorkflowNode] = []
    passthrough: dict[str, Any] = {}
    for key, entry in entries.items():
        node_id = parse_node_id(key)
        if node_id is None:
            if keep_unaddressable:
                passthrough[key] = entry
                logger.debug(f"Keeping prompt entry {key!r} for submission only; it cannot be targeted by tools")
            else:
                logger.warning(f"Skipping non-numeric node key {key!r}")
            continue
        if not isinstance(entry, dict):
            continue
        tag = _type_tag(entry)
        if tag is None:
            logger.debug(f"Skipping node {key!r} without a type tag")
            continue
        tag_key, node_type = tag
        attributes = {k: v for k, v in entry.items() if k != tag_key}
        nodes.append(WorkflowNode(id=node_id, type=node_type, attributes=attributes))

    if not nodes and not passthrough:
        raise EmptyGraph("Keyed workflow export contains no convertible node.")
    return WorkflowGraph(nodes=nodes, links=None, extra=extra or {}, prompt_passthrough=passthrough)


def normalize_graph(payload: Any) -> WorkflowGraph:
    """Parse a stored workflow payload into a canonical ``WorkflowGraph``.

    Entries of a wrapped ``prompt`` whose keys are not node ids are kept and
    submitted unchanged.

    Raises:
        UnsupportedGraphFormat: the payload matches no accepted encoding.
        EmptyGraph: a keyed export yields zero convertible nodes.
    """
    graph_format = classify_graph_payload(payload)
    if graph_format is GraphFormat.PROMPT_CONTAINER:
        extra = {k: v for k, v in payload.items() if k != "prompt"}
        return _from_keyed(payload["prompt"], extra, keep_unaddressable=True)
    if graph_format is GraphFormat.CLASSIC:
        return _from_classic(payload)
    if graph_format is GraphFormat.KEYED:
        return _from_keyed(payload)
    raise UnsupportedGraphFormat("Workflow payload must contain 'nodes', a 'prompt' object, or id-keyed nodes.")
