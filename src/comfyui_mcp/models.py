from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from comfyui_mcp.errors import EmptyGraph

ToolFieldType = Literal["string", "number", "integer", "boolean", "object", "array"]


# ---------------------------------------------------------------------------
# Workflow graph
# ---------------------------------------------------------------------------


class WorkflowNode(BaseModel):
    """A single addressable node of a workflow graph."""

    id: int = Field(..., description="Node identifier, unique within its graph.")
    type: str = Field(..., min_length=1, description="Node type tag (ComfyUI class type).")
    attributes: dict[str, Any] = Field(
        default_factory=dict,
        description="Every other key of the source node, preserved verbatim.",
    )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.id, "type": self.type}
        for key, value in self.attributes.items():
            if key not in payload:
                payload[key] = value
        return payload

    def prompt_inputs(self) -> dict[str, Any]:
        """The map submitted as this node's ``inputs`` in an API prompt."""
        inputs = self.attributes.get("inputs")
        if isinstance(inputs, dict):
            return inputs
        properties = self.attributes.get("properties")
        if isinstance(properties, dict):
            return properties
        return {}


class WorkflowGraph(BaseModel):
    """Canonical in-memory workflow graph, whatever shape it was loaded from."""

    nodes: list[WorkflowNode] = Field(default_factory=list)
    links: list[Any] | None = Field(None, description="Edges; opaque, only round-tripped.")
    extra: dict[str, Any] = Field(
        default_factory=dict,
        description="Other top-level keys of the source payload.",
    )
    prompt_passthrough: dict[str, Any] = Field(
        default_factory=dict,
        description="Wrapped prompt entries whose keys are not node ids (e.g. \"10:5\"); submitted verbatim.",
    )

    def to_payload(self) -> dict[str, Any]:
        """Render the canonical ``{"nodes": [...], "links": [...]}`` shape."""
        payload: dict[str, Any] = dict(self.extra)
        payload["nodes"] = [node.to_payload() for node in self.nodes]
        if self.links is not None:
            payload["links"] = self.links
        return payload

    def to_prompt(self) -> dict[str, dict[str, Any]]:
        """Render the ComfyUI API prompt (``{"<id>": {"class_type", "inputs"}}``)."""
        prompt = {str(node.id): {"class_type": node.type, "inputs": node.prompt_inputs()} for node in self.nodes}
        for key, entry in self.prompt_passthrough.items():
            prompt.setdefault(key, entry)
        if not prompt:
            raise EmptyGraph("Cannot build a ComfyUI prompt from a workflow without nodes.")
        return prompt


class WorkflowDefinition(BaseModel):
    """A named workflow template loaded from storage."""

    name: str = Field(..., min_length=1, description="Workflow name (file stem).")
    description: str | None = Field(None, description="Optional human description.")
    graph: WorkflowGraph


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


class ToolFieldMapping(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    target: int | str = Field(
        ...,
        validation_alias=AliasChoices("target", "node"),
        description="Node id (integer or numeric string) or node type tag.",
    )
    attribute_path: str = Field(
        ...,
        alias="attributePath",
        validation_alias=AliasChoices("attributePath", "attribute_path", "attribute"),
        description="Attribute key, or a dotted path for nested writes.",
    )

    @field_validator("target", mode="before")
    @classmethod
    def _check_target(cls, v: Any) -> Any:
        if isinstance(v, bool) or not isinstance(v, (int, str)):
            raise ValueError("mapping target must be a node id or a node type")
        if isinstance(v, str) and not v.strip():
            raise ValueError("mapping target cannot be empty")
        return v

    @field_validator("attribute_path")
    @classmethod
    def _check_attribute_path(cls, v: str) -> str:
        if not v or any(not segment for segment in v.split(".")):
            raise ValueError(f"invalid attribute path '{v}'")
        return v

    @property
    def is_nested(self) -> bool:
        return "." in self.attribute_path


class ToolFieldGenerator(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Open set: unknown strategies load fine and surface as a warning at invoke time.
    strategy: str = Field(..., min_length=1, validation_alias=AliasChoices("strategy", "type"))
    options: dict[str, Any] | None = None


class ToolField(BaseModel):
    """One caller-facing parameter of a tool."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    description: str | None = None
    type: ToolFieldType = Field(..., description="Advisory JSON type; values are never coerced.")
    mapping: ToolFieldMapping
    generator: ToolFieldGenerator | None = None
    required: bool | None = None
    default: Any = None

    @property
    def has_default(self) -> bool:
        return "default" in self.model_fields_set


class ToolDefinition(BaseModel):
    """A named, schema-bearing parameter contract bound to a workflow."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    description: str | None = None
    fields: list[ToolField] = Field(default_factory=list)
    workflow_name: str | None = Field(
        None,
        alias="workflowName",
        validation_alias=AliasChoices("workflowName", "workflow_name", "workflow"),
        min_length=1,
    )

    @model_validator(mode="after")
    def _check_unique_field_names(self) -> ToolDefinition:
        seen: set[str] = set()
        for field in self.fields:
            if field.name in seen:
                raise ValueError(f"field '{field.name}' is declared more than once in tool '{self.name}'")
            seen.add(field.name)
        return self


# ---------------------------------------------------------------------------
# Invocation result
# ---------------------------------------------------------------------------


class InvokeResult(BaseModel):
    """Structured outcome of one tool invocation."""

    model_config = ConfigDict(populate_by_name=True)

    status: Literal["ok", "error"]
    tool: str
    params: dict[str, Any] = Field(default_factory=dict)
    graph: dict[str, Any] | None = None
    warnings: list[str] | None = None
    result_reference: str | None = Field(None, alias="resultReference")
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
