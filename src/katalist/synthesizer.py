"""Infer a structural schema descriptor from an observed JSON payload."""

from __future__ import annotations

import copy
from typing import Any, Literal

from genson import SchemaBuilder
from pydantic import BaseModel, Field

from .errors import UnsupportedShapeError

Kind = Literal["object", "array", "scalar", "union"]

SCALAR_TYPES = ("string", "integer", "number", "boolean", "null")


class SchemaDescriptor(BaseModel):
    """Frozen description of one node of an observed JSON shape."""

    kind: Kind
    title: str | None = None
    types: list[str] = Field(default_factory=list)
    properties: dict[str, SchemaDescriptor] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)
    items: SchemaDescriptor | None = None
    variants: list[SchemaDescriptor] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def is_null(self) -> bool:
        return self.kind == "scalar" and self.types == ["null"]

    @property
    def nullable(self) -> bool:
        if self.kind == "scalar":
            return "null" in self.types
        return any(variant.nullable for variant in self.variants)

    @classmethod
    def from_json_schema(cls, schema: dict[str, Any]) -> SchemaDescriptor:
        """Build a descriptor tree from a genson-style JSON Schema dict."""
        title = schema.get("title")
        if "anyOf" in schema:
            variants = [cls.from_json_schema(member) for member in schema["anyOf"]]
            return cls(kind="union", title=title, variants=variants)
        raw_type = schema.get("type")
        types = [raw_type] if isinstance(raw_type, str) else list(raw_type or [])
        structural = [t for t in types if t in {"object", "array"}]
        if len(types) > 1 and structural:
            variants = []
            for json_type in types:
                member = {k: v for k, v in schema.items() if k != "title"}
                member["type"] = json_type
                variants.append(cls.from_json_schema(member))
            return cls(kind="union", title=title, variants=variants)
        if types == ["object"]:
            properties = {
                name: cls.from_json_schema(prop)
                for name, prop in (schema.get("properties") or {}).items()
            }
            return cls(
                kind="object",
                title=title,
                types=["object"],
                properties=properties,
                required=list(schema.get("required") or []),
            )
        if types == ["array"]:
            items = schema.get("items")
            if isinstance(items, list):
                items = {"anyOf": items} if items else None
            return cls(
                kind="array",
                title=title,
                types=["array"],
                items=cls.from_json_schema(items) if items else None,
            )
        return cls(kind="scalar", title=title, types=sorted(types))

    def to_json_schema(self) -> dict[str, Any]:
        """Render the descriptor as a self-contained JSON Schema dict."""
        out: dict[str, Any] = {}
        if self.title is not None:
            out["title"] = self.title
        if self.kind == "union":
            out["anyOf"] = [variant.to_json_schema() for variant in self.variants]
            return out
        if self.kind == "scalar":
            out["type"] = self.types[0] if len(self.types) == 1 else list(self.types)
            return out
        out["type"] = self.kind
        if self.kind == "object":
            out["properties"] = {
                name: prop.to_json_schema() for name, prop in self.properties.items()
            }
            if self.required:
                out["required"] = list(self.required)
        elif self.items is not None:
            out["items"] = self.items.to_json_schema()
        return out


SchemaDescriptor.model_rebuild()


def _check_shape(value: Any) -> None:
    if isinstance(value, dict):
        return
    if isinstance(value, list):
        if not value:
            raise UnsupportedShapeError("cannot infer a schema from an empty array")
        if not isinstance(value[0], dict):
            raise UnsupportedShapeError(
                f"array payloads must hold objects, got {type(value[0]).__name__}"
            )
        return
    raise UnsupportedShapeError(
        f"payload must be a JSON object or array of objects, got {type(value).__name__}"
    )


def _is_null(schema: dict[str, Any]) -> bool:
    return schema.get("type") == "null" and "anyOf" not in schema


def require_non_null(schema: dict[str, Any]) -> None:
    """Recompute ``required`` on every object node, children first.

    An object requires exactly the properties whose inferred type is not
    ``null``. Array items and ``anyOf`` members are visited too.
    """
    for prop in (schema.get("properties") or {}).values():
        if isinstance(prop, dict):
            require_non_null(prop)
    items = schema.get("items")
    if isinstance(items, dict):
        require_non_null(items)
    elif isinstance(items, list):
        for item in items:
            if isinstance(item, dict):
                require_non_null(item)
    for member in schema.get("anyOf") or []:
        if isinstance(member, dict):
            require_non_null(member)

    if "properties" in schema or schema.get("type") == "object":
        props = schema.get("properties") or {}
        required = [name for name, prop in props.items() if not _is_null(prop)]
        if required:
            schema["required"] = required
        else:
            schema.pop("required", None)


def infer_json_schema(value: Any, title: str) -> dict[str, Any]:
    """Return the JSON Schema dict inferred for ``value``."""
    _check_shape(value)
    builder = SchemaBuilder()
    builder.add_object(copy.deepcopy(value))
    schema = builder.to_schema()
    schema.pop("$schema", None)
    schema["title"] = title
    require_non_null(schema)
    return schema


def synthesize(value: Any, title: str) -> SchemaDescriptor:
    """Infer a descriptor for a JSON object or array of objects.

    Raises ``UnsupportedShapeError`` for scalars, empty arrays and arrays
    whose first element is not an object.
    """
    return SchemaDescriptor.from_json_schema(infer_json_schema(value, title))
