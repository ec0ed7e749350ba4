"""
JSON Schema -> pydantic translation for remote tool arguments.

Covers the shapes tool servers actually emit: objects with required and
optional properties, scalars, arrays, nullable `anyOf` and schema defaults.
Anything else validates as `Any`.
"""
import re
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, create_model

_SCALARS: dict[str, type] = {
    "string": str,
    "number": float,
    "integer": int,
    "boolean": bool,
}

def _is_nullable(schema: Any) -> bool:
    if not isinstance(schema, dict):
        return False
    kind = schema.get("type")
    return (isinstance(kind, list) and "null" in kind) or _nullable_branch(schema) is not None

def _nullable_branch(schema: dict) -> dict | None:
    any_of = schema.get("anyOf")
    if not isinstance(any_of, list):
        return None
    if not any(isinstance(s, dict) and s.get("type") == "null" for s in any_of):
        return None
    return next((s for s in any_of if isinstance(s, dict) and s.get("type") != "null"), None)

def json_schema_to_type(schema: Any, name: str = "Arguments") -> Any:
    if not isinstance(schema, dict):
        return Any

    kind = schema.get("type")
    if isinstance(kind, list):
        # type arrays: a single non-null member keeps its type, anything wider is Any
        members = [k for k in kind if k != "null"]
        inner = json_schema_to_type({**schema, "type": members[0]}, name) if len(members) == 1 else Any
        return Optional[inner] if "null" in kind and inner is not Any else inner
    if not isinstance(kind, str):
        kind = None

    if kind == "object":
        if schema.get("properties"):
            return build_arguments_model(name, schema)
        return dict[str, Any]
    if kind in _SCALARS:
        return _SCALARS[kind]
    if kind == "array":
        items = schema.get("items")
        return list[json_schema_to_type(items, f"{name}Item")] if items else list[Any]

    any_of = schema.get("anyOf")
    if isinstance(any_of, list) and any_of:
        inner = _nullable_branch(schema)
        if inner is not None:
            return Optional[json_schema_to_type(inner, name)]
        return json_schema_to_type(any_of[0], name)
    return Any

def _field_name(key: str, index: int) -> str:
    if key.isidentifier() and not key.startswith("_") and not hasattr(BaseModel, key):
        return key
    return f"field_{index}_{re.sub(r'[^0-9a-zA-Z_]', '_', key)}"

def build_arguments_model(name: str, schema: Any) -> type[BaseModel]:
    """
    Pydantic model for an object schema. Properties keep their wire names as
    aliases; properties that are not required (or are nullable) default to None.
    An object without properties accepts any keys.
    """
    schema = schema if isinstance(schema, dict) else {}
    properties = schema.get("properties") or {}
    required = set(schema.get("required") or [])

    fields: dict[str, Any] = {}
    for i, (key, sub) in enumerate(properties.items()):
        tp = json_schema_to_type(sub, f"{name}_{key}")
        if isinstance(sub, dict) and "default" in sub:
            fields[_field_name(key, i)] = (tp, Field(default=sub["default"], alias=key))
        elif key in required and not _is_nullable(sub):
            fields[_field_name(key, i)] = (tp, Field(..., alias=key))
        else:
            fields[_field_name(key, i)] = (Optional[tp], Field(default=None, alias=key))

    config = ConfigDict(populate_by_name=True, extra="ignore" if properties else "allow")
    model_name = re.sub(r"[^0-9a-zA-Z_]", "_", name) or "Arguments"
    return create_model(model_name, __config__=config, **fields)

def validate_arguments(model: type[BaseModel], args: dict | None) -> dict:
    """Validate and coerce tool arguments; unset optionals are dropped from the result."""
    return model.model_validate(args or {}).model_dump(by_alias=True, exclude_none=True, mode="json")
