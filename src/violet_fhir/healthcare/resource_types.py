"""Typed views over stored property bags.

One pydantic model is generated per entry of the schema table, so each known
resource type gets its own field set without hand-written classes. Records of
types the table does not know become ``UnknownResource`` carrying the raw
mapping. ``ResourceTypeFactory.as_typed`` dispatches on ``resourceType``.
"""

import keyword
import re
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, create_model

SCALAR_TYPES: Dict[str, Any] = {
    "string": str,
    "number": Union[int, float],
    "integer": int,
    "boolean": bool,
    "null": type(None),
}


class TypedResource(BaseModel):
    """Base of every generated resource model."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def to_properties(self) -> Dict[str, Any]:
        """Back to a plain property bag (wire field names)."""
        return self.model_dump(by_alias=True, exclude_none=True)


class UnknownResource(BaseModel):
    """Fallback variant for types without a schema."""

    resourceType: str
    data: Dict[str, Any]

    def to_properties(self) -> Dict[str, Any]:
        """Back to a plain property bag."""
        return dict(self.data)


def _python_name(name: str) -> str:
    if name.isidentifier() and not keyword.iskeyword(name) and not name.startswith("_"):
        return name
    return re.sub(r"\W", "_", name).strip("_") + "_"


def _annotation(schema: Mapping[str, Any], model_name: str) -> Any:
    """Python type for one schema descriptor."""
    if "const" in schema:
        return Literal[schema["const"]]
    if "enum" in schema:
        return Literal[tuple(schema["enum"])]

    expected = schema.get("type")
    if isinstance(expected, list):
        options = tuple(
            _annotation({**schema, "type": token}, model_name) for token in expected
        )
        return Union[options]  # type: ignore[valid-type]
    if expected == "array":
        items = schema.get("items")
        item_type = _annotation(items, f"{model_name}Item") if items else Any
        return List[item_type]  # type: ignore[valid-type]
    if expected == "object":
        if schema.get("properties"):
            return _build_model(model_name, schema, TypedResource)
        return Dict[str, Any]
    return SCALAR_TYPES.get(expected, Any)


def _build_model(
    model_name: str, schema: Mapping[str, Any], base: Type[BaseModel]
) -> Type[BaseModel]:
    fields: Dict[str, Tuple[Any, Any]] = {}
    for name, member in schema.get("properties", {}).items():
        member_model = model_name + name[:1].upper() + _python_name(name)[1:]
        annotation = Optional[_annotation(member, member_model)]
        fields[_python_name(name)] = (annotation, Field(default=None, alias=name))
    return create_model(model_name, __base__=base, **fields)  # type: ignore[call-overload]


class ResourceTypeFactory:
    """Generated models for every type of a schema table."""

    def __init__(self, schema_table: Mapping[str, Any]) -> None:
        """Generate one model per resource type."""
        self.models: Dict[str, Type[BaseModel]] = {
            resource_type: _build_model(resource_type, schema, TypedResource)
            for resource_type, schema in schema_table.items()
        }

    def model_for(self, resource_type: str) -> Optional[Type[BaseModel]]:
        """Generated model of ``resource_type``."""
        return self.models.get(resource_type)

    def as_typed(
        self, properties: Mapping[str, Any]
    ) -> Union[TypedResource, UnknownResource]:
        """Typed variant for a property bag, ``UnknownResource`` as fallback."""
        resource_type = properties.get("resourceType") or ""
        model = self.models.get(resource_type)
        if model is None:
            return UnknownResource(resourceType=resource_type, data=dict(properties))
        typed: TypedResource = model.model_validate(dict(properties))
        return typed
