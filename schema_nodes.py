"""Schema node and document types produced by the JSON Schema builder."""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Union
from urllib.parse import quote

Number = Union[int, float]

DEFINITIONS_POINTER = "#/definitions/"

BOOLEAN_EXCLUSIVITY_DIALECTS = ("draft-03", "draft-04")


def escape_pointer_token(token: str) -> str:
    """Escape a JSON Pointer reference token and percent-encode it for a URI fragment."""
    return quote(token.replace("~", "~0").replace("/", "~1"), safe="~")


def definition_ref(key: str) -> str:
    return f"{DEFINITIONS_POINTER}{escape_pointer_token(key)}"


def uses_boolean_exclusivity(dialect: Optional[str]) -> bool:
    """Draft 3 and 4 express exclusive bounds as boolean flags next to minimum/maximum."""
    if not dialect:
        return False
    return any(marker in dialect for marker in BOOLEAN_EXCLUSIVITY_DIALECTS)


@dataclass(eq=False)
class SchemaNode:
    type: Optional[str] = None
    ref: Optional[str] = None
    description: Optional[str] = None
    # string
    enum: List[Any] = field(default_factory=list)
    format: Optional[str] = None
    pattern: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    # number / integer
    minimum: Optional[Number] = None
    exclusive_minimum: bool = False
    maximum: Optional[Number] = None
    exclusive_maximum: bool = False
    multiple_of: Optional[Number] = None
    # array
    items: Optional["SchemaNode"] = None
    min_items: Optional[int] = None
    max_items: Optional[int] = None
    unique_items: bool = False
    # object
    properties: Dict[str, "SchemaNode"] = field(default_factory=dict)
    required: List[str] = field(default_factory=list)
    additional_properties: Optional[bool] = None

    def add_enum_value(self, value: Any) -> None:
        if value not in self.enum:
            self.enum.append(value)

    def copy(self) -> "SchemaNode":
        return copy.deepcopy(self)

    def to_dict(self, dialect: Optional[str] = None) -> Dict[str, Any]:
        boolean_exclusivity = uses_boolean_exclusivity(dialect)
        schema: Dict[str, Any] = {}
        if self.ref:
            schema["$ref"] = self.ref
        if self.type:
            schema["type"] = self.type
        if self.description:
            schema["description"] = self.description
        if self.enum:
            schema["enum"] = list(self.enum)
        if self.format:
            schema["format"] = self.format
        if self.pattern:
            schema["pattern"] = self.pattern
        if self.min_length is not None:
            schema["minLength"] = self.min_length
        if self.max_length is not None:
            schema["maxLength"] = self.max_length
        self._add_bound(schema, "minimum", "exclusiveMinimum", self.minimum, self.exclusive_minimum, boolean_exclusivity)
        self._add_bound(schema, "maximum", "exclusiveMaximum", self.maximum, self.exclusive_maximum, boolean_exclusivity)
        if self.multiple_of is not None:
            schema["multipleOf"] = self.multiple_of
        if self.items is not None:
            schema["items"] = self.items.to_dict(dialect)
        if self.min_items is not None:
            schema["minItems"] = self.min_items
        if self.max_items is not None:
            schema["maxItems"] = self.max_items
        if self.unique_items:
            schema["uniqueItems"] = True
        if self.properties:
            schema["properties"] = {
                name: prop.to_dict(dialect) for name, prop in self.properties.items()
            }
        if self.required:
            schema["required"] = list(self.required)
        if self.additional_properties is not None:
            schema["additionalProperties"] = self.additional_properties
        return schema

    @staticmethod
    def _add_bound(
        schema: Dict[str, Any],
        key: str,
        exclusive_key: str,
        value: Optional[Number],
        exclusive: bool,
        boolean_exclusivity: bool,
    ) -> None:
        if value is None:
            return
        if not exclusive:
            schema[key] = value
        elif boolean_exclusivity:
            schema[key] = value
            schema[exclusive_key] = True
        else:
            schema[exclusive_key] = value


@dataclass(frozen=True)
class SchemaDocument:
    dialect: str
    identifier: str
    title: str
    root: SchemaNode
    description: Optional[str] = None
    definitions: Mapping[str, SchemaNode] = field(default_factory=lambda: MappingProxyType({}))

    def to_dict(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {
            "$schema": self.dialect,
            "$id": self.identifier,
            "title": self.title,
        }
        if self.description:
            schema["description"] = self.description
        schema.update(self.root.to_dict(self.dialect))
        if self.definitions:
            schema["definitions"] = {
                key: node.to_dict(self.dialect) for key, node in self.definitions.items()
            }
        return schema

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=indent)
