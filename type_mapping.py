"""Map model types (classes, enumerations, data types) onto JSON Schema base types."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Set

from facets import apply_facets
from schema_nodes import SchemaNode
from uml_model import DataType, Enumeration, ModelClass, ModelType

ISO_DURATION_PATTERN = (
    r"^-?P((([0-9]+Y([0-9]+M)?([0-9]+D)?|([0-9]+M)([0-9]+D)?|([0-9]+D))"
    r"(T(([0-9]+H)([0-9]+M)?([0-9]+(\.[0-9]+)?S)?|([0-9]+M)([0-9]+(\.[0-9]+)?S)?|([0-9]+(\.[0-9]+)?S)))?)"
    r"|(T(([0-9]+H)([0-9]+M)?([0-9]+(\.[0-9]+)?S)?|([0-9]+M)([0-9]+(\.[0-9]+)?S)?|([0-9]+(\.[0-9]+)?S))))$"
)

# lower-cased primitive name -> SchemaNode field values
PRIMITIVE_TYPE_MAP: Dict[str, Dict[str, Any]] = {
    "string": {"type": "string"},
    "number": {"type": "number"},
    "decimal": {"type": "number"},
    "float": {"type": "number"},
    "double": {"type": "number"},
    "boolean": {"type": "boolean"},
    "integer": {"type": "integer"},
    "long": {"type": "integer"},
    "int": {"type": "integer"},
    "short": {"type": "integer"},
    "byte": {"type": "integer"},
    "nonnegativeinteger": {"type": "integer", "minimum": 0},
    "unsignedlong": {"type": "integer", "minimum": 0},
    "unsignedint": {"type": "integer", "minimum": 0},
    "unsignedshort": {"type": "integer", "minimum": 0},
    "unsignedbyte": {"type": "integer", "minimum": 0},
    "positiveinteger": {"type": "integer", "minimum": 0},
    "nonpositiveinteger": {"type": "integer", "maximum": 0},
    "negativeinteger": {"type": "integer", "maximum": 0, "exclusive_maximum": True},
    "duration": {"type": "string", "pattern": ISO_DURATION_PATTERN},
    "datetime": {"type": "string", "format": "date-time"},
}


def normalize_primitive_name(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    return name.strip().lower()


def classify(
    model_type: Optional[ModelType],
    node: Optional[SchemaNode] = None,
    type_map: Optional[Mapping[str, Mapping[str, Any]]] = None,
    _seen: Optional[Set[int]] = None,
) -> SchemaNode:
    """Set the base type of ``node`` (a fresh node when omitted) from ``model_type``.

    Data types are looked up by name in ``type_map``; unknown names fall back to
    the first generalization. A data type that resolves to nothing leaves the node
    untyped. The facets of every data type on the way are applied.
    """
    if node is None:
        node = SchemaNode()
    if type_map is None:
        type_map = PRIMITIVE_TYPE_MAP
    if isinstance(model_type, ModelClass):
        node.type = "object"
    elif isinstance(model_type, Enumeration):
        node.type = "string"
        for literal in model_type.literals:
            node.add_enum_value(literal.value)
    elif isinstance(model_type, DataType):
        seen = _seen if _seen is not None else set()
        seen.add(id(model_type))
        entry = type_map.get(normalize_primitive_name(model_type.name) or "")
        if entry is not None:
            for field_name, value in entry.items():
                setattr(node, field_name, value)
        elif model_type.generalizations:
            general = model_type.generalizations[0]
            if id(general) not in seen:
                classify(general, node, type_map, seen)
        apply_facets(model_type, node)
    return node
