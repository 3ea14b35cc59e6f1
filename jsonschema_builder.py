"""Build JSON Schema documents from a class model rooted in a «JSONSchema» element."""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Set
from urllib.parse import urlparse

from facets import apply_facets
from schema_nodes import SchemaDocument, SchemaNode, definition_ref
from type_mapping import classify
from uml_model import (
    ID_TAG,
    SCHEMA_STEREOTYPE,
    SCHEMA_TAG,
    VERSION_TAG,
    Attribute,
    ModelClass,
    ModelType,
    TransformationError,
)


class ConfigurationError(TransformationError):
    """Raised when the root element is not set up for schema generation."""


class DefinitionKeyStrategy(str, Enum):
    """How object schemas lifted into ``definitions`` are keyed.

    ``mixed`` keys array items by the attribute's type name and single-valued
    class references by the attribute's own name.
    """

    MIXED = "mixed"
    TYPE_NAME = "type-name"
    ATTRIBUTE_NAME = "attribute-name"

    def key_for(self, attribute: Attribute, multivalued: bool) -> str:
        type_name = attribute.type.name if attribute.type is not None else attribute.name
        if self is DefinitionKeyStrategy.TYPE_NAME:
            return type_name
        if self is DefinitionKeyStrategy.ATTRIBUTE_NAME:
            return attribute.name
        return type_name if multivalued else attribute.name


class DefinitionRegistry:
    """Object schemas collected for the ``definitions`` block; last write wins."""

    def __init__(self) -> None:
        self._definitions: Dict[str, SchemaNode] = {}

    def register(self, key: str, node: SchemaNode) -> None:
        self._definitions[key] = node.copy()

    def get(self, key: str) -> Optional[SchemaNode]:
        return self._definitions.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    def as_mapping(self) -> Mapping[str, SchemaNode]:
        return MappingProxyType(dict(self._definitions))


class JsonSchemaBuilder:
    """Recursive schema node builder for one generation run."""

    def __init__(
        self,
        key_strategy: DefinitionKeyStrategy = DefinitionKeyStrategy.MIXED,
        type_map: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> None:
        self.key_strategy = DefinitionKeyStrategy(key_strategy)
        self.type_map = type_map
        self.registry = DefinitionRegistry()
        self._in_progress: Set[int] = set()
        self._recursive: Set[int] = set()

    def build_node(self, model_type: Optional[ModelType]) -> SchemaNode:
        if isinstance(model_type, ModelClass) and id(model_type) in self._in_progress:
            self._recursive.add(id(model_type))
            return SchemaNode(ref=definition_ref(model_type.name))
        node = classify(model_type, type_map=self.type_map)
        if isinstance(model_type, ModelClass) and model_type.attributes:
            self._in_progress.add(id(model_type))
            try:
                self._add_properties(node, model_type)
            finally:
                self._in_progress.discard(id(model_type))
            if id(model_type) in self._recursive:
                self.registry.register(model_type.name, node)
        return node

    def _add_properties(self, node: SchemaNode, model_class: ModelClass) -> None:
        for attribute in model_class.attributes:
            node.properties[attribute.name] = self.build_property(attribute)
            if attribute.lower > 0 and attribute.name not in node.required:
                node.required.append(attribute.name)
        node.additional_properties = False

    def build_property(self, attribute: Attribute) -> SchemaNode:
        if attribute.is_multivalued:
            node = SchemaNode(type="array")
            item = self.build_node(attribute.type)
            node.items = item
            if attribute.lower > 0:
                node.min_items = attribute.lower
            if attribute.upper is not None:
                node.max_items = attribute.upper
            if attribute.is_unique:
                node.unique_items = True
            if item.type == "object":
                self.registry.register(self.key_strategy.key_for(attribute, True), item)
        elif isinstance(attribute.type, ModelClass):
            node = self.build_node(attribute.type)
            if node.type == "object":
                self.registry.register(self.key_strategy.key_for(attribute, False), node)
        else:
            node = classify(attribute.type, type_map=self.type_map)
        apply_facets(attribute, node)
        if attribute.documentation:
            node.description = attribute.documentation
        return node


def is_absolute_uri(value: Optional[str]) -> bool:
    if not value:
        return False
    parsed = urlparse(value)
    if not parsed.scheme:
        return False
    if parsed.scheme in {"http", "https", "ftp"}:
        return bool(parsed.netloc)
    return bool(parsed.netloc or parsed.path)


def compose_description(root: ModelType) -> str:
    version = root.version or root.get_tag_value(VERSION_TAG)
    parts = []
    if version:
        parts.append(f"Version {version}")
    if root.documentation:
        parts.append(root.documentation)
    return "\n".join(parts)


class JsonSchemaGenerator:
    """Generates the schema document for a root element.

    The root is checked when the generator is created: it must carry the
    «JSONSchema» stereotype and absolute URIs in its ``schema`` and ``id`` tags.
    Every call to :meth:`generate` builds a new document.
    """

    def __init__(
        self,
        root: ModelType,
        key_strategy: DefinitionKeyStrategy = DefinitionKeyStrategy.MIXED,
        type_map: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> None:
        if root is None or not root.has_stereotype(SCHEMA_STEREOTYPE):
            name = root.name if root is not None else None
            raise ConfigurationError(
                f"The root element {name!r} should have the «{SCHEMA_STEREOTYPE}» stereotype"
            )
        self.root = root
        self.dialect = self._required_uri(SCHEMA_TAG)
        self.identifier = self._required_uri(ID_TAG)
        self.key_strategy = DefinitionKeyStrategy(key_strategy)
        self.type_map = type_map

    def _required_uri(self, tag_name: str) -> str:
        value = self.root.get_tag_value(tag_name)
        if value is None:
            raise ConfigurationError(f"The root element {self.root.name!r} has no '{tag_name}' tag")
        if not is_absolute_uri(value):
            raise ConfigurationError(
                f"The '{tag_name}' tag of {self.root.name!r} is not a valid URI: {value!r}"
            )
        return value

    def generate(self) -> SchemaDocument:
        builder = JsonSchemaBuilder(self.key_strategy, self.type_map)
        root_node = builder.build_node(self.root)
        return SchemaDocument(
            dialect=self.dialect,
            identifier=self.identifier,
            title=self.root.name,
            root=root_node,
            description=compose_description(self.root) or None,
            definitions=builder.registry.as_mapping(),
        )


def generate_schema(
    root: ModelType,
    key_strategy: DefinitionKeyStrategy = DefinitionKeyStrategy.MIXED,
    type_map: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> SchemaDocument:
    return JsonSchemaGenerator(root, key_strategy, type_map).generate()
